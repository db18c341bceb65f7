"""Normalize TeamCity and changeset date strings to epoch milliseconds."""

from __future__ import annotations

import logging
import re
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any

_LOGGER = logging.getLogger(__name__)

BUILD_DATE_FORMAT = "%Y%m%dT%H%M%S"
CHANGESET_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"
CHANGESET_FALLBACK_FORMAT = "%Y-%m-%d %H:%M:%S %z"

UNKNOWN_TIMESTAMP = 0

_BASIC_LENGTH = 15
_OFFSET_PATTERN = re.compile(r"^([+-])(\d{2}):(\d{2})$")
# Leading date-time with millis; trailing text such as a zone is ignored.
_CHANGESET_PREFIX = re.compile(r"(\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2})\.(\d+)")


class DateSchema(str, Enum):
    """Which vendor encoding a raw date string is expected to use."""

    BUILD = "build"
    CHANGESET = "changeset"


def parse_timestamp(raw: Any, schema: DateSchema = DateSchema.BUILD) -> int:
    """Return ``raw`` as epoch milliseconds, or ``0`` when it cannot be read.

    ``0`` is a sentinel for "unknown" and must never be treated as a real
    instant by callers.
    """
    if isinstance(raw, bool) or raw is None:
        _LOGGER.debug("No date value supplied for %s schema", schema.value)
        return UNKNOWN_TIMESTAMP
    if isinstance(raw, (int, float)):
        return int(raw)
    if not isinstance(raw, str) or not raw.strip():
        _LOGGER.error("Invalid date value: %r", raw)
        return UNKNOWN_TIMESTAMP

    text = raw.strip()
    if schema is DateSchema.BUILD:
        return _parse_build_date(text)
    return _parse_changeset_date(text)


def _parse_build_date(text: str) -> int:
    # 20240115T103000+0100: basic date-time followed by a colon-less offset
    try:
        local = datetime.strptime(text[:_BASIC_LENGTH], BUILD_DATE_FORMAT)
        offset = _format_offset(text[_BASIC_LENGTH:])
        aware = local.replace(tzinfo=_offset_to_timezone(offset))
    except ValueError:
        _LOGGER.error("Invalid build date string: %s", text)
        return UNKNOWN_TIMESTAMP
    return int(aware.timestamp()) * 1000


def _format_offset(offset: str) -> str:
    """Rewrite ``+HHMM`` into ``+HH:MM``."""
    if len(offset) != 5 or offset[0] not in "+-" or not offset[1:].isdigit():
        raise ValueError(f"Unsupported UTC offset '{offset}'")
    return f"{offset[:3]}:{offset[3:]}"


def _offset_to_timezone(offset: str) -> timezone:
    match = _OFFSET_PATTERN.match(offset)
    if match is None:
        raise ValueError(f"Unsupported UTC offset '{offset}'")
    sign = -1 if match.group(1) == "-" else 1
    delta = timedelta(hours=int(match.group(2)), minutes=int(match.group(3)))
    return timezone(sign * delta)


def _parse_changeset_date(text: str) -> int:
    match = _CHANGESET_PREFIX.match(text)
    if match is not None:
        try:
            # No zone information: interpreted in the collector's local time.
            parsed = datetime.strptime(match.group(1), CHANGESET_DATE_FORMAT)
        except ValueError:
            pass
        else:
            return int(parsed.timestamp()) * 1000 + int(match.group(2))
    try:
        parsed = datetime.strptime(text, CHANGESET_FALLBACK_FORMAT)
    except ValueError:
        _LOGGER.error("Invalid date string: %s", text)
        return UNKNOWN_TIMESTAMP
    return int(parsed.timestamp() * 1000)
