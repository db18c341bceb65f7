"""Common repository errors used across storage adapters."""

from __future__ import annotations


class RepositoryError(RuntimeError):
    """Base class for storage layer failures."""


class ValidationError(RepositoryError):
    """Raised when a record or snapshot fails validation."""


class PipelineStoreError(RepositoryError):
    """Raised when pipeline persistence fails."""
