"""Collect TeamCity builds and reconcile built commits into pipelines."""

__version__ = "0.1.0"
