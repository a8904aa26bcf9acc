"""Logging for snapwright."""

from .logging import LogConfig, Redactor, setup_logging, teardown_logging

__all__ = ["LogConfig", "Redactor", "setup_logging", "teardown_logging"]
