"""Logging configuration."""

from tracker_engine.telemetry.log_config import JSONFormatter, configure_logging

__all__ = ["JSONFormatter", "configure_logging"]
