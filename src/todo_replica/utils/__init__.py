"""Shared utilities."""

from todo_replica.utils.logging import get_logger, setup_logging
from todo_replica.utils.metrics import Metrics, get_metrics

__all__ = [
    "get_logger",
    "setup_logging",
    "Metrics",
    "get_metrics",
]
