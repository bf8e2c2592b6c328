"""Shared infrastructure: logging, configuration files and task tracking."""

from .config_loader import load_config_file
from .logging_config import configure_logging
from .logging_utils import StructuredLogger, ensure_structured_logger, get_module_logger
from .task_manager import AsyncTaskManager

__all__ = [
    "AsyncTaskManager",
    "StructuredLogger",
    "configure_logging",
    "ensure_structured_logger",
    "get_module_logger",
    "load_config_file",
]
