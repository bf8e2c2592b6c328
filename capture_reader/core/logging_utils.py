"""Logger helpers: every record is tagged with the component that emitted it."""

from __future__ import annotations

import logging
from typing import Any, MutableMapping, Optional, Union

READER_LOGGER_NAMESPACE = "capture_reader"
DEFAULT_COMPONENT = "Core"


def _qualified_name(name: Optional[str]) -> str:
    if not name:
        return READER_LOGGER_NAMESPACE
    if name == READER_LOGGER_NAMESPACE or name.startswith(READER_LOGGER_NAMESPACE + "."):
        return name
    return f"{READER_LOGGER_NAMESPACE}.{name}"


def _component_for(logger_name: str) -> str:
    # capture_reader.recognition.runner -> runner
    prefix = READER_LOGGER_NAMESPACE + "."
    if logger_name.startswith(prefix):
        return logger_name[len(prefix):].rsplit(".", 1)[-1] or DEFAULT_COMPONENT
    if logger_name == READER_LOGGER_NAMESPACE or not logger_name:
        return DEFAULT_COMPONENT
    return logger_name


class StructuredLogger(logging.LoggerAdapter):
    """Prefixes messages with ``[component]`` and records it as ``record.component``.

    Children extend the component path, so ``engine`` becomes ``engine.source``
    for the logger handed to the frame source.
    """

    def __init__(self, logger: logging.Logger, component: Optional[str] = None) -> None:
        super().__init__(logger, {"component": component or _component_for(logger.name)})

    @property
    def component(self) -> str:
        return self.extra["component"]

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> tuple[Any, MutableMapping[str, Any]]:
        tag = f"[{self.component}]"
        text = str(msg)
        if not text.startswith(tag):
            text = f"{tag} {text}"
        extra = dict(kwargs.get("extra") or {})
        extra.setdefault("component", self.component)
        kwargs["extra"] = extra
        return text, kwargs

    def getChild(self, suffix: str) -> "StructuredLogger":
        return StructuredLogger(self.logger.getChild(suffix), component=f"{self.component}.{suffix}")

    def __repr__(self) -> str:
        return f"<StructuredLogger {self.logger.name} [{self.component}]>"


LoggerLike = Union[StructuredLogger, logging.Logger, logging.LoggerAdapter, None]


def ensure_structured_logger(
    logger: LoggerLike,
    *,
    component: Optional[str] = None,
    fallback_name: Optional[str] = None,
) -> StructuredLogger:
    """Wrap whatever logger a caller passed in; ``None`` gets a module logger."""
    if isinstance(logger, StructuredLogger):
        return logger
    if isinstance(logger, logging.LoggerAdapter):
        logger = logger.logger
    if isinstance(logger, logging.Logger):
        return StructuredLogger(logger, component=component)
    return get_module_logger(fallback_name)


def get_module_logger(name: Optional[str] = None) -> StructuredLogger:
    """Structured logger under the ``capture_reader`` namespace."""
    return StructuredLogger(logging.getLogger(_qualified_name(name)))


__all__ = [
    "LoggerLike",
    "StructuredLogger",
    "ensure_structured_logger",
    "get_module_logger",
]
