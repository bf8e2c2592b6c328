"""Reader for ``key = value`` configuration files."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Callable, Mapping, Optional

from .logging_utils import get_module_logger

logger = get_module_logger(__name__)

_TRUE_WORDS = frozenset({"true", "yes", "on", "1"})
_FALSE_WORDS = frozenset({"false", "no", "off", "0"})
_NONE_WORDS = frozenset({"none", "null"})


def parse_bool(text: str) -> bool:
    lowered = text.strip().lower()
    if lowered in _TRUE_WORDS:
        return True
    if lowered in _FALSE_WORDS:
        return False
    raise ValueError(f"not a boolean: {text!r}")


def parse_value(text: str) -> Any:
    """Best-effort conversion of an untyped config value."""
    lowered = text.lower()
    if lowered in _NONE_WORDS or not text:
        return None
    if lowered in _TRUE_WORDS - {"1"} or lowered in _FALSE_WORDS - {"0"}:
        return lowered in _TRUE_WORDS
    for converter in (int, float):
        try:
            return converter(text)
        except ValueError:
            continue
    return text


def _converter_for(default: Any) -> Optional[Callable[[str], Any]]:
    if isinstance(default, bool):
        return parse_bool
    if isinstance(default, int):
        return lambda text: int(text, 0)
    if isinstance(default, float):
        return float
    if isinstance(default, Path):
        return Path
    if isinstance(default, str):
        return str
    return None


def load_config_file(
    config_path: Path,
    defaults: Optional[Mapping[str, Any]] = None,
    *,
    strict: bool = False,
) -> dict[str, Any]:
    """Read ``config_path`` and merge it over ``defaults``.

    Values for keys present in ``defaults`` are coerced to the default's
    type; a value that fails coercion keeps the default. With ``strict``
    set, keys missing from ``defaults`` are ignored. A missing or
    unreadable file yields the defaults unchanged.
    """
    config: dict[str, Any] = dict(defaults or {})

    if not config_path.exists():
        logger.debug("Config file not found at %s, using defaults", config_path)
        return config

    try:
        lines = config_path.read_text(encoding="utf-8").splitlines()
    except OSError as exc:
        logger.error("Failed to read config file %s: %s", config_path, exc)
        return config

    for line_num, raw in enumerate(lines, 1):
        line = raw.split("#", 1)[0].strip()
        if not line:
            continue
        if "=" not in line:
            logger.warning("Invalid config line %d (missing '='): %s", line_num, raw.strip())
            continue

        key, value = (part.strip() for part in line.split("=", 1))
        if defaults is not None and key not in defaults:
            if strict:
                logger.warning("Unknown config key '%s' (line %d) ignored", key, line_num)
                continue
            config[key] = parse_value(value)
            continue

        converter = _converter_for(defaults.get(key)) if defaults else None
        if converter is None:
            config[key] = parse_value(value)
            continue
        try:
            config[key] = converter(value)
        except ValueError:
            logger.warning("Config key '%s' has invalid value %r; keeping default", key, value)

    logger.info("Loaded config from %s (%d values)", config_path, len(config))
    return config


__all__ = ["load_config_file", "parse_bool", "parse_value"]
