import sys
from typing import Literal, Optional
from loguru import logger

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]

# Every component logger is bound under this namespace
BASE_LOGGER_NAMESPACE = "apicontext"

_COMPONENT_FORMAT = "<level>{level: <8}</level> | <cyan>{extra[module]}</cyan> | {message}"
_PLAIN_FORMAT = "<level>{level: <8}</level> | {message}"

# Handler ids owned by configure_logging (audit sinks are managed elsewhere)
_handler_ids: list[int] = []
_active_level: Optional[str] = None


def get_logger(name: str) -> "logger":
    """
    Returns a loguru logger bound with a component name.

    Example: get_logger("ContextGate") → records carry module="apicontext.ContextGate"
    """
    return logger.bind(module=f"{BASE_LOGGER_NAMESPACE}.{name}")


def _is_component_record(record) -> bool:
    return "module" in record["extra"]


def _is_plain_record(record) -> bool:
    # JSONL audit lines go to their own file sink only
    return "module" not in record["extra"] and not record["extra"].get("audit")


def configure_logging(level: LogLevel = "INFO") -> None:
    """
    Installs the stderr handlers for the context filter.

    Repeat calls with the same level are no-ops. A different level swaps the
    handlers so the CLI flag can override the level read from settings.
    """
    global _active_level
    if _active_level == level:
        return

    if _active_level is None:
        # Drop loguru's default stderr handler on first use
        logger.remove()
    for handler_id in _handler_ids:
        logger.remove(handler_id)
    _handler_ids.clear()

    _handler_ids.append(
        logger.add(sys.stderr, format=_COMPONENT_FORMAT, level=level, colorize=True, filter=_is_component_record)
    )
    _handler_ids.append(
        logger.add(sys.stderr, format=_PLAIN_FORMAT, level=level, colorize=True, filter=_is_plain_record)
    )
    _active_level = level
