"""Step logging: console and file handlers plus tool output classification."""

import logging
import sys
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler

ROOT_LOGGER = "xamarin_android_uitest"
DEFAULT_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"

# First marker found in a lower-cased tool line decides its level
TOOL_LINE_LEVELS = (
    ("error", logging.ERROR),
    ("warning", logging.WARNING),
)

_STEP_HANDLER_ATTR = "_uitest_step_handler"
_configured = False


def _console_handler(level: int, log_format: str, rich_console: bool) -> logging.Handler:
    if rich_console:
        # Tool output is printed verbatim; brackets are not rich markup
        handler: logging.Handler = RichHandler(
            console=Console(stderr=True),
            show_time=True,
            show_path=False,
            markup=False,
            rich_tracebacks=True,
        )
    else:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(log_format))
    handler.setLevel(level)
    return handler


def _file_handler(log_file: Path, log_format: str) -> logging.Handler:
    log_file.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(log_file, encoding="utf-8")
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(log_format))
    return handler


def setup_logging(
    level: str = "INFO",
    log_format: str = DEFAULT_FORMAT,
    log_file: Path | None = None,
    rich_console: bool = True,
) -> None:
    """
    Configure the step's log handlers.

    Calling it again replaces the handlers installed by the previous call
    and leaves any other handler on the step logger alone.

    Args:
        level: Console level (DEBUG, INFO, WARNING, ERROR)
        log_format: Format string for plain console and file output
        log_file: Optional file receiving every record at DEBUG
        rich_console: Render console output with rich
    """
    global _configured

    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        raise ValueError(f"Unknown log level: {level}")

    step_logger = logging.getLogger(ROOT_LOGGER)
    for handler in list(step_logger.handlers):
        if getattr(handler, _STEP_HANDLER_ATTR, False):
            step_logger.removeHandler(handler)
            handler.close()

    handlers = [_console_handler(numeric_level, log_format, rich_console)]
    if log_file:
        handlers.append(_file_handler(Path(log_file), log_format))
        step_logger.setLevel(logging.DEBUG)
    else:
        step_logger.setLevel(numeric_level)

    for handler in handlers:
        setattr(handler, _STEP_HANDLER_ATTR, True)
        step_logger.addHandler(handler)

    _configured = True


def get_logger(name: str) -> logging.Logger:
    """
    Get the logger for a module, nested under the step logger.

    Args:
        name: Module name (usually __name__)

    Returns:
        Logger named ``xamarin_android_uitest.<module>``
    """
    if not _configured:
        setup_logging()

    if name == ROOT_LOGGER or name.startswith(f"{ROOT_LOGGER}."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")


def tool_line_level(line: str) -> int:
    """Level for one line of external tool output."""
    line_lower = line.lower()
    for marker, level in TOOL_LINE_LEVELS:
        if marker in line_lower:
            return level
    return logging.INFO


def log_tool_line(logger: logging.Logger, tag: str, line: str) -> None:
    """Log one line of external tool output at a level matching its content."""
    logger.log(tool_line_level(line), f"[{tag}] {line}")
