from datetime import datetime
from pytz import timezone
import logging.config
import logging
import os
from logging import Logger

APP_LOGGER_NAME = "document_cache"

debug_mode = os.getenv("LOG_LEVEL", "info").lower() == "debug"
loglevel = logging.DEBUG if debug_mode else logging.INFO

# ANSI codes for the color= parameter of ColorLogger
_ANSI_RESET = "\033[0m"
_COLOR_MAP: dict[str, str] = {
    "cyan":    "\033[36m",
    "green":   "\033[32m",
    "yellow":  "\033[33m",
    "red":     "\033[31m",
    "magenta": "\033[35m",
    "blue":    "\033[34m",
    "white":   "\033[37m",
}

_LEVEL_PREFIX: dict[int, str] = {
    logging.WARNING: "⚠️ ",
    logging.ERROR: "⛔ ",
    logging.CRITICAL: "⛔ ",
}

# third party loggers that only speak up in debug mode
_QUIET_LOGGERS = ("httpx", "httpcore", "neo4j")


class Neo4jNotificationFilter(logging.Filter):
    """Drop the notifications the neo4j driver logs for idempotent schema statements (IF NOT EXISTS)."""

    def filter(self, record):
        if not record.name.startswith("neo4j"):
            return True
        msg = str(record.msg)
        return not ("Received notification from DBMS server" in msg and "already exists" in msg)


class CustomFormatter(logging.Formatter):
    """Timezone aware formatter with a level emoji and the component name of child loggers.

    A record from "document_cache.sync" is rendered as "[sync] <message>".
    """

    def __init__(self, tz_name, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.tz = timezone(tz_name)

    def formatTime(self, record, datefmt=None):
        dt = datetime.fromtimestamp(record.created, self.tz)
        return dt.strftime(datefmt) if datefmt else dt.isoformat()

    def format(self, record):
        try:
            message = record.getMessage()
        except (TypeError, ValueError):
            message = str(record.msg)

        prefix = _LEVEL_PREFIX.get(record.levelno, "")
        if record.name.startswith(APP_LOGGER_NAME + "."):
            prefix += f"[{record.name[len(APP_LOGGER_NAME) + 1:]}] "

        # the message is fully rendered, args must not be applied twice
        record.msg = prefix + message
        record.args = ()
        return super().format(record)


class ColoredFormatter(CustomFormatter):
    """Console formatter that wraps a line in the ANSI color given via ``color=``."""

    def format(self, record) -> str:
        line = super().format(record)
        ansi = _COLOR_MAP.get(getattr(record, "color", None) or "", "")
        return f"{ansi}{line}{_ANSI_RESET}" if ansi and line else line


class ColorLogger:
    """Wrapper around :class:`logging.Logger` whose log methods accept ``color=``.

    Usage::

        logger.info("plain message")
        logger.info("cache hit for '%s'", query, color="cyan")
        sync_logger = logger.child("sync")

    Colors only reach the console handler, the log file stays plain text.
    """

    def __init__(self, logger: Logger):
        self._logger = logger

    def _emit(self, level: int, msg, args: tuple, color: str | None, kwargs: dict) -> None:
        if color is not None:
            kwargs["extra"] = {**(kwargs.get("extra") or {}), "color": color}
        kwargs.setdefault("stacklevel", 3)
        self._logger.log(level, msg, *args, **kwargs)

    def debug(self, msg, *args, color: str | None = None, **kwargs):
        self._emit(logging.DEBUG, msg, args, color, kwargs)

    def info(self, msg, *args, color: str | None = None, **kwargs):
        self._emit(logging.INFO, msg, args, color, kwargs)

    def warning(self, msg, *args, color: str | None = None, **kwargs):
        self._emit(logging.WARNING, msg, args, color, kwargs)

    def error(self, msg, *args, color: str | None = None, **kwargs):
        self._emit(logging.ERROR, msg, args, color, kwargs)

    def exception(self, msg, *args, color: str | None = None, **kwargs):
        kwargs.setdefault("exc_info", True)
        self._emit(logging.ERROR, msg, args, color, kwargs)

    def child(self, suffix: str) -> "ColorLogger":
        """Return a ColorLogger for a sub component, e.g. child("sync") -> "document_cache.sync"."""
        return ColorLogger(self._logger.getChild(suffix))

    def __getattr__(self, name):
        # setLevel, handlers, isEnabledFor, ...
        return getattr(self._logger, name)


def _formatter(formatter_class: type, tz_name: str) -> dict:
    return {
        "()": formatter_class,
        "format": "%(asctime)s - %(levelname)s - %(message)s",
        "datefmt": "%Y-%m-%d %H:%M:%S",
        "tz_name": tz_name,
    }


def _log_file_path() -> str:
    """LOG_FILE if set, otherwise $ROOT_DIR/logs/app.log (ROOT_DIR defaults to the working directory)."""
    explicit = os.getenv("LOG_FILE")
    if explicit:
        return explicit
    return os.path.join(os.getenv("ROOT_DIR", os.getcwd()), "logs", "app.log")


def setup_logging(log_to_file: bool | None = None) -> ColorLogger:
    """Configure console and file logging and return the application logger.

    Args:
        log_to_file (bool | None): Also write to the log file. Defaults to the LOG_TO_FILE env variable (true).

    Returns:
        ColorLogger: The "document_cache" logger.
    """
    tz_name = os.getenv("TIMEZONE", "Europe/Berlin")
    if log_to_file is None:
        log_to_file = os.getenv("LOG_TO_FILE", "true").strip().lower() in ("true", "1", "yes")

    handlers: dict[str, dict] = {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "colored",
            "level": loglevel,
            "stream": "ext://sys.stdout",
        },
    }
    if log_to_file:
        file_path = _log_file_path()
        os.makedirs(os.path.dirname(file_path) or ".", exist_ok=True)
        handlers["file"] = {
            "class": "logging.FileHandler",
            "formatter": "standard",
            "level": loglevel,
            "filename": file_path,
            "encoding": "utf-8",
        }

    logging.config.dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "standard": _formatter(CustomFormatter, tz_name),
            "colored": _formatter(ColoredFormatter, tz_name),
        },
        "handlers": handlers,
        "root": {"handlers": list(handlers), "level": loglevel},
    })

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.DEBUG if debug_mode else logging.WARNING)

    notification_filter = Neo4jNotificationFilter()
    for handler in logging.getLogger().handlers:
        handler.addFilter(notification_filter)

    return ColorLogger(logging.getLogger(APP_LOGGER_NAME))
