from datetime import datetime
from pytz import timezone
import logging.config
import logging
import os

LOGGER_NAME = "index_sync"

_ANSI_RESET = "\033[0m"
# console colors per level; INFO and DEBUG stay uncolored
_LEVEL_COLORS: dict[int, str] = {
    logging.WARNING: "\033[33m",
    logging.ERROR: "\033[31m",
    logging.CRITICAL: "\033[35m",
}
_LEVEL_MARKERS: dict[int, str] = {
    logging.WARNING: "⚠️ ",
    logging.ERROR: "⛔ ",
    logging.CRITICAL: "⛔ ",
}


class TimezoneFormatter(logging.Formatter):
    """Formats timestamps in the configured timezone and prefixes warnings and errors with a marker."""

    def __init__(self, tz_name, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.tz = timezone(tz_name)

    def formatTime(self, record, datefmt=None):
        dt = datetime.fromtimestamp(record.created, self.tz)
        return dt.strftime(datefmt) if datefmt else dt.isoformat()

    def formatMessage(self, record):
        record.message = _LEVEL_MARKERS.get(record.levelno, "") + record.message
        return super().formatMessage(record)


class ConsoleFormatter(TimezoneFormatter):
    def __init__(self, tz_name, use_color=True, *args, **kwargs):
        super().__init__(tz_name, *args, **kwargs)
        self.use_color = use_color

    def format(self, record) -> str:
        line = super().format(record)
        ansi = _LEVEL_COLORS.get(record.levelno) if self.use_color else None
        return f"{ansi}{line}{_ANSI_RESET}" if ansi else line


def _resolve_level(level: str | None) -> int:
    name = (level or os.getenv("LOG_LEVEL", "info")).upper()
    resolved = logging.getLevelName(name)
    # getLevelName returns a string for unknown names
    return resolved if isinstance(resolved, int) else logging.INFO


def setup_logging(level: str | None = None) -> logging.Logger:
    """Configure console and file logging and return the application logger.

    Reads LOG_LEVEL, TIMEZONE, ROOT_DIR and LOG_COLOR from the environment.
    Log files go to $ROOT_DIR/logs/app.log.
    """
    loglevel = _resolve_level(level)
    log_dir = os.path.join(os.environ.get("ROOT_DIR", os.getcwd()), "logs")
    tz_name = os.getenv("TIMEZONE", "Europe/Berlin")
    use_color = os.getenv("LOG_COLOR", "true").lower() in ("true", "1", "yes")
    os.makedirs(log_dir, exist_ok=True)

    line_format = "%(asctime)s - %(levelname)s - %(name)s - %(message)s"
    logging.config.dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "file": {
                "()": TimezoneFormatter,
                "format": line_format,
                "datefmt": "%Y-%m-%d %H:%M:%S",
                "tz_name": tz_name,
            },
            "console": {
                "()": ConsoleFormatter,
                "format": line_format,
                "datefmt": "%Y-%m-%d %H:%M:%S",
                "tz_name": tz_name,
                "use_color": use_color,
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "console",
                "level": loglevel,
                "stream": "ext://sys.stdout",
            },
            "file": {
                "class": "logging.FileHandler",
                "formatter": "file",
                "level": loglevel,
                "filename": os.path.join(log_dir, "app.log"),
                "encoding": "utf-8",
            },
        },
        "root": {
            "handlers": ["console", "file"],
            "level": loglevel,
        },
    })

    # httpx logs every request at INFO and sqlalchemy every statement
    debug_mode = loglevel <= logging.DEBUG
    logging.getLogger("httpx").setLevel(logging.DEBUG if debug_mode else logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.INFO if debug_mode else logging.WARNING)

    return logging.getLogger(LOGGER_NAME)
