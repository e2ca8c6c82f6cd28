import logging

from django.conf import settings
from typing_extensions import override

# Four characters wide, so that messages line up.
LEVEL_ABBREVIATIONS = {
    "DEBUG": "DEBG",
    "INFO": "INFO",
    "WARNING": "WARN",
    "ERROR": "ERR",
    "CRITICAL": "CRIT",
}

# The request log makes up most of the output.
LOGGER_SHORT_NAMES = {
    "root": "",
    "chirp.requests": "cr",
}


def logging_module_name(record: logging.LogRecord) -> str | None:
    """The full dotted name of the module that emitted `record`;
    record.module only holds its last component."""
    frame = logging.currentframe()
    while frame is not None:
        if frame.f_code.co_filename == record.pathname:
            return frame.f_globals.get("__name__")
        frame = frame.f_back
    return None


def log_origin(record: logging.LogRecord) -> str:
    origin = LOGGER_SHORT_NAMES.get(record.name, record.name)
    if settings.LOGGING_SHOW_MODULE:
        module_name = logging_module_name(record)
        if module_name not in (origin, record.name):
            origin = f"{origin}/{module_name or '?'}"
    if settings.RUNNING_INSIDE_TORNADO:
        # Tells apart the log lines of several Tornado processes.
        origin = f"{origin}:{settings.TORNADO_PORT}"
    return origin


class ChirpFormatter(logging.Formatter):
    """2026-01-01 12:00:00.000 INFO [cr] <message>"""

    default_msec_format = "%s.%03d"

    def __init__(self) -> None:
        pid = " pid:%(process)d" if settings.LOGGING_SHOW_PID else ""
        super().__init__(fmt=f"%(asctime)s %(level_abbrev)-4s{pid} [%(origin)s] %(message)s")

    @override
    def format(self, record: logging.LogRecord) -> str:
        # A record passing through several handlers is annotated once.
        if not hasattr(record, "origin"):
            record.level_abbrev = LEVEL_ABBREVIATIONS.get(record.levelname, record.levelname[:4])
            record.origin = log_origin(record)
        return super().format(record)
