import logging
import re
import sys
from pathlib import Path

LOG_FORMAT = "%(asctime)s [%(levelname)-7s] [%(name)s] %(message)s"


class SensitiveDataFilter(logging.Filter):
    """Mask credential material in log messages."""

    SENSITIVE_PATTERNS = [
        (re.compile(r'password["\']?\s*[:=]\s*["\']?[^"\'}\s,]+', re.I), "password=***"),
        (re.compile(r'secret["\']?\s*[:=]\s*["\']?[^"\'}\s,]+', re.I), "secret=***"),
        (re.compile(r"/pass:\S+", re.I), "/pass:***"),
    ]

    def filter(self, record: logging.LogRecord) -> bool:
        if record.args:
            record.msg = record.getMessage()
            record.args = None
        if isinstance(record.msg, str):
            for pattern, replacement in self.SENSITIVE_PATTERNS:
                record.msg = pattern.sub(replacement, record.msg)
        return True


def setup_logging(debug: bool = False, log_file: Path | None = None) -> logging.Logger:
    """
    Configure the ``quickrdp`` logger.

    Warnings and errors always go to stderr. With ``debug`` every record is
    also appended to ``log_file``.
    """
    logger = logging.getLogger("quickrdp")
    for handler in list(logger.handlers):
        handler.close()
        logger.removeHandler(handler)
    logger.setLevel(logging.DEBUG if debug else logging.WARNING)
    logger.propagate = False

    redact = SensitiveDataFilter()
    formatter = logging.Formatter(LOG_FORMAT)

    stream = logging.StreamHandler(sys.stderr)
    stream.setLevel(logging.WARNING)
    stream.setFormatter(formatter)
    stream.addFilter(redact)
    logger.addHandler(stream)

    if debug and log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)
        file_handler.addFilter(redact)
        logger.addHandler(file_handler)
        logger.debug("Debug logging enabled, writing to %s", log_file)

    return logger
