"""
Logging setup for the live API client.

Session records can carry the request they concern through
``extra={'req_id': ..., 'msg_type': ...}``; both formatters render those
fields so a request can be followed from send to response.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Dict, Optional, TextIO

from ..config.settings import LoggingConfig

CONTEXT_FIELDS = ('req_id', 'msg_type')

LEVEL_COLORS = {
    'DEBUG': '\033[36m',
    'INFO': '\033[32m',
    'WARNING': '\033[33m',
    'ERROR': '\033[31m',
    'CRITICAL': '\033[35m',
}
RESET = '\033[0m'

QUIET_LOGGERS = ('websockets', 'aiohttp')


def record_time(record: logging.LogRecord) -> datetime:
    return datetime.fromtimestamp(record.created, tz=timezone.utc)


def record_context(record: logging.LogRecord) -> Dict[str, object]:
    """The request context fields present on ``record``."""
    return {
        field: getattr(record, field)
        for field in CONTEXT_FIELDS
        if getattr(record, field, None) is not None
    }


class JSONFormatter(logging.Formatter):
    """One JSON object per line, for log shippers."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            'timestamp': record_time(record).isoformat(timespec='milliseconds').replace('+00:00', 'Z'),
            'level': record.levelname,
            'logger': record.name,
            'service': getattr(record, 'service', None),
            'message': record.getMessage(),
            **record_context(record),
        }

        if record.exc_info:
            entry['exception'] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


class TextFormatter(logging.Formatter):
    """Console lines: ``time LEVEL logger [req_id=.. msg_type=..] message``."""

    def __init__(self, stream: Optional[TextIO] = None, use_colors: bool = True):
        super().__init__()
        stream = stream or sys.stdout
        self.use_colors = use_colors and hasattr(stream, 'isatty') and stream.isatty()

    def format(self, record: logging.LogRecord) -> str:
        level = f"{record.levelname:<8}"
        if self.use_colors and record.levelname in LEVEL_COLORS:
            level = f"{LEVEL_COLORS[record.levelname]}{level}{RESET}"

        parts = [record_time(record).strftime('%Y-%m-%d %H:%M:%S'), level, record.name]

        context = record_context(record)
        if context:
            parts.append('[' + ' '.join(f"{k}={v}" for k, v in context.items()) + ']')

        parts.append(record.getMessage())
        line = ' '.join(parts)

        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


class ServiceContextFilter(logging.Filter):
    """Stamps every record with the service name."""

    def __init__(self, service_name: str):
        super().__init__()
        self.service_name = service_name

    def filter(self, record):
        record.service = self.service_name
        return True


def _open_handler(output: str) -> logging.Handler:
    target = output.lower()
    if target == 'stdout':
        return logging.StreamHandler(sys.stdout)
    if target == 'stderr':
        return logging.StreamHandler(sys.stderr)
    return logging.FileHandler(output)


def setup_logging(config: LoggingConfig, service_name: str = "binary-live") -> None:
    """Route all logging through one handler shaped by ``config``."""
    handler = _open_handler(config.output)

    if config.format == 'json':
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(TextFormatter(getattr(handler, 'stream', None)))
    handler.addFilter(ServiceContextFilter(service_name))

    root_logger = logging.getLogger()
    root_logger.setLevel(config.level.upper())
    root_logger.handlers.clear()
    root_logger.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger(__name__).info(
        f"Logging configured for {service_name}: {config.level} {config.format} -> {config.output}"
    )
