"""
Structured JSON logging for the exporter.
"""

import json
import logging
import socket
from datetime import datetime, timezone
from typing import Optional, Union

ROOT_LOGGER = 'simon'
PLAIN_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def _utc_timestamp(created: float) -> str:
    return datetime.fromtimestamp(created, timezone.utc).strftime('%Y-%m-%dT%H:%M:%S.%fZ')


class JSONFormatter(logging.Formatter):
    """
    One JSON object per line, tagged with the exported host.

    Records emitted off the main thread (the collection loop, uvicorn
    workers) carry the thread name so cycle logs can be told apart from
    request logs.
    """

    def __init__(self, host: Optional[str] = None):
        super().__init__()
        self.host = host or socket.gethostname()

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            'timestamp': _utc_timestamp(record.created),
            'level': record.levelname,
            'host': self.host,
            'logger': record.name,
            'message': record.getMessage(),
        }
        if record.threadName and record.threadName != 'MainThread':
            entry['thread'] = record.threadName

        context = getattr(record, 'context', None)
        if context:
            entry['context'] = context

        if record.exc_info:
            exc_type, exc, _ = record.exc_info
            entry['exception'] = {
                'type': exc_type.__name__,
                'message': str(exc),
                'traceback': self.formatException(record.exc_info),
            }

        if record.levelno <= logging.DEBUG:
            entry['source'] = f"{record.pathname}:{record.lineno} in {record.funcName}"

        return json.dumps(entry, default=str)


def _formatter(use_json: bool) -> logging.Formatter:
    return JSONFormatter() if use_json else logging.Formatter(PLAIN_FORMAT)


def parse_level(level: Union[int, str]) -> int:
    """Accept a logging level as int or name ('debug', 'INFO', ...)"""
    if isinstance(level, int):
        return level
    value = logging.getLevelName(str(level).upper())
    if not isinstance(value, int):
        raise ValueError(f"Unknown log level: {level}")
    return value


def setup_logging(
    level: Union[int, str] = logging.INFO,
    log_file: Optional[str] = None,
    use_json: bool = True
) -> logging.Logger:
    """
    Configure the exporter's logger hierarchy.

    Safe to call more than once: existing handlers are replaced rather than
    duplicated.

    Args:
        level: Logging level (int or name)
        log_file: Optional file path for an additional file handler
        use_json: Use JSONFormatter (default: True)

    Returns:
        The root exporter logger
    """
    level = parse_level(level)
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(level)

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(_formatter(use_json))
    logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(level)
        file_handler.setFormatter(_formatter(use_json))
        logger.addHandler(file_handler)

    logger.propagate = False
    return logger


def get_logger(name: str) -> logging.Logger:
    """
    Logger under the exporter hierarchy.

    Example:
        logger = get_logger('api')
        logger.info("Scrape served", extra={'context': {'bytes': 1024}})
    """
    if name == ROOT_LOGGER or name.startswith(ROOT_LOGGER + '.'):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")
