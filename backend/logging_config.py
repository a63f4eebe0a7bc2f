"""Logging configuration for the attachment engine and its tools.

Two rotating JSON files are written under the log directory:

- ``attachments.log`` - every record at the configured level
- ``orphans.log`` - only records flagged ``orphan`` in their ``extra_fields``,
  i.e. blobs a failed rollback left behind for ``find-orphans --fix``
"""
import json
import logging
import os
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler

LOG_FILE_NAME = 'attachments.log'
ORPHAN_LOG_FILE_NAME = 'orphans.log'
MAX_LOG_BYTES = 10 * 1024 * 1024
LOG_BACKUP_COUNT = 5

NOISY_LOGGERS = ('sqlalchemy.engine', 'libcloud', 'PIL', 'urllib3')


def _extra_fields(record):
    return getattr(record, 'extra_fields', None) or {}


class StructuredFormatter(logging.Formatter):
    """One JSON object per record; ``extra_fields`` are merged at the top level."""

    def format(self, record):
        log_entry = {
            'timestamp': datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'location': f"{record.module}:{record.funcName}:{record.lineno}",
            'message': record.getMessage(),
        }
        if record.exc_info:
            log_entry['exception'] = self.formatException(record.exc_info)

        for key, value in _extra_fields(record).items():
            log_entry.setdefault(key, value)
        return json.dumps(log_entry, default=str)


class OrphanRecordFilter(logging.Filter):
    """Pass only records describing an orphaned storage object."""

    def filter(self, record):
        return bool(_extra_fields(record).get('orphan'))


def _rotating_json_handler(path, level):
    handler = RotatingFileHandler(path, maxBytes=MAX_LOG_BYTES, backupCount=LOG_BACKUP_COUNT)
    handler.setLevel(level)
    handler.setFormatter(StructuredFormatter())
    return handler


def setup_logging(log_level_str=None, logs_dir=None):
    """Configure the root logger for the CLI and embedding applications.

    Args:
        log_level_str: Level name; falls back to SAFETY_LOG_LEVEL, then INFO
        logs_dir: Directory for the JSON log files (default ``./logs``)

    Returns:
        logging.Logger: The configured root logger
    """
    log_level_str = (log_level_str or os.getenv('SAFETY_LOG_LEVEL', 'INFO')).upper()
    log_level = getattr(logging, log_level_str, logging.INFO)

    logs_dir = logs_dir or os.path.join(os.getcwd(), 'logs')
    os.makedirs(logs_dir, exist_ok=True)

    logger = logging.getLogger()
    logger.setLevel(log_level)
    logger.handlers.clear()

    log_file = os.path.join(logs_dir, LOG_FILE_NAME)
    logger.addHandler(_rotating_json_handler(log_file, log_level))

    orphan_handler = _rotating_json_handler(os.path.join(logs_dir, ORPHAN_LOG_FILE_NAME), logging.ERROR)
    orphan_handler.addFilter(OrphanRecordFilter())
    logger.addHandler(orphan_handler)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_handler.setFormatter(logging.Formatter('%(asctime)s %(levelname)-8s %(name)-20s %(message)s'))
    logger.addHandler(console_handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logger.info("Logging initialized", extra={
        'extra_fields': {
            'log_level': log_level_str,
            'log_file': log_file,
        }
    })
    return logger
