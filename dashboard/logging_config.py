"""
Structured JSON logging configuration.

One handler set shared by the gateway's logger trees (core, config,
dashboard) and Flask's own logger.
"""

import json
import logging
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler

from config.settings import get_settings

LOGGER_TREES = ('core', 'config', 'dashboard')


class JSONFormatter(logging.Formatter):
    """Custom JSON formatter for structured logging."""

    def format(self, record):
        log_entry = {
            'timestamp': datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z'),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno,
        }

        if record.exc_info:
            log_entry['exception'] = self.formatException(record.exc_info)

        for attr in ('request_id', 'error_id', 'user', 'endpoint', 'method',
                     'status_code', 'duration_ms', 'remote_addr'):
            if hasattr(record, attr):
                log_entry[attr] = getattr(record, attr)

        return json.dumps(log_entry)


def _build_handlers(log_format: str, log_file: str) -> list[logging.Handler]:
    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.DEBUG)

    if log_format == 'json':
        console_handler.setFormatter(JSONFormatter())
    else:
        console_handler.setFormatter(logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        ))

    handlers = [console_handler]

    if log_file:
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=10 * 1024 * 1024,  # 10MB
            backupCount=5
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(JSONFormatter())
        handlers.append(file_handler)

    return handlers


def configure_logging(app=None):
    """Configure structured JSON logging for production.

    Args:
        app: Optional Flask app whose logger will be updated.

    Returns:
        The 'dashboard' logger.
    """
    settings = get_settings()
    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    handlers = _build_handlers(settings.log_format, settings.log_file)

    for name in LOGGER_TREES:
        tree = logging.getLogger(name)
        tree.setLevel(level)
        tree.handlers = list(handlers)
        tree.propagate = False

    # Sync Flask's logger
    if app is not None:
        app.logger.handlers = list(handlers)
        app.logger.setLevel(level)

    return logging.getLogger('dashboard')
