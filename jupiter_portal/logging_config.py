"""Logging configuration.

Development and tests get a readable single-line format; production
gets one JSON object per line so a log aggregator can parse it.
The level comes from LOG_LEVEL (config or environment).
"""
import json
import logging
import os
import sys
from datetime import datetime, timezone

from flask import Flask

# Extra record attributes copied into JSON output when present
EXTRA_FIELDS = ('project_id', 'phase_index', 'user_id', 'action', 'file_id')


class JSONFormatter(logging.Formatter):
    """JSON log formatter for production log aggregation."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'module': record.module,
            'line': record.lineno,
        }
        if record.exc_info and record.exc_info[0] is not None:
            entry['exception'] = self.formatException(record.exc_info)
        for key in EXTRA_FIELDS:
            value = getattr(record, key, None)
            if value is not None:
                entry[key] = value
        return json.dumps(entry, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    """Human-readable formatter for development."""

    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.now().strftime('%H:%M:%S')
        base = f'{ts} {record.levelname:<8} {record.name}: {record.getMessage()}'
        if record.exc_info and record.exc_info[0] is not None:
            base += '\n' + self.formatException(record.exc_info)
        return base


def configure_logging(app: Flask) -> None:
    """Set up logging for the Flask app.

    Args:
        app: The Flask application instance.
    """
    is_testing = app.config.get('TESTING', False)
    is_prod = not app.config.get('DEBUG', False) and not is_testing

    level_name = (
        app.config.get('LOG_LEVEL')
        or os.getenv('LOG_LEVEL')
        or ('INFO' if is_prod else 'DEBUG')
    )
    level = getattr(logging, level_name.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if is_prod else ReadableFormatter())
    handler.setLevel(level)

    root = logging.getLogger()
    # Avoid stacking handlers when the factory runs once per test
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for noisy in ('urllib3', 'werkzeug', 'sqlalchemy.engine'):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    app.logger.setLevel(level)
    if not is_testing:
        app.logger.info('Logging configured: level=%s format=%s',
                        level_name, 'json' if is_prod else 'readable')
