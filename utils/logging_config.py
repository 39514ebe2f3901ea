"""
Logging configuration for Fleet Desk

Plain single-line logs in development, JSON lines in production. Every
record written during a request carries the request id and the acting
user's id and role.
"""

import os
import sys
import json
import time
import uuid
import logging
import traceback
from datetime import datetime, timezone
from typing import Dict, Any
from flask import has_request_context, request, g

REQUEST_ID_HEADER = 'X-Request-ID'
SLOW_REQUEST_SECONDS = 5.0
LOG_LEVELS = ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL')

# Attributes every LogRecord has; anything else arrived through ``extra=``
_STANDARD_ATTRS = frozenset(vars(logging.LogRecord('', 0, '', 0, '', (), None))) | {'message', 'request_id'}

request_logger = logging.getLogger('fleet_desk.requests')


def _request_context() -> Dict[str, Any]:
    context = {
        'method': request.method,
        'path': request.path,
        'remote_addr': request.remote_addr,
    }
    if 'current_user_id' in g:
        context['user_id'] = g.current_user_id
        context['role'] = g.get('current_user_role')
    return context


class JSONFormatter(logging.Formatter):
    """One JSON object per record, with request context when there is one"""

    def __init__(self):
        super().__init__()
        self.environment = os.environ.get('FLASK_ENV', 'development')

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            'timestamp': datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'environment': self.environment,
        }

        if getattr(record, 'request_id', None):
            entry['request_id'] = record.request_id
        if has_request_context():
            entry['request'] = _request_context()

        if record.exc_info and record.exc_info[0]:
            entry['exception'] = {
                'type': record.exc_info[0].__name__,
                'message': str(record.exc_info[1]),
                'traceback': traceback.format_exception(*record.exc_info),
            }

        extra = {key: value for key, value in vars(record).items() if key not in _STANDARD_ATTRS}
        if extra:
            entry['extra'] = extra

        if record.levelno >= logging.ERROR:
            entry['location'] = f"{record.pathname}:{record.lineno} in {record.funcName}"

        return json.dumps(entry, ensure_ascii=False, default=str)


class RequestIdFilter(logging.Filter):
    """Stamp the current request id on records; '-' outside requests"""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = g.get('request_id', '-') if has_request_context() else '-'
        return True


def _resolve_level() -> str:
    level = os.environ.get('LOG_LEVEL', 'INFO').upper()
    return level if level in LOG_LEVELS else 'INFO'


def use_json_logging() -> bool:
    return (
        os.environ.get('USE_JSON_LOGGING', 'false').lower() == 'true' or
        os.environ.get('FLASK_ENV') == 'production'
    )


def setup_logging(app=None) -> None:
    """Install the console handler on the root logger"""
    level = _resolve_level()
    json_format = use_json_logging()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.addFilter(RequestIdFilter())
    if json_format:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            '[%(asctime)s] %(levelname)s %(name)s [%(request_id)s]: %(message)s'
        ))

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()
    root_logger.addHandler(handler)

    if os.environ.get('FLASK_ENV') == 'production':
        logging.getLogger('werkzeug').setLevel(logging.WARNING)
        logging.getLogger('sqlalchemy.engine').setLevel(logging.WARNING)

    if app:
        app.logger.info(f"Logging configured: level={level}, json_format={json_format}")


def log_request_start():
    """Start the request clock and pick up or mint the request id"""
    g.request_started = time.perf_counter()
    g.request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex[:12]


def log_request_end(response):
    """Log the finished request with its status and duration"""
    if 'request_started' not in g:
        return response

    duration = time.perf_counter() - g.request_started
    if response.status_code >= 500:
        level = logging.ERROR
    elif response.status_code >= 400 or duration > SLOW_REQUEST_SECONDS:
        level = logging.WARNING
    else:
        level = logging.INFO

    request_logger.log(
        level,
        f"{request.method} {request.path} -> {response.status_code}",
        extra={'status_code': response.status_code, 'duration_ms': round(duration * 1000, 2)},
    )
    response.headers[REQUEST_ID_HEADER] = g.request_id
    return response
