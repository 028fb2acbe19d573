"""
Logging setup for the hiring service

Every record carries the request's correlation id so a single offer, hire or
release can be followed across the identity, trip and vehicle collaborators.
Production (or USE_JSON_LOGGING=true) emits one JSON object per line.
"""

import os
import sys
import json
import uuid
import time
import logging
from datetime import datetime, timezone
from typing import Dict, Any, Optional
from flask import has_request_context, request, g

CORRELATION_HEADER = 'X-Correlation-ID'
SLOW_REQUEST_SECONDS = 5.0

# Attributes every LogRecord has; anything else came in through `extra=`
_STANDARD_RECORD_FIELDS = frozenset(vars(logging.LogRecord('', 0, '', 0, '', None, None))) | {
    'message', 'asctime', 'correlation_id', 'caller',
}

HIRING_LOGGERS = ('app', 'services', 'requests', 'events', 'identity_sync', 'background')

TEXT_FORMAT = '%(asctime)s %(levelname)-7s %(name)s [cid=%(correlation_id)s caller=%(caller)s] %(message)s'


def _current_caller() -> Optional[str]:
    caller = getattr(g, 'caller', None)
    if caller is None:
        return None
    return f"{caller.role.value}:{caller.user_id}"


class JSONFormatter(logging.Formatter):
    """One JSON document per record"""

    def __init__(self, service_name: str = 'fleet-hiring'):
        super().__init__()
        self.service_name = service_name

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            'ts': datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            'severity': record.levelname,
            'service': self.service_name,
            'logger': record.name,
            'msg': record.getMessage(),
            'cid': getattr(record, 'correlation_id', None),
            'caller': getattr(record, 'caller', None),
        }

        if has_request_context():
            entry['http'] = {'method': request.method, 'route': request.path}

        context = {key: value for key, value in vars(record).items() if key not in _STANDARD_RECORD_FIELDS}
        if context:
            entry['context'] = context

        if record.exc_info:
            entry['error'] = {
                'kind': record.exc_info[0].__name__ if record.exc_info[0] else None,
                'stack': self.formatException(record.exc_info),
            }
            entry['source'] = f"{record.pathname}:{record.lineno} in {record.funcName}"

        return json.dumps(entry, ensure_ascii=False, default=str)


class RequestContextFilter(logging.Filter):
    """Stamp records with the correlation id and caller of the active request"""

    def filter(self, record: logging.LogRecord) -> bool:
        if has_request_context():
            record.correlation_id = getattr(g, 'correlation_id', '-')
            record.caller = _current_caller() or 'anonymous'
        else:
            # Background jobs pass their own correlation id through `extra=`
            record.correlation_id = getattr(record, 'correlation_id', '-')
            record.caller = getattr(record, 'caller', 'system')
        return True


def _wants_json(config) -> bool:
    if os.environ.get('FLASK_ENV') == 'production':
        return True
    return str(config.get('USE_JSON_LOGGING', 'false')).lower() in ('1', 'true', 'yes')


def setup_logging(app=None) -> Dict[str, logging.Logger]:
    """
    Install a single stdout handler on the root logger, plus an error file
    handler when ERROR_LOG_FILE is set. Returns the hiring loggers by name.
    """
    config = app.config if app is not None else os.environ

    level = logging.getLevelName(str(config.get('LOG_LEVEL', 'INFO')).upper())
    if not isinstance(level, int):
        level = logging.INFO

    json_output = _wants_json(config)
    formatter = JSONFormatter() if json_output else logging.Formatter(TEXT_FORMAT)
    stamp = RequestContextFilter()

    handlers = [logging.StreamHandler(sys.stdout)]
    error_log_file = config.get('ERROR_LOG_FILE', 'logs/error.log')
    if error_log_file:
        os.makedirs(os.path.dirname(error_log_file) or '.', exist_ok=True)
        error_file = logging.FileHandler(error_log_file)
        error_file.setLevel(logging.ERROR)
        handlers.append(error_file)

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.setLevel(level)
    for handler in handlers:
        handler.setFormatter(formatter)
        handler.addFilter(stamp)
        root.addHandler(handler)

    # Chatty third-party loggers stay at WARNING outside debug
    if level > logging.DEBUG:
        for noisy in ('werkzeug', 'urllib3', 'sqlalchemy.engine', 'schedule'):
            logging.getLogger(noisy).setLevel(logging.WARNING)

    loggers = {name: get_logger(name) for name in HIRING_LOGGERS}
    for logger in loggers.values():
        logger.setLevel(level)

    if app is not None:
        app.logger.info("Logging ready (level=%s, json=%s)", logging.getLevelName(level), json_output)

    return loggers


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def log_request_start():
    """Adopt the inbound correlation id or mint one"""
    g.correlation_id = request.headers.get(CORRELATION_HEADER) or uuid.uuid4().hex
    g.request_started = time.monotonic()


def log_request_end(response):
    """Record the outcome and hand the correlation id back to the client"""
    started = getattr(g, 'request_started', None)
    if started is None:
        return response

    elapsed = time.monotonic() - started
    status = response.status_code
    if status >= 500:
        level = logging.ERROR
    elif status >= 400 or elapsed > SLOW_REQUEST_SECONDS:
        level = logging.WARNING
    else:
        level = logging.INFO

    get_logger('requests').log(level, "%s %s -> %s", request.method, request.path, status,
                               extra={'status_code': status, 'elapsed_ms': round(elapsed * 1000, 2)})
    response.headers[CORRELATION_HEADER] = g.correlation_id
    return response
