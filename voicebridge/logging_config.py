"""
Structured Logging Configuration

This module configures structured logging using the 'structlog' library.
It sets up processors for adding timestamps, log levels, correlation IDs,
and renders logs in JSON (default) or colorized console format based on env.
"""

import os
import re
import logging
import sys
import contextvars
import uuid
import time

import structlog
from structlog import dev as structlog_dev
from logging.handlers import RotatingFileHandler

# Context variable for correlation ID (the call id inside a call task)
correlation_id_var = contextvars.ContextVar('correlation_id', default=None)

_EMAIL_RE = re.compile(r"[A-Z0-9._%+-]+@[A-Z0-9.-]+\.[A-Z]{2,}", re.IGNORECASE)
_PHONE_RE = re.compile(r"\+?\d[\d().\-\s]{6,}\d")

SENSITIVE_KEYS = {
    'api_key', 'apikey', 'api-key', 'api_keys',
    'token', 'access_token', 'refresh_token', 'auth_token', 'bearer',
    'password', 'passwd', 'pwd', 'pass',
    'authorization', 'auth',
    'credential', 'credentials', 'secret', 'secrets',
    'webhook_secret',
    'private_key', 'private-key', 'privatekey',
    'client_secret', 'client-secret', 'clientsecret',
}


def get_correlation_id():
    """Get the current correlation ID."""
    return correlation_id_var.get()


def set_correlation_id(value=None):
    """Set the correlation ID."""
    if value is None:
        value = str(uuid.uuid4())
    correlation_id_var.set(value)
    return value


def redact_pii(value: str) -> str:
    """Mask email addresses and phone numbers in free text (caller transcripts)."""
    if not value:
        return value
    return _PHONE_RE.sub('[REDACTED]', _EMAIL_RE.sub('[REDACTED]', value))


def truncate(value: str, max_len: int = 200) -> str:
    if len(value) <= max_len:
        return value
    return value[: max_len - 1] + "…"


def add_correlation_id(logger, method_name, event_dict):
    """Add correlation ID to the log record."""
    correlation_id = get_correlation_id()
    if correlation_id and 'correlation_id' not in event_dict:
        event_dict['correlation_id'] = correlation_id
    return event_dict


def add_service_context(logger, method_name, event_dict):
    """Add service context to the log record."""
    event_dict['service'] = 'voicebridge'
    component = event_dict.get('logger')
    if not component:
        component = getattr(getattr(logger, 'logger', None), 'name', None) or getattr(logger, 'name', 'unknown')
    event_dict['component'] = component
    return event_dict


def _is_sensitive_key(key) -> bool:
    # "passthrough" must not match "pass": only exact or suffix matches count
    key_normalized = str(key).lower().replace('_', '').replace('-', '')
    for pattern in SENSITIVE_KEYS:
        pattern_normalized = pattern.replace('_', '').replace('-', '')
        if key_normalized == pattern_normalized or key_normalized.endswith(pattern_normalized):
            return True
    return False


def _redact_value(value):
    """Redact a sensitive value, preserving structure for debugging."""
    if value is None or isinstance(value, bool):
        return value
    if isinstance(value, str):
        if not value:
            return ''
        # First 2 chars stay visible (e.g. "sk" for OpenAI keys)
        if len(value) > 4:
            return f"{value[:2]}***REDACTED***"
        return "***REDACTED***"
    if isinstance(value, (list, tuple)):
        return [_redact_value(v) for v in value]
    if isinstance(value, dict):
        return {k: _redact_value(v) if _is_sensitive_key(k) else v for k, v in value.items()}
    return "***REDACTED***"


def _sanitize_dict(d):
    if not isinstance(d, dict):
        return d
    sanitized = {}
    for key, value in d.items():
        if _is_sensitive_key(key):
            sanitized[key] = _redact_value(value)
        elif isinstance(value, dict):
            sanitized[key] = _sanitize_dict(value)
        elif isinstance(value, (list, tuple)):
            sanitized[key] = [_sanitize_dict(v) if isinstance(v, dict) else v for v in value]
        else:
            sanitized[key] = value
    return sanitized


def sanitize_secrets(logger, method_name, event_dict):
    """
    Redact sensitive information from log events.

    Prevents API keys, webhook secrets, tokens and authorization headers from
    appearing in logs. Matching is case-insensitive on the key name and
    recurses into nested dicts and lists of dicts.
    """
    return _sanitize_dict(event_dict)


def configure_logging(log_level="INFO", log_to_file=False, log_file_path="voicebridge.log", service_name="voicebridge"):
    """
    Set up structured logging.

    Environment overrides (optional):
      - LOG_LEVEL: debug|info|warning|error|critical (default: INFO)
      - LOG_FORMAT: json|console (default: json)
      - LOG_COLOR:  0|1 (console only; default: 1)
      - LOG_TO_FILE: 0|1 (default: 0)
      - LOG_FILE_PATH: path (default: voicebridge.log)
      - LOG_SHOW_TRACEBACKS: auto|always|never (default: auto, i.e. debug only)
    """
    env_level = os.getenv("LOG_LEVEL")
    if env_level:
        log_level = env_level.upper()
    if os.getenv("LOG_TO_FILE") is not None:
        log_to_file = os.getenv("LOG_TO_FILE", "0").strip().lower() in ("1", "true", "yes")
    log_file_path = os.getenv("LOG_FILE_PATH", log_file_path)
    log_format = os.getenv("LOG_FORMAT", "json").strip().lower()
    log_color = os.getenv("LOG_COLOR", "1").strip() not in ("0", "false", "False")

    log_level_upper = log_level.upper() if isinstance(log_level, str) else str(log_level)
    tb_mode = os.getenv("LOG_SHOW_TRACEBACKS", "auto").strip().lower()
    if tb_mode == "always":
        show_tracebacks = True
    elif tb_mode == "never":
        show_tracebacks = False
    else:
        show_tracebacks = (log_level_upper == "DEBUG")

    def suppress_exc_info_if_disabled(logger, method_name, event_dict):
        """Remove exc_info from event when tracebacks are disabled by policy."""
        if not show_tracebacks and event_dict.get("exc_info"):
            event_dict.pop("exc_info", None)
        return event_dict

    if isinstance(log_level, str):
        level_value = getattr(logging, log_level_upper, logging.INFO)
    else:
        level_value = int(log_level)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            add_service_context,
            add_correlation_id,
            sanitize_secrets,
            suppress_exc_info_if_disabled,
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    renderer = structlog_dev.ConsoleRenderer(colors=log_color) if log_format == "console" else structlog.processors.JSONRenderer()

    processor_formatter = structlog.stdlib.ProcessorFormatter(
        processor=renderer,
        foreign_pre_chain=[
            structlog.stdlib.add_logger_name,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
        ],
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(level_value)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(processor_formatter)
    root_logger.addHandler(console_handler)

    if log_to_file:
        ts = time.strftime("%Y%m%d-%H%M%S")
        path = log_file_path
        if path.endswith(os.sep) or os.path.isdir(path):
            path = os.path.join(path, f"{service_name}-{ts}.log")
        elif "{ts}" in path:
            path = path.replace("{ts}", ts)
        try:
            directory = os.path.dirname(path)
            if directory:
                os.makedirs(directory, exist_ok=True)
            file_handler = RotatingFileHandler(path, maxBytes=10 * 1024 * 1024, backupCount=5)
            file_handler.setFormatter(processor_formatter)
            root_logger.addHandler(file_handler)
            get_logger(__name__).info("File logging configured", log_file_path=path)
        except OSError as e:
            get_logger(__name__).warning(
                "File logging disabled due to error; continuing with console only",
                error=str(e),
                configured_path=log_file_path,
            )

    # Reduce noisy third-party loggers
    for noisy in ('websockets', 'websockets.client', 'aiohttp.access', 'asyncio'):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def get_logger(name: str):
    """Get a structlog logger."""
    return structlog.get_logger(name)
