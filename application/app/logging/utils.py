"""
Logging utilities for the gateway.
get_app_logger() is the single entry point used across the codebase.
"""
import logging
import atexit

from app.logging.config import LoggingConfig
from app.logging.handlers import get_app_handler, get_audit_handler, flush_all_handlers
from app.logging.filters import RequestContextFilter, LeadContextFilter
from app.logging.slack_handler import slack_handler


def _attach(logger: logging.Logger, handler: logging.Handler, *filters: logging.Filter):
    # handlers are shared between loggers; filter them once
    if not handler.filters:
        for log_filter in filters:
            handler.addFilter(log_filter)
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)
    logger.propagate = False
    return logger


def get_app_logger(name: str | None = None):
    logger = logging.getLogger(name or 'lead_gateway')
    if not logger.handlers:
        _attach(logger, get_app_handler(), RequestContextFilter(), LeadContextFilter())
        logger.addHandler(slack_handler)
    return logger


def init_audit_logger(method: str = ''):
    stream_name = LoggingConfig.AUDIT_LOGS_GET_STREAM_NAME if method.upper() == 'GET' else LoggingConfig.AUDIT_LOGS_STREAM_NAME
    logger_name = f"lead_gateway.audit.{(stream_name or 'default').replace('-', '_')}"
    logger = logging.getLogger(logger_name)
    if not logger.handlers:
        _attach(logger, get_audit_handler(method), RequestContextFilter())
    return logger


def mask_phone(phone: str | None) -> str:
    """Keep only the last four digits of a phone for log lines."""
    if not phone:
        return ''
    return '*' * max(len(phone) - 4, 0) + phone[-4:]


def initialize_logging():
    is_valid, message = LoggingConfig.is_valid_config()
    if not is_valid:
        print(f"Warning: {message}")
    atexit.register(flush_all_handlers)
    print("Logging system initialized (lead-verify-gateway)")
