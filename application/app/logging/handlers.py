"""
Logging handlers for the gateway.
Firehose-backed buffered handlers with local-file fallback.
"""
import logging
import os
import time
from logging.handlers import MemoryHandler

import boto3
from botocore.config import Config

from app.logging.config import LoggingConfig
from app.logging.formatters import AppLogsJSONFormatter, AuditLogsJSONFormatter


class FireHoseHandler(logging.Handler):
    """Kinesis Firehose handler with simple retries"""

    def __init__(self, stream_name: str):
        super().__init__()
        self.stream_name = stream_name
        self.client = self._create_client()
        self.retry_count = LoggingConfig.FIREHOSE_RETRY_COUNT
        self.retry_delay = LoggingConfig.FIREHOSE_RETRY_DELAY

    def _create_client(self):
        return boto3.client(
            "firehose",
            region_name=LoggingConfig.FIREHOSE_REGION_NAME,
            aws_access_key_id=LoggingConfig.FIREHOSE_ACCESS_KEY_ID,
            aws_secret_access_key=LoggingConfig.FIREHOSE_SECRET_ACCESS_KEY,
            config=Config(connect_timeout=5, read_timeout=10, retries={"max_attempts": 2}),
        )

    def bulk_insert(self, actions):
        if not actions:
            return True

        for attempt in range(self.retry_count):
            last_attempt = attempt == self.retry_count - 1
            try:
                response = self.client.put_record_batch(
                    DeliveryStreamName=self.stream_name,
                    Records=actions,
                )
                if response.get("FailedPutCount", 0) == 0:
                    return True
            except Exception as e:
                if last_attempt:
                    print(f"[Firehose:{self.stream_name}] giving up after {self.retry_count} attempts: {e}")
                    return False
            if not last_attempt:
                time.sleep(self.retry_delay * (2 ** attempt))
        return False


class BufferedFirehoseHandler(MemoryHandler):
    def __init__(self, capacity, target_handler, stream_name):
        super().__init__(capacity=capacity, target=target_handler)
        self.stream_name = stream_name
        self.buffer_timeout = LoggingConfig.LOG_BUFFER_TIMEOUT
        self.last_flush = time.time()

    def shouldFlush(self, record):
        return (
            len(self.buffer) >= self.capacity
            or time.time() - self.last_flush >= self.buffer_timeout
        )

    def flush(self):
        self.acquire()
        try:
            if self.target and self.buffer:
                actions = [{"Data": self.format(record)} for record in self.buffer]
                self.target.bulk_insert(actions)
                self.buffer.clear()
                self.last_flush = time.time()
        finally:
            self.release()


class AppLogsMemoryHandler(BufferedFirehoseHandler):
    def __init__(self, stream_name: str):
        target = FireHoseHandler(stream_name)
        super().__init__(capacity=LoggingConfig.APP_LOGS_CAPACITY, target_handler=target, stream_name=stream_name)
        fmt = AppLogsJSONFormatter()
        self.setFormatter(fmt)
        target.setFormatter(fmt)


class AuditLogsMemoryHandler(BufferedFirehoseHandler):
    def __init__(self, stream_name: str):
        target = FireHoseHandler(stream_name)
        super().__init__(capacity=LoggingConfig.AUDIT_LOGS_CAPACITY, target_handler=target, stream_name=stream_name)
        fmt = AuditLogsJSONFormatter()
        self.setFormatter(fmt)
        target.setFormatter(fmt)


_handlers = {}

def get_local_file_handler(name: str = 'app'):
    os.makedirs(LoggingConfig.LOG_DIR, exist_ok=True)
    handler = logging.FileHandler(os.path.join(LoggingConfig.LOG_DIR, f'{name}.log'))
    formatter = AuditLogsJSONFormatter() if name.startswith('audit') else AppLogsJSONFormatter()
    handler.setFormatter(formatter)
    return handler


def get_app_handler():
    if LoggingConfig.FIREHOSE_ENABLED:
        if 'app' not in _handlers:
            stream = LoggingConfig.APP_LOGS_STREAM_NAME or 'lead-gateway-app-logs'
            _handlers['app'] = AppLogsMemoryHandler(stream)
        return _handlers['app']
    if 'app_file' not in _handlers:
        _handlers['app_file'] = get_local_file_handler('app')
    return _handlers['app_file']


def get_audit_handler(method: str = ''):
    if LoggingConfig.FIREHOSE_ENABLED:
        if method.upper() == 'GET':
            key = 'audit_get'
            stream = LoggingConfig.AUDIT_LOGS_GET_STREAM_NAME or 'lead-gateway-audit-get-logs'
        else:
            key = 'audit_all'
            stream = LoggingConfig.AUDIT_LOGS_STREAM_NAME or 'lead-gateway-audit-logs'
        if key not in _handlers:
            _handlers[key] = AuditLogsMemoryHandler(stream)
        return _handlers[key]
    if 'audit_file' not in _handlers:
        _handlers['audit_file'] = get_local_file_handler('audit_logs_backup')
    return _handlers['audit_file']


def flush_all_handlers():
    for handler in list(_handlers.values()):
        handler.flush()
