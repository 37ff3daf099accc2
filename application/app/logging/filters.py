"""
Logging filters that copy request context onto log records
"""
import logging
import uuid
from app.middlewares.request_context import request_context


class RequestContextFilter(logging.Filter):
    def filter(self, record):
        record.request_id = getattr(request_context, 'request_id', None) or str(uuid.uuid4())
        record.request_method = getattr(request_context, 'request_method', '')
        record.request_path = getattr(request_context, 'request_path', '')
        record.client_ip = getattr(request_context, 'client_ip', '')
        return True


class LeadContextFilter(logging.Filter):
    def filter(self, record):
        # phone_key is stored masked by the service layer
        record.phone_key = getattr(request_context, 'phone_key', '')
        record.lead_id = getattr(request_context, 'lead_id', '')
        return True
