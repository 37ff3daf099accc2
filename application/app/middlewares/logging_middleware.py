"""
Audit and request logging middleware built on Starlette's BaseHTTPMiddleware.
"""
import json
import socket
import time
from datetime import datetime

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from app.logging.utils import get_app_logger, init_audit_logger, mask_phone
from app.logging.config import LoggingConfig
from app.middlewares.request_context import create_request_id, request_context, clear_request_context

# settings
from app.config.settings import GatewayConfigs
configs = GatewayConfigs()

APP_NAME = configs.APP_NAME
APP_VERSION = configs.APP_VERSION

MASKED_BODY_FIELDS = ('otp', 'code')
PHONE_BODY_FIELDS = ('phone', 'phone_number', 'phoneNumber')


class AuditMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, exclude_paths: list[str] | None = None):
        super().__init__(app)
        self.logger = get_app_logger('app.audit_middleware')
        self.exclude_audit_paths = exclude_paths or ['/health', '/docs', '/redoc', '/openapi.json']
        self.hostname = socket.gethostname()
        self.app_name = APP_NAME
        self.version = APP_VERSION

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = create_request_id()
        start_time = time.time()
        timestamp = datetime.now().isoformat()

        request_context.module_name = None
        request_context.request_method = request.method
        request_context.request_path = request.url.path
        request_context.client_ip = request.client.host if request.client else ''

        should_audit = LoggingConfig.AUDIT_LOGGING_ENABLED and not any(
            request.url.path.startswith(p) for p in self.exclude_audit_paths
        )
        body_bytes = await request.body() if should_audit else b''

        try:
            response = await call_next(request)
            duration = (time.time() - start_time) * 1000
            if should_audit:
                audit_data = self._build_audit_data(request, response, body_bytes, duration, request_id, timestamp)
                init_audit_logger(request.method).info("Audit log", extra=audit_data)
            response.headers['X-Request-ID'] = request_id
            return response
        except Exception as exc:
            duration = (time.time() - start_time) * 1000
            self.logger.error(
                f"Exception: {request.method} {request.url.path} - {exc.__class__.__name__} ({duration:.0f}ms)",
                exc_info=True,
            )
            if should_audit:
                audit_data = self._build_audit_data(request, Response(status_code=500), body_bytes, duration, request_id, timestamp)
                audit_data['exception'] = exc.__class__.__name__
                init_audit_logger(request.method).info("Audit log (exception)", extra=audit_data)
            raise
        finally:
            clear_request_context()

    def _mask_headers(self, headers) -> dict:
        """Replace Authorization values with '****'."""
        return {k: ('****' if k.lower() == 'authorization' else v) for k, v in headers.items()}

    def _mask_body(self, body):
        if not isinstance(body, dict):
            return body
        masked = dict(body)
        for field in MASKED_BODY_FIELDS:
            if field in masked:
                masked[field] = '****'
        for field in PHONE_BODY_FIELDS:
            if isinstance(masked.get(field), str):
                masked[field] = mask_phone(masked[field])
        return masked

    def _parse_body(self, request: Request, body_bytes: bytes):
        if not body_bytes:
            return {}
        content_type = request.headers.get('content-type', '')
        try:
            if 'application/json' in content_type:
                return self._mask_body(json.loads(body_bytes.decode('utf-8')))
            return body_bytes.decode('utf-8')[:1000]
        except (UnicodeDecodeError, json.JSONDecodeError):
            return {}

    def _response_data(self, response: Response):
        status = getattr(response, 'status_code', 0)
        if not LoggingConfig.CAPTURE_RESPONSE_BODY or 200 <= status < 300:
            return ''
        # streamed responses cannot be consumed here
        body = getattr(response, 'body', None)
        if body is None:
            return ''
        try:
            if 'application/json' in response.headers.get('content-type', ''):
                return json.loads(body.decode('utf-8'))
            return body.decode('utf-8')[:1000]
        except (UnicodeDecodeError, json.JSONDecodeError):
            return ''

    def _build_audit_data(
        self,
        request: Request,
        response: Response,
        body_bytes: bytes,
        duration: float,
        request_id: str,
        timestamp: str,
    ) -> dict:
        body = getattr(response, 'body', None)
        request_json = {
            "GET": dict(request.query_params),
            "BODY": self._parse_body(request, body_bytes),
            "HEADERS": self._mask_headers(dict(request.headers)),
        }

        return {
            'duration': round(duration, 2),
            'hostname': self.hostname,
            'app_name': self.app_name,
            'module_name': request_context.module_name,
            'request': request_json,
            'request_id': request_id,
            'request_method': request.method,
            'request_path': request.url.path,
            'response': self._response_data(response),
            'size_in_bytes': len(body) if body is not None else 0,
            'status_code': getattr(response, 'status_code', 0),
            'timestamp': timestamp,
            'version': self.version,
        }
