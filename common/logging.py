from __future__ import annotations

import json
import logging
import time
import uuid
from datetime import datetime, timezone

# Keys copied from ``extra=`` into the JSON payload when present.
ACCESS_LOG_FIELDS = ("request_id", "path", "method", "status_code", "duration_ms", "remote_addr", "user_id")
DOMAIN_LOG_FIELDS = ("farm_id", "application_id", "recipe_id", "product_id")


class JsonFormatter(logging.Formatter):
    """One JSON object per line; Decimal and UUID extras are rendered as strings."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for key in ACCESS_LOG_FIELDS + DOMAIN_LOG_FIELDS:
            value = getattr(record, key, None)
            if value is not None:
                payload[key] = value

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        return json.dumps(payload, ensure_ascii=False, default=str)


class RequestLogMiddleware:
    """Tag each request with an ``X-Request-ID`` and log one access line for it.

    Server errors are logged at WARNING so they surface with the default level.
    """

    def __init__(self, get_response):
        self.get_response = get_response
        self.logger = logging.getLogger("api.request")

    def __call__(self, request):
        started_at = time.perf_counter()
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.request_id = request_id

        response = self.get_response(request)

        user = getattr(request, "user", None)
        authenticated = user is not None and getattr(user, "is_authenticated", False)
        farm_id = getattr(user, "farm_id", None) if authenticated else None

        level = logging.WARNING if response.status_code >= 500 else logging.INFO
        self.logger.log(
            level,
            "request_completed",
            extra={
                "request_id": request_id,
                "method": request.method,
                "path": request.path,
                "status_code": response.status_code,
                "duration_ms": round((time.perf_counter() - started_at) * 1000, 2),
                "remote_addr": request.META.get("REMOTE_ADDR"),
                "user_id": str(user.id) if authenticated else None,
                "farm_id": str(farm_id) if farm_id else None,
            },
        )
        response["X-Request-ID"] = request_id
        return response
