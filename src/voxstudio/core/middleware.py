"""Middleware for HTTP error logging."""

import logging
import time
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from voxstudio.core.logging import upload_destination_context

logger = logging.getLogger(__name__)


class HTTPErrorLoggingMiddleware(BaseHTTPMiddleware):
    """Middleware to ensure all HTTP errors are logged.

    - 4xx responses: logged at WARN level
    - 5xx responses: logged at ERROR level
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        """Process request and log errors.

        Args:
            request: Incoming HTTP request
            call_next: Next middleware/handler in chain

        Returns:
            HTTP response
        """
        start_time = time.time()

        project_name = None
        file_name = None

        # Chunk bodies are binary; only JSON bodies carry upload details
        content_type = request.headers.get("content-type", "")
        if request.method in ["POST", "PUT", "PATCH"] and content_type.startswith("application/json"):
            try:
                body = await request.json()
            except ValueError:
                body = None
            if isinstance(body, dict):
                project_name = body.get("project_name")
                file_name = body.get("file_name")
                if project_name and file_name:
                    upload_destination_context.set(f"{project_name}/{file_name}")

        response = await call_next(request)

        duration_ms = (time.time() - start_time) * 1000
        fields = {
            "http_status": response.status_code,
            "method": request.method,
            "path": request.url.path,
            "project_name": project_name,
            "file_name": file_name,
            "duration_ms": duration_ms,
        }

        if 400 <= response.status_code < 500:
            logger.warning("Client error response", extra=fields)
        elif response.status_code >= 500:
            logger.error("Server error response", extra=fields)

        return response
