import time
import uuid
from typing import Optional

from asgiref.sync import iscoroutinefunction, markcoroutinefunction
from django.http import HttpRequest, HttpResponse

from apps.common.correlation import set_correlation_id
from apps.common.logging_utils import build_log_extra, get_logger


logger = get_logger(__name__)


def _get_user_id(request: HttpRequest) -> Optional[int]:
    user = getattr(request, "user", None)
    if user and getattr(user, "is_authenticated", False):
        return user.id
    return None


class RequestLoggingMiddleware:
    """
    Stamps each request with a correlation id and logs its outcome.

    Works in both sync and async stacks so the streaming chat view is not
    forced through a thread hop.
    """

    sync_capable = True
    async_capable = True

    def __init__(self, get_response) -> None:
        self.get_response = get_response
        if iscoroutinefunction(self.get_response):
            markcoroutinefunction(self)

    def __call__(self, request: HttpRequest):
        if iscoroutinefunction(self):
            return self.__acall__(request)

        start_time, correlation_id = self._begin(request)
        try:
            response = self.get_response(request)
        except Exception:
            self._fail(request, start_time, correlation_id)
            raise
        return self._finish(request, response, start_time, correlation_id)

    async def __acall__(self, request: HttpRequest):
        start_time, correlation_id = self._begin(request)
        try:
            response = await self.get_response(request)
        except Exception:
            self._fail(request, start_time, correlation_id)
            raise
        return self._finish(request, response, start_time, correlation_id)

    def _begin(self, request: HttpRequest):
        correlation_id = request.headers.get("X-Correlation-ID") or str(uuid.uuid4())
        request.correlation_id = correlation_id
        set_correlation_id(correlation_id)
        return time.monotonic(), correlation_id

    def _fail(self, request: HttpRequest, start_time: float, correlation_id: str) -> None:
        duration_ms = (time.monotonic() - start_time) * 1000.0
        extra = build_log_extra(
            correlation_id=correlation_id,
            method=request.method,
            path=request.path,
            status_code=500,
            duration_ms=round(duration_ms, 2),
            user_id=_get_user_id(request),
        )
        logger.exception("request_failed", extra=extra)
        set_correlation_id(None)

    def _finish(
        self,
        request: HttpRequest,
        response: HttpResponse,
        start_time: float,
        correlation_id: str,
    ) -> HttpResponse:
        duration_ms = (time.monotonic() - start_time) * 1000.0
        extra = build_log_extra(
            correlation_id=correlation_id,
            method=request.method,
            path=request.path,
            status_code=getattr(response, "status_code", None),
            duration_ms=round(duration_ms, 2),
            user_id=_get_user_id(request),
            streaming=getattr(response, "streaming", False),
        )
        logger.info("request_completed", extra=extra)
        response["X-Correlation-ID"] = correlation_id
        set_correlation_id(None)
        return response
