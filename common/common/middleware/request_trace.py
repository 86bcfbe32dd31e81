import logging
import time
import uuid
from urllib.parse import parse_qs

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response


REQUEST_ID_HEADER = "X-Request-Id"
SPAN_ID_HEADER = "X-Span-Id"

# 헬스체크처럼 노이즈가 많은 경로는 로그를 남기지 않는다.
IGNORED_LOG_PATHS: set[str] = {"/health"}

# 바디를 로그에 남기지 않는 경로 prefix. 서명 검증 대상 원문(webhook)이 여기에 해당한다.
REDACTED_BODY_PREFIXES: tuple[str, ...] = ("/api/v1/webhooks",)

MAX_LOGGED_BODY_LENGTH = 1024


class RequestTraceMiddleware(BaseHTTPMiddleware):
    """Request/Span ID 전파 및 요청 단위 로그 미들웨어.

    - X-Request-Id 가 없으면 새로 발급하고, X-Span-Id 는 없으면 "0" 을 사용한다.
    - request.state 와 응답 헤더에 같은 값을 싣는다.
    - 요청당 한 줄(완료 또는 실패) 로그를 남긴다.
    """

    def __init__(self, app, logger: logging.Logger | None = None) -> None:  # type: ignore[override]
        super().__init__(app)
        self._logger = logger or logging.getLogger("request_trace")

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        span_id = request.headers.get(SPAN_ID_HEADER) or "0"
        request.state.request_id = request_id
        request.state.span_id = span_id

        path = request.url.path
        should_log = path not in IGNORED_LOG_PATHS
        body_snippet = await self._read_body_snippet(request)

        start = time.monotonic()
        try:
            response = await call_next(request)
        except Exception:
            if should_log:
                self._logger.exception(
                    "request failed",
                    extra=self._build_extra(
                        request, request_id, span_id, body_snippet, None, start
                    ),
                )
            raise

        response.headers.setdefault(REQUEST_ID_HEADER, request_id)
        response.headers.setdefault(SPAN_ID_HEADER, span_id)

        if should_log:
            self._logger.info(
                "completed request",
                extra=self._build_extra(
                    request,
                    request_id,
                    span_id,
                    body_snippet,
                    response.status_code,
                    start,
                ),
            )
        return response

    async def _read_body_snippet(self, request: Request) -> str | None:
        if request.method not in {"POST", "PUT", "PATCH", "DELETE"}:
            return None
        if request.url.path.startswith(REDACTED_BODY_PREFIXES):
            return None
        try:
            body_bytes = await request.body()
        except Exception:  # noqa: BLE001
            return None
        if not body_bytes:
            return None
        text = body_bytes.decode("utf-8", errors="replace")
        return text[:MAX_LOGGED_BODY_LENGTH]

    @staticmethod
    def _build_extra(
        request: Request,
        request_id: str,
        span_id: str,
        body: str | None,
        status: int | None,
        start: float,
    ) -> dict[str, object]:
        extra: dict[str, object] = {
            "request_id": request_id,
            "span_id": span_id,
            "method": request.method,
            "path": request.url.path,
            "duration": f"{(time.monotonic() - start) * 1000:.3f}ms",
        }

        if request.url.query:
            parsed = parse_qs(request.url.query, keep_blank_values=True)
            extra["query_params"] = {
                key: values[0] if len(values) == 1 else values
                for key, values in parsed.items()
            }

        if body:
            extra["body"] = body

        if status is not None:
            extra["status"] = status

        return extra
