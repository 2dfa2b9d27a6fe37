import logging
import time
import uuid

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

logger = logging.getLogger("softpoints")

REQUEST_ID_HEADER = "X-Request-ID"


class LoggingMiddleware(BaseHTTPMiddleware):
    """요청/응답 로깅 + 요청 ID 전파

    호출자가 X-Request-ID 를 보내면 그대로 사용하고 없으면 새로 만듭니다.
    예외 핸들러 로그도 같은 ID 를 사용합니다.
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        request.state.request_id = request_id
        started = time.perf_counter()
        target = f"{request.method} {request.url.path} [{request_id}]"

        try:
            response = await call_next(request)
        except Exception:
            logger.exception(f"[Unhandled] {target}")
            raise

        elapsed_ms = (time.perf_counter() - started) * 1000
        line = f"[Response] {target} -> {response.status_code} in {elapsed_ms:.1f}ms"
        if response.status_code >= 500:
            logger.error(line)
        elif response.status_code >= 400:
            logger.warning(line)
        else:
            logger.info(line)

        response.headers[REQUEST_ID_HEADER] = request_id
        return response
