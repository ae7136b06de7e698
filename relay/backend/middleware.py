from __future__ import annotations

import logging
import time
import uuid
from collections.abc import AsyncIterator

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response


logger = logging.getLogger(__name__)


class RequestContextMiddleware(BaseHTTPMiddleware):
	async def dispatch(self, request: Request, call_next) -> Response:
		request_id = request.headers.get("X-Request-ID", uuid.uuid4().hex)
		request.state.request_id = request_id
		start = time.perf_counter()
		response = await call_next(request)
		process_time = time.perf_counter() - start
		response.headers["X-Request-ID"] = request_id
		response.headers["X-Process-Time"] = f"{process_time:.6f}"
		# Streamed bodies outlive call_next; log once the last chunk is sent.
		response.body_iterator = _log_when_sent(response.body_iterator, request, response.status_code, start)
		return response


async def _log_when_sent(
	body: AsyncIterator[bytes],
	request: Request,
	status_code: int,
	start: float,
) -> AsyncIterator[bytes]:
	sent = 0
	try:
		async for chunk in body:
			sent += len(chunk)
			yield chunk
	finally:
		logger.info(
			"%s %s %d %dB %.1fms request_id=%s",
			request.method,
			request.url.path,
			status_code,
			sent,
			(time.perf_counter() - start) * 1000,
			request.state.request_id,
		)
