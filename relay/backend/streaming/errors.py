from __future__ import annotations


class RelayError(Exception):
	def __init__(self, *, status_code: int, code: str, message: str):
		super().__init__(message)
		self.status_code = status_code
		self.code = code
		self.message = message


class ModelNotFound(RelayError):
	def __init__(self, index: int | None = None):
		super().__init__(status_code=404, code="model_not_found", message="Model not found")
		self.index = index


class UpstreamError(RelayError):
	"""Upstream answered, but with a non-2xx status or an unusable body."""

	def __init__(self, *, status: int | None = None, body_excerpt: str = "", empty_body: bool = False):
		if empty_body:
			message = "Upstream returned an empty response body."
		elif body_excerpt:
			message = f"Upstream error {status}: {body_excerpt}"
		else:
			message = f"Upstream error {status}"
		status_code = status if status is not None and status >= 400 else 502
		super().__init__(status_code=status_code, code="upstream_error", message=message)
		self.status = status
		self.body_excerpt = body_excerpt
		self.empty_body = empty_body


class TransportError(RelayError):
	def __init__(self, cause: BaseException, *, timeout: bool = False):
		if timeout:
			message = "Upstream request timed out."
		else:
			message = f"Failed to connect to upstream: {cause}"
		super().__init__(
			status_code=504 if timeout else 502,
			code="upstream_timeout" if timeout else "upstream_unreachable",
			message=message,
		)
		self.cause = cause
		self.timeout = timeout


class UpstreamEventError(RelayError):
	"""An error payload delivered inside the upstream event stream."""

	def __init__(self, message: str):
		super().__init__(status_code=502, code="upstream_event_error", message=message)


class Cancelled(Exception):
	"""The session's cancel token was set; the caller is gone."""


PRIMARY_FAILURES = (TransportError, UpstreamError, UpstreamEventError)
