from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator
from typing import Any, Dict

import httpx

from relay.backend import constants
from relay.backend.services import settings_service
from relay.backend.streaming.cancel import CancelToken
from relay.backend.streaming.decoder import SSEDecoder, extract_text, translate
from relay.backend.streaming.errors import TransportError, UpstreamError
from relay.backend.streaming.types import DecodedUnit, ResolvedModel


logger = logging.getLogger(__name__)


def _build_http_client(*, timeout_s: float) -> httpx.AsyncClient:
	return httpx.AsyncClient(timeout=timeout_s)


def _is_event_stream(content_type: str) -> bool:
	return "text/event-stream" in content_type.lower()


def _is_json(content_type: str) -> bool:
	lowered = content_type.lower()
	return "application/json" in lowered or "+json" in lowered


def _excerpt(text: str) -> str:
	return text.strip()[: constants.BODY_EXCERPT_CHARS]


def _transport_error(exc: httpx.HTTPError) -> TransportError:
	return TransportError(exc, timeout=isinstance(exc, httpx.TimeoutException))


def json_document_text(document: Any) -> str:
	"""Single normalized text for a whole upstream JSON reply."""
	if isinstance(document, str):
		return document
	if isinstance(document, dict):
		text = extract_text(document)
		if text:
			return text
	return json.dumps(document, ensure_ascii=False)


def _failure_excerpt(content_type: str, body: str) -> str:
	if _is_json(content_type):
		try:
			return _excerpt(json_document_text(json.loads(body)))
		except ValueError:
			pass
	return _excerpt(body)


async def _read_body(response: httpx.Response, cancel_token: CancelToken) -> str:
	parts = []
	async for chunk in response.aiter_bytes():
		cancel_token.raise_if_cancelled()
		parts.append(chunk)
	return b"".join(parts).decode(response.encoding or "utf-8", errors="replace")


async def stream_prediction(
	model: ResolvedModel,
	prompt: str,
	cancel_token: CancelToken,
) -> AsyncIterator[DecodedUnit]:
	"""Open the streaming prediction call and yield token and error units in arrival order."""
	cancel_token.raise_if_cancelled()
	url = model.prediction_url
	payload = {"question": prompt, "streaming": True}
	logger.info("Streaming prediction from %s (model=%s)", url, model.name)
	logger.debug("Upstream payload: %s", payload)
	try:
		async with _build_http_client(timeout_s=settings_service.upstream_timeout_s()) as client:
			async with client.stream(
				"POST",
				url,
				json=payload,
				headers=settings_service.forward_headers(),
			) as response:
				content_type = response.headers.get("content-type", "")
				logger.info("Upstream status=%s content-type=%s", response.status_code, content_type or "-")

				if not response.is_success:
					body = await _read_body(response, cancel_token)
					raise UpstreamError(
						status=response.status_code,
						body_excerpt=_failure_excerpt(content_type, body),
					)

				if _is_json(content_type) and not _is_event_stream(content_type):
					body = await _read_body(response, cancel_token)
					if not body.strip():
						raise UpstreamError(status=response.status_code, empty_body=True)
					try:
						document = json.loads(body)
					except ValueError as exc:
						raise UpstreamError(
							status=response.status_code,
							body_excerpt=f"malformed JSON body: {_excerpt(body)}",
						) from exc
					logger.warning("Expected an event stream but upstream replied with JSON")
					yield DecodedUnit(kind="token", text=json_document_text(document))
					return

				decoder = SSEDecoder()
				received = 0
				async for chunk in response.aiter_bytes():
					cancel_token.raise_if_cancelled()
					received += len(chunk)
					for event in decoder.feed(chunk):
						unit = translate(event)
						if unit.kind == "unrecognized":
							continue
						yield unit
						cancel_token.raise_if_cancelled()
				decoder.close()
				if not received:
					raise UpstreamError(status=response.status_code, empty_body=True)
	except httpx.HTTPError as exc:
		raise _transport_error(exc) from exc


async def predict(
	model: ResolvedModel,
	prompt: str,
	cancel_token: CancelToken | None = None,
) -> Any:
	"""One non-streaming prediction call. Returns the upstream JSON document."""
	token = cancel_token or CancelToken()
	token.raise_if_cancelled()
	url = model.prediction_url
	payload: Dict[str, Any] = {"question": prompt}
	logger.info("Requesting prediction from %s (model=%s)", url, model.name)
	try:
		async with _build_http_client(timeout_s=settings_service.upstream_timeout_s()) as client:
			response = await client.post(url, json=payload, headers=settings_service.forward_headers())
	except httpx.HTTPError as exc:
		raise _transport_error(exc) from exc
	token.raise_if_cancelled()

	content_type = response.headers.get("content-type", "")
	logger.info("Upstream status=%s content-type=%s", response.status_code, content_type or "-")
	body = response.text
	if not response.is_success:
		raise UpstreamError(status=response.status_code, body_excerpt=_failure_excerpt(content_type, body))
	if not body.strip():
		raise UpstreamError(status=response.status_code, empty_body=True)
	try:
		return json.loads(body)
	except ValueError:
		logger.warning("Upstream prediction was not JSON (content-type=%s)", content_type or "-")
		return body
