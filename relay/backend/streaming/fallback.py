from __future__ import annotations

import logging

from relay.backend.streaming import upstream
from relay.backend.streaming.cancel import CancelToken
from relay.backend.streaming.types import ResolvedModel


logger = logging.getLogger(__name__)


async def invoke_fallback(model: ResolvedModel, prompt: str, cancel_token: CancelToken) -> str:
	"""Single non-streaming retry after the primary stream failed.

	The session's cancel token is honored: a disconnect during the primary
	attempt means no fallback request is ever issued.
	"""
	logger.info("Falling back to a non-streaming prediction (model=%s)", model.name)
	document = await upstream.predict(model, prompt, cancel_token)
	return upstream.json_document_text(document)
