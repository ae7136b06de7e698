from __future__ import annotations

import logging
from typing import Any, Dict

from relay.backend.services import model_registry, settings_service
from relay.backend.streaming import (
	ActivityScheduler,
	ChatMode,
	ChatRequest,
	RelaySession,
	ResolvedModel,
	build_prompt,
	upstream,
)
from relay.backend.streaming.errors import ModelNotFound


logger = logging.getLogger(__name__)


def parse_model_index(raw: str) -> int:
	candidate = raw.strip()
	if not (candidate.isascii() and candidate.isdigit()):
		raise ModelNotFound()
	return int(candidate)


def resolve_model(model_id: str | None) -> ResolvedModel:
	"""Resolve against a fresh registry snapshot; config may change between calls."""
	snapshot = model_registry.load_registry()
	if model_id is None or not model_id.strip():
		return model_registry.default_model(snapshot)
	return model_registry.resolve(snapshot, parse_model_index(model_id))


def list_models() -> Dict[str, Any]:
	snapshot = model_registry.load_registry()
	include_host = settings_service.expose_model_hosts()
	return {
		"models": [model.as_dict(include_host=include_host) for model in snapshot.models],
		"issues": list(snapshot.issues),
	}


def open_session(*, message: str, model_id: str, mode: ChatMode) -> RelaySession:
	"""Validate and resolve everything needed before any upstream I/O happens."""
	model = resolve_model(model_id)
	request = ChatRequest(message=message, model_index=model.index, mode=mode)
	logger.info(
		"Opening relay session (model=%s index=%d mode=%s)",
		model.name,
		request.model_index,
		request.mode,
	)
	return RelaySession(
		model=model,
		prompt=build_prompt(request.message, request.mode),
		mode=request.mode,
		scheduler=ActivityScheduler(settings_service.activity_delays_s()),
	)


async def predict(*, question: str, model_id: str | None, mode: ChatMode) -> Any:
	model = resolve_model(model_id)
	return await upstream.predict(model, build_prompt(question, mode))
