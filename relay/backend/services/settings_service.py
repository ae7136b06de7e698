from __future__ import annotations

import logging
import os
from typing import Dict, List

from relay.backend import constants


logger = logging.getLogger(__name__)

_TRUTHY = {"1", "true", "yes", "on"}


def _float_env(name: str, default: float, minimum: float = 0.0) -> float:
	raw = os.getenv(name, "").strip()
	if not raw:
		return default
	try:
		value = float(raw)
	except ValueError:
		logger.warning("%s must be numeric, using default %s", name, default)
		return default
	if value <= minimum:
		logger.warning("%s must be greater than %s, using default %s", name, minimum, default)
		return default
	return value


def _int_env(name: str, default: int, minimum: int = 0) -> int:
	raw = os.getenv(name, "").strip()
	if not raw:
		return default
	try:
		value = int(raw)
	except ValueError:
		logger.warning("%s must be an integer, using default %s", name, default)
		return default
	return value if value >= minimum else default


def upstream_timeout_s() -> float:
	return _float_env("UPSTREAM_TIMEOUT_S", constants.DEFAULT_UPSTREAM_TIMEOUT_S)


def forward_headers() -> Dict[str, str]:
	"""Static credentials forwarded to every upstream call.

	Either a named header (``UPSTREAM_AUTH_HEADER`` + ``UPSTREAM_AUTH_VALUE``)
	or a bearer token (``UPSTREAM_BEARER_TOKEN``). If both are configured the
	named header is used.
	"""
	header_name = os.getenv("UPSTREAM_AUTH_HEADER", "").strip()
	header_value = os.getenv("UPSTREAM_AUTH_VALUE", "").strip()
	bearer = os.getenv("UPSTREAM_BEARER_TOKEN", "").strip()
	if header_name and header_value:
		if bearer:
			logger.warning("Both UPSTREAM_AUTH_HEADER and UPSTREAM_BEARER_TOKEN are set; using %s", header_name)
		return {header_name: header_value}
	if bearer:
		return {"Authorization": f"Bearer {bearer}"}
	return {}


def activity_delays_s() -> Dict[str, float]:
	return {
		"chat": _int_env("ACTIVITY_CHAT_DELAY_MS", constants.DEFAULT_CHAT_ACTIVITY_DELAY_MS) / 1000,
		"research": _int_env("ACTIVITY_RESEARCH_DELAY_MS", constants.DEFAULT_RESEARCH_ACTIVITY_DELAY_MS) / 1000,
	}


def expose_model_hosts() -> bool:
	return os.getenv("EXPOSE_MODEL_HOSTS", "").strip().lower() in _TRUTHY


def log_level() -> str:
	return os.getenv("LOG_LEVEL", "INFO").strip().upper() or "INFO"


def _list_env(name: str, default: List[str]) -> List[str]:
	raw = os.getenv(name, "")
	values = [item.strip() for item in raw.split(",") if item.strip()]
	return values or list(default)


def cors_allow_origins() -> List[str]:
	return _list_env("CORS_ALLOW_ORIGINS", constants.DEFAULT_CORS_ALLOW_ORIGINS)


def trusted_hosts() -> List[str]:
	return _list_env("TRUSTED_HOSTS", constants.DEFAULT_TRUSTED_HOSTS)
