from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import Request


def _request_id(request: Optional[Request]) -> Optional[str]:
	if request is None:
		return None
	return getattr(request.state, "request_id", None)


def error_response(
	*,
	code: str,
	message: str,
	request: Optional[Request] = None,
	evidence: Optional[List[str]] = None,
) -> Dict[str, Any]:
	payload: Dict[str, Any] = {
		"ok": False,
		"error": message,
		"code": code,
		"evidence": evidence or [],
	}
	request_id = _request_id(request)
	if request_id:
		payload["request_id"] = request_id
	return payload
