from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Literal, Union

from relay.backend import constants


ChatMode = Literal["chat", "research"]
UnitKind = Literal["token", "error", "unrecognized"]


@dataclass(frozen=True)
class ResolvedModel:
	index: int
	name: str
	id: str
	host: str

	@property
	def prediction_url(self) -> str:
		return f"{self.host}{constants.PREDICTION_PATH}{self.id}"

	def as_dict(self, *, include_host: bool = False) -> Dict[str, Any]:
		payload: Dict[str, Any] = {"index": self.index, "name": self.name, "id": self.id}
		if include_host:
			payload["host"] = self.host
		return payload


@dataclass(frozen=True)
class ChatRequest:
	message: str
	model_index: int
	mode: ChatMode


@dataclass(frozen=True)
class RawEvent:
	data: str
	event: str = "message"


@dataclass(frozen=True)
class DecodedUnit:
	kind: UnitKind
	text: str = ""


@dataclass(frozen=True)
class TokenEvent:
	text: str
	kind: str = "token"

	def payload(self) -> Dict[str, Any]:
		return {"text": self.text}


@dataclass(frozen=True)
class ActivityEvent:
	state: str
	kind: str = "activity"

	def payload(self) -> Dict[str, Any]:
		return {"state": self.state}


@dataclass(frozen=True)
class ErrorEvent:
	message: str
	kind: str = "error"

	def payload(self) -> Dict[str, Any]:
		return {"message": self.message}


@dataclass(frozen=True)
class DoneEvent:
	kind: str = "done"

	def payload(self) -> Dict[str, Any]:
		return {"ok": True}


RelayEvent = Union[TokenEvent, ActivityEvent, ErrorEvent, DoneEvent]


class SessionState(str, Enum):
	IDLE = "idle"
	STREAMING = "streaming"
	COMPLETED = "completed"
	FAILED_PRIMARY = "failed_primary"
	FALLBACK_ATTEMPT = "fallback_attempt"
	FAILED_FINAL = "failed_final"
	CLOSED = "closed"
