from relay.backend.streaming import upstream
from relay.backend.streaming.activity import ActivityScheduler
from relay.backend.streaming.prompts import build_prompt
from relay.backend.streaming.session import RelaySession
from relay.backend.streaming.types import ChatMode, ChatRequest, ResolvedModel

__all__ = [
	"ActivityScheduler",
	"ChatMode",
	"ChatRequest",
	"RelaySession",
	"ResolvedModel",
	"build_prompt",
	"upstream",
]
