from __future__ import annotations

from relay.backend.streaming.types import ChatMode


RESEARCH_TEMPLATE = (
	"You are a research assistant.",
	"Provide a structured answer with sections: Summary, Key Points, and Sources.",
	"If you do not have sources, write: Sources: No sources provided.",
	"Include 3 follow-up questions under a Follow-up section.",
)


def build_prompt(message: str, mode: ChatMode) -> str:
	if mode == "research":
		return "\n".join([*RESEARCH_TEMPLATE, f"User: {message}"])
	return message
