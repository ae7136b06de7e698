from __future__ import annotations

from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from relay.backend import constants


class ModelEntry(BaseModel):
	model_config = ConfigDict(extra="forbid")

	index: int
	name: str
	id: str
	host: Optional[str] = None


class ModelsResponse(BaseModel):
	model_config = ConfigDict(extra="forbid")

	models: List[ModelEntry] = Field(default_factory=list)
	issues: List[str] = Field(default_factory=list)


class ChatStreamRequest(BaseModel):
	model_config = ConfigDict(extra="ignore")

	message: str = Field(
		...,
		min_length=1,
		max_length=constants.MESSAGE_MAX_CHARS,
		description="User message relayed to the upstream model.",
	)
	modelId: str = Field(..., min_length=1, description="Model index as a string (MODEL_<n>_*).")
	mode: Literal["chat", "research"] = Field(..., description="chat | research")


class PredictRequest(BaseModel):
	model_config = ConfigDict(extra="ignore")

	question: str = Field(..., min_length=1, max_length=constants.MESSAGE_MAX_CHARS)
	modelId: Optional[str] = Field(default=None, description="Defaults to the first model.")
	mode: Literal["chat", "research"] = Field(default="chat")
