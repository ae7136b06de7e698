from __future__ import annotations

from fastapi import APIRouter

from relay.backend.schemas import ModelsResponse
from relay.backend.services import chat_service


router = APIRouter(tags=["models"])


@router.get("/models", response_model=ModelsResponse, response_model_exclude_none=True)
def models():
	return chat_service.list_models()
