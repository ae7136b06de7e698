from __future__ import annotations

from fastapi import APIRouter, HTTPException
from fastapi.responses import JSONResponse

from relay.backend.schemas import PredictRequest
from relay.backend.services import chat_service
from relay.backend.streaming.errors import RelayError


router = APIRouter(tags=["predict"])


@router.post("/predict")
async def predict(payload: PredictRequest):
	try:
		document = await chat_service.predict(
			question=payload.question,
			model_id=payload.modelId,
			mode=payload.mode,
		)
	except RelayError as exc:
		raise HTTPException(
			status_code=exc.status_code,
			detail={"code": exc.code, "message": exc.message},
		) from exc
	return JSONResponse(content=document)
