from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator

from fastapi import APIRouter, HTTPException
from fastapi.responses import StreamingResponse

from relay.backend import constants
from relay.backend.schemas import ChatStreamRequest
from relay.backend.services import chat_service
from relay.backend.streaming import RelaySession
from relay.backend.streaming.errors import RelayError


router = APIRouter(tags=["chat"])


async def _relay_frames(session: RelaySession) -> AsyncIterator[str]:
	task = asyncio.create_task(session.run())
	try:
		async for frame in session.channel.frames():
			yield frame
		await task
	finally:
		# Still running here means the peer went away mid-stream.
		if not task.done():
			session.cancel()
			task.cancel()


@router.post("/chat")
async def chat(payload: ChatStreamRequest):
	try:
		session = chat_service.open_session(
			message=payload.message,
			model_id=payload.modelId,
			mode=payload.mode,
		)
	except RelayError as exc:
		raise HTTPException(
			status_code=exc.status_code,
			detail={"code": exc.code, "message": exc.message},
		) from exc

	return StreamingResponse(
		_relay_frames(session),
		media_type="text/event-stream",
		headers=constants.SSE_HEADERS,
	)
