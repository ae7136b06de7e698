from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator
from typing import Optional

from relay.backend.streaming.types import RelayEvent


def encode_sse(event: str, data: dict) -> str:
	payload = json.dumps(data, ensure_ascii=False)
	return f"event: {event}\ndata: {payload}\n\n"


class EventChannel:
	"""Outbound event sink for one session.

	Writes after ``close`` (by the session or by the departed peer) are
	silently dropped.
	"""

	def __init__(self) -> None:
		self._queue: asyncio.Queue[Optional[RelayEvent]] = asyncio.Queue()
		self._closed = False

	@property
	def closed(self) -> bool:
		return self._closed

	def send(self, event: RelayEvent) -> bool:
		if self._closed:
			return False
		self._queue.put_nowait(event)
		return True

	def close(self) -> None:
		if self._closed:
			return
		self._closed = True
		self._queue.put_nowait(None)

	async def events(self) -> AsyncIterator[RelayEvent]:
		while True:
			event = await self._queue.get()
			if event is None:
				return
			yield event

	async def frames(self) -> AsyncIterator[str]:
		async for event in self.events():
			yield encode_sse(event.kind, event.payload())
