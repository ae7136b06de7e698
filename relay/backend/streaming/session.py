"""Relay session: one client chat request, end to end.

A session opens the upstream stream, relays decoded tokens to its event
channel while the activity scheduler emits cosmetic progress steps, falls back
to a single non-streaming call when the stream fails, and finishes with
exactly one ``done`` or ``error`` event. A cancelled session (the peer went
away) emits nothing further and never falls back.

States::

	IDLE -> STREAMING -> COMPLETED | FAILED_PRIMARY
	FAILED_PRIMARY -> FALLBACK_ATTEMPT -> COMPLETED | FAILED_FINAL
	any -> CLOSED
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import aclosing
from typing import Callable, Dict, FrozenSet, Optional

from relay.backend.streaming import fallback, upstream
from relay.backend.streaming.activity import ActivityScheduler
from relay.backend.streaming.cancel import CancelToken
from relay.backend.streaming.channel import EventChannel
from relay.backend.streaming.errors import PRIMARY_FAILURES, Cancelled, RelayError, UpstreamEventError
from relay.backend.streaming.types import (
	ActivityEvent,
	ChatMode,
	DoneEvent,
	ErrorEvent,
	RelayEvent,
	ResolvedModel,
	SessionState,
	TokenEvent,
)


logger = logging.getLogger(__name__)

_TRANSITIONS: Dict[SessionState, FrozenSet[SessionState]] = {
	SessionState.IDLE: frozenset({SessionState.STREAMING, SessionState.CLOSED}),
	SessionState.STREAMING: frozenset(
		{SessionState.COMPLETED, SessionState.FAILED_PRIMARY, SessionState.CLOSED}
	),
	SessionState.FAILED_PRIMARY: frozenset({SessionState.FALLBACK_ATTEMPT, SessionState.CLOSED}),
	SessionState.FALLBACK_ATTEMPT: frozenset(
		{SessionState.COMPLETED, SessionState.FAILED_FINAL, SessionState.CLOSED}
	),
	SessionState.COMPLETED: frozenset({SessionState.CLOSED}),
	SessionState.FAILED_FINAL: frozenset({SessionState.CLOSED}),
	SessionState.CLOSED: frozenset(),
}

INTERNAL_ERROR_MESSAGE = "Relay stream failed."


def _noop() -> None:
	return None


class RelaySession:
	def __init__(
		self,
		*,
		model: ResolvedModel,
		prompt: str,
		mode: ChatMode,
		scheduler: Optional[ActivityScheduler] = None,
		channel: Optional[EventChannel] = None,
		cancel_token: Optional[CancelToken] = None,
	):
		self.model = model
		self.prompt = prompt
		self.mode = mode
		self.channel = channel or EventChannel()
		self.cancel_token = cancel_token or CancelToken()
		self.state = SessionState.IDLE
		self.fallback_attempts = 0
		self._scheduler = scheduler or ActivityScheduler()
		self._stop_activity: Callable[[], None] = _noop
		self._terminal = False
		self.cancel_token.on_cancel(self._on_cancel)

	@property
	def terminal(self) -> bool:
		return self._terminal

	def cancel(self) -> None:
		"""Peer disconnected. A session that already finished ignores this."""
		if self._terminal or self.state is SessionState.CLOSED:
			return
		logger.info("Session cancelled by client (state=%s, model=%s)", self.state.value, self.model.name)
		self.cancel_token.cancel()

	async def run(self) -> None:
		try:
			await self._run()
		except asyncio.CancelledError:
			self.cancel_token.cancel()
			raise
		except Exception:
			logger.exception("Relay session failed unexpectedly (model=%s)", self.model.name)
			if not self.cancel_token.cancelled:
				self._terminate(ErrorEvent(message=INTERNAL_ERROR_MESSAGE))
		finally:
			self._close()

	async def _run(self) -> None:
		if self.cancel_token.cancelled:
			return
		self._transition(SessionState.STREAMING)
		self._stop_activity = self._scheduler.start(self.mode, self._emit_activity)
		try:
			await self._relay_primary()
		except Cancelled:
			return
		except PRIMARY_FAILURES as exc:
			if self.cancel_token.cancelled:
				return
			logger.warning("Primary stream failed (%s): %s", exc.code, exc.message)
			self._transition(SessionState.FAILED_PRIMARY)
			await self._run_fallback()
			return
		self._transition(SessionState.COMPLETED)
		self._terminate(DoneEvent())

	async def _relay_primary(self) -> None:
		units = upstream.stream_prediction(self.model, self.prompt, self.cancel_token)
		async with aclosing(units):
			async for unit in units:
				if unit.kind == "error":
					raise UpstreamEventError(unit.text)
				self._send(TokenEvent(text=unit.text))

	async def _run_fallback(self) -> None:
		if self.cancel_token.cancelled:
			return
		self._transition(SessionState.FALLBACK_ATTEMPT)
		self.fallback_attempts += 1
		try:
			text = await fallback.invoke_fallback(self.model, self.prompt, self.cancel_token)
		except Cancelled:
			return
		except RelayError as exc:
			if self.cancel_token.cancelled:
				return
			logger.error("Fallback prediction failed (%s): %s", exc.code, exc.message)
			self._transition(SessionState.FAILED_FINAL)
			self._terminate(ErrorEvent(message=exc.message))
			return
		if text:
			self._send(TokenEvent(text=text))
		self._transition(SessionState.COMPLETED)
		self._terminate(DoneEvent())

	def _transition(self, target: SessionState) -> None:
		if target not in _TRANSITIONS[self.state]:
			raise RuntimeError(f"Illegal session transition {self.state.value} -> {target.value}")
		logger.debug("Session %s -> %s", self.state.value, target.value)
		self.state = target

	def _send(self, event: RelayEvent) -> None:
		if self._terminal:
			return
		self.channel.send(event)

	def _emit_activity(self, event: ActivityEvent) -> None:
		self._send(event)

	def _terminate(self, event: RelayEvent) -> None:
		if self._terminal:
			return
		self._terminal = True
		self._stop_activity()
		self.channel.send(event)
		self.channel.close()

	def _on_cancel(self) -> None:
		self._stop_activity()
		self.channel.close()

	def _close(self) -> None:
		self._stop_activity()
		self.channel.close()
		if self.state is not SessionState.CLOSED:
			self._transition(SessionState.CLOSED)
