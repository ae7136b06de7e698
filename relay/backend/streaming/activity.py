from __future__ import annotations

import asyncio
import logging
from typing import Callable, Dict, List, Optional, Tuple

from relay.backend import constants
from relay.backend.streaming.types import ActivityEvent, ChatMode


logger = logging.getLogger(__name__)

ACTIVITY_STEPS: Dict[str, Tuple[str, ...]] = {
	"research": ("searching", "reading", "reasoning", "writing"),
	"chat": ("writing",),
}

EmitFn = Callable[[ActivityEvent], None]

_DEFAULT_DELAYS = {
	"chat": constants.DEFAULT_CHAT_ACTIVITY_DELAY_MS / 1000,
	"research": constants.DEFAULT_RESEARCH_ACTIVITY_DELAY_MS / 1000,
}


class ActivityHandle:
	"""Cancels whatever activity timers have not fired yet. Safe to call repeatedly."""

	def __init__(self, timers: List[asyncio.TimerHandle]):
		self._timers = timers

	def __call__(self) -> None:
		timers, self._timers = self._timers, []
		for timer in timers:
			timer.cancel()


class ActivityScheduler:
	def __init__(self, delays: Optional[Dict[str, float]] = None):
		# Seconds between steps, keyed by mode.
		self._delays = dict(delays or _DEFAULT_DELAYS)

	def steps(self, mode: ChatMode) -> Tuple[str, ...]:
		return ACTIVITY_STEPS.get(mode, ACTIVITY_STEPS["chat"])

	def base_delay(self, mode: ChatMode) -> float:
		return self._delays.get(mode, _DEFAULT_DELAYS["chat"])

	def start(self, mode: ChatMode, emit: EmitFn) -> ActivityHandle:
		loop = asyncio.get_running_loop()
		delay = self.base_delay(mode)
		timers = [
			loop.call_later((index + 1) * delay, emit, ActivityEvent(state=step))
			for index, step in enumerate(self.steps(mode))
		]
		logger.debug("Scheduled %d activity step(s) for mode=%s every %.3fs", len(timers), mode, delay)
		return ActivityHandle(timers)
