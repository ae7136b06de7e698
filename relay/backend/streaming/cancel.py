from __future__ import annotations

from typing import Callable, List

from relay.backend.streaming.errors import Cancelled


class CancelToken:
	"""Per-session cancellation flag, passed by reference to every awaited step."""

	def __init__(self) -> None:
		self._cancelled = False
		self._callbacks: List[Callable[[], None]] = []

	@property
	def cancelled(self) -> bool:
		return self._cancelled

	def cancel(self) -> None:
		if self._cancelled:
			return
		self._cancelled = True
		callbacks, self._callbacks = self._callbacks, []
		for callback in callbacks:
			callback()

	def on_cancel(self, callback: Callable[[], None]) -> None:
		if self._cancelled:
			callback()
			return
		self._callbacks.append(callback)

	def raise_if_cancelled(self) -> None:
		if self._cancelled:
			raise Cancelled()
