"""Incremental server-sent event decoding and upstream payload translation.

Upstream prediction services deliver tokens as ``text/event-stream`` frames,
but the frames may be split anywhere across network chunks. ``SSEDecoder``
buffers partial lines between ``feed`` calls and only releases an event once
its terminating blank line has been seen. ``translate`` then maps each raw
event onto a token, an upstream error, or nothing.
"""

from __future__ import annotations

import codecs
import json
import logging
from typing import Any, Dict, List, Optional, Tuple

from relay.backend.streaming.types import DecodedUnit, RawEvent


logger = logging.getLogger(__name__)

# Tried in this order on every upstream JSON document, streamed or not.
TEXT_FIELDS: Tuple[str, ...] = ("token", "text", "answer", "output", "message")


def extract_text(document: Dict[str, Any]) -> Optional[str]:
	for key in TEXT_FIELDS:
		value = document.get(key)
		if isinstance(value, str) and value:
			return value
	return None


def extract_error(document: Dict[str, Any]) -> Optional[str]:
	error = document.get("error")
	if not error:
		nested = document.get("message")
		if isinstance(nested, dict):
			error = nested.get("error")
	if not error:
		return None
	if isinstance(error, str):
		return error
	if isinstance(error, dict) and isinstance(error.get("message"), str) and error["message"]:
		return error["message"]
	return json.dumps(error, ensure_ascii=False)


class SSEDecoder:
	def __init__(self) -> None:
		self._utf8 = codecs.getincrementaldecoder("utf-8")(errors="replace")
		self._pending = ""
		self._skip_lf = False
		self._data: List[str] = []
		self._event = ""

	def feed(self, chunk: bytes | str) -> List[RawEvent]:
		text = self._utf8.decode(chunk) if isinstance(chunk, bytes) else chunk
		if not text:
			return []
		if self._skip_lf and text.startswith("\n"):
			text = text[1:]
		self._skip_lf = False

		events: List[RawEvent] = []
		buffer = self._pending + text
		start = 0
		length = len(buffer)
		while start < length:
			cr = buffer.find("\r", start)
			lf = buffer.find("\n", start)
			if cr == -1 and lf == -1:
				break
			if cr == -1 or (lf != -1 and lf < cr):
				end, next_start = lf, lf + 1
			elif cr + 1 < length:
				end = cr
				next_start = cr + 2 if buffer[cr + 1] == "\n" else cr + 1
			else:
				# Trailing CR: the matching LF may arrive with the next chunk.
				end, next_start = cr, cr + 1
				self._skip_lf = True
			event = self._process_line(buffer[start:end])
			if event is not None:
				events.append(event)
			start = next_start
		self._pending = buffer[start:]
		return events

	def close(self) -> None:
		tail = self._utf8.decode(b"", final=True)
		if self._pending or tail or self._data:
			logger.debug("Discarding unterminated event at end of stream")
		self._pending = ""
		self._data = []
		self._event = ""

	def _process_line(self, line: str) -> Optional[RawEvent]:
		if not line:
			return self._dispatch()
		if line.startswith(":"):
			return None
		field, sep, value = line.partition(":")
		if sep and value.startswith(" "):
			value = value[1:]
		if field == "data":
			self._data.append(value)
		elif field == "event":
			self._event = value
		return None

	def _dispatch(self) -> Optional[RawEvent]:
		if not self._data:
			self._event = ""
			return None
		event = RawEvent(data="\n".join(self._data), event=self._event or "message")
		self._data = []
		self._event = ""
		return event


def translate(event: RawEvent) -> DecodedUnit:
	raw = event.data
	try:
		parsed: Any = json.loads(raw)
	except ValueError:
		parsed = None

	text: Optional[str] = None
	if isinstance(parsed, dict):
		error = extract_error(parsed)
		if error:
			return DecodedUnit(kind="error", text=error)
		text = extract_text(parsed)
	if not text:
		text = raw
	if not text:
		return DecodedUnit(kind="unrecognized")
	return DecodedUnit(kind="token", text=text)
