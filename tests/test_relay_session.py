import asyncio
import json
import os
from unittest import IsolatedAsyncioTestCase
from unittest.mock import patch

import httpx

from relay.backend.routers.chat import _relay_frames
from relay.backend.streaming.activity import ActivityScheduler
from relay.backend.streaming.session import RelaySession
from relay.backend.streaming.types import (
	ActivityEvent,
	DoneEvent,
	ErrorEvent,
	ResolvedModel,
	SessionState,
	TokenEvent,
)


_MODEL = ResolvedModel(index=1, name="Alpha", id="flow-a", host="http://flowise.test")


def _sse(*payloads: dict) -> bytes:
	return "".join(f"data: {json.dumps(payload)}\n\n" for payload in payloads).encode("utf-8")


class _FakeUpstream:
	"""Routes streaming calls and the non-streaming fallback to separate handlers."""

	def __init__(self, *, stream, fallback=None, delay: float = 0.0):
		self._stream = stream
		self._fallback = fallback
		self._delay = delay
		self.stream_calls = 0
		self.fallback_calls = 0

	async def __call__(self, request: httpx.Request) -> httpx.Response:
		if self._delay:
			await asyncio.sleep(self._delay)
		if json.loads(request.content).get("streaming"):
			self.stream_calls += 1
			return self._stream(request)
		self.fallback_calls += 1
		if self._fallback is None:
			raise AssertionError("unexpected fallback call")
		return self._fallback(request)

	def client(self, **_kwargs) -> httpx.AsyncClient:
		return httpx.AsyncClient(transport=httpx.MockTransport(self))


def _summary(events):
	rows = []
	for event in events:
		if isinstance(event, TokenEvent):
			rows.append(("token", event.text))
		elif isinstance(event, ActivityEvent):
			rows.append(("activity", event.state))
		elif isinstance(event, ErrorEvent):
			rows.append(("error", event.message))
		elif isinstance(event, DoneEvent):
			rows.append(("done", True))
	return rows


class RelaySessionTests(IsolatedAsyncioTestCase):
	def setUp(self) -> None:
		env = patch.dict(os.environ, {}, clear=False)
		env.start()
		self.addCleanup(env.stop)
		for key in ("UPSTREAM_AUTH_HEADER", "UPSTREAM_AUTH_VALUE", "UPSTREAM_BEARER_TOKEN", "UPSTREAM_TIMEOUT_S"):
			os.environ.pop(key, None)

	def _serve(self, fake: _FakeUpstream) -> _FakeUpstream:
		patcher = patch("relay.backend.streaming.upstream._build_http_client", side_effect=fake.client)
		patcher.start()
		self.addCleanup(patcher.stop)
		return fake

	def _session(self, mode="chat", delay=0.01) -> RelaySession:
		return RelaySession(
			model=_MODEL,
			prompt="hi",
			mode=mode,
			scheduler=ActivityScheduler({"chat": delay, "research": delay}),
		)

	async def _run(self, session: RelaySession):
		await session.run()
		return _summary([event async for event in session.channel.events()])

	async def test_stream_relays_tokens_after_activity_then_done(self) -> None:
		fake = self._serve(
			_FakeUpstream(
				stream=lambda request: httpx.Response(
					200,
					headers={"content-type": "text/event-stream"},
					content=_sse({"token": "He"}, {"token": "llo"}),
				),
				delay=0.1,
			)
		)
		session = self._session()
		events = await self._run(session)
		self.assertEqual(events, [("activity", "writing"), ("token", "He"), ("token", "llo"), ("done", True)])
		self.assertEqual(fake.fallback_calls, 0)
		self.assertEqual(session.state, SessionState.CLOSED)

	async def test_primary_failure_triggers_exactly_one_fallback(self) -> None:
		fake = self._serve(
			_FakeUpstream(
				stream=lambda request: httpx.Response(500, text="boom"),
				fallback=lambda request: httpx.Response(200, json={"answer": "ok"}),
			)
		)
		session = self._session(delay=5)
		events = await self._run(session)
		self.assertEqual(events, [("token", "ok"), ("done", True)])
		self.assertEqual((fake.stream_calls, fake.fallback_calls), (1, 1))
		self.assertEqual(session.fallback_attempts, 1)

	async def test_transport_failure_falls_back(self) -> None:
		def refuse(request):
			raise httpx.ConnectError("refused", request=request)

		fake = self._serve(
			_FakeUpstream(stream=refuse, fallback=lambda request: httpx.Response(200, json={"text": "recovered"}))
		)
		events = await self._run(self._session(delay=5))
		self.assertEqual(events, [("token", "recovered"), ("done", True)])
		self.assertEqual(fake.fallback_calls, 1)

	async def test_upstream_error_event_triggers_fallback_and_is_not_a_token(self) -> None:
		fake = self._serve(
			_FakeUpstream(
				stream=lambda request: httpx.Response(
					200,
					headers={"content-type": "text/event-stream"},
					content=_sse({"token": "par"}, {"error": "model overloaded"}, {"token": "never"}),
				),
				fallback=lambda request: httpx.Response(200, json={"text": "full answer"}),
			)
		)
		events = await self._run(self._session(delay=5))
		self.assertEqual(events, [("token", "par"), ("token", "full answer"), ("done", True)])
		self.assertEqual(fake.fallback_calls, 1)

	async def test_fallback_failure_emits_single_error(self) -> None:
		fake = self._serve(
			_FakeUpstream(
				stream=lambda request: httpx.Response(500, text="boom"),
				fallback=lambda request: httpx.Response(502, text="still down"),
			)
		)
		session = self._session(delay=5)
		events = await self._run(session)
		self.assertEqual(len(events), 1)
		kind, message = events[0]
		self.assertEqual(kind, "error")
		self.assertIn("502", message)
		self.assertIn("still down", message)
		self.assertEqual((fake.stream_calls, fake.fallback_calls), (1, 1))

	async def test_cancel_before_start_makes_no_calls_and_emits_nothing(self) -> None:
		fake = self._serve(_FakeUpstream(stream=lambda request: httpx.Response(200, json={"text": "x"})))
		session = self._session(delay=0)
		session.cancel_token.cancel()
		events = await self._run(session)
		await asyncio.sleep(0.05)
		self.assertEqual(events, [])
		self.assertEqual((fake.stream_calls, fake.fallback_calls), (0, 0))
		self.assertEqual(session.state, SessionState.CLOSED)

	async def test_cancel_mid_stream_stops_reading_without_fallback(self) -> None:
		async def body():
			yield _sse({"token": "first"})
			await asyncio.sleep(0.1)
			yield _sse({"token": "second"})

		fake = self._serve(
			_FakeUpstream(
				stream=lambda request: httpx.Response(
					200, headers={"content-type": "text/event-stream"}, content=body()
				),
				fallback=lambda request: httpx.Response(200, json={"text": "nope"}),
			)
		)
		session = self._session(delay=5)
		task = asyncio.create_task(session.run())
		received = []
		async for event in session.channel.events():
			received.append(event)
			if isinstance(event, TokenEvent):
				session.cancel()
		await task
		self.assertEqual(_summary(received), [("token", "first")])
		self.assertEqual(fake.fallback_calls, 0)
		self.assertEqual(session.state, SessionState.CLOSED)

	async def test_no_activity_after_terminal_event(self) -> None:
		self._serve(_FakeUpstream(stream=lambda request: httpx.Response(200, json={"text": "quick"})))
		session = self._session(mode="research", delay=0.05)
		await session.run()
		await asyncio.sleep(0.3)
		events = _summary([event async for event in session.channel.events()])
		self.assertEqual(events, [("token", "quick"), ("done", True)])

	async def test_research_activity_steps_precede_tokens(self) -> None:
		self._serve(
			_FakeUpstream(
				stream=lambda request: httpx.Response(
					200,
					headers={"content-type": "text/event-stream"},
					content=_sse({"text": "answer"}),
				),
				delay=0.2,
			)
		)
		events = await self._run(self._session(mode="research", delay=0.01))
		self.assertEqual(
			events,
			[
				("activity", "searching"),
				("activity", "reading"),
				("activity", "reasoning"),
				("activity", "writing"),
				("token", "answer"),
				("done", True),
			],
		)

	async def test_cancel_after_completion_is_ignored(self) -> None:
		self._serve(_FakeUpstream(stream=lambda request: httpx.Response(200, json={"text": "ok"})))
		session = self._session(delay=5)
		events = await self._run(session)
		session.cancel()
		self.assertFalse(session.cancel_token.cancelled)
		self.assertEqual(events, [("token", "ok"), ("done", True)])

	async def test_cancel_during_fallback_discards_result(self) -> None:
		fallback_started = asyncio.Event()
		release = asyncio.Event()
		calls = {"stream": 0, "fallback": 0}

		async def handler(request: httpx.Request) -> httpx.Response:
			if json.loads(request.content).get("streaming"):
				calls["stream"] += 1
				return httpx.Response(500, text="boom")
			calls["fallback"] += 1
			fallback_started.set()
			await release.wait()
			return httpx.Response(200, json={"text": "too late"})

		patcher = patch(
			"relay.backend.streaming.upstream._build_http_client",
			side_effect=lambda **_kwargs: httpx.AsyncClient(transport=httpx.MockTransport(handler)),
		)
		patcher.start()
		self.addCleanup(patcher.stop)

		session = self._session(delay=5)
		task = asyncio.create_task(session.run())
		await asyncio.wait_for(fallback_started.wait(), timeout=2)
		self.assertEqual(session.state, SessionState.FALLBACK_ATTEMPT)
		session.cancel()
		release.set()
		await task
		events = _summary([event async for event in session.channel.events()])
		self.assertEqual(events, [])
		self.assertEqual(calls, {"stream": 1, "fallback": 1})
		self.assertEqual(session.state, SessionState.CLOSED)


class RelayFramesTests(IsolatedAsyncioTestCase):
	def setUp(self) -> None:
		env = patch.dict(os.environ, {}, clear=False)
		env.start()
		self.addCleanup(env.stop)
		for key in ("UPSTREAM_AUTH_HEADER", "UPSTREAM_AUTH_VALUE", "UPSTREAM_BEARER_TOKEN", "UPSTREAM_TIMEOUT_S"):
			os.environ.pop(key, None)

	async def _wait_for_state(self, session: RelaySession, state: SessionState) -> None:
		for _ in range(100):
			if session.state is state:
				return
			await asyncio.sleep(0.01)
		self.fail(f"session stuck in {session.state.value}")

	async def test_closing_frames_mid_stream_cancels_the_session(self) -> None:
		async def body():
			yield _sse({"token": "first"})
			await asyncio.sleep(10)
			yield _sse({"token": "never"})

		fake = _FakeUpstream(
			stream=lambda request: httpx.Response(200, headers={"content-type": "text/event-stream"}, content=body()),
			fallback=lambda request: httpx.Response(200, json={"text": "nope"}),
		)
		patcher = patch("relay.backend.streaming.upstream._build_http_client", side_effect=fake.client)
		patcher.start()
		self.addCleanup(patcher.stop)

		session = RelaySession(
			model=_MODEL,
			prompt="hi",
			mode="chat",
			scheduler=ActivityScheduler({"chat": 5, "research": 5}),
		)
		frames = _relay_frames(session)
		first = await frames.__anext__()
		self.assertTrue(first.startswith("event: token\n"))
		await frames.aclose()

		self.assertTrue(session.cancel_token.cancelled)
		await self._wait_for_state(session, SessionState.CLOSED)
		self.assertFalse(session.terminal)
		self.assertEqual(fake.fallback_calls, 0)
