"""Shared fixtures: an in-memory approval channel and HTTP fake servers."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field

import pytest
from aiohttp import test_utils, web

from callgate.backends.approval import ApprovalAction, CallbackEvent, HumanApprovalBackend
from callgate.config import HumanApprovalConfig


@dataclass
class SentMessage:
    chat_id: str
    text: str
    actions: list[ApprovalAction]
    message_id: int


class FakeChannel:
    """ApprovalChannel kept in memory.

    Updates stay in ``updates`` until the consumer asks for a cursor past
    them, the same way Telegram re-delivers unconfirmed updates.
    """

    name = "Telegram"

    def __init__(self, identity: str = "test-token") -> None:
        self.identity = identity
        self.sent: list[SentMessage] = []
        self.acks: list[tuple[str, str, bool]] = []
        self.stripped: list[tuple[str, int]] = []
        self.edits: list[tuple[str, int, str]] = []
        self.fetch_calls: list[tuple[int, int]] = []
        self.updates: list[CallbackEvent] = []
        self.fetch_errors = 0
        self.fail_send = False
        self.fail_edit = False
        self.closed = False
        self.active_fetches = 0
        self.max_active_fetches = 0
        self._next_message_id = 100
        self._next_update_id = 1

    async def send_approval_request(self, chat_id, text, actions):
        if self.fail_send:
            raise ConnectionError("chat unreachable")
        self._next_message_id += 1
        self.sent.append(SentMessage(chat_id, text, list(actions), self._next_message_id))
        return self._next_message_id

    async def fetch_callback_events(self, cursor, wait):
        self.fetch_calls.append((cursor, wait))
        if self.fetch_errors:
            self.fetch_errors -= 1
            raise ConnectionError("getUpdates failed")
        self.active_fetches += 1
        self.max_active_fetches = max(self.max_active_fetches, self.active_fetches)
        try:
            events = [u for u in self.updates if u.update_id >= cursor]
            if not events:
                await asyncio.sleep(0.01)
            return events
        finally:
            self.active_fetches -= 1

    async def acknowledge_callback(self, callback_id, text, alert=False):
        self.acks.append((callback_id, text, alert))

    async def strip_actions(self, chat_id, message_id):
        self.stripped.append((chat_id, message_id))

    async def edit_message(self, chat_id, message_id, text):
        if self.fail_edit:
            raise ConnectionError("edit failed")
        self.edits.append((chat_id, message_id, text))

    async def close(self):
        self.closed = True

    def press(self, message_id: int, data: str, sender_id: int = 1) -> CallbackEvent:
        """Simulate a button press on *message_id*."""
        update_id = self._next_update_id
        self._next_update_id += 1
        event = CallbackEvent(
            update_id=update_id,
            callback_id=f"cb-{update_id}",
            message_id=message_id,
            sender_id=sender_id,
            data=data,
        )
        self.updates.append(event)
        return event

    async def wait_sent(self, count: int = 1, timeout: float = 2.0) -> SentMessage:
        """Wait until *count* messages were sent and return the last one."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while len(self.sent) < count:
            if loop.time() > deadline:
                raise AssertionError(f"expected {count} sent messages, got {len(self.sent)}")
            await asyncio.sleep(0.005)
        return self.sent[count - 1]


def approval_config(**overrides) -> HumanApprovalConfig:
    values = {"chat_id": "42", "channel_token": "test-token", "timeout": 2.0}
    values.update(overrides)
    return HumanApprovalConfig(**values)


@pytest.fixture
def channel() -> FakeChannel:
    return FakeChannel()


@pytest.fixture
async def approval_backend(channel):
    backend = HumanApprovalBackend(channel_factory=lambda config: channel)
    yield backend
    await backend.close()


@dataclass
class WebhookServer:
    """A fake decision endpoint that records every request body."""

    server: test_utils.TestServer
    requests: list[dict] = field(default_factory=list)
    headers: list[dict] = field(default_factory=list)
    status: int = 200
    response: object = field(default_factory=lambda: {"decision": "allow"})
    raw_body: str | None = None
    delay: float = 0.0

    @property
    def url(self) -> str:
        return str(self.server.make_url("/verify"))


@pytest.fixture
async def webhook_server():
    state: dict = {}

    async def handler(request: web.Request) -> web.Response:
        srv: WebhookServer = state["server"]
        srv.requests.append(await request.json())
        srv.headers.append(dict(request.headers))
        if srv.delay:
            await asyncio.sleep(srv.delay)
        if srv.raw_body is not None:
            return web.Response(status=srv.status, text=srv.raw_body, content_type="text/plain")
        return web.json_response(srv.response, status=srv.status)

    app = web.Application()
    app.router.add_post("/verify", handler)
    server = test_utils.TestServer(app)
    await server.start_server()
    state["server"] = WebhookServer(server=server)
    yield state["server"]
    await server.close()
