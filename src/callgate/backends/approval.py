"""Human-approval backend: allow/deny decided by a person over a chat channel.

Each call sends an approval message with two buttons whose callback payloads
carry the call's request id (``verifier:<allow|deny>:<request_id>``), then
waits for a matching button press until its deadline.

The inbound update stream and its cursor belong to the channel as a whole,
not to a single call. One ``ApprovalDispatcher`` per channel identity runs
the only fetch loop and hands each matching callback to the waiter
registered under its request id. Waiters never read the stream themselves,
so concurrent approvals on one bot cannot steal each other's callbacks.
"""

from __future__ import annotations

import asyncio
import json
import logging
import math
import re
from collections.abc import Awaitable, Callable, Collection, Sequence
from dataclasses import dataclass
from typing import Any, Protocol

from callgate.config import HumanApprovalConfig
from callgate.decision import DecisionKind, VerifierDecision
from callgate.envelope import ToolCall

logger = logging.getLogger(__name__)

MAX_DETAILS_LENGTH = 400
LONG_POLL_SECONDS = 5
FETCH_ERROR_BACKOFF = 1.5

MESSAGE_HEADER = "\U0001f512 Tool verification request"
EXPIRED_SUFFIX = "\n\n⏱ Timed out — no response received."
UNAUTHORIZED_TEXT = "You are not authorized to approve/deny this request."
ALLOW_LABEL = "✅ Allow"
DENY_LABEL = "❌ Deny"

_CALLBACK_RE = re.compile(r"^verifier:(allow|deny):(.+)$")


@dataclass(frozen=True)
class ApprovalAction:
    """A button attached to an approval message."""

    label: str
    callback_data: str


@dataclass(frozen=True)
class CallbackEvent:
    """One inbound update. Fields other than ``update_id`` may be missing."""

    update_id: int
    callback_id: str | None = None
    message_id: int | None = None
    sender_id: int | None = None
    data: str | None = None


class ApprovalChannel(Protocol):
    """Capabilities the backend needs from a chat platform."""

    name: str

    @property
    def identity(self) -> str:
        """Stable key for the bot identity; one dispatcher exists per identity."""
        ...

    async def send_approval_request(self, chat_id: str, text: str, actions: Sequence[ApprovalAction]) -> int:
        """Send *text* with *actions* attached and return the message id."""
        ...

    async def fetch_callback_events(self, cursor: int, wait: int) -> list[CallbackEvent]:
        """Return updates with ``update_id >= cursor``, waiting up to *wait* seconds."""
        ...

    async def acknowledge_callback(self, callback_id: str, text: str, alert: bool = False) -> None: ...

    async def strip_actions(self, chat_id: str, message_id: int) -> None: ...

    async def edit_message(self, chat_id: str, message_id: int, text: str) -> None: ...

    async def close(self) -> None: ...


def is_allowed_sender(sender_id: int | None, allowed_ids: Collection[int] | None) -> bool:
    """Check a sender against the allow-list. An empty list lets anyone answer."""
    if not allowed_ids:
        return True
    return sender_id in allowed_ids


def format_approval_message(
    tool_name: str,
    params: Any,
    agent_id: str | None = None,
    session_key: str | None = None,
) -> str:
    """Render the human-readable approval request.

    Details show the ``command`` param when there is one, otherwise compact
    JSON of the (already redacted) params, truncated to MAX_DETAILS_LENGTH.
    """
    command = params.get("command") if isinstance(params, dict) else None
    if isinstance(command, str):
        details = command
    else:
        try:
            details = json.dumps(params, separators=(",", ":"), ensure_ascii=False, default=str)
        except (TypeError, ValueError):
            details = repr(params)
    if len(details) > MAX_DETAILS_LENGTH:
        details = f"{details[:MAX_DETAILS_LENGTH]}..."

    lines = [MESSAGE_HEADER, "", f"Tool: {tool_name}", f"Details: {details}"]
    if agent_id:
        lines.append(f"Agent: {agent_id}")
    if session_key:
        lines.append(f"Session: {session_key}")
    return "\n".join(lines)


def callback_data(decision: DecisionKind, request_id: str) -> str:
    return f"verifier:{decision.value}:{request_id}"


def parse_callback_data(data: str | None) -> tuple[DecisionKind, str] | None:
    """Parse ``verifier:<allow|deny>:<request_id>``; anything else is None."""
    if not data:
        return None
    match = _CALLBACK_RE.match(data)
    if match is None:
        return None
    return DecisionKind(match.group(1)), match.group(2)


def approval_actions(request_id: str) -> list[ApprovalAction]:
    return [
        ApprovalAction(ALLOW_LABEL, callback_data(DecisionKind.ALLOW, request_id)),
        ApprovalAction(DENY_LABEL, callback_data(DecisionKind.DENY, request_id)),
    ]


async def _best_effort(op: Awaitable[Any], what: str, level: int = logging.WARNING) -> None:
    """Await *op*, logging and discarding any failure."""
    try:
        await op
    except Exception as exc:
        logger.log(level, "Failed to %s: %s", what, exc)


@dataclass
class PendingApproval:
    """A call waiting for its button press. Lives only as long as that call."""

    request_id: str
    message_id: int
    chat_id: str
    deadline: float
    future: asyncio.Future
    allowed_sender_ids: frozenset[int] = frozenset()


class ApprovalDispatcher:
    """The single consumer of one channel's callback stream.

    Owns the update cursor and a ``request_id -> PendingApproval`` table.
    A consumer task runs while the table is non-empty; it starts on the
    first registration. When the last waiter leaves, a consumer blocked in
    a fetch is cancelled, and one busy delivering a decision finishes that
    delivery and exits on its own.

    A dispatcher belongs to the event loop it was created on.
    """

    def __init__(self, channel: ApprovalChannel, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self.channel = channel
        self.loop = loop or asyncio.get_running_loop()
        self._waiters: dict[str, PendingApproval] = {}
        self._cursor = 0
        self._task: asyncio.Task | None = None
        self._polling: asyncio.Task | None = None

    @property
    def cursor(self) -> int:
        return self._cursor

    @property
    def pending_count(self) -> int:
        return len(self._waiters)

    def has_waiter(self, request_id: str) -> bool:
        return request_id in self._waiters

    def register(self, pending: PendingApproval) -> asyncio.Future:
        if pending.request_id in self._waiters:
            raise ValueError(f"Request {pending.request_id} is already awaiting approval")
        self._waiters[pending.request_id] = pending
        if self._task is None or self._task.done():
            self._task = asyncio.get_running_loop().create_task(self._consume())
        return pending.future

    def unregister(self, request_id: str) -> None:
        self._waiters.pop(request_id, None)
        if self._waiters or self._task is None:
            return
        if self._task.done():
            self._task = None
        elif self._polling is self._task:
            # Unconfirmed offsets are re-delivered, so an in-flight fetch can be dropped.
            self._task.cancel()
            self._task = None

    async def close(self) -> None:
        for pending in self._waiters.values():
            if not pending.future.done():
                pending.future.cancel()
        self._waiters.clear()
        task, self._task = self._task, None
        if task is not None and not task.done():
            # A consumer delivering a decision is allowed to finish it.
            if self._polling is task:
                task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        await self.channel.close()

    async def _consume(self) -> None:
        loop = asyncio.get_running_loop()
        while self._waiters:
            remaining = max(p.deadline for p in self._waiters.values()) - loop.time()
            wait = min(LONG_POLL_SECONDS, max(0, math.ceil(remaining)))
            self._polling = asyncio.current_task()
            try:
                events = await self.channel.fetch_callback_events(self._cursor, wait)
            except Exception as exc:
                logger.warning("%s getUpdates error: %s", self.channel.name, exc)
                await asyncio.sleep(FETCH_ERROR_BACKOFF)
                continue
            finally:
                if self._polling is asyncio.current_task():
                    self._polling = None

            for event in events:
                self._cursor = max(self._cursor, event.update_id + 1)
                await self._dispatch(event)

    async def _dispatch(self, event: CallbackEvent) -> None:
        parsed = parse_callback_data(event.data)
        if parsed is None:
            return
        kind, request_id = parsed

        pending = self._waiters.get(request_id)
        if pending is None:
            logger.debug("Ignoring callback for request %s with no waiter", request_id)
            return
        if event.message_id != pending.message_id:
            return

        if not is_allowed_sender(event.sender_id, pending.allowed_sender_ids):
            logger.info(
                "Rejected %s callback from unauthorized sender %s for request %s",
                self.channel.name,
                event.sender_id,
                request_id,
            )
            if event.callback_id:
                await _best_effort(
                    self.channel.acknowledge_callback(event.callback_id, UNAUTHORIZED_TEXT, alert=True),
                    "answer unauthorized callback",
                )
            return

        del self._waiters[request_id]
        if kind is DecisionKind.ALLOW:
            decision = VerifierDecision.allow()
        else:
            decision = VerifierDecision.deny(f"Denied via {self.channel.name}")
        if not pending.future.done():
            pending.future.set_result(decision)

        if event.callback_id:
            text = "✅ Allowed" if kind is DecisionKind.ALLOW else "❌ Denied"
            await _best_effort(self.channel.acknowledge_callback(event.callback_id, text), "answer callback")
        await _best_effort(self.channel.strip_actions(pending.chat_id, pending.message_id), "remove approval buttons")


ChannelFactory = Callable[[HumanApprovalConfig], ApprovalChannel]


def _telegram_channel(config: HumanApprovalConfig) -> ApprovalChannel:
    from callgate.backends.telegram import TelegramChannel

    return TelegramChannel(config.channel_token)


class HumanApprovalBackend:
    """Ask a person to allow or deny the call over a chat channel.

    Args:
        channel_factory: Builds the channel for a config. Called once per
            channel token; the resulting dispatcher is reused by every call
            that shares the token.
    """

    def __init__(self, channel_factory: ChannelFactory | None = None) -> None:
        self._channel_factory = channel_factory or _telegram_channel
        self._dispatchers: dict[str, ApprovalDispatcher] = {}

    async def dispatcher_for(self, config: HumanApprovalConfig) -> ApprovalDispatcher:
        """Return the dispatcher for the config's token on the running loop.

        A dispatcher left over from an earlier event loop holds connections
        that loop owned; it is dropped and its channel closed best-effort.
        """
        loop = asyncio.get_running_loop()
        dispatcher = self._dispatchers.get(config.channel_token)
        if dispatcher is not None and dispatcher.loop is not loop:
            logger.debug("Replacing %s dispatcher bound to a previous event loop", dispatcher.channel.name)
            del self._dispatchers[config.channel_token]
            await _best_effort(dispatcher.channel.close(), "close stale channel", level=logging.DEBUG)
            dispatcher = None
        if dispatcher is None:
            dispatcher = ApprovalDispatcher(self._channel_factory(config), loop)
            self._dispatchers[config.channel_token] = dispatcher
        return dispatcher

    async def decide(self, call: ToolCall, params: Any, config: HumanApprovalConfig) -> VerifierDecision:
        dispatcher = await self.dispatcher_for(config)
        channel = dispatcher.channel
        loop = asyncio.get_running_loop()

        try:
            if dispatcher.has_waiter(call.request_id):
                raise ValueError(f"Request {call.request_id} is already awaiting approval")
            text = format_approval_message(call.tool_name, params, call.agent_id, call.session_key)
            message_id = await channel.send_approval_request(
                config.chat_id, text, approval_actions(call.request_id)
            )

            deadline = loop.time() + config.timeout
            future = dispatcher.register(
                PendingApproval(
                    request_id=call.request_id,
                    message_id=message_id,
                    chat_id=config.chat_id,
                    deadline=deadline,
                    future=loop.create_future(),
                    allowed_sender_ids=config.allowed_sender_ids,
                )
            )
            try:
                return await asyncio.wait_for(future, timeout=max(0.0, deadline - loop.time()))
            except asyncio.TimeoutError:
                pass
            finally:
                dispatcher.unregister(call.request_id)

            await _best_effort(
                channel.edit_message(config.chat_id, message_id, text + EXPIRED_SUFFIX),
                "mark approval message expired",
                level=logging.DEBUG,
            )
            logger.warning("%s approval for %s (request %s) timed out", channel.name, call.tool_name, call.request_id)
            return VerifierDecision.error(f"{channel.name} approval timed out")
        except Exception as exc:
            logger.warning("%s verifier failed: %s", channel.name, exc)
            return VerifierDecision.error(f"{channel.name} verifier failed: {exc}")

    async def close(self) -> None:
        dispatchers = list(self._dispatchers.values())
        self._dispatchers.clear()
        for dispatcher in dispatchers:
            await dispatcher.close()
