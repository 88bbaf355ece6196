"""Telegram Bot API channel for human approvals.

Talks to the Bot API directly over HTTP: ``sendMessage`` with an inline
keyboard, ``getUpdates`` restricted to ``callback_query`` updates, and the
answer/edit calls that close an approval out.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

import aiohttp

from callgate import ChannelError
from callgate.backends._http import HTTPClientBase
from callgate.backends.approval import ApprovalAction, CallbackEvent

logger = logging.getLogger(__name__)

TELEGRAM_API_BASE = "https://api.telegram.org"

# Headroom on top of the long-poll wait before the HTTP request itself gives up.
_POLL_TIMEOUT_MARGIN = 10


class TelegramChannel(HTTPClientBase):
    """ApprovalChannel over the Telegram Bot API."""

    name = "Telegram"

    def __init__(
        self,
        token: str,
        *,
        api_base: str = TELEGRAM_API_BASE,
        timeout: aiohttp.ClientTimeout | None = None,
    ) -> None:
        super().__init__(timeout=timeout)
        self._token = token
        self._api_base = api_base.rstrip("/")

    @property
    def identity(self) -> str:
        return self._token

    async def _call(
        self,
        method: str,
        payload: dict[str, Any],
        *,
        timeout: aiohttp.ClientTimeout | None = None,
    ) -> Any:
        """POST *payload* to a Bot API method and return its ``result``.

        Raises:
            ChannelError: On a non-JSON response or ``ok: false``.
        """
        session = await self._get_session()
        url = f"{self._api_base}/bot{self._token}/{method}"
        kwargs: dict[str, Any] = {}
        if timeout is not None:
            kwargs["timeout"] = timeout

        async with session.post(url, json=payload, **kwargs) as resp:
            try:
                body = await resp.json(content_type=None)
            except ValueError as e:
                raise ChannelError(f"{method} returned a non-JSON body (HTTP {resp.status})") from e
            status = resp.status

        if not isinstance(body, dict) or not body.get("ok"):
            description = body.get("description") if isinstance(body, dict) else None
            raise ChannelError(f"{method} failed (HTTP {status}): {description or 'unknown error'}")
        return body.get("result")

    async def send_approval_request(self, chat_id: str, text: str, actions: Sequence[ApprovalAction]) -> int:
        keyboard = [[{"text": a.label, "callback_data": a.callback_data} for a in actions]]
        result = await self._call(
            "sendMessage",
            {"chat_id": chat_id, "text": text, "reply_markup": {"inline_keyboard": keyboard}},
        )
        try:
            return int(result["message_id"])
        except (TypeError, KeyError, ValueError) as e:
            raise ChannelError("sendMessage response is missing message_id") from e

    async def fetch_callback_events(self, cursor: int, wait: int) -> list[CallbackEvent]:
        result = await self._call(
            "getUpdates",
            {"offset": cursor, "timeout": wait, "allowed_updates": ["callback_query"]},
            timeout=aiohttp.ClientTimeout(total=wait + _POLL_TIMEOUT_MARGIN),
        )
        if not isinstance(result, list):
            raise ChannelError("getUpdates returned a non-list result")
        return [event for event in (_parse_update(u) for u in result) if event is not None]

    async def acknowledge_callback(self, callback_id: str, text: str, alert: bool = False) -> None:
        payload: dict[str, Any] = {"callback_query_id": callback_id, "text": text}
        if alert:
            payload["show_alert"] = True
        await self._call("answerCallbackQuery", payload)

    async def strip_actions(self, chat_id: str, message_id: int) -> None:
        await self._call("editMessageReplyMarkup", {"chat_id": chat_id, "message_id": message_id})

    async def edit_message(self, chat_id: str, message_id: int, text: str) -> None:
        await self._call("editMessageText", {"chat_id": chat_id, "message_id": message_id, "text": text})


def _parse_update(update: Any) -> CallbackEvent | None:
    if not isinstance(update, dict) or not isinstance(update.get("update_id"), int):
        logger.debug("Skipping malformed update: %r", update)
        return None

    query = update.get("callback_query")
    if not isinstance(query, dict):
        return CallbackEvent(update_id=update["update_id"])

    message = query.get("message") if isinstance(query.get("message"), dict) else {}
    sender = query.get("from") if isinstance(query.get("from"), dict) else {}
    return CallbackEvent(
        update_id=update["update_id"],
        callback_id=query.get("id"),
        message_id=message.get("message_id"),
        sender_id=sender.get("id"),
        data=query.get("data"),
    )
