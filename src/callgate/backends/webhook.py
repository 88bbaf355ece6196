"""Webhook backend: one synchronous HTTP round trip per tool call.

The request body is ``{"tool": {"name", "params"}, "agentId"?, "sessionKey"?}``
and the endpoint answers ``{"decision": "allow" | "deny", "reason"?}``.
Every failure (connection error, non-2xx status, malformed body, timeout)
comes back as an error decision; nothing is raised and nothing is retried.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import aiohttp

from callgate.config import WebhookConfig
from callgate.decision import VerifierDecision
from callgate.envelope import ToolCall

logger = logging.getLogger(__name__)


def build_request_body(call: ToolCall, params: Any) -> dict[str, Any]:
    """Build the JSON body sent to the decision endpoint."""
    body: dict[str, Any] = {"tool": {"name": call.tool_name, "params": params}}
    if call.agent_id:
        body["agentId"] = call.agent_id
    if call.session_key:
        body["sessionKey"] = call.session_key
    return body


def parse_decision(payload: Any) -> VerifierDecision:
    """Parse an endpoint response into a decision; malformed input is an error."""
    if not isinstance(payload, dict):
        return VerifierDecision.error("Webhook returned a malformed response: expected a JSON object")

    reason = payload.get("reason")
    if reason is not None and not isinstance(reason, str):
        return VerifierDecision.error("Webhook returned a malformed response: 'reason' must be a string")

    decision = payload.get("decision")
    if decision == "allow":
        return VerifierDecision.allow()
    if decision == "deny":
        return VerifierDecision.deny(reason)
    return VerifierDecision.error(f"Webhook returned a malformed response: unknown decision {decision!r}")


class WebhookBackend:
    """Ask an HTTP endpoint for a verdict.

    Holds no state between calls; each call opens and closes its own
    client session so concurrent verifications never share anything.
    """

    async def decide(self, call: ToolCall, params: Any, config: WebhookConfig) -> VerifierDecision:
        body = build_request_body(call, params)
        timeout = aiohttp.ClientTimeout(total=config.timeout)

        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.post(config.url, json=body, headers=dict(config.headers)) as resp:
                    if not 200 <= resp.status < 300:
                        return self._failed(config, f"Webhook returned HTTP {resp.status}")
                    try:
                        payload = await resp.json(content_type=None)
                    except ValueError:
                        return self._failed(config, "Webhook returned a non-JSON body")
        except asyncio.TimeoutError:
            return self._failed(config, f"Webhook timed out after {config.timeout:g}s")
        except Exception as exc:
            return self._failed(config, f"Webhook request failed: {exc}")

        decision = parse_decision(payload)
        if decision.is_error:
            logger.warning("Webhook %s: %s", config.url, decision.reason)
        return decision

    @staticmethod
    def _failed(config: WebhookConfig, reason: str) -> VerifierDecision:
        logger.warning("Webhook %s: %s", config.url, reason)
        return VerifierDecision.error(reason)
