"""Tests for the webhook decision backend."""

from __future__ import annotations

import time

import pytest

from callgate.backends.webhook import WebhookBackend, build_request_body, parse_decision
from callgate.config import WebhookConfig
from callgate.decision import DecisionKind
from callgate.envelope import ToolCall

UNREACHABLE = "http://127.0.0.1:19999/unreachable"


def _call(**kwargs) -> ToolCall:
    kwargs.setdefault("tool_name", "exec")
    kwargs.setdefault("params", {"command": "echo hello"})
    return ToolCall(**kwargs)


class TestRequestBody:
    def test_minimal(self):
        call = _call()
        assert build_request_body(call, call.params) == {"tool": {"name": "exec", "params": {"command": "echo hello"}}}

    def test_with_identifiers(self):
        call = _call(agent_id="main", session_key="agent:main:main")
        body = build_request_body(call, {"command": "ls"})
        assert body["agentId"] == "main"
        assert body["sessionKey"] == "agent:main:main"
        assert body["tool"]["params"] == {"command": "ls"}


class TestParseDecision:
    def test_allow(self):
        assert parse_decision({"decision": "allow"}).decision is DecisionKind.ALLOW

    def test_deny_with_reason(self):
        decision = parse_decision({"decision": "deny", "reason": "dangerous"})
        assert decision.decision is DecisionKind.DENY
        assert decision.reason == "dangerous"

    @pytest.mark.parametrize(
        "payload",
        [None, [], "allow", {}, {"decision": "maybe"}, {"decision": "ALLOW"}, {"decision": "deny", "reason": 5}],
    )
    def test_malformed(self, payload):
        decision = parse_decision(payload)
        assert decision.is_error
        assert "malformed" in decision.reason


class TestWebhookBackend:
    async def test_allow(self, webhook_server):
        decision = await WebhookBackend().decide(_call(), {"command": "echo hello"}, WebhookConfig(url=webhook_server.url))
        assert decision.decision is DecisionKind.ALLOW

    async def test_deny(self, webhook_server):
        webhook_server.response = {"decision": "deny", "reason": "dangerous"}
        decision = await WebhookBackend().decide(_call(), {"command": "rm -rf /"}, WebhookConfig(url=webhook_server.url))
        assert decision.decision is DecisionKind.DENY
        assert decision.reason == "dangerous"

    async def test_posts_json_body_and_headers(self, webhook_server):
        call = _call(agent_id="main")
        config = WebhookConfig(url=webhook_server.url, headers={"Authorization": "Bearer t0k"})
        await WebhookBackend().decide(call, {"command": "echo hello"}, config)

        assert webhook_server.requests == [
            {"tool": {"name": "exec", "params": {"command": "echo hello"}}, "agentId": "main"}
        ]
        headers = webhook_server.headers[0]
        assert headers["Content-Type"].startswith("application/json")
        assert headers["Authorization"] == "Bearer t0k"

    async def test_single_attempt(self, webhook_server):
        webhook_server.status = 503
        await WebhookBackend().decide(_call(), {}, WebhookConfig(url=webhook_server.url))
        assert len(webhook_server.requests) == 1

    async def test_non_2xx_is_error(self, webhook_server):
        webhook_server.status = 500
        decision = await WebhookBackend().decide(_call(), {}, WebhookConfig(url=webhook_server.url))
        assert decision.is_error
        assert "HTTP 500" in decision.reason

    async def test_non_json_is_error(self, webhook_server):
        webhook_server.raw_body = "<html>oops</html>"
        decision = await WebhookBackend().decide(_call(), {}, WebhookConfig(url=webhook_server.url))
        assert decision.is_error
        assert "non-JSON" in decision.reason

    async def test_unknown_decision_is_error(self, webhook_server):
        webhook_server.response = {"decision": "perhaps"}
        decision = await WebhookBackend().decide(_call(), {}, WebhookConfig(url=webhook_server.url))
        assert decision.is_error

    async def test_unreachable_is_error(self):
        decision = await WebhookBackend().decide(_call(), {}, WebhookConfig(url=UNREACHABLE, timeout=1))
        assert decision.is_error
        assert "Webhook request failed" in decision.reason

    async def test_timeout_is_error(self, webhook_server):
        webhook_server.delay = 2.0
        start = time.monotonic()
        decision = await WebhookBackend().decide(_call(), {}, WebhookConfig(url=webhook_server.url, timeout=0.5))
        assert time.monotonic() - start < 1.5
        assert decision.is_error
        assert "timed out" in decision.reason

    async def test_failure_is_logged(self, caplog):
        await WebhookBackend().decide(_call(), {}, WebhookConfig(url=UNREACHABLE, timeout=1))
        assert UNREACHABLE in caplog.text
