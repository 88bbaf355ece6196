"""Verifier: the single entry point the tool-execution engine calls."""

from __future__ import annotations

import logging
from typing import Any

from callgate.backends.approval import HumanApprovalBackend
from callgate.backends.webhook import WebhookBackend
from callgate.config import HumanApprovalConfig, VerifierConfig, WebhookConfig
from callgate.decision import VerificationResult, VerifierDecision
from callgate.envelope import ToolCall
from callgate.policy import resolve
from callgate.redaction import redact
from callgate.scope import should_verify
from callgate.telemetry import start_verification_span

logger = logging.getLogger(__name__)


class Verifier:
    """Decides whether a tool call may run.

    Disabled configs and out-of-scope tools pass straight through without
    contacting any backend. Everything else is redacted, sent to the
    configured backend, and resolved through fail-mode. ``verify`` never
    raises for backend reasons.

    The human-approval backend keeps one dispatcher per channel token, so
    reuse a single Verifier for every call that shares a bot.
    """

    def __init__(
        self,
        *,
        webhook: WebhookBackend | None = None,
        human_approval: HumanApprovalBackend | None = None,
    ) -> None:
        self._webhook = webhook or WebhookBackend()
        self._human_approval = human_approval or HumanApprovalBackend()

    async def verify(self, call: ToolCall, config: VerifierConfig) -> VerificationResult:
        """Return whether *call* may run under *config*."""
        if not config.enabled:
            return VerificationResult.allowed()

        if not should_verify(call.tool_name, config.scope):
            logger.debug("Tool %s is out of verifier scope", call.tool_name)
            return VerificationResult.allowed()

        backend = config.backend
        attributes = {
            "callgate.tool_name": call.tool_name,
            "callgate.request_id": call.request_id,
            "callgate.agent_id": call.agent_id,
            "callgate.backend": _backend_name(backend),
        }
        with start_verification_span("callgate.verify", attributes) as span:
            params = redact(call.tool_name, call.params)
            decision = await self._decide(call, params, backend)
            result = resolve(decision, config.fail_mode)
            span.set_attribute("callgate.decision", decision.decision.value)
            span.set_attribute("callgate.blocked", result.blocked)

        if result.blocked:
            logger.info("Blocked %s (request %s): %s", call.tool_name, call.request_id, result.reason)
        return result

    async def _decide(
        self,
        call: ToolCall,
        params: Any,
        backend: WebhookConfig | HumanApprovalConfig | None,
    ) -> VerifierDecision:
        if backend is None:
            return VerifierDecision.error("No verifier backend configured")
        try:
            if isinstance(backend, WebhookConfig):
                return await self._webhook.decide(call, params, backend)
            return await self._human_approval.decide(call, params, backend)
        except Exception as exc:
            logger.exception("Verifier backend raised for %s (request %s)", call.tool_name, call.request_id)
            return VerifierDecision.error(f"Verifier backend failed: {exc}")

    async def close(self) -> None:
        """Stop approval consumers and release channel connections."""
        await self._human_approval.close()


def _backend_name(backend: WebhookConfig | HumanApprovalConfig | None) -> str:
    if isinstance(backend, WebhookConfig):
        return "webhook"
    if isinstance(backend, HumanApprovalConfig):
        return "human_approval"
    return "none"


_default_verifier: Verifier | None = None


def get_default_verifier() -> Verifier:
    """Return the process-wide Verifier used by ``run_verifier``."""
    global _default_verifier  # noqa: PLW0603
    if _default_verifier is None:
        _default_verifier = Verifier()
    return _default_verifier


async def run_verifier(
    config: VerifierConfig,
    tool_name: str,
    params: dict[str, Any],
    *,
    agent_id: str | None = None,
    session_key: str | None = None,
) -> VerificationResult:
    """Verify one tool call through the default Verifier."""
    call = ToolCall(tool_name=tool_name, params=params, agent_id=agent_id, session_key=session_key)
    return await get_default_verifier().verify(call, config)
