"""HookDecision and the before-tool-call hook adapter.

A tool-execution engine calls the hook right before running a tool. The
hook asks the Verifier and answers with allow or block; a blocked decision
carries the reason the engine should report back to the agent.
"""

from __future__ import annotations

from collections.abc import Awaitable
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Protocol

from callgate.envelope import ToolCall

if TYPE_CHECKING:
    from callgate.config import VerifierConfig
    from callgate.verifier import Verifier


class HookAction(Enum):
    """What a hook decides to do with a tool call."""

    ALLOW = "allow"
    BLOCK = "block"


@dataclass
class HookDecision:
    """The result of a hook evaluating a tool call."""

    action: HookAction
    reason: str = ""

    @classmethod
    def allow(cls) -> HookDecision:
        return cls(action=HookAction.ALLOW)

    @classmethod
    def block(cls, reason: str) -> HookDecision:
        return cls(action=HookAction.BLOCK, reason=reason)

    @property
    def blocked(self) -> bool:
        return self.action is HookAction.BLOCK


class BeforeToolCallHook(Protocol):
    """Protocol for hooks that run before tool execution."""

    def __call__(
        self,
        tool_name: str,
        params: dict[str, Any],
        *,
        agent_id: str | None = None,
        session_key: str | None = None,
    ) -> Awaitable[HookDecision]: ...


def verification_hook(verifier: Verifier, config: VerifierConfig) -> BeforeToolCallHook:
    """Build a before-tool-call hook that consults *verifier* under *config*.

    Usage:
        hook = verification_hook(Verifier(), config)
        decision = await hook("exec", {"command": "ls"}, agent_id="main")
        if decision.blocked:
            ...
    """

    async def before_tool_call(
        tool_name: str,
        params: dict[str, Any],
        *,
        agent_id: str | None = None,
        session_key: str | None = None,
    ) -> HookDecision:
        call = ToolCall(tool_name=tool_name, params=params, agent_id=agent_id, session_key=session_key)
        result = await verifier.verify(call, config)
        if result.blocked:
            return HookDecision.block(result.reason or "Blocked by verifier")
        return HookDecision.allow()

    return before_tool_call
