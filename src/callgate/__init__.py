"""callgate: pre-execution verification gate for agent tool calls."""

from __future__ import annotations


class CallGateError(Exception):
    """Base class for callgate errors."""


class CallGateConfigError(CallGateError):
    """Raised when verifier configuration is invalid."""


class ChannelError(CallGateError):
    """Raised when an approval channel rejects or fails a request."""


from callgate.config import (  # noqa: E402
    FailMode,
    HumanApprovalConfig,
    ScopeRule,
    VerifierConfig,
    WebhookConfig,
)
from callgate.decision import DecisionKind, VerificationResult, VerifierDecision  # noqa: E402
from callgate.envelope import ToolCall  # noqa: E402
from callgate.hooks import HookDecision, verification_hook  # noqa: E402
from callgate.loader import load_config  # noqa: E402
from callgate.policy import resolve  # noqa: E402
from callgate.redaction import redact  # noqa: E402
from callgate.scope import should_verify  # noqa: E402
from callgate.verifier import Verifier, run_verifier  # noqa: E402

__all__ = [
    "CallGateConfigError",
    "CallGateError",
    "ChannelError",
    "DecisionKind",
    "FailMode",
    "HookDecision",
    "HumanApprovalConfig",
    "ScopeRule",
    "ToolCall",
    "VerificationResult",
    "Verifier",
    "VerifierConfig",
    "VerifierDecision",
    "WebhookConfig",
    "load_config",
    "redact",
    "resolve",
    "run_verifier",
    "should_verify",
    "verification_hook",
]
