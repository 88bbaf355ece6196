"""VerifierDecision and VerificationResult.

A VerifierDecision is what a backend reports: allow, deny, or error when it
could not produce a verdict. A VerificationResult is the final answer handed
back to the tool-execution engine after fail-mode has been applied.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class DecisionKind(Enum):
    """What a decision backend concluded."""

    ALLOW = "allow"
    DENY = "deny"
    ERROR = "error"


@dataclass(frozen=True)
class VerifierDecision:
    """The raw outcome of consulting a decision backend."""

    decision: DecisionKind
    reason: str | None = None

    @classmethod
    def allow(cls) -> VerifierDecision:
        return cls(decision=DecisionKind.ALLOW)

    @classmethod
    def deny(cls, reason: str | None = None) -> VerifierDecision:
        return cls(decision=DecisionKind.DENY, reason=reason)

    @classmethod
    def error(cls, reason: str) -> VerifierDecision:
        """Create an error decision; fail-mode decides what it becomes."""
        return cls(decision=DecisionKind.ERROR, reason=reason)

    @property
    def is_error(self) -> bool:
        return self.decision is DecisionKind.ERROR


@dataclass(frozen=True)
class VerificationResult:
    """Final verdict for a tool call.

    A blocked result always carries a non-empty, human-readable reason.
    """

    blocked: bool
    reason: str | None = None

    def __post_init__(self) -> None:
        if self.blocked and not self.reason:
            raise ValueError("A blocked VerificationResult requires a reason")

    @classmethod
    def allowed(cls) -> VerificationResult:
        return cls(blocked=False)

    @classmethod
    def blocked_by(cls, reason: str) -> VerificationResult:
        return cls(blocked=True, reason=reason)

    def to_dict(self) -> dict[str, object]:
        return {"blocked": self.blocked, "reason": self.reason}
