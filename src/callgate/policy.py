"""Fail-policy resolution: turn a backend decision into a final verdict."""

from __future__ import annotations

import logging

from callgate.config import FailMode
from callgate.decision import DecisionKind, VerificationResult, VerifierDecision

logger = logging.getLogger(__name__)


def resolve(decision: VerifierDecision, fail_mode: FailMode = FailMode.DENY) -> VerificationResult:
    """Apply *fail_mode* to an error decision; pass allow/deny through.

    Fail-mode defaults to DENY so a broken backend never silently allows
    a dangerous call.
    """
    if decision.decision is DecisionKind.ALLOW:
        return VerificationResult.allowed()

    if decision.decision is DecisionKind.DENY:
        return VerificationResult.blocked_by(decision.reason or "denied")

    if fail_mode is FailMode.ALLOW:
        logger.warning("Verifier error, allowing per failMode=allow: %s", decision.reason)
        return VerificationResult.allowed()
    return VerificationResult.blocked_by(decision.reason or "Verifier unavailable")
