"""Verifier configuration: scope, fail-mode, and backend settings.

Configuration arrives as a mapping with camelCase keys (``failMode``,
``humanApproval.chatId`` ...). ``VerifierConfig.from_dict`` validates it
against the bundled JSON Schema and builds immutable config objects.
"""

from __future__ import annotations

import importlib.resources as _resources
import json
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import jsonschema

logger = logging.getLogger(__name__)

DEFAULT_WEBHOOK_TIMEOUT = 10.0
DEFAULT_APPROVAL_TIMEOUT = 120.0

_schema_cache: dict | None = None


def _get_schema() -> dict:
    """Load and cache the JSON Schema for validation."""
    global _schema_cache  # noqa: PLW0603
    if _schema_cache is None:
        schema_text = (
            _resources.files("callgate.schemas").joinpath("verifier-v1.schema.json").read_text(encoding="utf-8")
        )
        _schema_cache = json.loads(schema_text)
    return _schema_cache


class FailMode(Enum):
    """Verdict applied when a backend cannot produce one."""

    ALLOW = "allow"
    DENY = "deny"


@dataclass(frozen=True)
class ScopeRule:
    """Restricts verification to the named tools. ``None`` means all tools."""

    include: frozenset[str] | None = None

    @classmethod
    def of(cls, names: Iterable[str] | None) -> ScopeRule:
        return cls(include=frozenset(names) if names is not None else None)


@dataclass(frozen=True)
class WebhookConfig:
    url: str
    timeout: float = DEFAULT_WEBHOOK_TIMEOUT
    headers: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class HumanApprovalConfig:
    """Telegram approval settings. An empty ``allowed_sender_ids`` lets anyone answer."""

    chat_id: str
    channel_token: str
    allowed_sender_ids: frozenset[int] = frozenset()
    timeout: float = DEFAULT_APPROVAL_TIMEOUT


@dataclass(frozen=True)
class VerifierConfig:
    """Top-level verifier configuration.

    At most one backend is expected. When both are given the webhook wins
    and a warning is logged.
    """

    enabled: bool = False
    scope: ScopeRule | None = None
    fail_mode: FailMode = FailMode.DENY
    webhook: WebhookConfig | None = None
    human_approval: HumanApprovalConfig | None = None

    def __post_init__(self) -> None:
        if self.webhook is not None and self.human_approval is not None:
            logger.warning(
                "Both webhook and humanApproval verifiers are configured; using webhook %s",
                self.webhook.url,
            )

    @property
    def backend(self) -> WebhookConfig | HumanApprovalConfig | None:
        """The backend config this verifier dispatches to, or None."""
        if self.webhook is not None:
            return self.webhook
        return self.human_approval

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> VerifierConfig:
        """Build a config from a camelCase mapping.

        Raises:
            CallGateConfigError: If the mapping fails schema validation.
        """
        from callgate import CallGateConfigError

        if not isinstance(data, Mapping):
            raise CallGateConfigError("Verifier config must be a mapping")
        try:
            jsonschema.validate(instance=dict(data), schema=_get_schema())
        except jsonschema.ValidationError as e:
            location = ".".join(str(p) for p in e.absolute_path) or "<root>"
            raise CallGateConfigError(f"Invalid verifier config at {location}: {e.message}") from e

        scope = None
        if "scope" in data:
            scope = ScopeRule.of(data["scope"].get("include"))

        webhook = None
        if "webhook" in data:
            raw = data["webhook"]
            webhook = WebhookConfig(
                url=raw["url"],
                timeout=float(raw.get("timeout", DEFAULT_WEBHOOK_TIMEOUT)),
                headers=dict(raw.get("headers", {})),
            )

        human_approval = None
        if "humanApproval" in data:
            raw = data["humanApproval"]
            human_approval = HumanApprovalConfig(
                chat_id=str(raw["chatId"]),
                channel_token=raw["channelToken"],
                allowed_sender_ids=frozenset(raw.get("allowedSenderIds", [])),
                timeout=float(raw.get("timeout", DEFAULT_APPROVAL_TIMEOUT)),
            )

        return cls(
            enabled=data.get("enabled", False),
            scope=scope,
            fail_mode=FailMode(data.get("failMode", FailMode.DENY.value)),
            webhook=webhook,
            human_approval=human_approval,
        )
