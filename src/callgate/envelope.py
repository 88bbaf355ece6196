"""ToolCall dataclass.

The ToolCall wraps a single tool invocation with the identifiers needed
to verify it. Its ``request_id`` is generated once at creation and is the
only key used to correlate an asynchronous approval back to the call.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class ToolCall:
    """A tool invocation awaiting verification."""

    tool_name: str
    params: dict[str, Any]
    agent_id: str | None = None
    session_key: str | None = None
    request_id: str = field(default_factory=lambda: uuid.uuid4().hex)

    @property
    def command(self) -> str | None:
        """Extract the shell command if the call carries one."""
        if not isinstance(self.params, dict):
            return None
        value = self.params.get("command")
        return value if isinstance(value, str) else None

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a dictionary for logging."""
        return {
            "request_id": self.request_id,
            "tool_name": self.tool_name,
            "params": self.params,
            "agent_id": self.agent_id,
            "session_key": self.session_key,
        }
