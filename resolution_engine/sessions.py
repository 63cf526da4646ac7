"""Session-side records consumed by the engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class AgentProfile:
    """A known agent identity from the roster."""

    id: str
    name: str
    role: str = ""
    persona: str = ""


@dataclass
class SessionMessage:
    """One turn of the session transcript."""

    agent_id: str
    content: str
    turn_number: int = 0

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> SessionMessage:
        return cls(
            agent_id=str(row.get("agent_id") or "system"),
            content=str(row.get("content") or ""),
            turn_number=int(row.get("turn_number") or 0),
        )


@dataclass
class SessionSummary:
    """Structured summary produced by the transcript summarizer."""

    decisions: list[str] = field(default_factory=list)
    action_items: list[dict[str, str]] = field(default_factory=list)  # {"task", "owner"}
    unresolved: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> SessionSummary:
        data = data or {}
        return cls(
            decisions=list(data.get("decisions") or []),
            action_items=list(data.get("action_items") or []),
            unresolved=list(data.get("unresolved") or []),
        )


@dataclass
class BoardroomSession:
    """A multi-agent decision session."""

    id: str
    title: str
    topic: str = ""
    session_type: str = "custom"
    status: str = "open"
    participant_agent_ids: list[str] = field(default_factory=list)
    max_turns: int | None = None
    scheduled_at: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> BoardroomSession:
        return cls(
            id=str(row["id"]),
            title=row.get("title") or "Boardroom Session",
            topic=row.get("topic") or "",
            session_type=row.get("session_type") or "custom",
            status=row.get("status") or "open",
            participant_agent_ids=list(row.get("participant_agent_ids") or []),
            max_turns=row.get("max_turns"),
            scheduled_at=row.get("scheduled_at"),
            metadata=dict(row.get("metadata") or {}),
        )

    @property
    def follow_up_depth(self) -> int:
        return int(self.metadata.get("follow_up_depth") or 0)
