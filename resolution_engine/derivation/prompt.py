"""Prompt construction for resolution package generation."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

from resolution_engine.models import ResolutionMode
from resolution_engine.sessions import (
    AgentProfile,
    BoardroomSession,
    SessionMessage,
    SessionSummary,
)

# Session types that never produce a package.
_NO_RESOLUTION_TYPES = {"chat", "watercooler"}


def default_resolution_mode(session_type: str) -> ResolutionMode:
    """Resolution mode used when the session does not set one.

    Every other session type proposes. No session type defaults to ``auto``.
    """
    if session_type in _NO_RESOLUTION_TYPES:
        return ResolutionMode.NONE
    return ResolutionMode.PROPOSE


def session_resolution_mode(session: BoardroomSession) -> ResolutionMode:
    configured = session.metadata.get("resolution_mode")
    if configured:
        return ResolutionMode(configured)
    return default_resolution_mode(session.session_type)


OUTPUT_CONTRACT = """\
```json
{
  "missions": [
    {
      "title": "Brief task title",
      "description": "Detailed description with context from the discussion",
      "agent_id": "agent-id-from-list",
      "priority": "low|medium|high|urgent",
      "dependencies": ["other mission titles if applicable"],
      "scheduled_at": "ISO timestamp if timing was discussed, else null",
      "source_excerpt": "Quote from conversation showing where this came from"
    }
  ],
  "projects": [
    {
      "name": "Project name if multiple related missions should be grouped",
      "description": "Project description",
      "mission_ids": ["indices into missions array, e.g. 0, 1, 2"],
      "source_excerpt": "Quote from conversation"
    }
  ],
  "documents": [
    {
      "title": "Document title",
      "description": "What should be in this document",
      "agent_id": "agent-id-who-should-write-it",
      "type": "brief|spec|proposal|report",
      "source_excerpt": "Quote from conversation"
    }
  ],
  "crm_actions": [
    {
      "type": "company|contact|deal",
      "action": "create|update",
      "name": "Entity name",
      "details": {"id": "existing id when updating", "relevant": "fields"},
      "source_excerpt": "Quote from conversation"
    }
  ],
  "follow_up_meetings": [
    {
      "title": "Follow-up session title",
      "topic": "What needs further discussion",
      "participant_agent_ids": ["agent-ids-who-should-attend"],
      "agenda": ["agenda item 1", "agenda item 2"],
      "scheduled_at": "ISO timestamp or null",
      "unresolved_items": ["items from the summary that this meeting addresses"],
      "source_excerpt": "Quote from conversation"
    }
  ],
  "events": [
    {
      "title": "Event title",
      "description": "Event description",
      "start_time": "ISO timestamp",
      "duration_minutes": 60,
      "attendees": ["agent-ids"],
      "source_excerpt": "Quote from conversation"
    }
  ],
  "quotes": [
    {
      "customer": "Customer name",
      "description": "What they need",
      "items": [{"description": "Line item", "amount": 1000, "quantity": 1}],
      "source_excerpt": "Quote from conversation"
    }
  ]
}
```"""

RULES = """\
IMPORTANT RULES:
1. Only extract actions that were explicitly discussed or clearly implied
2. Assign tasks to the most appropriate agent based on their role and expertise
3. Include a source_excerpt (1-2 sentences from the conversation showing where this action came from)
4. For follow-up meetings, include unresolved items as agenda points
5. Avoid creating duplicate CRM entries if they already exist; use "update" with the existing id instead
6. Use agent IDs from the participant list (e.g. "leonidas", not "Leonidas")"""


def _profile_line(agent_id: str, profile: AgentProfile | None) -> str:
    if profile is None:
        return f"- {agent_id}"
    persona = f" - {profile.persona}" if profile.persona else ""
    return f"- {agent_id}: {profile.name} ({profile.role}){persona}"


def build_resolution_prompt(
    session: BoardroomSession,
    messages: Sequence[SessionMessage],
    summary: SessionSummary,
    agent_profiles: Mapping[str, AgentProfile],
    companies: Sequence[Mapping[str, Any]] = (),
    contacts: Sequence[Mapping[str, Any]] = (),
) -> str:
    """Build the single generation prompt for a closed session.

    Args:
        session: The session being resolved.
        messages: Transcript in turn order.
        summary: Summarizer output for the session.
        agent_profiles: Known agents keyed by id.
        companies: Existing companies (``id``, ``name``) for dedup.
        contacts: Existing contacts (``id``, ``name``, optional ``company``).

    Returns:
        The prompt text.
    """
    participants = "\n".join(
        _profile_line(agent_id, agent_profiles.get(agent_id))
        for agent_id in session.participant_agent_ids
    )

    conversation = "\n\n".join(
        f"[Turn {m.turn_number}] "
        f"{agent_profiles[m.agent_id].name if m.agent_id in agent_profiles else m.agent_id}: "
        f"{m.content}"
        for m in messages
    )

    action_items = "; ".join(
        f"{a.get('task', '')} ({a['owner']})" if a.get("owner") else a.get("task", "")
        for a in summary.action_items
    )

    parts = [
        "You are extracting actionable items from a boardroom session to create a "
        "Resolution Package.",
        "",
        "Session Details:",
        f"- Title: {session.title}",
        f"- Type: {session.session_type}",
        f"- Topic: {session.topic or 'Not specified'}",
        "- Participants:",
        participants,
        "",
        "Session Summary:",
        f"Decisions: {'; '.join(summary.decisions) or 'None'}",
        f"Action Items: {action_items or 'None'}",
        f"Unresolved: {'; '.join(summary.unresolved) or 'None'}",
        "",
        "Full Conversation:",
        conversation,
    ]

    if companies:
        parts += ["", "Existing Companies (avoid duplicates):"]
        parts += [f"- {c['name']} ({c['id']})" for c in companies]
    if contacts:
        parts += ["", "Existing Contacts (avoid duplicates):"]
        parts += [
            f"- {c['name']}{' at ' + c['company'] if c.get('company') else ''} ({c['id']})"
            for c in contacts
        ]

    parts += [
        "",
        "Extract structured actionable items from this session. For each action "
        "mentioned or implied, create an appropriate item.",
        "",
        RULES,
        "",
        "Output ONLY valid JSON in this exact structure:",
        OUTPUT_CONTRACT,
        "",
        "If no items of a particular type were discussed, use an empty array []. "
        "Focus on concrete, actionable items.",
    ]
    return "\n".join(parts)
