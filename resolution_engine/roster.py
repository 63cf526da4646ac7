"""Known agent roster used to validate model-proposed assignees."""

from __future__ import annotations

from collections.abc import Iterable

from resolution_engine.sessions import AgentProfile

DEFAULT_AGENTS: list[AgentProfile] = [
    AgentProfile("main", "Marcus Aurelius", "Main Orchestrator"),
    AgentProfile("hippocrates", "Hippocrates", "Fitness & Health"),
    AgentProfile("confucius", "Confucius", "Family & Relationships"),
    AgentProfile("seneca", "Seneca", "Personal Finance"),
    AgentProfile("archimedes", "Archimedes", "Tech Enthusiast"),
    AgentProfile("leonidas", "Leonidas", "CEO"),
    AgentProfile("odysseus", "Odysseus", "CFO"),
    AgentProfile("spartacus", "Spartacus", "HR"),
    AgentProfile("achilles", "Achilles", "CTO"),
    AgentProfile("alexander", "Alexander", "Marketing"),
    AgentProfile("heracles", "Heracles", "Senior Fullstack Dev"),
    AgentProfile("daedalus", "Daedalus", "Backend Engineer"),
    AgentProfile("icarus", "Icarus", "Frontend Engineer"),
    AgentProfile("ajax", "Ajax", "DevOps & Infrastructure"),
    AgentProfile("cleopatra", "Cleopatra", "Content Strategist"),
    AgentProfile("homer", "Homer", "Copywriter & Brand Voice"),
    AgentProfile("hermes", "Hermes", "Social & Distribution"),
    AgentProfile("athena", "Athena", "Security Architect"),
    AgentProfile("hephaestus", "Hephaestus", "Lead Developer"),
    AgentProfile("prometheus", "Prometheus", "Innovation Lead"),
]


class AgentRoster:
    """Read-only lookup of agent identities."""

    def __init__(self, agents: Iterable[AgentProfile] | None = None):
        self._agents = {a.id: a for a in (DEFAULT_AGENTS if agents is None else agents)}

    def is_known(self, agent_id: str | None) -> bool:
        return bool(agent_id) and agent_id in self._agents

    def get(self, agent_id: str) -> AgentProfile | None:
        return self._agents.get(agent_id)

    def profiles(self) -> dict[str, AgentProfile]:
        return dict(self._agents)

    def __iter__(self):  # type: ignore[no-untyped-def]
        return iter(self._agents.values())
