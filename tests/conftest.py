"""Shared fixtures: in-memory stand-ins for the Supabase gateways."""

from __future__ import annotations

import copy
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import pytest
from postgrest.exceptions import APIError as PostgrestAPIError

from resolution_engine.execution.dispatcher import ExecutionDispatcher
from resolution_engine.execution.executors import ActionExecutors
from resolution_engine.feedback import SharedContextFeedbackWriter
from resolution_engine.models import CrmEntityKind, ResolutionItem, ResolutionPackage
from resolution_engine.roster import AgentRoster
from resolution_engine.sessions import BoardroomSession, SessionMessage
from resolution_engine.store import PackageStore

FIXED_NOW = datetime(2026, 3, 10, 15, 30, tzinfo=UTC)


class FakeSessionGateway:
    def __init__(self) -> None:
        self.rows: dict[str, dict[str, Any]] = {}
        self.messages: dict[str, list[SessionMessage]] = {}
        self.created: list[dict[str, Any]] = []
        self.metadata_writes = 0

    def add(self, session: BoardroomSession) -> BoardroomSession:
        self.rows[session.id] = {
            "id": session.id,
            "title": session.title,
            "topic": session.topic,
            "session_type": session.session_type,
            "status": session.status,
            "participant_agent_ids": list(session.participant_agent_ids),
            "max_turns": session.max_turns,
            "metadata": copy.deepcopy(session.metadata),
        }
        return session

    def get_session(self, session_id: str) -> BoardroomSession | None:
        row = self.rows.get(session_id)
        return BoardroomSession.from_row(copy.deepcopy(row)) if row else None

    def list_messages(self, session_id: str) -> list[SessionMessage]:
        return list(self.messages.get(session_id, []))

    def update_metadata(self, session_id: str, metadata: dict[str, Any], updated_at: str) -> None:
        self.rows[session_id]["metadata"] = copy.deepcopy(metadata)
        self.rows[session_id]["updated_at"] = updated_at
        self.metadata_writes += 1

    def create_session(self, row: dict[str, Any]) -> str:
        session_id = f"session-{len(self.created) + 1}"
        self.created.append({"id": session_id, **row})
        self.rows[session_id] = {"id": session_id, **copy.deepcopy(row)}
        return session_id

    def stored_package(self, session_id: str) -> ResolutionPackage:
        return ResolutionPackage.model_validate(self.rows[session_id]["metadata"]["resolution_package"])


class FakeMissionGateway:
    def __init__(self, existing: set[str] | None = None) -> None:
        self.existing = set(existing or ())
        self.created: list[dict[str, Any]] = []

    def create_mission(self, row: dict[str, Any]) -> str:
        mission_id = f"mission-uuid-{len(self.created) + 1}"
        self.created.append({"id": mission_id, **row})
        self.existing.add(mission_id)
        return mission_id

    def mission_exists(self, mission_id: str) -> bool:
        return mission_id in self.existing


class FakeCrmGateway:
    def __init__(self) -> None:
        self.companies: list[dict[str, Any]] = []
        self.contacts: list[dict[str, Any]] = []
        self.pipelines: list[dict[str, Any]] = []
        self.created: list[tuple[CrmEntityKind, dict[str, Any]]] = []
        self.updates: list[tuple[CrmEntityKind, str, dict[str, Any]]] = []

    def list_companies(self) -> list[dict[str, Any]]:
        return list(self.companies)

    def list_contacts(self) -> list[dict[str, Any]]:
        return list(self.contacts)

    def list_pipelines(self) -> list[dict[str, Any]]:
        return copy.deepcopy(self.pipelines)

    def create_entity(self, kind: CrmEntityKind, row: dict[str, Any]) -> str:
        self.created.append((kind, row))
        return f"{kind.value}-uuid-{len(self.created)}"

    def update_entity(self, kind: CrmEntityKind, entity_id: str, patch: dict[str, Any]) -> None:
        self.updates.append((kind, entity_id, patch))


class FakeCalendarGateway:
    def __init__(self) -> None:
        self.created: list[dict[str, Any]] = []

    def create_event(self, row: dict[str, Any]) -> str:
        self.created.append(row)
        return f"event-uuid-{len(self.created)}"


class FakeQuoteGateway:
    def __init__(self, latest: str | None = None) -> None:
        self.latest = latest
        self.created: list[dict[str, Any]] = []
        self.line_items: list[dict[str, Any]] = []
        self.totals: dict[str, tuple[float, float]] = {}
        self.fail_line_items = False

    def latest_quote_number(self) -> str | None:
        return self.latest

    def create_quote(self, row: dict[str, Any]) -> str:
        quote_id = f"quote-uuid-{len(self.created) + 1}"
        self.created.append({"id": quote_id, **row})
        self.latest = row["quote_number"]
        return quote_id

    def add_line_items(self, rows: list[dict[str, Any]]) -> None:
        if self.fail_line_items:
            raise PostgrestAPIError({"message": "insert failed", "code": "500"})
        self.line_items.extend(rows)

    def update_totals(self, quote_id: str, subtotal: float, total: float) -> None:
        self.totals[quote_id] = (subtotal, total)


class FakeProjectGateway:
    def __init__(self) -> None:
        self.created: list[dict[str, Any]] = []
        self.links: dict[str, list[str]] = {}

    def create_project(self, row: dict[str, Any]) -> str:
        project_id = f"project-uuid-{len(self.created) + 1}"
        self.created.append({"id": project_id, **row})
        return project_id

    def link_missions(self, project_id: str, mission_ids: list[str]) -> None:
        self.links.setdefault(project_id, []).extend(mission_ids)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def sessions() -> FakeSessionGateway:
    return FakeSessionGateway()


@pytest.fixture
def missions() -> FakeMissionGateway:
    return FakeMissionGateway()


@pytest.fixture
def crm() -> FakeCrmGateway:
    return FakeCrmGateway()


@pytest.fixture
def calendar() -> FakeCalendarGateway:
    return FakeCalendarGateway()


@pytest.fixture
def quotes() -> FakeQuoteGateway:
    return FakeQuoteGateway()


@pytest.fixture
def projects() -> FakeProjectGateway:
    return FakeProjectGateway()


@pytest.fixture
def roster() -> AgentRoster:
    return AgentRoster()


@pytest.fixture
def feedback_dir(tmp_path: Path) -> Path:
    return tmp_path / "shared-context"


@pytest.fixture
def feedback(feedback_dir: Path) -> SharedContextFeedbackWriter:
    return SharedContextFeedbackWriter(feedback_dir, clock=lambda: FIXED_NOW)


@pytest.fixture
def store(sessions: FakeSessionGateway, feedback: SharedContextFeedbackWriter) -> PackageStore:
    return PackageStore(sessions, feedback, clock=lambda: FIXED_NOW)  # type: ignore[arg-type]


@pytest.fixture
def executors(
    roster: AgentRoster,
    missions: FakeMissionGateway,
    sessions: FakeSessionGateway,
    crm: FakeCrmGateway,
    calendar: FakeCalendarGateway,
    quotes: FakeQuoteGateway,
    projects: FakeProjectGateway,
) -> ActionExecutors:
    return ActionExecutors(
        roster=roster,
        missions=missions,  # type: ignore[arg-type]
        sessions=sessions,  # type: ignore[arg-type]
        crm=crm,  # type: ignore[arg-type]
        calendar=calendar,  # type: ignore[arg-type]
        quotes=quotes,  # type: ignore[arg-type]
        projects=projects,  # type: ignore[arg-type]
        clock=lambda: FIXED_NOW,
        default_agent_id="alexander",
        max_follow_up_depth=2,
    )


@pytest.fixture
def dispatcher(
    store: PackageStore, executors: ActionExecutors, feedback: SharedContextFeedbackWriter
) -> ExecutionDispatcher:
    return ExecutionDispatcher(store, executors, feedback)


@pytest.fixture
def board_session(sessions: FakeSessionGateway) -> BoardroomSession:
    return sessions.add(
        BoardroomSession(
            id="sess-1",
            title="Q3 Strategy Review",
            topic="Pricing and launch plan",
            session_type="strategy",
            participant_agent_ids=["leonidas", "odysseus", "alexander"],
            max_turns=12,
            metadata={"routing_mode": "round_robin"},
        )
    )


def make_item(item_id: str, item_type: str, data: dict[str, Any], status: str = "approved") -> ResolutionItem:
    return ResolutionItem(id=item_id, type=item_type, status=status, data=data)  # type: ignore[arg-type]


def seed_package(
    store: PackageStore, session_id: str, items: list[ResolutionItem], mode: str = "propose"
) -> ResolutionPackage:
    package = ResolutionPackage(session_id=session_id, mode=mode, items=items)  # type: ignore[arg-type]
    return store.save(session_id, package)
