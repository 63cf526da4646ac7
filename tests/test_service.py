"""Tests for the ResolutionService facade."""

from __future__ import annotations

import asyncio
import json

import pytest
from conftest import FakeCrmGateway, FakeSessionGateway, make_item, seed_package

from resolution_engine.derivation.deriver import PackageDeriver
from resolution_engine.derivation.stream import StreamEvent, StreamState
from resolution_engine.exceptions import SessionNotFoundError
from resolution_engine.execution.dispatcher import ExecutionDispatcher
from resolution_engine.models import ItemStatus
from resolution_engine.roster import AgentRoster
from resolution_engine.service import ResolutionService
from resolution_engine.sessions import BoardroomSession, SessionMessage
from resolution_engine.store import PackageStore


class _Model:
    def __init__(self, text: str):
        self.text = text
        self.prompts: list[str] = []

    async def stream(self, prompt: str, session_key: str, idempotency_key: str):  # type: ignore[no-untyped-def]
        self.prompts.append(prompt)
        yield StreamEvent(StreamState.FINAL, self.text)


@pytest.fixture
def model() -> _Model:
    return _Model(json.dumps({"missions": [{"title": "Draft pricing", "agent_id": "odysseus"}]}))


@pytest.fixture
def service(
    model: _Model,
    store: PackageStore,
    dispatcher: ExecutionDispatcher,
    sessions: FakeSessionGateway,
    crm: FakeCrmGateway,
) -> ResolutionService:
    return ResolutionService(
        deriver=PackageDeriver(model, crm, timeout_seconds=5),  # type: ignore[arg-type]
        store=store,
        dispatcher=dispatcher,
        sessions=sessions,  # type: ignore[arg-type]
        roster=AgentRoster(),
    )


class TestGenerateForSession:
    def test_derives_and_persists(
        self,
        service: ResolutionService,
        model: _Model,
        sessions: FakeSessionGateway,
        board_session: BoardroomSession,
    ) -> None:
        sessions.rows[board_session.id]["metadata"]["session_summary"] = {"unresolved": ["Budget"]}
        sessions.messages[board_session.id] = [SessionMessage("leonidas", "Draft the pricing.", 1)]

        package = asyncio.run(service.generate_for_session(board_session.id))

        assert package is not None
        assert package.version == 1
        assert sessions.stored_package(board_session.id).id == package.id
        assert "Unresolved: Budget" in model.prompts[0]
        assert "[Turn 1] Leonidas: Draft the pricing." in model.prompts[0]

    def test_existing_package_returned_unchanged(
        self, service: ResolutionService, model: _Model, store: PackageStore, board_session: BoardroomSession
    ) -> None:
        existing = seed_package(store, board_session.id, [make_item("mission-0", "mission", {})])

        package = asyncio.run(service.generate_for_session(board_session.id))

        assert package is not None
        assert package.id == existing.id
        assert model.prompts == []

    def test_unknown_session(self, service: ResolutionService) -> None:
        with pytest.raises(SessionNotFoundError):
            asyncio.run(service.generate_for_session("nope"))

    def test_no_package_for_chat(
        self, service: ResolutionService, sessions: FakeSessionGateway
    ) -> None:
        sessions.add(BoardroomSession(id="chat-1", title="Banter", session_type="chat"))
        assert asyncio.run(service.generate_for_session("chat-1")) is None
        assert "resolution_package" not in sessions.rows["chat-1"]["metadata"]


class TestReviewAndExecute:
    def test_full_flow(
        self, service: ResolutionService, sessions: FakeSessionGateway, board_session: BoardroomSession
    ) -> None:
        asyncio.run(service.generate_for_session(board_session.id))

        service.approve_all_pending(board_session.id)
        report = service.execute_package(board_session.id)

        assert list(report.created) == ["mission-0"]
        package = service.get_package(board_session.id)
        assert package is not None
        assert package.items[0].status is ItemStatus.CREATED

    def test_item_decisions(self, service: ResolutionService, store: PackageStore, board_session: BoardroomSession) -> None:
        seed_package(
            store,
            board_session.id,
            [
                make_item("mission-0", "mission", {}, status="pending"),
                make_item("crm-0", "crm", {"name": "Acme"}, status="pending"),
            ],
        )
        assert service.approve_item(board_session.id, "mission-0").status is ItemStatus.APPROVED
        assert service.reject_item(board_session.id, "crm-0").status is ItemStatus.REJECTED
