"""Tests for response parsing and prompt construction."""

from __future__ import annotations

import json

import pytest

from resolution_engine.derivation.parser import (
    build_package,
    extract_json_payload,
    parse_resolution_package,
)
from resolution_engine.derivation.prompt import (
    build_resolution_prompt,
    default_resolution_mode,
    session_resolution_mode,
)
from resolution_engine.exceptions import PackageParseError
from resolution_engine.models import ItemStatus, ItemType, ResolutionMode
from resolution_engine.roster import AgentRoster
from resolution_engine.sessions import BoardroomSession, SessionMessage, SessionSummary

RESPONSE = {
    "missions": [
        {"title": "Draft pricing", "agent_id": "odysseus", "priority": "high"},
        {"title": "Set up staging", "agent_id": "ajax"},
    ],
    "projects": [{"name": "Launch", "mission_ids": [0, "1", "existing-uuid"]}],
    "documents": [{"title": "Launch brief", "type": "brief", "agent_id": "homer"}],
    "crm_actions": [{"type": "company", "action": "create", "name": "Acme"}],
    "follow_up_meetings": [{"title": "Pricing follow-up", "participant_agent_ids": ["odysseus"]}],
    "events": [],
    "quotes": [{"customer": "Acme", "items": [{"description": "Setup", "amount": 500}]}],
}


class TestExtractJsonPayload:
    def test_fenced_block(self) -> None:
        text = 'Here you go:\n```json\n{"missions": []}\n```\nThanks'
        assert extract_json_payload(text) == {"missions": []}

    def test_bare_object_with_prose(self) -> None:
        text = 'Sure. {"missions": [{"title": "A"}]} Let me know.'
        assert extract_json_payload(text)["missions"][0]["title"] == "A"

    def test_no_json(self) -> None:
        with pytest.raises(PackageParseError):
            extract_json_payload("I could not find any actions.")

    def test_invalid_json(self) -> None:
        with pytest.raises(PackageParseError):
            extract_json_payload('```json\n{"missions": [\n```')


class TestBuildPackage:
    def test_items_in_section_order_all_pending(self) -> None:
        package = build_package(RESPONSE, "sess-1", ResolutionMode.PROPOSE)

        assert [i.id for i in package.items] == [
            "mission-0",
            "mission-1",
            "project-0",
            "document-0",
            "crm-0",
            "follow-up-0",
            "quote-0",
        ]
        assert all(i.status is ItemStatus.PENDING for i in package.items)
        assert package.session_id == "sess-1"

    def test_auto_mode_items_still_pending(self) -> None:
        package = build_package(RESPONSE, "sess-1", ResolutionMode.AUTO)
        assert package.mode is ResolutionMode.AUTO
        assert all(i.status is ItemStatus.PENDING for i in package.items)

    def test_project_indices_become_item_ids(self) -> None:
        package = build_package(RESPONSE, "sess-1", ResolutionMode.PROPOSE)
        project = package.get_item("project-0")
        assert project is not None
        assert project.type is ItemType.PROJECT
        assert project.data.mission_ids == ["mission-0", "mission-1", "existing-uuid"]

    def test_out_of_range_index_passes_through(self) -> None:
        parsed = {"missions": [{"title": "A"}], "projects": [{"name": "P", "mission_ids": [4]}]}
        package = build_package(parsed, "s", ResolutionMode.PROPOSE)
        assert package.items[1].data.mission_ids == ["4"]

    def test_section_must_be_list(self) -> None:
        with pytest.raises(PackageParseError):
            build_package({"missions": {"title": "A"}}, "s", ResolutionMode.PROPOSE)

    def test_malformed_entry(self) -> None:
        with pytest.raises(PackageParseError):
            build_package({"follow_up_meetings": [{"agenda": "not a list"}]}, "s", ResolutionMode.PROPOSE)

    def test_empty_response_yields_empty_package(self) -> None:
        package = build_package({}, "s", ResolutionMode.PROPOSE)
        assert package.items == []


class TestParseResolutionPackage:
    def test_valid_response(self) -> None:
        text = f"```json\n{json.dumps(RESPONSE)}\n```"
        package = parse_resolution_package(text, "sess-1", ResolutionMode.PROPOSE)
        assert package is not None
        assert len(package.items) == 7

    def test_unparsable_returns_none(self) -> None:
        assert parse_resolution_package("no json here", "s", ResolutionMode.PROPOSE) is None

    def test_malformed_entry_returns_none(self) -> None:
        text = json.dumps({"missions": ["just a string"]})
        assert parse_resolution_package(text, "s", ResolutionMode.PROPOSE) is None


class TestResolutionMode:
    def test_chat_and_watercooler_default_to_none(self) -> None:
        assert default_resolution_mode("chat") is ResolutionMode.NONE
        assert default_resolution_mode("watercooler") is ResolutionMode.NONE

    def test_other_types_default_to_propose(self) -> None:
        for session_type in ("strategy", "standup", "custom"):
            assert default_resolution_mode(session_type) is ResolutionMode.PROPOSE

    def test_explicit_metadata_wins(self) -> None:
        session = BoardroomSession(
            id="s", title="T", session_type="chat", metadata={"resolution_mode": "auto"}
        )
        assert session_resolution_mode(session) is ResolutionMode.AUTO


class TestBuildResolutionPrompt:
    def _prompt(self, **kwargs) -> str:  # type: ignore[no-untyped-def]
        session = BoardroomSession(
            id="sess-1",
            title="Q3 Strategy Review",
            topic="Pricing",
            session_type="strategy",
            participant_agent_ids=["leonidas", "mystery"],
        )
        messages = [
            SessionMessage("leonidas", "We launch in May.", turn_number=1),
            SessionMessage("mystery", "Agreed.", turn_number=2),
        ]
        summary = SessionSummary(
            decisions=["Launch in May"],
            action_items=[{"task": "Draft pricing", "owner": "odysseus"}],
            unresolved=["Budget"],
        )
        return build_resolution_prompt(session, messages, summary, AgentRoster().profiles(), **kwargs)

    def test_contains_session_and_transcript(self) -> None:
        prompt = self._prompt()
        assert "- Title: Q3 Strategy Review" in prompt
        assert "- leonidas: Leonidas (CEO)" in prompt
        assert "- mystery" in prompt
        assert "[Turn 1] Leonidas: We launch in May." in prompt
        assert "[Turn 2] mystery: Agreed." in prompt
        assert "Action Items: Draft pricing (odysseus)" in prompt
        assert "Unresolved: Budget" in prompt
        assert '"follow_up_meetings"' in prompt

    def test_entity_context_only_when_present(self) -> None:
        assert "Existing Companies" not in self._prompt()
        prompt = self._prompt(
            companies=[{"id": "c1", "name": "Acme"}],
            contacts=[{"id": "p1", "name": "Jane Doe", "company": "Acme"}],
        )
        assert "- Acme (c1)" in prompt
        assert "- Jane Doe at Acme (p1)" in prompt
