"""Service facade exposing the engine's external operations."""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence

from resolution_engine.config import settings
from resolution_engine.derivation.deriver import PackageDeriver
from resolution_engine.derivation.stream import AnthropicStreamModel
from resolution_engine.exceptions import SessionNotFoundError
from resolution_engine.execution.dispatcher import ExecutionDispatcher, ExecutionReport
from resolution_engine.execution.executors import ActionExecutors
from resolution_engine.feedback import SharedContextFeedbackWriter
from resolution_engine.models import ResolutionItem, ResolutionPackage
from resolution_engine.roster import AgentRoster
from resolution_engine.sessions import (
    AgentProfile,
    BoardroomSession,
    SessionMessage,
    SessionSummary,
)
from resolution_engine.storage.gateways import (
    CalendarGateway,
    CrmGateway,
    MissionGateway,
    ProjectGateway,
    QuoteGateway,
    SessionGateway,
    get_supabase_client,
)
from resolution_engine.store import PackageStore

logger = logging.getLogger(__name__)


class ResolutionService:
    """Derive, review, and execute resolution packages."""

    def __init__(
        self,
        deriver: PackageDeriver,
        store: PackageStore,
        dispatcher: ExecutionDispatcher,
        sessions: SessionGateway,
        roster: AgentRoster,
    ):
        self.deriver = deriver
        self.store = store
        self.dispatcher = dispatcher
        self.sessions = sessions
        self.roster = roster

    async def derive_package(
        self,
        session: BoardroomSession,
        transcript: Sequence[SessionMessage],
        summary: SessionSummary,
        agent_profiles: Mapping[str, AgentProfile],
    ) -> ResolutionPackage | None:
        return await self.deriver.derive_package(session, transcript, summary, agent_profiles)

    def persist_package(self, session_id: str, package: ResolutionPackage) -> ResolutionPackage:
        return self.store.save(session_id, package)

    def get_package(self, session_id: str) -> ResolutionPackage | None:
        return self.store.get(session_id)

    def approve_item(self, session_id: str, item_id: str) -> ResolutionItem:
        return self.store.approve(session_id, item_id)

    def reject_item(self, session_id: str, item_id: str) -> ResolutionItem:
        return self.store.reject(session_id, item_id)

    def approve_all_pending(self, session_id: str, approved_by: str = "user") -> ResolutionPackage:
        return self.store.approve_all(session_id, approved_by=approved_by)

    def execute_package(self, session_id: str) -> ExecutionReport:
        return self.dispatcher.execute_package(session_id)

    async def generate_for_session(self, session_id: str) -> ResolutionPackage | None:
        """Derive and persist a package for a stored session.

        At most one package exists per session: an existing package is
        returned unchanged instead of generating a second one.
        """
        existing = self.store.get(session_id)
        if existing is not None:
            return existing

        session = self.sessions.get_session(session_id)
        if session is None:
            raise SessionNotFoundError(f"Session {session_id} not found")

        transcript = self.sessions.list_messages(session_id)
        summary = SessionSummary.from_dict(session.metadata.get("session_summary"))
        package = await self.derive_package(session, transcript, summary, self.roster.profiles())
        if package is None:
            logger.info("No resolution package produced for session %s", session_id)
            return None
        return self.persist_package(session_id, package)


def build_service() -> ResolutionService:
    """Wire a service against Supabase and Claude using application settings."""
    client = get_supabase_client()
    sessions = SessionGateway(client)
    crm = CrmGateway(client)
    roster = AgentRoster()
    feedback = SharedContextFeedbackWriter(settings.shared_context_dir)
    store = PackageStore(sessions, feedback)
    executors = ActionExecutors(
        roster=roster,
        missions=MissionGateway(client),
        sessions=sessions,
        crm=crm,
        calendar=CalendarGateway(client),
        quotes=QuoteGateway(client),
        projects=ProjectGateway(client),
    )
    return ResolutionService(
        deriver=PackageDeriver(AnthropicStreamModel(), crm),
        store=store,
        dispatcher=ExecutionDispatcher(store, executors, feedback),
        sessions=sessions,
        roster=roster,
    )
