"""Package Deriver: session transcript -> proposed ResolutionPackage."""

from __future__ import annotations

import logging
import time
from collections.abc import Mapping, Sequence

from resolution_engine.config import settings
from resolution_engine.derivation.parser import parse_resolution_package
from resolution_engine.derivation.prompt import build_resolution_prompt, session_resolution_mode
from resolution_engine.derivation.stream import StreamingModel, collect_stream
from resolution_engine.models import ResolutionMode, ResolutionPackage
from resolution_engine.sessions import (
    AgentProfile,
    BoardroomSession,
    SessionMessage,
    SessionSummary,
)
from resolution_engine.storage.gateways import CrmGateway

logger = logging.getLogger(__name__)


class PackageDeriver:
    """Builds the generation prompt, streams the model, and parses the result."""

    def __init__(
        self,
        model: StreamingModel,
        crm: CrmGateway,
        timeout_seconds: float | None = None,
    ):
        self.model = model
        self.crm = crm
        self.timeout_seconds = (
            settings.generation_timeout_seconds if timeout_seconds is None else timeout_seconds
        )

    def _entity_context(self) -> tuple[list[dict[str, str]], list[dict[str, str]]]:
        companies = self.crm.list_companies()
        names = {c["id"]: c.get("name", "") for c in companies}
        contacts = []
        for c in self.crm.list_contacts():
            entry = {
                "id": c["id"],
                "name": f"{c.get('first_name') or ''} {c.get('last_name') or ''}".strip(),
            }
            if c.get("company_id") in names:
                entry["company"] = names[c["company_id"]]
            contacts.append(entry)
        return [{"id": c["id"], "name": c.get("name", "")} for c in companies], contacts

    async def derive_package(
        self,
        session: BoardroomSession,
        transcript: Sequence[SessionMessage],
        summary: SessionSummary,
        agent_profiles: Mapping[str, AgentProfile],
    ) -> ResolutionPackage | None:
        """Derive a package for a closed session.

        Best-effort: returns None when the session's mode is ``none`` (no
        model call is made) and on any generation or parse failure, so session
        closure is never blocked.
        """
        try:
            mode = session_resolution_mode(session)
            if mode is ResolutionMode.NONE:
                return None

            companies, contacts = self._entity_context()
            prompt = build_resolution_prompt(
                session, transcript, summary, agent_profiles, companies, contacts
            )

            session_key = f"boardroom:{session.id}:resolution"
            idempotency_key = f"br-{session.id}-resolution-{int(time.time() * 1000)}"
            response = await collect_stream(
                self.model.stream(prompt, session_key, idempotency_key),
                timeout=self.timeout_seconds,
            )

            package = parse_resolution_package(response, session.id, mode)
            if package is not None:
                logger.info(
                    "Derived %d resolution item(s) for session %s", len(package.items), session.id
                )
            return package
        except Exception:
            logger.exception("Failed to generate resolution package for session %s", session.id)
            return None
