"""Supabase storage gateways for sessions and the business subsystems.

Each gateway wraps a ``supabase.Client`` and exposes only the narrow
create/update/lookup contract the engine needs from that subsystem.
"""

from __future__ import annotations

from typing import Any, cast

from postgrest.exceptions import APIError as PostgrestAPIError
from supabase import Client, create_client

from resolution_engine.config import settings
from resolution_engine.models import CrmEntityKind
from resolution_engine.sessions import BoardroomSession, SessionMessage


def get_supabase_client() -> Client:
    """Create and return a Supabase client from settings."""
    return create_client(settings.supabase_url, settings.supabase_key)


def _rows(result: Any) -> list[dict[str, Any]]:
    # Supabase .data is typed as JSON (broad union); cast to concrete type.
    return cast(list[dict[str, Any]], result.data or [])


def _inserted_id(result: Any, table: str) -> str:
    rows = _rows(result)
    if not rows:
        raise RuntimeError(f"Insert into {table} returned no row")
    return str(rows[0]["id"])


class SessionGateway:
    """Boardroom sessions, their metadata, and their transcripts."""

    def __init__(self, client: Client):
        self.client = client

    def get_session(self, session_id: str) -> BoardroomSession | None:
        result = self.client.table("boardroom_sessions").select("*").eq("id", session_id).execute()
        rows = _rows(result)
        return BoardroomSession.from_row(rows[0]) if rows else None

    def list_messages(self, session_id: str) -> list[SessionMessage]:
        result = (
            self.client.table("boardroom_messages")
            .select("*")
            .eq("session_id", session_id)
            .order("turn_number")
            .execute()
        )
        return [SessionMessage.from_row(r) for r in _rows(result)]

    def update_metadata(self, session_id: str, metadata: dict[str, Any], updated_at: str) -> None:
        """Replace the session's metadata document."""
        self.client.table("boardroom_sessions").update(
            {"metadata": metadata, "updated_at": updated_at}
        ).eq("id", session_id).execute()

    def create_session(self, row: dict[str, Any]) -> str:
        result = self.client.table("boardroom_sessions").insert(row).execute()
        return _inserted_id(result, "boardroom_sessions")


class MissionGateway:
    """Mission (task) creation and lookup."""

    def __init__(self, client: Client):
        self.client = client

    def create_mission(self, row: dict[str, Any]) -> str:
        result = self.client.table("missions").insert(row).execute()
        return _inserted_id(result, "missions")

    def mission_exists(self, mission_id: str) -> bool:
        try:
            result = (
                self.client.table("missions").select("id").eq("id", mission_id).limit(1).execute()
            )
        except PostgrestAPIError:
            # Malformed ids (e.g. not a uuid) are rejected by PostgREST.
            return False
        return bool(_rows(result))


_CRM_TABLES = {
    CrmEntityKind.COMPANY: "companies",
    CrmEntityKind.CONTACT: "contacts",
    CrmEntityKind.DEAL: "deals",
}


class CrmGateway:
    """CRM entities plus the read-only snapshots used for dedup and pipelines."""

    def __init__(self, client: Client):
        self.client = client

    def list_companies(self) -> list[dict[str, Any]]:
        return _rows(self.client.table("companies").select("id, name").execute())

    def list_contacts(self) -> list[dict[str, Any]]:
        return _rows(
            self.client.table("contacts")
            .select("id, first_name, last_name, company_id")
            .execute()
        )

    def list_pipelines(self) -> list[dict[str, Any]]:
        """Pipelines with their stages attached under ``stages``."""
        pipelines = _rows(self.client.table("deal_pipelines").select("*").execute())
        stages = _rows(self.client.table("deal_stages").select("*").execute())
        for pipeline in pipelines:
            pipeline["stages"] = [s for s in stages if s.get("pipeline_id") == pipeline["id"]]
        return pipelines

    def create_entity(self, kind: CrmEntityKind, row: dict[str, Any]) -> str:
        table = _CRM_TABLES[kind]
        return _inserted_id(self.client.table(table).insert(row).execute(), table)

    def update_entity(self, kind: CrmEntityKind, entity_id: str, patch: dict[str, Any]) -> None:
        self.client.table(_CRM_TABLES[kind]).update(patch).eq("id", entity_id).execute()


class CalendarGateway:
    def __init__(self, client: Client):
        self.client = client

    def create_event(self, row: dict[str, Any]) -> str:
        result = self.client.table("calendar_events").insert(row).execute()
        return _inserted_id(result, "calendar_events")


class QuoteGateway:
    """Quotes, their line items, and stored totals."""

    def __init__(self, client: Client):
        self.client = client

    def latest_quote_number(self) -> str | None:
        result = (
            self.client.table("quotes")
            .select("quote_number")
            .order("created_at", desc=True)
            .limit(1)
            .execute()
        )
        rows = _rows(result)
        return rows[0].get("quote_number") if rows else None

    def create_quote(self, row: dict[str, Any]) -> str:
        return _inserted_id(self.client.table("quotes").insert(row).execute(), "quotes")

    def add_line_items(self, rows: list[dict[str, Any]]) -> None:
        self.client.table("quote_line_items").insert(rows).execute()

    def update_totals(self, quote_id: str, subtotal: float, total: float) -> None:
        self.client.table("quotes").update(
            {"subtotal": subtotal, "tax_total": 0, "discount_total": 0, "total": total}
        ).eq("id", quote_id).execute()


class ProjectGateway:
    def __init__(self, client: Client):
        self.client = client

    def create_project(self, row: dict[str, Any]) -> str:
        return _inserted_id(self.client.table("projects").insert(row).execute(), "projects")

    def link_missions(self, project_id: str, mission_ids: list[str]) -> None:
        rows = [{"project_id": project_id, "mission_id": m} for m in mission_ids]
        self.client.table("project_missions").insert(rows).execute()
