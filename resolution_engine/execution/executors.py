"""Per-type action executors.

Each executor validates one approved item's payload, writes exactly one new
(or patched) entity to its subsystem, and returns that entity's id. Raising is
the only failure signal; the dispatcher turns exceptions into ``item.error``.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

from postgrest.exceptions import APIError as PostgrestAPIError

from resolution_engine.config import settings
from resolution_engine.exceptions import FollowUpDepthExceeded, ValidationFailure
from resolution_engine.models import (
    CrmAction,
    CrmActionData,
    CrmEntityKind,
    DocumentData,
    EventData,
    FollowUpData,
    ItemStatus,
    ItemType,
    MissionData,
    ProjectData,
    QuoteData,
    ResolutionMode,
    ResolutionPackage,
)
from resolution_engine.roster import AgentRoster
from resolution_engine.sessions import BoardroomSession
from resolution_engine.storage.gateways import (
    CalendarGateway,
    CrmGateway,
    MissionGateway,
    ProjectGateway,
    QuoteGateway,
    SessionGateway,
)

logger = logging.getLogger(__name__)

SOURCE_TYPE = "boardroom"


@dataclass
class ExecutionContext:
    """What an executor may read besides its own payload."""

    session: BoardroomSession
    package: ResolutionPackage

    @property
    def session_id(self) -> str:
        return self.session.id

    def provenance(self, excerpt: str) -> dict[str, Any]:
        return {
            "source_session_id": self.session.id,
            "source_type": SOURCE_TYPE,
            "source_excerpt": excerpt,
        }


Executor = Callable[[ExecutionContext, Any], str]


def parse_timestamp(value: str | None) -> datetime | None:
    """Parse an ISO-8601 timestamp; naive values are taken as UTC."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def split_contact_name(name: str) -> tuple[str, str]:
    """First token is the first name; the rest (possibly empty) the last name."""
    parts = name.split()
    if not parts:
        return name.strip(), ""
    return parts[0], " ".join(parts[1:])


def next_quote_number(last: str | None, prefix: str = "Q-", width: int = 5) -> str:
    """Increment the numeric suffix of the most recent quote number.

    This is read-last-then-increment, not a transactional sequence: two
    processes creating quotes at the same time can produce the same number.
    """
    number = 1
    if last:
        match = re.search(rf"{re.escape(prefix)}(\d+)", last)
        if match:
            number = int(match.group(1)) + 1
    return f"{prefix}{number:0{width}d}"


def match_by_name(
    name: str, candidates: Sequence[Mapping[str, Any]], label: Callable[[Mapping[str, Any]], str]
) -> Mapping[str, Any] | None:
    """Find a candidate by exact name, then by containment in either direction."""
    wanted = name.strip().lower()
    labelled = [(label(c).strip().lower(), c) for c in candidates]
    labelled = [(n, c) for n, c in labelled if n]

    for candidate_name, candidate in labelled:
        if candidate_name == wanted:
            return candidate
    for candidate_name, candidate in labelled:
        if wanted in candidate_name or candidate_name in wanted:
            return candidate
    return None


_CRM_PATCHABLE: dict[CrmEntityKind, tuple[str, ...]] = {
    CrmEntityKind.COMPANY: ("industry", "website", "domain", "phone", "notes"),
    CrmEntityKind.CONTACT: ("email", "phone", "job_title", "company_id", "notes"),
    CrmEntityKind.DEAL: ("amount", "stage_id", "description"),
}


class ActionExecutors:
    """One executor per item type, sharing injected subsystem gateways."""

    def __init__(
        self,
        roster: AgentRoster,
        missions: MissionGateway,
        sessions: SessionGateway,
        crm: CrmGateway,
        calendar: CalendarGateway,
        quotes: QuoteGateway,
        projects: ProjectGateway,
        clock: Callable[[], datetime] | None = None,
        default_agent_id: str | None = None,
        max_follow_up_depth: int | None = None,
    ):
        self.roster = roster
        self.missions = missions
        self.sessions = sessions
        self.crm = crm
        self.calendar = calendar
        self.quotes = quotes
        self.projects = projects
        self._clock = clock or (lambda: datetime.now(UTC))
        self.default_agent_id = default_agent_id or settings.default_agent_id
        self.max_follow_up_depth = (
            settings.max_follow_up_depth if max_follow_up_depth is None else max_follow_up_depth
        )

    def table(self) -> dict[ItemType, Executor]:
        """Dispatch table keyed by item type."""
        return {
            ItemType.MISSION: self.create_mission,
            ItemType.FOLLOW_UP: self.create_follow_up,
            ItemType.DOCUMENT: self.create_document,
            ItemType.CRM: self.apply_crm_action,
            ItemType.EVENT: self.create_event,
            ItemType.QUOTE: self.create_quote,
            ItemType.PROJECT: self.create_project,
        }

    # ------------------------------------------------------------------
    # Shared validation
    # ------------------------------------------------------------------

    def _assignee(self, agent_id: str, title: str) -> str:
        if self.roster.is_known(agent_id):
            return agent_id
        logger.warning(
            "Invalid agent_id %r for %r, falling back to %r",
            agent_id,
            title,
            self.default_agent_id,
        )
        return self.default_agent_id

    def _schedule(self, value: str | None, now: datetime) -> datetime:
        """Never honour past or unparsable times; both become now."""
        if not value:
            return now
        parsed = parse_timestamp(value)
        if parsed is None:
            logger.warning("Invalid scheduled_at %r, using now", value)
            return now
        if parsed < now:
            logger.warning("Past scheduled_at %r, using now", value)
            return now
        return parsed

    # ------------------------------------------------------------------
    # Missions and documents
    # ------------------------------------------------------------------

    def create_mission(self, ctx: ExecutionContext, data: MissionData) -> str:
        now = self._clock()
        scheduled_at = self._schedule(data.scheduled_at, now)
        row = {
            "title": data.title,
            "description": data.description,
            "status": "scheduled",
            "mission_status": "scheduled",
            "mission_phase": "tasks",
            # Review phase: a human can still intervene before dispatch.
            "mission_phase_status": "pending",
            "priority": data.priority.rank,
            "agent_id": self._assignee(data.agent_id, data.title),
            "scheduled_at": scheduled_at.isoformat(),
            "created_by": SOURCE_TYPE,
            "metadata": {
                "source_session_id": ctx.session_id,
                "source_type": SOURCE_TYPE,
                "relevant_excerpt": data.source_excerpt,
                "dependencies": data.dependencies,
            },
        }
        return self.missions.create_mission(row)

    def create_document(self, ctx: ExecutionContext, data: DocumentData) -> str:
        description = (
            f"Create a {data.document_type.value}: {data.title}\n\n"
            f"{data.description}\n\n"
            f"Context from boardroom session:\n"
            f'"{data.source_excerpt}"'
        )
        row = {
            "title": f"Write: {data.title}",
            "description": description,
            "status": "scheduled",
            "mission_status": "scheduled",
            "mission_phase": "tasks",
            # Writing tasks are not decisions; they go straight to approved.
            "mission_phase_status": "approved",
            "priority": 1,
            "agent_id": self._assignee(data.agent_id, data.title),
            "scheduled_at": self._clock().isoformat(),
            "created_by": SOURCE_TYPE,
            "metadata": {
                "source_session_id": ctx.session_id,
                "source_type": SOURCE_TYPE,
                "document_type": data.document_type.value,
                "relevant_excerpt": data.source_excerpt,
            },
        }
        return self.missions.create_mission(row)

    # ------------------------------------------------------------------
    # Follow-up sessions
    # ------------------------------------------------------------------

    def create_follow_up(self, ctx: ExecutionContext, data: FollowUpData) -> str:
        source = ctx.session
        depth = source.follow_up_depth + 1
        if depth > self.max_follow_up_depth:
            logger.warning(
                "Follow-up depth %d exceeds max %d for session %s",
                depth,
                self.max_follow_up_depth,
                source.id,
            )
            raise FollowUpDepthExceeded(depth, self.max_follow_up_depth)

        participants = []
        for agent_id in data.participant_agent_ids:
            if self.roster.is_known(agent_id):
                participants.append(agent_id)
            else:
                logger.warning("Unknown agent_id %r in follow-up participants, removing", agent_id)
        if len(participants) < 2:
            logger.warning("Too few valid follow-up participants, using source session participants")
            participants = list(source.participant_agent_ids)

        unresolved = "\n".join(f"- {u}" for u in data.unresolved_items)
        metadata = {
            "routing_mode": source.metadata.get("routing_mode") or "smart",
            "auto_start": False,
            "notify_whatsapp": False,
            "agenda": data.agenda,
            # Follow-ups always need per-item approval, whatever the parent used.
            "resolution_mode": ResolutionMode.PROPOSE.value,
            "context": (
                f"Follow-up from: {source.title}\n\n"
                f"Unresolved items to address:\n{unresolved}\n\n"
                f'Previous session context:\n"{data.source_excerpt}"'
            ),
            "entity_references": source.metadata.get("entity_references"),
            "follow_up_depth": depth,
            "source_session_id": source.id,
        }
        scheduled = parse_timestamp(data.scheduled_at)
        row = {
            "title": data.title,
            "topic": data.topic,
            "session_type": source.session_type,
            # Open, never scheduled: someone has to start it by hand.
            "status": "open",
            "participant_agent_ids": participants,
            "max_turns": source.max_turns,
            "scheduled_at": scheduled.isoformat() if scheduled else None,
            "created_by": SOURCE_TYPE,
            "metadata": metadata,
        }
        return self.sessions.create_session(row)

    # ------------------------------------------------------------------
    # CRM
    # ------------------------------------------------------------------

    def apply_crm_action(self, ctx: ExecutionContext, data: CrmActionData) -> str:
        name = data.name.strip()
        if not name:
            raise ValidationFailure(
                f"CRM {data.kind.value} name is empty: cannot create an entity without a name"
            )

        details = data.details
        custom_fields = {**(details.get("metadata") or {}), **ctx.provenance(data.source_excerpt)}
        target_id = details.get("id")

        if data.action is CrmAction.UPDATE:
            if target_id:
                patch = {
                    key: details[key]
                    for key in _CRM_PATCHABLE[data.kind]
                    if details.get(key) not in (None, "")
                }
                patch["custom_fields"] = custom_fields
                patch["updated_at"] = self._clock().isoformat()
                self.crm.update_entity(data.kind, str(target_id), patch)
                return str(target_id)
            logger.warning("CRM update for %r has no target id, creating instead", name)

        if data.kind is CrmEntityKind.COMPANY:
            row = {
                "name": name,
                "industry": details.get("industry"),
                "website": details.get("website"),
                "domain": details.get("domain"),
                "phone": details.get("phone"),
                "notes": details.get("notes"),
                "country": details.get("country") or settings.default_country,
                "tags": details.get("tags") or [],
                "custom_fields": custom_fields,
            }
        elif data.kind is CrmEntityKind.CONTACT:
            first_name, last_name = split_contact_name(name)
            row = {
                "first_name": first_name,
                "last_name": last_name,
                "email": details.get("email"),
                "phone": details.get("phone"),
                "job_title": details.get("job_title"),
                "company_id": details.get("company_id"),
                "lifecycle_status": details.get("lifecycle_status") or "lead",
                "lead_source": SOURCE_TYPE,
                "tags": details.get("tags") or [],
                "custom_fields": custom_fields,
            }
        else:
            pipeline_id, stage_id = self._default_pipeline_stage()
            row = {
                "title": name,
                "description": details.get("description"),
                "pipeline_id": pipeline_id,
                "stage_id": details.get("stage_id") or stage_id,
                "amount": details.get("amount"),
                "currency": details.get("currency") or settings.default_currency,
                "contact_id": details.get("contact_id"),
                "company_id": details.get("company_id"),
                "status": "open",
                "priority": details.get("priority") or "medium",
                "tags": details.get("tags") or [],
                "custom_fields": custom_fields,
            }
        return self.crm.create_entity(data.kind, row)

    def _default_pipeline_stage(self) -> tuple[str, str]:
        pipelines = self.crm.list_pipelines()
        pipeline = next((p for p in pipelines if p.get("is_default")), None)
        if pipeline is None and pipelines:
            pipeline = pipelines[0]
        if pipeline is None or not pipeline.get("stages"):
            raise ValidationFailure("No deal pipeline found: cannot create a deal without a pipeline")
        first_stage = min(pipeline["stages"], key=lambda s: s.get("display_order", 0))
        return str(pipeline["id"]), str(first_stage["id"])

    # ------------------------------------------------------------------
    # Calendar
    # ------------------------------------------------------------------

    def create_event(self, ctx: ExecutionContext, data: EventData) -> str:
        if not data.start_time:
            raise ValidationFailure("Calendar event requires a start_time")
        start = parse_timestamp(data.start_time)
        if start is None:
            raise ValidationFailure(
                f"Invalid start_time {data.start_time!r}: must be a valid ISO date"
            )

        duration = data.duration_minutes
        if not duration or duration <= 0:
            duration = settings.default_event_duration_minutes

        now = self._clock()
        if start < now:
            # Stale date, still-valid intent: same wall-clock time tomorrow.
            tomorrow = now.astimezone(start.tzinfo) + timedelta(days=1)
            rescheduled = tomorrow.replace(
                hour=start.hour, minute=start.minute, second=0, microsecond=0
            )
            logger.warning(
                "Event start_time %r is in the past, rescheduled to %s",
                data.start_time,
                rescheduled.isoformat(),
            )
            start = rescheduled

        end = start + timedelta(minutes=duration)
        row = {
            "title": data.title or "Boardroom Event",
            "description": data.description or None,
            "event_type": "meeting",
            "status": "scheduled",
            "start_at": start.isoformat(),
            "end_at": end.isoformat(),
            "all_day": False,
            "timezone": start.tzname() or "UTC",
            "attendee_agent_ids": data.attendees,
            "metadata": ctx.provenance(data.source_excerpt),
        }
        return self.calendar.create_event(row)

    # ------------------------------------------------------------------
    # Quotes
    # ------------------------------------------------------------------

    def create_quote(self, ctx: ExecutionContext, data: QuoteData) -> str:
        customer = data.customer.strip()
        if not customer:
            raise ValidationFailure("Quote requires a customer name")
        if not data.items:
            raise ValidationFailure("Quote requires at least one line item")

        company = match_by_name(customer, self.crm.list_companies(), lambda c: c.get("name") or "")
        contact = match_by_name(
            customer,
            self.crm.list_contacts(),
            lambda c: f"{c.get('first_name') or ''} {c.get('last_name') or ''}",
        )

        quote_number = next_quote_number(
            self.quotes.latest_quote_number(),
            settings.quote_number_prefix,
            settings.quote_number_width,
        )
        quote_id = self.quotes.create_quote(
            {
                "quote_number": quote_number,
                "title": data.description or f"Quote for {customer}",
                "status": "draft",
                "contact_id": contact["id"] if contact else None,
                "company_id": company["id"] if company else None,
                "currency": settings.default_currency,
                "internal_note": (
                    f'Created from boardroom session.\n\nSource: "{data.source_excerpt}"'
                ),
                "customer_note": None,
            }
        )

        line_items = [
            {
                "quote_id": quote_id,
                "name": li.description or f"Item {idx + 1}",
                "description": li.description or None,
                "quantity": li.quantity,
                "unit_price": li.amount,
                "discount_percent": 0,
                "tax_amount": 0,
                "sort_order": idx,
            }
            for idx, li in enumerate(data.items)
        ]
        # No tax or discount is ever taken from model-proposed data.
        subtotal = sum(li["quantity"] * li["unit_price"] for li in line_items)
        try:
            self.quotes.add_line_items(line_items)
            self.quotes.update_totals(quote_id, subtotal=subtotal, total=subtotal)
        except PostgrestAPIError:
            logger.exception("Failed to store line items for quote %s", quote_number)

        logger.info("Created quote %s (%s) total %.2f", quote_number, quote_id, subtotal)
        return quote_id

    # ------------------------------------------------------------------
    # Projects
    # ------------------------------------------------------------------

    def create_project(self, ctx: ExecutionContext, data: ProjectData) -> str:
        name = data.name.strip()
        if not name:
            raise ValidationFailure("Project requires a name")

        mission_ids = self._resolve_mission_refs(ctx.package, data.mission_ids)
        project_id = self.projects.create_project(
            {
                "name": name,
                "description": data.description or None,
                "status": "planning",
                "currency": settings.default_currency,
                "tags": [],
                "custom_fields": ctx.provenance(data.source_excerpt),
            }
        )

        if mission_ids:
            try:
                self.projects.link_missions(project_id, mission_ids)
            except PostgrestAPIError:
                logger.exception("Failed to link missions to project %r", name)
            else:
                logger.info("Linked %d mission(s) to project %r", len(mission_ids), name)
        return project_id

    def _resolve_mission_refs(self, package: ResolutionPackage, refs: Sequence[str]) -> list[str]:
        """Map same-package mission item ids and existing mission ids to real ids."""
        resolved: list[str] = []
        for ref in refs:
            item = package.get_item(ref)
            if (
                item is not None
                and item.type is ItemType.MISSION
                and item.status is ItemStatus.CREATED
                and item.created_id
            ):
                mission_id = item.created_id
            elif self.missions.mission_exists(ref):
                mission_id = ref
            else:
                logger.warning(
                    "Mission reference %r is neither a created package item nor an "
                    "existing mission, skipping link",
                    ref,
                )
                continue
            if mission_id not in resolved:
                resolved.append(mission_id)
        return resolved
