"""Typed resolution package, items, and per-type payloads."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationInfo,
    field_validator,
    model_validator,
)


class ResolutionMode(str, Enum):
    """Whether and how a package is generated for a session.

    ``auto`` only changes defaults for descendant sessions; every item still
    needs an explicit approval before it executes.
    """

    NONE = "none"
    PROPOSE = "propose"
    AUTO = "auto"


class ItemType(str, Enum):
    MISSION = "mission"
    FOLLOW_UP = "follow_up"
    DOCUMENT = "document"
    CRM = "crm"
    EVENT = "event"
    QUOTE = "quote"
    PROJECT = "project"


class ItemStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    CREATED = "created"


class MissionPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"

    @property
    def rank(self) -> int:
        """Integer priority used by the missions table."""
        return _PRIORITY_RANKS[self]


_PRIORITY_RANKS = {
    MissionPriority.LOW: 0,
    MissionPriority.MEDIUM: 1,
    MissionPriority.HIGH: 2,
    MissionPriority.URGENT: 3,
}


class DocumentType(str, Enum):
    BRIEF = "brief"
    SPEC = "spec"
    PROPOSAL = "proposal"
    REPORT = "report"


class CrmEntityKind(str, Enum):
    COMPANY = "company"
    CONTACT = "contact"
    DEAL = "deal"


class CrmAction(str, Enum):
    CREATE = "create"
    UPDATE = "update"


# ---------------------------------------------------------------------------
# Payloads
# ---------------------------------------------------------------------------


class _Payload(BaseModel):
    """Base for item payloads.

    Model output routinely carries explicit nulls; those fall back to the
    field defaults instead of failing validation.
    """

    model_config = ConfigDict(populate_by_name=True)

    source_excerpt: str = ""

    @model_validator(mode="before")
    @classmethod
    def _drop_nulls(cls, values: Any) -> Any:
        if isinstance(values, dict):
            return {k: v for k, v in values.items() if v is not None}
        return values


class MissionData(_Payload):
    title: str = "Untitled Mission"
    description: str = ""
    agent_id: str = ""
    priority: MissionPriority = MissionPriority.MEDIUM
    dependencies: list[str] = Field(default_factory=list)
    scheduled_at: str | None = None

    @field_validator("priority", mode="before")
    @classmethod
    def _lenient_priority(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = value.strip().lower()
            if value in MissionPriority._value2member_map_:
                return value
        return MissionPriority.MEDIUM


class FollowUpData(_Payload):
    title: str = "Follow-up Meeting"
    topic: str = ""
    agenda: list[str] = Field(default_factory=list)
    participant_agent_ids: list[str] = Field(default_factory=list)
    unresolved_items: list[str] = Field(default_factory=list)
    scheduled_at: str | None = None


class DocumentData(_Payload):
    document_type: DocumentType = Field(default=DocumentType.BRIEF, alias="type")
    title: str = "Untitled Document"
    description: str = ""
    agent_id: str = ""

    @field_validator("document_type", mode="before")
    @classmethod
    def _lenient_type(cls, value: Any) -> Any:
        if isinstance(value, str) and value.strip().lower() in DocumentType._value2member_map_:
            return value.strip().lower()
        return DocumentType.BRIEF


class CrmActionData(_Payload):
    kind: CrmEntityKind = Field(default=CrmEntityKind.CONTACT, alias="type")
    action: CrmAction = CrmAction.CREATE
    name: str = ""
    details: dict[str, Any] = Field(default_factory=dict)


class EventData(_Payload):
    title: str = "Boardroom Event"
    description: str = ""
    start_time: str | None = None
    duration_minutes: float | None = None
    attendees: list[str] = Field(default_factory=list)


class QuoteLineItem(_Payload):
    description: str = ""
    amount: float = 0.0
    quantity: float = 1.0


class QuoteData(_Payload):
    customer: str = ""
    description: str = ""
    items: list[QuoteLineItem] = Field(default_factory=list)


class ProjectData(_Payload):
    name: str = "Untitled Project"
    description: str = ""
    mission_ids: list[str] = Field(default_factory=list)

    @field_validator("mission_ids", mode="before")
    @classmethod
    def _stringify_refs(cls, value: Any) -> Any:
        if isinstance(value, list):
            return [str(v) for v in value if v is not None]
        return value


ItemPayload = (
    MissionData
    | FollowUpData
    | DocumentData
    | CrmActionData
    | EventData
    | QuoteData
    | ProjectData
)

PAYLOAD_MODELS: dict[ItemType, type[_Payload]] = {
    ItemType.MISSION: MissionData,
    ItemType.FOLLOW_UP: FollowUpData,
    ItemType.DOCUMENT: DocumentData,
    ItemType.CRM: CrmActionData,
    ItemType.EVENT: EventData,
    ItemType.QUOTE: QuoteData,
    ItemType.PROJECT: ProjectData,
}


# ---------------------------------------------------------------------------
# Items and packages
# ---------------------------------------------------------------------------


class ResolutionItem(BaseModel):
    """One proposed action within a package."""

    id: str
    type: ItemType
    status: ItemStatus = ItemStatus.PENDING
    data: ItemPayload
    source_excerpt: str = ""
    created_id: str | None = None
    error: str | None = None

    @field_validator("data", mode="before")
    @classmethod
    def _payload_for_type(cls, value: Any, info: ValidationInfo) -> Any:
        item_type = info.data.get("type")
        if item_type is None:
            raise ValueError("item type must be valid before its data can be parsed")
        model = PAYLOAD_MODELS[ItemType(item_type)]
        if isinstance(value, model):
            return value
        return model.model_validate(value)

    @model_validator(mode="after")
    def _check_created(self) -> ResolutionItem:
        if (self.status is ItemStatus.CREATED) != bool(self.created_id):
            raise ValueError(
                f"item {self.id}: created_id must be set exactly when status is 'created'"
            )
        if not self.source_excerpt:
            self.source_excerpt = self.data.source_excerpt
        return self

    @property
    def title(self) -> str:
        """Best human-readable label for feedback and logs."""
        for attr in ("title", "name", "customer", "description"):
            value = getattr(self.data, attr, "")
            if value:
                return str(value)
        return f"{self.type.value} item"

    @property
    def assigned_agent(self) -> str | None:
        return getattr(self.data, "agent_id", None) or None

    def mark_created(self, created_id: str) -> None:
        self.status = ItemStatus.CREATED
        self.created_id = created_id
        self.error = None

    def mark_failed(self, message: str) -> None:
        # Status stays approved so a later run retries just this item.
        self.error = message


def _utcnow() -> datetime:
    return datetime.now(UTC)


class ResolutionPackage(BaseModel):
    """The ordered, reviewable action list derived from one session."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    session_id: str
    mode: ResolutionMode
    generated_at: datetime = Field(default_factory=_utcnow)
    items: list[ResolutionItem] = Field(default_factory=list)
    version: int = 0
    approved_at: datetime | None = None
    approved_by: str | None = None

    @model_validator(mode="after")
    def _unique_item_ids(self) -> ResolutionPackage:
        seen: set[str] = set()
        for item in self.items:
            if item.id in seen:
                raise ValueError(f"duplicate item id {item.id!r} in resolution package")
            seen.add(item.id)
        return self

    def get_item(self, item_id: str) -> ResolutionItem | None:
        return next((i for i in self.items if i.id == item_id), None)

    def items_with_status(self, status: ItemStatus) -> list[ResolutionItem]:
        return [i for i in self.items if i.status is status]

    def to_record(self) -> dict[str, Any]:
        """JSON-safe snapshot stored in session metadata."""
        return self.model_dump(mode="json", by_alias=True)
