"""Pydantic request/response schemas for the resolution API."""

from __future__ import annotations

from pydantic import BaseModel

from resolution_engine.models import ItemStatus, ItemType


class ApproveAllRequest(BaseModel):
    """Request body for the approve-all endpoint."""

    approved_by: str = "user"


class ItemDecisionResponse(BaseModel):
    """Result of approving or rejecting a single item."""

    session_id: str
    item_id: str
    type: ItemType
    status: ItemStatus


class ExecuteResponse(BaseModel):
    """Response body for the execute endpoint."""

    session_id: str
    attempted: int
    created: dict[str, str] = {}
    failed: dict[str, str] = {}
