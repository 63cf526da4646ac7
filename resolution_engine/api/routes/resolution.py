"""Resolution endpoints: view, generate, approve/reject, and execute packages."""

from __future__ import annotations

from functools import lru_cache
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException

from resolution_engine.api.models import ApproveAllRequest, ExecuteResponse, ItemDecisionResponse
from resolution_engine.exceptions import (
    ExecutionInProgressError,
    InvalidTransitionError,
    ItemNotFoundError,
    PackageNotFoundError,
    ResolutionError,
    SessionNotFoundError,
    StalePackageError,
)
from resolution_engine.models import ResolutionItem, ResolutionPackage
from resolution_engine.service import ResolutionService, build_service

router = APIRouter(prefix="/api/sessions/{session_id}/resolution")


@lru_cache(maxsize=1)
def get_service() -> ResolutionService:
    """Process-wide service; the dispatcher's per-session guard lives on it."""
    return build_service()


ServiceDep = Annotated[ResolutionService, Depends(get_service)]


def _http_error(exc: ResolutionError) -> HTTPException:
    if isinstance(exc, SessionNotFoundError | PackageNotFoundError | ItemNotFoundError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, ExecutionInProgressError | InvalidTransitionError | StalePackageError):
        return HTTPException(status_code=409, detail=str(exc))
    return HTTPException(status_code=500, detail=str(exc))


def _decision(session_id: str, item: ResolutionItem) -> ItemDecisionResponse:
    return ItemDecisionResponse(
        session_id=session_id, item_id=item.id, type=item.type, status=item.status
    )


@router.get("", response_model=ResolutionPackage)
async def get_package(session_id: str, service: ServiceDep) -> ResolutionPackage:
    """Return the session's resolution package."""
    package = service.get_package(session_id)
    if package is None:
        raise HTTPException(status_code=404, detail="Resolution package not found")
    return package


@router.post("/generate", response_model=ResolutionPackage)
async def generate_package(session_id: str, service: ServiceDep) -> ResolutionPackage:
    """Derive a package from the session transcript (idempotent per session).

    Returns 404 when the session's resolution mode is ``none`` or the model
    produced nothing usable; generation failures never surface as 500s.
    """
    try:
        package = await service.generate_for_session(session_id)
    except ResolutionError as exc:
        raise _http_error(exc) from exc
    if package is None:
        raise HTTPException(status_code=404, detail="No resolution package produced")
    return package


@router.post("/items/{item_id}/approve", response_model=ItemDecisionResponse)
async def approve_item(session_id: str, item_id: str, service: ServiceDep) -> ItemDecisionResponse:
    try:
        item = service.approve_item(session_id, item_id)
    except ResolutionError as exc:
        raise _http_error(exc) from exc
    return _decision(session_id, item)


@router.post("/items/{item_id}/reject", response_model=ItemDecisionResponse)
async def reject_item(session_id: str, item_id: str, service: ServiceDep) -> ItemDecisionResponse:
    try:
        item = service.reject_item(session_id, item_id)
    except ResolutionError as exc:
        raise _http_error(exc) from exc
    return _decision(session_id, item)


@router.post("/approve-all", response_model=ResolutionPackage)
async def approve_all(
    session_id: str, service: ServiceDep, body: ApproveAllRequest | None = None
) -> ResolutionPackage:
    """Approve every pending item."""
    approved_by = body.approved_by if body else "user"
    try:
        return service.approve_all_pending(session_id, approved_by=approved_by)
    except ResolutionError as exc:
        raise _http_error(exc) from exc


@router.post("/execute", response_model=ExecuteResponse)
async def execute_package(session_id: str, service: ServiceDep) -> ExecuteResponse:
    """Execute approved items; per-item failures are reported, not raised."""
    try:
        report = service.execute_package(session_id)
    except ResolutionError as exc:
        raise _http_error(exc) from exc
    return ExecuteResponse(
        session_id=session_id,
        attempted=report.attempted,
        created=report.created,
        failed=report.failed,
    )
