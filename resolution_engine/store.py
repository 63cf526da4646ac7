"""Package persistence and item-level approval transitions.

The package lives in the owning session's metadata under
``resolution_package``. Every save replaces the whole snapshot; there is no
field-level merge. A version counter on the package detects saves made from a
snapshot that another writer has since replaced.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from datetime import UTC, datetime

from resolution_engine.exceptions import (
    InvalidTransitionError,
    ItemNotFoundError,
    PackageNotFoundError,
    SessionNotFoundError,
    StalePackageError,
)
from resolution_engine.feedback import SharedContextFeedbackWriter
from resolution_engine.models import ItemStatus, ResolutionItem, ResolutionPackage
from resolution_engine.sessions import BoardroomSession
from resolution_engine.storage.gateways import SessionGateway

logger = logging.getLogger(__name__)

PACKAGE_KEY = "resolution_package"

# Allowed manual transitions: target status -> statuses it may be reached from.
_ALLOWED_FROM: dict[ItemStatus, set[ItemStatus]] = {
    ItemStatus.APPROVED: {ItemStatus.PENDING, ItemStatus.APPROVED},
    ItemStatus.REJECTED: {ItemStatus.PENDING, ItemStatus.APPROVED, ItemStatus.REJECTED},
}


class PackageStore:
    """Loads, saves, and applies approval decisions to resolution packages."""

    def __init__(
        self,
        sessions: SessionGateway,
        feedback: SharedContextFeedbackWriter,
        clock: Callable[[], datetime] | None = None,
    ):
        self.sessions = sessions
        self.feedback = feedback
        self._clock = clock or (lambda: datetime.now(UTC))
        self._write_lock = threading.Lock()

    # -- reads ---------------------------------------------------------------

    def get(self, session_id: str) -> ResolutionPackage | None:
        session = self.sessions.get_session(session_id)
        if session is None:
            return None
        record = session.metadata.get(PACKAGE_KEY)
        return ResolutionPackage.model_validate(record) if record else None

    def load(self, session_id: str) -> tuple[BoardroomSession, ResolutionPackage]:
        """Return the session and its package, raising if either is missing."""
        session = self.sessions.get_session(session_id)
        if session is None:
            raise SessionNotFoundError(f"Session {session_id} not found")
        record = session.metadata.get(PACKAGE_KEY)
        if not record:
            raise PackageNotFoundError(f"Session {session_id} has no resolution package")
        return session, ResolutionPackage.model_validate(record)

    # -- writes --------------------------------------------------------------

    def save(self, session_id: str, package: ResolutionPackage) -> ResolutionPackage:
        """Persist the full package snapshot, replacing whatever was stored.

        Raises:
            StalePackageError: the stored package has a newer version than
                the snapshot being written.
        """
        with self._write_lock:
            session = self.sessions.get_session(session_id)
            if session is None:
                raise SessionNotFoundError(f"Session {session_id} not found")

            stored = session.metadata.get(PACKAGE_KEY) or {}
            stored_version = int(stored.get("version", 0)) if stored else 0
            if stored and package.version < stored_version:
                raise StalePackageError(session_id, package.version, stored_version)

            package.version = max(package.version, stored_version) + 1
            metadata = {**session.metadata, PACKAGE_KEY: package.to_record()}
            self.sessions.update_metadata(session_id, metadata, self._clock().isoformat())

        logger.debug("Saved resolution package for %s at version %d", session_id, package.version)
        return package

    def approve(self, session_id: str, item_id: str) -> ResolutionItem:
        return self._apply_verdict(session_id, item_id, ItemStatus.APPROVED)

    def reject(self, session_id: str, item_id: str) -> ResolutionItem:
        return self._apply_verdict(session_id, item_id, ItemStatus.REJECTED)

    def approve_all(self, session_id: str, approved_by: str = "user") -> ResolutionPackage:
        """Approve every pending item in one save."""
        _, package = self.load(session_id)
        pending = package.items_with_status(ItemStatus.PENDING)
        for item in pending:
            item.status = ItemStatus.APPROVED
        package.approved_at = self._clock()
        package.approved_by = approved_by
        self.save(session_id, package)
        logger.info("Approved %d pending item(s) for session %s", len(pending), session_id)
        return package

    def _apply_verdict(
        self, session_id: str, item_id: str, verdict: ItemStatus
    ) -> ResolutionItem:
        session, package = self.load(session_id)
        item = package.get_item(item_id)
        if item is None:
            raise ItemNotFoundError(f"Item {item_id} not found in package for session {session_id}")
        if item.status not in _ALLOWED_FROM[verdict]:
            raise InvalidTransitionError(item_id, item.status.value, verdict.value)

        item.status = verdict
        self.save(session_id, package)
        self.feedback.write_feedback(session.id, session.title, item, verdict.value)
        return item
