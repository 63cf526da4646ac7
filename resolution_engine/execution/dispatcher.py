"""Execution Dispatcher: runs approved items of a package, in order."""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field

from resolution_engine.exceptions import (
    ExecutionInProgressError,
    GuardrailViolation,
    StalePackageError,
    ValidationFailure,
)
from resolution_engine.execution.executors import ActionExecutors, ExecutionContext
from resolution_engine.feedback import SharedContextFeedbackWriter
from resolution_engine.models import ItemStatus, ResolutionItem, ResolutionPackage
from resolution_engine.store import PackageStore

logger = logging.getLogger(__name__)


@dataclass
class ExecutionReport:
    """Outcome of one execution pass."""

    session_id: str
    created: dict[str, str] = field(default_factory=dict)  # item id -> created entity id
    failed: dict[str, str] = field(default_factory=dict)  # item id -> error message

    @property
    def attempted(self) -> int:
        return len(self.created) + len(self.failed)


class ExecutionDispatcher:
    """Executes approved items one at a time and persists after each one.

    Items run strictly sequentially in package order, so a project item can
    link missions created earlier in the same pass. One item's failure never
    stops the batch; it is recorded on the item, which stays ``approved`` so
    a later pass retries it. Already-created items are never selected again.
    """

    max_save_attempts = 3

    def __init__(
        self,
        store: PackageStore,
        executors: ActionExecutors,
        feedback: SharedContextFeedbackWriter,
    ):
        self.store = store
        self.feedback = feedback
        self._handlers = executors.table()
        self._running: set[str] = set()
        self._running_lock = threading.Lock()

    @contextmanager
    def _exclusive(self, session_id: str) -> Iterator[None]:
        with self._running_lock:
            if session_id in self._running:
                raise ExecutionInProgressError(session_id)
            self._running.add(session_id)
        try:
            yield
        finally:
            with self._running_lock:
                self._running.discard(session_id)

    def execute_package(self, session_id: str) -> ExecutionReport:
        """Run every approved item of the session's package.

        Raises:
            ExecutionInProgressError: another pass for this session is running.
            SessionNotFoundError, PackageNotFoundError: nothing to execute.
        """
        with self._exclusive(session_id):
            session, package = self.store.load(session_id)
            context = ExecutionContext(session=session, package=package)
            report = ExecutionReport(session_id=session_id)

            for item_id in [i.id for i in package.items_with_status(ItemStatus.APPROVED)]:
                item = context.package.get_item(item_id)
                if item is None or item.status is not ItemStatus.APPROVED:
                    logger.info("Skipping item %s: no longer approved", item_id)
                    continue
                self._run_item(context, item, report)
                # Persist per item so a crash mid-batch loses at most this result.
                self._persist(context, report)

            self.feedback.write_decision(
                session.id, session.title, context.package.items, session.participant_agent_ids
            )
            logger.info(
                "Executed package for session %s: %d created, %d failed",
                session_id,
                len(report.created),
                len(report.failed),
            )
            return report

    def _run_item(
        self, context: ExecutionContext, item: ResolutionItem, report: ExecutionReport
    ) -> None:
        handler = self._handlers[item.type]
        try:
            created_id = handler(context, item.data)
        except (ValidationFailure, GuardrailViolation) as exc:
            logger.warning("Resolution item %s (%s) rejected: %s", item.id, item.type.value, exc)
            item.mark_failed(str(exc))
            report.failed[item.id] = str(exc)
        except Exception as exc:
            logger.exception("Failed to create %s for item %s", item.type.value, item.id)
            item.mark_failed(str(exc) or type(exc).__name__)
            report.failed[item.id] = item.error or ""
        else:
            item.mark_created(created_id)
            report.created[item.id] = created_id

    def _persist(self, context: ExecutionContext, report: ExecutionReport) -> None:
        """Save the pass's snapshot, merging into a newer stored package if needed.

        Another writer (an approve or reject) may have saved since this pass
        loaded the package. The stored package is then reloaded and every
        outcome recorded so far in this pass is applied to it by item id.
        """
        session_id = context.session_id
        for attempt in range(1, self.max_save_attempts + 1):
            try:
                self.store.save(session_id, context.package)
                return
            except StalePackageError as exc:
                logger.warning(
                    "Package for session %s changed during execution (attempt %d): %s",
                    session_id,
                    attempt,
                    exc,
                )
                _, fresh = self.store.load(session_id)
                _apply_outcomes(fresh, report)
                context.package = fresh
        logger.error(
            "Could not persist execution results for session %s after %d attempts",
            session_id,
            self.max_save_attempts,
        )


def _apply_outcomes(package: ResolutionPackage, report: ExecutionReport) -> None:
    for item_id, created_id in report.created.items():
        target = package.get_item(item_id)
        if target is not None:
            target.mark_created(created_id)
    for item_id, message in report.failed.items():
        target = package.get_item(item_id)
        if target is not None and target.status is not ItemStatus.CREATED:
            target.mark_failed(message)
