"""Shared-context feedback writer.

Approve/reject verdicts and per-session decision summaries are written as
markdown files under a shared-context directory that agents read back on
startup:

- ``feedback/pending/<session>_<item>.md``: one file per verdict
- ``decisions/active/<date>_<slug>_<session>.md``: one file per executed package
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Sequence
from datetime import UTC, datetime
from pathlib import Path

from resolution_engine.models import ItemStatus, ResolutionItem

logger = logging.getLogger(__name__)


def _slugify(text: str, max_length: int = 50) -> str:
    return re.sub(r"[^a-z0-9]+", "-", text.lower()).strip("-")[:max_length]


def _describe(item: ResolutionItem) -> str:
    return getattr(item.data, "description", "") or item.source_excerpt or "No description"


class SharedContextFeedbackWriter:
    """Writes verdict and decision records for agents to learn from.

    Write failures are logged and swallowed: feedback is advisory and must not
    break approval or execution.
    """

    def __init__(
        self,
        base_dir: str | Path,
        clock: Callable[[], datetime] | None = None,
    ):
        self.base_dir = Path(base_dir).expanduser()
        self._clock = clock or (lambda: datetime.now(UTC))

    def _feedback_name(self, session_id: str, item_id: str) -> str:
        return f"{session_id}_{item_id}.md"

    def write_feedback(
        self,
        session_id: str,
        session_title: str,
        item: ResolutionItem,
        verdict: str,
        user_notes: str | None = None,
    ) -> Path | None:
        """Record a single approve/reject verdict."""
        lines = [
            f"# Feedback: {item.title}",
            "",
            f"- **Decision:** {verdict}",
            f"- **Item Type:** {item.type.value}",
            "- **Source:** boardroom session",
            f"- **Session:** {session_title} ({session_id})",
            f"- **Agent:** {item.assigned_agent or 'unassigned'}",
            f"- **Decided At:** {self._clock().isoformat()}",
        ]
        if user_notes:
            lines.append(f"- **User Notes:** {user_notes}")
        lines += ["", "---", "", "## Original Proposal", _describe(item)]
        if item.source_excerpt:
            lines += ["", "## Source Excerpt", f'"{item.source_excerpt}"']

        path = self.base_dir / "feedback" / "pending" / self._feedback_name(session_id, item.id)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text("\n".join(lines) + "\n", encoding="utf-8")
        except OSError:
            logger.exception("Failed to write %s feedback for item %s", verdict, item.id)
            return None
        logger.info("Wrote %s feedback for %r -> %s", verdict, item.title, path.name)
        return path

    def write_decision(
        self,
        session_id: str,
        session_title: str,
        items: Sequence[ResolutionItem],
        decided_by: Sequence[str],
    ) -> Path | None:
        """Record the outcome of a whole package after execution."""
        now = self._clock()
        date = now.date().isoformat()

        accepted = [i for i in items if i.status in (ItemStatus.APPROVED, ItemStatus.CREATED)]
        rejected = [i for i in items if i.status is ItemStatus.REJECTED]
        agents = sorted({i.assigned_agent for i in items if i.assigned_agent})
        domains = list(dict.fromkeys(i.type.value for i in items))

        def _line(item: ResolutionItem, suffix: str) -> str:
            return f"- [{item.type.value}] {item.title} ({suffix})"

        approved_lines = [
            _line(
                i,
                f"created {i.created_id}" if i.status is ItemStatus.CREATED
                else f"failed: {i.error}" if i.error
                else f"@{i.assigned_agent or 'unassigned'}",
            )
            for i in accepted
        ]
        rejected_lines = [_line(i, "reason: user rejected") for i in rejected]

        content = "\n".join(
            [
                f"# Decision: {session_title}",
                "",
                f"- **Date:** {date}",
                f"- **Session:** {session_title} ({session_id})",
                f"- **Decided By:** {', '.join(decided_by)}",
                "- **Status:** active",
                "",
                "## Summary",
                f"Boardroom session produced {len(items)} resolution items: "
                f"{len(accepted)} approved, {len(rejected)} rejected.",
                "",
                "## Impact",
                f"- **Affected Agents:** {', '.join(agents) or 'none'}",
                f"- **Affected Domains:** {', '.join(domains) or 'none'}",
                "",
                "## Approved Items",
                "\n".join(approved_lines) or "- None",
                "",
                "## Rejected Items",
                "\n".join(rejected_lines) or "- None",
                "",
            ]
        )

        slug = _slugify(session_title) or "session"
        path = self.base_dir / "decisions" / "active" / f"{date}_{slug}_{session_id}.md"
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding="utf-8")
        except OSError:
            logger.exception("Failed to write decision record for session %s", session_id)
            return None
        logger.info("Wrote decision record -> %s", path.name)
        return path
