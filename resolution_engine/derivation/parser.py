"""Parse model output into a typed ResolutionPackage."""

from __future__ import annotations

import json
import logging
import re
from typing import Any

from pydantic import ValidationError

from resolution_engine.exceptions import PackageParseError
from resolution_engine.models import (
    ItemStatus,
    ItemType,
    ResolutionItem,
    ResolutionMode,
    ResolutionPackage,
)

logger = logging.getLogger(__name__)

_FENCED_JSON_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)```", re.IGNORECASE)

# Response section -> (item type, id prefix). Order here is package order,
# which is also execution order: missions come first so that projects can
# link them by item id.
SECTIONS: list[tuple[str, ItemType, str]] = [
    ("missions", ItemType.MISSION, "mission"),
    ("projects", ItemType.PROJECT, "project"),
    ("documents", ItemType.DOCUMENT, "document"),
    ("crm_actions", ItemType.CRM, "crm"),
    ("follow_up_meetings", ItemType.FOLLOW_UP, "follow-up"),
    ("events", ItemType.EVENT, "event"),
    ("quotes", ItemType.QUOTE, "quote"),
]


def extract_json_payload(response: str) -> dict[str, Any]:
    """Locate and decode the JSON object embedded in a model response.

    Prefers a fenced ```json block; otherwise takes the outermost ``{...}``.

    Raises:
        PackageParseError: no decodable JSON object was found.
    """
    match = _FENCED_JSON_RE.search(response)
    if match:
        text = match.group(1)
    else:
        start, end = response.find("{"), response.rfind("}")
        if start == -1 or end <= start:
            raise PackageParseError("No JSON object found in model response")
        text = response[start : end + 1]

    try:
        parsed = json.loads(text)
    except json.JSONDecodeError as exc:
        raise PackageParseError(f"Invalid JSON in model response: {exc}") from exc
    if not isinstance(parsed, dict):
        raise PackageParseError("Model response JSON is not an object")
    return parsed


def _mission_ref(ref: Any, mission_count: int) -> str:
    """Map a positional mission index to its item id; pass other refs through."""
    if isinstance(ref, bool):
        return str(ref)
    if isinstance(ref, int) and 0 <= ref < mission_count:
        return f"mission-{ref}"
    if isinstance(ref, str) and ref.strip().isdigit() and int(ref) < mission_count:
        return f"mission-{int(ref)}"
    return str(ref)


def build_package(
    parsed: dict[str, Any], session_id: str, mode: ResolutionMode
) -> ResolutionPackage:
    """Validate decoded JSON into a package with every item ``pending``.

    Raises:
        PackageParseError: a section is not a list or an entry fails validation.
    """
    raw_missions = parsed.get("missions") or []
    mission_count = len(raw_missions) if isinstance(raw_missions, list) else 0

    items: list[ResolutionItem] = []
    for key, item_type, prefix in SECTIONS:
        entries = parsed.get(key)
        if entries is None:
            continue
        if not isinstance(entries, list):
            raise PackageParseError(f"Section {key!r} must be a list")

        for index, entry in enumerate(entries):
            if not isinstance(entry, dict):
                raise PackageParseError(f"Entry {index} of {key!r} is not an object")
            if item_type is ItemType.PROJECT and isinstance(entry.get("mission_ids"), list):
                entry = {
                    **entry,
                    "mission_ids": [_mission_ref(r, mission_count) for r in entry["mission_ids"]],
                }
            try:
                items.append(
                    ResolutionItem(
                        id=f"{prefix}-{index}",
                        type=item_type,
                        status=ItemStatus.PENDING,
                        data=entry,
                    )
                )
            except ValidationError as exc:
                raise PackageParseError(f"Invalid entry {index} in {key!r}: {exc}") from exc

    return ResolutionPackage(session_id=session_id, mode=mode, items=items)


def parse_resolution_package(
    response: str, session_id: str, mode: ResolutionMode
) -> ResolutionPackage | None:
    """Parse a raw model response, returning None when it cannot be trusted."""
    try:
        return build_package(extract_json_payload(response), session_id, mode)
    except PackageParseError:
        logger.exception("Failed to parse resolution package for session %s", session_id)
        return None
