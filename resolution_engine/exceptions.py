"""Exception hierarchy for the resolution engine.

Everything inherits from ResolutionError so the API layer can catch broadly
and map the narrower types to HTTP status codes.
"""

from __future__ import annotations


class ResolutionError(Exception):
    """Base exception for all resolution engine errors."""


# ---------------------------------------------------------------------------
# Generation
# ---------------------------------------------------------------------------


class GenerationError(ResolutionError):
    """The model stream failed, was aborted, or timed out with no output."""


class PackageParseError(ResolutionError):
    """The model response could not be turned into a typed package."""


# ---------------------------------------------------------------------------
# Execution
# ---------------------------------------------------------------------------


class ValidationFailure(ResolutionError):
    """An executor rejected the item payload before writing anything."""


class GuardrailViolation(ResolutionError):
    """An executor refused an action because it would exceed a safety limit."""


class FollowUpDepthExceeded(GuardrailViolation):
    """A follow-up session would nest deeper than the configured ceiling."""

    def __init__(self, depth: int, max_depth: int):
        self.depth = depth
        self.max_depth = max_depth
        super().__init__(
            f"Follow-up depth limit ({max_depth}) exceeded: new session would be at "
            f"depth {depth}. Create the follow-up manually if it is really needed."
        )


class ExecutionInProgressError(ResolutionError):
    """A package is already being executed for this session."""

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Resolution package for session {session_id} is already executing")


# ---------------------------------------------------------------------------
# Storage
# ---------------------------------------------------------------------------


class SessionNotFoundError(ResolutionError):
    """No boardroom session exists with the given id."""


class PackageNotFoundError(ResolutionError):
    """The session has no resolution package."""


class ItemNotFoundError(ResolutionError):
    """The package has no item with the given id."""


class StalePackageError(ResolutionError):
    """A save was attempted from a snapshot older than the stored one."""

    def __init__(self, session_id: str, expected: int, actual: int):
        self.session_id = session_id
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Stale resolution package for session {session_id}: "
            f"snapshot version {expected}, stored version {actual}"
        )


class InvalidTransitionError(ResolutionError):
    """The requested status change is not allowed from the item's current status."""

    def __init__(self, item_id: str, current: str, requested: str):
        self.item_id = item_id
        self.current = current
        self.requested = requested
        super().__init__(f"Item {item_id} cannot move from '{current}' to '{requested}'")
