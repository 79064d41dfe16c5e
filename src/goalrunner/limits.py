"""Loop-cap tiers for agent runs."""

from __future__ import annotations

from goalrunner.schemas import ModelSettings, SessionContext

DEFAULT_MAX_LOOPS_FREE: int = 4
"""Cap for anonymous/free callers running on the shared credential."""

DEFAULT_MAX_LOOPS_PAID: int = 16
"""Cap for subscribed callers running on the shared credential."""

DEFAULT_MAX_LOOPS_CUSTOM_API_KEY: int = 10
"""Cap when the caller brings a key and sets no override."""


def resolve_max_loops(settings: ModelSettings, session: SessionContext | None = None) -> int:
    """Return the maximum number of tasks a run may execute.

    Credential presence alone picks the branch; the session only matters on
    the shared-credential branch.
    """
    if settings.has_custom_key:
        return settings.custom_max_loops or DEFAULT_MAX_LOOPS_CUSTOM_API_KEY
    if session is not None and session.is_paid:
        return DEFAULT_MAX_LOOPS_PAID
    return DEFAULT_MAX_LOOPS_FREE
