"""Input checks for the values callers hand the engine from the CLI and HTTP API.

No FastAPI or Click imports here. Each function returns ``(value, None)``
on success or ``(empty, error_message)`` on failure, so each surface can
report the message its own way (stderr and exit 1, or a 400 body).
"""

from __future__ import annotations

import unicodedata
from collections.abc import Iterable
from typing import Any

from statusflow.executor import SYSTEM_ACTOR
from statusflow.workflows import Capability

# Upper bound on audit_log.actor; longer names are rejected, never truncated.
MAX_ACTOR_LENGTH = 128


def _first_unprintable(value: str) -> str | None:
    for ch in value:
        # Any "C*" category: control, format, surrogate, private use, unassigned.
        if unicodedata.category(ch).startswith("C"):
            return ch
    return None


def sanitize_actor(value: Any) -> tuple[str, str | None]:
    """Actor name to record in the audit trail and in ``*_by`` derived fields.

    The name the engine uses for its own automatic moves is reserved, so a
    caller cannot pass a manual change off as an auto-transition.
    """
    if not isinstance(value, str):
        return ("", "actor must be a string")
    bad = _first_unprintable(value)
    if bad is not None:
        return ("", f"actor must not contain control characters (found U+{ord(bad):04X})")
    actor = value.strip()
    if not actor:
        return ("", "actor must not be empty")
    if len(actor) > MAX_ACTOR_LENGTH:
        return ("", f"actor must be at most {MAX_ACTOR_LENGTH} characters")
    if actor.casefold() == SYSTEM_ACTOR:
        return ("", f"actor '{SYSTEM_ACTOR}' is reserved for automatic transitions")
    return (actor, None)


def parse_capability_list(values: Iterable[Any] | str | None) -> tuple[frozenset[Capability], str | None]:
    """Parse capability names from request input.

    Accepts an iterable of names or one comma-separated string. Unknown
    names are an error rather than silently dropped.
    """
    if values is None:
        return (frozenset(), None)
    if isinstance(values, str):
        values = [v for v in (part.strip() for part in values.split(",")) if v]
    caps: set[Capability] = set()
    unknown: list[str] = []
    for name in values:
        if not isinstance(name, str):
            return (frozenset(), "capabilities must be strings")
        try:
            caps.add(Capability(name))
        except ValueError:
            unknown.append(name)
    if unknown:
        return (frozenset(), f"Unknown capabilities: {', '.join(unknown)}")
    return (frozenset(caps), None)
