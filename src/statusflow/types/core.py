"""Foundational TypedDicts for dataclass to_dict() returns."""

from __future__ import annotations

from typing import Any, NewType, TypedDict

ISOTimestamp = NewType("ISOTimestamp", str)


class ProjectConfig(TypedDict, total=False):
    """Shape of .statusflow/config.json."""

    version: int
    enabled_kinds: list[str]
    log_level: str


class EntityDict(TypedDict):
    id: str
    kind: str
    title: str
    status: str
    status_changed_at: ISOTimestamp
    created_at: ISOTimestamp
    updated_at: ISOTimestamp
    owner_id: str
    assignee_id: str
    priority: str | None
    amount: float | None
    attributes: dict[str, Any]
