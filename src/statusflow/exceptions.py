"""Exception types raised by the registry, the store, and condition predicates.

Expected negative outcomes of a transition attempt (no such transition,
missing capability, dwell time, optimistic conflict) are *results*, not
exceptions; see ``statusflow.transitions``.
"""

from __future__ import annotations


class ConfigurationError(ValueError):
    """Unknown kind or status, or an internally inconsistent workflow definition.

    Always a deployment or programming defect: fatal at startup, a 500 at the
    HTTP boundary, exit code 1 in the CLI.
    """


class PersistenceError(RuntimeError):
    """The underlying store failed outright (as opposed to an optimistic conflict)."""


class ConditionEvaluationError(RuntimeError):
    """A named condition predicate raised while being evaluated against an entity."""

    def __init__(self, condition: str, entity_id: str, cause: BaseException) -> None:
        self.condition = condition
        self.entity_id = entity_id
        self.cause = cause
        super().__init__(f"Condition '{condition}' failed for entity {entity_id}: {cause}")
