"""Error taxonomy for rule loading and evaluation."""

from __future__ import annotations

from typing import Optional


class RuleLoadError(Exception):
    """A rule catalog could not be loaded.

    Raised for duplicate rule names within a fact shape, unsupported fact
    shapes, and predicates that reference undefined or unsafe names.
    Loading is all-or-nothing, so one bad rule fails the whole catalog.
    """

    def __init__(self, rule_name: str, reason: str, source: Optional[str] = None) -> None:
        self.rule_name = rule_name
        self.reason = reason
        self.source = source
        where = f" ({source})" if source else ""
        super().__init__(f"Invalid rule '{rule_name}'{where}: {reason}")


class PredicateEvaluationError(Exception):
    """Facts were inconsistent while building an evaluation index.

    Never escapes ``PolicyEngine.evaluate``; the orchestrator turns it into
    an ``internal`` result record.
    """


class FactShapeMismatch(UserWarning):
    """No loaded rule applies to the facts supplied for a shape."""
