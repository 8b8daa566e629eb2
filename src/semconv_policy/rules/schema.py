"""
Rule and result models.

``Rule`` is the in-process extension contract: a name, the fact shape it is
written against, a declared result kind and level, and a predicate.  A
predicate is any callable that yields ``Match`` objects; the evaluator
turns each match into a ``ResultRecord`` stamped with the rule's metadata.

Predicate call signatures, by fact shape:

- ``registry-pair``:   ``predicate(baseline, candidate)``
- ``registry-single``: ``predicate(registry)``
- ``sample``:          ``predicate(sample, context)``

``RuleSpec`` / ``RuleCatalogSpec`` are the declarative (YAML) form of a rule,
compiled into a ``Rule`` by ``semconv_policy.rules.expressions``.  Like the
other document models they use ``extra="forbid"`` so typos in a catalog
fail at load time.

Usage::

    from semconv_policy.rules.schema import Match, Rule
    from semconv_policy.types import FactShape, ResultKind

    def no_ref_in_registry(registry):
        for group, attr in registry.iter_attributes():
            if group.is_registry and attr.ref:
                yield Match(target=attr.ref, message="...")

    rule = Rule("registry_with_ref_attr", FactShape.REGISTRY_SINGLE,
                ResultKind.VIOLATION, predicate=no_ref_in_registry)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from semconv_policy.errors import RuleLoadError
from semconv_policy.types import AdviceLevel, FactShape, ResultKind

logger = logging.getLogger(__name__)

Predicate = Callable[..., Iterable["Match"]]


def default_level(kind: ResultKind) -> AdviceLevel:
    """Level a rule gets when it declares only its result kind."""
    if kind == ResultKind.ADVICE:
        return AdviceLevel.INFORMATION
    return AdviceLevel.VIOLATION


def check_kind_and_level(
    name: str, kind: ResultKind, level: AdviceLevel, source: Optional[str] = None
) -> None:
    if kind == ResultKind.INTERNAL:
        raise RuleLoadError(name, "rules cannot declare the internal result kind", source)
    if kind == ResultKind.ADVICE and level == AdviceLevel.VIOLATION:
        raise RuleLoadError(
            name, "advice rules cannot declare the violation level; use result_kind: violation",
            source,
        )


# ---------------------------------------------------------------------------
# In-process rule contract
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Match:
    """One binding for which a predicate holds."""

    target: str
    message: str
    context: dict[str, Any] = field(default_factory=dict)
    # Overrides the rule's declared level for this match only.
    level: Optional[AdviceLevel] = None
    signal_type: Optional[str] = None
    signal_name: Optional[str] = None


@dataclass(frozen=True)
class Rule:
    """A named predicate bound to one fact shape."""

    name: str
    fact_shape: FactShape
    result_kind: ResultKind
    predicate: Predicate = field(compare=False, repr=False)
    # None means the default for the result kind
    advisory_level: Optional[AdviceLevel] = None
    description: str = ""
    category: str = ""
    source: Optional[str] = None

    def __post_init__(self) -> None:
        # Accept plain strings from catalogs and tests
        try:
            shape = FactShape(self.fact_shape)
            kind = ResultKind(self.result_kind)
            level = (
                default_level(kind)
                if self.advisory_level is None
                else AdviceLevel(self.advisory_level)
            )
        except ValueError as exc:
            raise RuleLoadError(self.name, str(exc), self.source) from exc
        check_kind_and_level(self.name, kind, level, self.source)
        object.__setattr__(self, "fact_shape", shape)
        object.__setattr__(self, "result_kind", kind)
        object.__setattr__(self, "advisory_level", level)

    @property
    def key(self) -> tuple[FactShape, str]:
        """Names are unique per fact shape, not globally."""
        return (self.fact_shape, self.name)


# ---------------------------------------------------------------------------
# Result record
# ---------------------------------------------------------------------------


FLAT_FIELDS = ("kind", "rule_id", "advisory_level", "target", "message")


class ResultRecord(BaseModel):
    """A single violation, advice, or internal anomaly."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: ResultKind
    rule_id: str = Field(..., min_length=1)
    advisory_level: AdviceLevel
    target: str
    message: str
    context: dict[str, Any] = Field(default_factory=dict)
    signal_type: Optional[str] = None
    signal_name: Optional[str] = None

    @property
    def dedup_key(self) -> tuple[str, str, str]:
        return (self.rule_id, self.target, self.message)

    @property
    def is_violation(self) -> bool:
        return (
            self.kind != ResultKind.ADVICE
            and self.advisory_level == AdviceLevel.VIOLATION
        )

    def to_flat(self) -> dict[str, str]:
        """The five-field mapping consumed by formatters and CI gates."""
        return {
            "kind": self.kind.value,
            "rule_id": self.rule_id,
            "advisory_level": self.advisory_level.value,
            "target": self.target,
            "message": self.message,
        }


# ---------------------------------------------------------------------------
# Declarative rule descriptions
# ---------------------------------------------------------------------------


class RuleSpec(BaseModel):
    """Declarative description of one rule, as authored in a catalog file."""

    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., min_length=1, description="Rule id, unique per fact shape")
    fact_shape: FactShape
    result_kind: Literal["violation", "advice"] = "violation"
    advisory_level: Optional[AdviceLevel] = Field(
        None, description="Defaults to information for advice, violation otherwise"
    )
    for_each: Optional[Literal["group", "attribute"]] = Field(
        None, description="Bind each group or attribute (registry shapes only)"
    )
    over: Literal["candidate", "baseline"] = Field(
        "candidate", description="Which snapshot for_each iterates (pair shape only)"
    )
    variant: Optional[str] = Field(
        None, description="Sample variant the rule applies to (sample shape only)"
    )
    when: str = Field(..., min_length=1, description="Python expression predicate")
    target: str = Field(..., min_length=1, description="Format template for the target")
    message: str = Field(..., min_length=1, description="Format template for the message")
    description: str = ""
    category: str = ""

    @field_validator("when")
    @classmethod
    def _strip_when(cls, v: str) -> str:
        return v.strip()

    @model_validator(mode="after")
    def _resolve_level(self) -> "RuleSpec":
        kind = ResultKind(self.result_kind)
        if self.advisory_level is None:
            self.advisory_level = default_level(kind)
        # RuleLoadError is not a ValueError, so pydantic lets it propagate
        check_kind_and_level(self.name, kind, self.advisory_level)
        return self


class RuleCatalogSpec(BaseModel):
    """Root model of a rule catalog YAML file."""

    model_config = ConfigDict(extra="forbid")

    schema_version: str = Field("0.1.0", min_length=1)
    description: str = ""
    rules: list[RuleSpec] = Field(default_factory=list)
