"""
Core type enums for the policy engine.

Centralised so the fact model, rule catalog, evaluator, and reporter all
agree on the same vocabulary.  Every enum is a ``str`` enum, so values
compare equal to their plain-string form as they appear in YAML/JSON.

Example:
    from semconv_policy.types import FactShape, AdviceLevel

    shape = FactShape("registry-pair")
    assert AdviceLevel("violation") is AdviceLevel.VIOLATION
"""

from __future__ import annotations

from enum import Enum


class FactShape(str, Enum):
    """Structural type a rule is written against."""

    REGISTRY_PAIR = "registry-pair"
    REGISTRY_SINGLE = "registry-single"
    SAMPLE = "sample"


class ResultKind(str, Enum):
    """Declared result kind of a rule, and the kind of each record."""

    VIOLATION = "violation"
    ADVICE = "advice"
    # Only produced by the orchestrator when a predicate cannot run.
    INTERNAL = "internal"


class AdviceLevel(str, Enum):
    """Severity of a single result record."""

    INFORMATION = "information"
    IMPROVEMENT = "improvement"
    VIOLATION = "violation"


class Stability(str, Enum):
    """Stability levels accepted on attributes and groups."""

    STABLE = "stable"
    EXPERIMENTAL = "experimental"
    DEPRECATED = "deprecated"
    DEVELOPMENT = "development"
    ALPHA = "alpha"
    BETA = "beta"
    RELEASE_CANDIDATE = "release_candidate"


class GroupKind(str, Enum):
    """Well-known group kinds.  Groups accept other kinds as plain strings."""

    REGISTRY = "registry"
    ATTRIBUTE_GROUP = "attribute_group"
    METRIC = "metric"
    METRIC_GROUP = "metric_group"
    SPAN = "span"
    EVENT = "event"
    RESOURCE = "resource"
    SCOPE = "scope"
    ENTITY = "entity"


class SampleKind(str, Enum):
    """The closed set of telemetry sample variants."""

    ATTRIBUTE = "attribute"
    SPAN = "span"
    SPAN_EVENT = "span_event"
    LOG = "log"
    METRIC_NUMBER_DATA_POINT = "metric_number_data_point"
    EXEMPLAR = "exemplar"
    RESOURCE = "resource"


FACT_SHAPE_VALUES = [s.value for s in FactShape]
SAMPLE_KIND_VALUES = [k.value for k in SampleKind]
