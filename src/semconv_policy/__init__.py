"""
semconv-policy - rule evaluation engine for semantic-convention registries
and live telemetry samples.

Rules are checked against three fact shapes: a baseline/candidate registry
pair, a single registry, or one telemetry sample with its registry context.
Every matching rule contributes records; nothing stops at the first match.

Example:
    from semconv_policy import PolicyEngine, RegistrySnapshot

    engine = PolicyEngine()
    report = engine.check_registry(candidate, baseline=baseline)
    for record in report.records:
        print(record.to_flat())
"""

__version__ = "0.3.0"

from semconv_policy.engine import EvaluationResult, PolicyEngine, PolicyReport
from semconv_policy.errors import FactShapeMismatch, PredicateEvaluationError, RuleLoadError
from semconv_policy.facts import (
    Attribute,
    Group,
    RegistryContext,
    RegistrySnapshot,
    Sample,
)
from semconv_policy.rules import Match, ResultRecord, Rule, RuleSet, RuleSpec, builtin_rules, load
from semconv_policy.types import AdviceLevel, FactShape, ResultKind

__all__ = [
    "AdviceLevel",
    "Attribute",
    "EvaluationResult",
    "FactShape",
    "FactShapeMismatch",
    "Group",
    "Match",
    "PolicyEngine",
    "PolicyReport",
    "PredicateEvaluationError",
    "RegistryContext",
    "RegistrySnapshot",
    "ResultKind",
    "ResultRecord",
    "Rule",
    "RuleLoadError",
    "RuleSet",
    "RuleSpec",
    "Sample",
    "__version__",
    "builtin_rules",
    "load",
]
