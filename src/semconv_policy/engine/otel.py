"""
OTel span event emission for rule loading and evaluation.

Every function degrades to logging only when OpenTelemetry is not
installed or the current span is not recording.

Usage::

    from semconv_policy.engine.otel import emit_evaluation_complete

    emit_evaluation_complete(result)
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

try:
    from opentelemetry import trace as otel_trace

    HAS_OTEL = True
except ImportError:  # pragma: no cover
    HAS_OTEL = False

from semconv_policy.types import FactShape

if TYPE_CHECKING:
    from semconv_policy.engine.orchestrator import EvaluationResult
    from semconv_policy.rules.catalog import RuleSet

logger = logging.getLogger(__name__)


def add_span_event(name: str, attributes: dict[str, str | int | float | bool]) -> None:
    """Add an event to the current span if one is recording."""
    if not HAS_OTEL:
        return
    span = otel_trace.get_current_span()
    if span and span.is_recording():
        span.add_event(name=name, attributes=attributes)


def emit_ruleset_loaded(ruleset: "RuleSet") -> None:
    """Event name: ``policy.ruleset.loaded``"""
    attrs: dict[str, str | int | float | bool] = {"policy.rules.total": len(ruleset)}
    for shape in FactShape:
        attrs[f"policy.rules.{shape.value}"] = len(ruleset.for_shape(shape))

    logger.debug("Rule set loaded: %r", ruleset)
    add_span_event("policy.ruleset.loaded", attrs)


def emit_evaluation_complete(result: "EvaluationResult") -> None:
    """Event name: ``policy.evaluation.complete``"""
    attrs: dict[str, str | int | float | bool] = {
        "policy.fact_shape": result.fact_shape.value,
        "policy.rules_evaluated": result.rules_evaluated,
        "policy.records": len(result.records),
        "policy.violations": len(result.violations),
        "policy.passed": result.passed,
    }

    if result.passed:
        logger.debug(
            "Policy evaluation passed: shape=%s rules=%d records=%d",
            result.fact_shape.value,
            result.rules_evaluated,
            len(result.records),
        )
    else:
        logger.debug(
            "Policy evaluation found violations: shape=%s rules=%d violations=%d",
            result.fact_shape.value,
            result.rules_evaluated,
            len(result.violations),
        )

    add_span_event("policy.evaluation.complete", attrs)


def emit_evaluation_anomaly(rule_id: str, error: BaseException) -> None:
    """Event name: ``policy.evaluation.anomaly``"""
    attrs: dict[str, str | int | float | bool] = {
        "policy.rule_id": rule_id,
        "policy.error_type": type(error).__name__,
        "policy.error_message": str(error),
    }
    add_span_event("policy.evaluation.anomaly", attrs)
