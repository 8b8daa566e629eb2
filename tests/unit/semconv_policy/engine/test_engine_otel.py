"""Tests for OTel span event emission."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

from semconv_policy.engine import otel
from semconv_policy.engine.orchestrator import EvaluationResult, PolicyEngine
from semconv_policy.facts.registry import RegistrySnapshot
from semconv_policy.rules.catalog import RuleSet
from semconv_policy.rules.schema import Match, Rule
from semconv_policy.types import FactShape


def _recording_span():
    span = MagicMock()
    span.is_recording.return_value = True
    return span


def _events(span):
    return {c.kwargs["name"]: c.kwargs["attributes"] for c in span.add_event.call_args_list}


class TestAddSpanEvent:
    def test_noop_without_otel(self):
        with patch("semconv_policy.engine.otel.HAS_OTEL", False), \
             patch("semconv_policy.engine.otel.otel_trace") as mock_trace:
            otel.add_span_event("x", {"a": 1})
            mock_trace.get_current_span.assert_not_called()

    def test_noop_when_span_not_recording(self):
        span = MagicMock()
        span.is_recording.return_value = False
        with patch("semconv_policy.engine.otel.HAS_OTEL", True), \
             patch("semconv_policy.engine.otel.otel_trace") as mock_trace:
            mock_trace.get_current_span.return_value = span
            otel.add_span_event("x", {"a": 1})
        span.add_event.assert_not_called()

    def test_emits_on_recording_span(self):
        span = _recording_span()
        with patch("semconv_policy.engine.otel.HAS_OTEL", True), \
             patch("semconv_policy.engine.otel.otel_trace") as mock_trace:
            mock_trace.get_current_span.return_value = span
            otel.add_span_event("x", {"a": 1})
        span.add_event.assert_called_once_with(name="x", attributes={"a": 1})


class TestEngineEvents:
    def test_evaluation_events(self):
        def broken(registry):
            raise KeyError("missing")
            yield  # pragma: no cover

        def fine(registry):
            yield Match(target="t", message="m")

        ruleset = RuleSet([
            Rule("broken", FactShape.REGISTRY_SINGLE, "violation", predicate=broken),
            Rule("fine", FactShape.REGISTRY_SINGLE, "advice", predicate=fine,
                 advisory_level="information"),
        ])
        span = _recording_span()
        with patch("semconv_policy.engine.otel.HAS_OTEL", True), \
             patch("semconv_policy.engine.otel.otel_trace") as mock_trace:
            mock_trace.get_current_span.return_value = span
            engine = PolicyEngine(ruleset)
            engine.evaluate("registry-single", RegistrySnapshot())

        events = _events(span)
        assert events["policy.ruleset.loaded"]["policy.rules.total"] == 2
        assert events["policy.ruleset.loaded"]["policy.rules.registry-single"] == 2
        assert events["policy.ruleset.loaded"]["policy.rules.sample"] == 0
        assert events["policy.evaluation.anomaly"] == {
            "policy.rule_id": "broken",
            "policy.error_type": "KeyError",
            "policy.error_message": "'missing'",
        }
        complete = events["policy.evaluation.complete"]
        assert complete["policy.fact_shape"] == "registry-single"
        assert complete["policy.rules_evaluated"] == 2
        assert complete["policy.records"] == 2
        assert complete["policy.violations"] == 1
        assert complete["policy.passed"] is False

    def test_completion_event_for_clean_result(self):
        span = _recording_span()
        with patch("semconv_policy.engine.otel.HAS_OTEL", True), \
             patch("semconv_policy.engine.otel.otel_trace") as mock_trace:
            mock_trace.get_current_span.return_value = span
            otel.emit_evaluation_complete(EvaluationResult(fact_shape=FactShape.SAMPLE))
        assert _events(span)["policy.evaluation.complete"]["policy.passed"] is True
