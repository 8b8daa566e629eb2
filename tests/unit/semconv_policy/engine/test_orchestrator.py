"""Tests for the evaluation orchestrator (PolicyEngine)."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor

import pytest

from semconv_policy.config import PolicyConfig
from semconv_policy.engine.orchestrator import EvaluationResult, PolicyEngine
from semconv_policy.errors import FactShapeMismatch
from semconv_policy.facts.registry import RegistrySnapshot
from semconv_policy.facts.sample import (
    RegistryContext,
    Sample,
    SampleAttribute,
    SampleLog,
    SampleNumberDataPoint,
    SampleSpan,
    SpanStatus,
)
from semconv_policy.rules.catalog import RuleSet
from semconv_policy.rules.schema import Match, Rule
from semconv_policy.types import AdviceLevel, FactShape, ResultKind


@pytest.fixture
def engine():
    return PolicyEngine(config=PolicyConfig())


def single_rule(name, predicate, **kwargs):
    return Rule(name=name, fact_shape=FactShape.REGISTRY_SINGLE,
                result_kind=ResultKind.VIOLATION, predicate=predicate, **kwargs)


# ---------------------------------------------------------------------------
# Behaviour of the builtin catalog on representative facts
# ---------------------------------------------------------------------------


class TestBuiltinScenarios:
    def test_removed_attribute(self, engine, build_registry, registry_db):
        baseline = build_registry(registry_db)
        candidate = build_registry({"id": "registry.db", "type": "attribute_group", "attributes": []})

        result = engine.evaluate("registry-pair", (baseline, candidate))

        assert [r.to_flat() for r in result] == [{
            "kind": "violation",
            "rule_id": "attr_removed",
            "advisory_level": "violation",
            "target": "db.user",
            "message": result.records[0].message,
        }]
        assert "db.user" in result.records[0].message
        assert not result.passed

    def test_deprecated_but_not_marked(self, engine, build_registry):
        registry = build_registry({"id": "registry.db", "attributes": [
            {"id": "db.legacy", "type": "string", "stability": "experimental", "deprecated": True},
        ]})

        result = engine.evaluate(FactShape.REGISTRY_SINGLE, registry)

        assert [(r.rule_id, r.target) for r in result] == [("attr_stability_deprecated", "db.legacy")]

    def test_name_grammar(self, engine):
        bad = engine.evaluate("sample", Sample(attribute=SampleAttribute(name="1foo.bar")))
        good = engine.evaluate("sample", Sample(attribute=SampleAttribute(name="foo.1bar")))

        assert [r.rule_id for r in bad] == ["invalid_format"]
        assert good.records == []

    def test_empty_log_body(self, engine):
        result = engine.evaluate("sample", Sample(log=SampleLog(event_name="", body="")))

        assert [(r.rule_id, r.target, r.kind) for r in result] == [
            ("empty_body", "log.body", ResultKind.VIOLATION)
        ]

    def test_fractional_value_in_byte_unit(self, engine):
        point = Sample(metric_number_data_point=SampleNumberDataPoint(value=2.5))

        by_result = engine.evaluate("sample", (point, RegistryContext(unit="By")))
        s_result = engine.evaluate("sample", (point, RegistryContext(unit="s")))

        assert [r.rule_id for r in by_result] == ["invalid_data_point_value"]
        assert by_result.records[0].advisory_level == AdviceLevel.VIOLATION
        assert s_result.records == []


# ---------------------------------------------------------------------------
# Evaluation contract
# ---------------------------------------------------------------------------


class TestEvaluationContract:
    def test_all_rules_run_without_fail_fast(self):
        def first(registry):
            yield Match(target="a", message="first")

        def second(registry):
            yield Match(target="b", message="second")
            yield Match(target="c", message="second")

        engine = PolicyEngine(RuleSet([single_rule("r1", first), single_rule("r2", second)]))
        result = engine.evaluate("registry-single", _empty_registry())

        assert [(r.rule_id, r.target) for r in result] == [("r1", "a"), ("r2", "b"), ("r2", "c")]
        assert result.rules_evaluated == 2

    def test_duplicates_collapse_to_first(self):
        def noisy(registry):
            yield Match(target="x", message="same", context={"n": 1})
            yield Match(target="x", message="same", context={"n": 2})

        def echo(registry):
            yield Match(target="x", message="same")

        engine = PolicyEngine(RuleSet([single_rule("noisy", noisy), single_rule("echo", echo)]))
        result = engine.evaluate("registry-single", _empty_registry())

        assert [(r.rule_id, r.context) for r in result] == [("noisy", {"n": 1}), ("echo", {})]

    def test_repeat_evaluation_is_identical(self, engine, http_registry):
        first = engine.evaluate("registry-single", http_registry)
        second = engine.evaluate("registry-single", http_registry)
        assert first.records == second.records

    def test_repeat_report_renders_identically(self, engine, http_registry, build_registry):
        baseline = build_registry({"id": "registry.http", "attributes": [
            {"id": "http.route", "type": "string", "stability": "stable"},
            {"id": "http.flavor", "type": "string", "stability": "stable"},
        ]})
        first = engine.check_registry(http_registry, baseline).render_json()
        second = engine.check_registry(http_registry, baseline).render_json()
        assert first == second
        assert '"attr_removed"' in first

    def test_shared_engine_across_threads(self, build_registry):
        def registries():
            return [
                build_registry({"id": f"registry.ns{i}", "attributes": [
                    {"id": f"ns{i}.name", "type": "string", "stability": "stable"},
                    {"id": f"ns{i}.Bad", "type": "string", "stability": "experimental"},
                    {"id": f"ns{i}.old", "type": "string", "stability": "deprecated"},
                    {"id": f"ns{i}.name.first", "type": "string", "stability": "stable"},
                ]})
                for i in range(8)
            ]

        engine = PolicyEngine(config=PolicyConfig())
        serial = [engine.evaluate("registry-single", r).records for r in registries()]

        # Fresh snapshots so every lazily built index is first built under contention
        fresh = registries()
        with ThreadPoolExecutor(max_workers=8) as pool:
            parallel = list(pool.map(
                lambda r: engine.evaluate("registry-single", r).records, fresh * 4
            ))

        assert all(records for records in serial)
        assert parallel == serial * 4

    def test_match_level_overrides_rule_level(self):
        def mixed(registry):
            yield Match(target="a", message="m", level=AdviceLevel.INFORMATION)

        rule = single_rule("mixed", mixed, advisory_level=AdviceLevel.VIOLATION)
        result = PolicyEngine(RuleSet([rule])).evaluate("registry-single", _empty_registry())

        assert result.records[0].advisory_level == AdviceLevel.INFORMATION
        assert result.passed

    def test_sample_order_is_rule_then_walk(self, engine):
        span = Sample(span=SampleSpan(
            name="checkout",
            status=SpanStatus(code="error", message="test failed"),
            attributes=(SampleAttribute(name="route"), SampleAttribute(name="app.test.flag")),
        ))

        result = engine.evaluate("sample", span)

        assert [(r.rule_id, r.target) for r in result] == [
            ("missing_namespace", "route"),
            ("contains_test", "app.test.flag"),
            ("contains_test_in_status", "span.status.message"),
        ]
        assert result.subject is span
        assert result.records[-1].signal_type == "span"
        assert result.records[-1].signal_name == "checkout"

    def test_mapping_facts(self, engine, build_registry, registry_db):
        baseline = build_registry(registry_db)
        result = engine.evaluate("registry-pair", {"baseline": baseline, "candidate": build_registry()})
        assert [r.target for r in result] == ["db.user"]


# ---------------------------------------------------------------------------
# Anomalies
# ---------------------------------------------------------------------------


class TestAnomalies:
    def test_raising_rule_becomes_internal_record(self, caplog):
        def broken(registry):
            yield Match(target="partial", message="never kept")
            raise RuntimeError("boom")

        def healthy(registry):
            yield Match(target="ok", message="still runs")

        engine = PolicyEngine(RuleSet([single_rule("broken", broken), single_rule("healthy", healthy)]))
        with caplog.at_level(logging.WARNING, logger="semconv_policy"):
            result = engine.evaluate("registry-single", _empty_registry())

        internal, after = result.records
        assert internal.kind == ResultKind.INTERNAL
        assert internal.rule_id == "broken"
        assert internal.advisory_level == AdviceLevel.VIOLATION
        assert internal.target == "registry-single"
        assert "RuntimeError: boom" in internal.message
        assert after.rule_id == "healthy"
        assert "broken" in caplog.text

    def test_duplicate_group_ids(self, engine, build_registry):
        registry = build_registry(
            {"id": "registry.a", "attributes": [{"id": "a.b"}]},
            {"id": "registry.a", "attributes": [{"id": "a.c"}]},
        )

        result = engine.evaluate("registry-single", registry)

        internal = [r for r in result if r.kind == ResultKind.INTERNAL]
        assert [r.rule_id for r in internal] == [
            "attr_id_duplicated",
            "attr_constant_name_collision",
            "attr_namespace_collision",
        ]
        assert all(r.context["error_type"] == "PredicateEvaluationError" for r in internal)
        assert not result.passed

    def test_no_rules_for_shape_warns(self):
        engine = PolicyEngine(RuleSet([]))
        with pytest.warns(FactShapeMismatch, match="no rule is loaded"):
            result = engine.evaluate("sample", Sample(log=SampleLog()))
        assert result.records == []
        assert len(result.warnings) == 1

    def test_mismatched_facts_warn(self, engine, http_registry):
        with pytest.warns(FactShapeMismatch, match="do not match"):
            result = engine.evaluate("registry-pair", http_registry)
        assert result.records == []
        assert result.rules_evaluated == 0

    def test_unknown_shape_raises(self, engine):
        with pytest.raises(ValueError):
            engine.evaluate("trace", None)


# ---------------------------------------------------------------------------
# Configuration and conveniences
# ---------------------------------------------------------------------------


class TestConfiguredEngine:
    def test_builtins_can_be_disabled(self):
        engine = PolicyEngine(config=PolicyConfig(include_builtin_rules=False))
        assert len(engine.ruleset) == 0

    def test_rules_paths_loaded_after_builtins(self, tmp_path):
        path = tmp_path / "extra.yaml"
        path.write_text(
            "rules:\n"
            "  - name: registry_empty\n"
            "    fact_shape: registry-single\n"
            "    when: len(registry.groups) == 0\n"
            "    target: registry\n"
            "    message: Registry has no groups.\n"
        )
        engine = PolicyEngine(config=PolicyConfig(rules_paths=[str(path)]))
        assert engine.ruleset.names("registry-single")[-1] == "registry_empty"
        assert [r.rule_id for r in engine.evaluate("registry-single", _empty_registry())] == [
            "registry_empty"
        ]

    def test_configured_banned_word(self):
        engine = PolicyEngine(config=PolicyConfig(banned_word="tmp"))
        result = engine.evaluate("sample", Sample(attribute=SampleAttribute(name="app.tmp.flag")))
        assert [r.rule_id for r in result] == ["contains_test"]

    def test_check_registry_runs_both_shapes(self, engine, build_registry, registry_db):
        baseline = build_registry(registry_db)
        report = engine.check_registry(build_registry(), baseline=baseline)

        assert [r.fact_shape for r in report.results] == [
            FactShape.REGISTRY_SINGLE,
            FactShape.REGISTRY_PAIR,
        ]
        assert report.exit_code == 1

    def test_check_registry_without_baseline(self, engine, http_registry):
        report = engine.check_registry(http_registry)
        assert len(report.results) == 1
        assert report.exit_code == 0

    def test_advise_resolves_context(self, engine, http_registry):
        samples = [
            Sample(attribute=SampleAttribute(name="http.route", value="/")),
            Sample(log=SampleLog(event_name="session.start", body="bye")),
        ]
        report = engine.advise(samples, registry=http_registry)

        assert [r.rule_id for r in report.records] == ["not_stable", "required_phrase_missing"]
        assert report.exit_code == 1

    def test_advise_unit_override(self, engine):
        point = Sample(metric_number_data_point=SampleNumberDataPoint(value=0.5))
        report = engine.advise(point, unit="bit")
        assert [r.rule_id for r in report.records] == ["invalid_data_point_value"]

    def test_fail_on_improvement(self, http_registry):
        sample = Sample(attribute=SampleAttribute(name="http.route", value="/"))
        lenient = PolicyEngine(config=PolicyConfig()).advise(sample, registry=http_registry)
        strict = PolicyEngine(config=PolicyConfig(fail_on_improvement=True)).advise(
            sample, registry=http_registry
        )
        assert lenient.exit_code == 0
        assert strict.exit_code == 1


def test_evaluation_result_views():
    result = EvaluationResult(fact_shape=FactShape.SAMPLE)
    assert result.passed
    assert len(result) == 0
    assert result.by_rule("anything") == []


def _empty_registry():
    return RegistrySnapshot()
