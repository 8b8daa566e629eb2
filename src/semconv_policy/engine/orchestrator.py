"""
Evaluation orchestrator.

``PolicyEngine.evaluate(fact_shape, facts)`` runs every loaded rule bound to
*fact_shape* against *facts* and returns all records they produce:

- no fail-fast: every selected rule runs regardless of earlier results
- records are deduplicated on ``(rule_id, target, message)``, first wins
- order is rule registration order, then fact iteration order
- a rule that raises becomes one ``internal`` record; evaluation goes on

The engine holds no per-call state.  Once constructed it can be shared by
any number of threads evaluating independent facts.

Usage::

    from semconv_policy.engine import PolicyEngine

    engine = PolicyEngine()
    result = engine.evaluate("registry-pair", (baseline, candidate))
    for record in result:
        print(record.rule_id, record.target, record.message)

    report = engine.check_registry(candidate, baseline=baseline)
    sys.exit(report.exit_code)
"""

from __future__ import annotations

import logging
import warnings
from dataclasses import dataclass, field
from typing import Any, Iterable, Iterator, Mapping, Optional, Sequence, Union

from semconv_policy.config import PolicyConfig, get_config
from semconv_policy.engine.evaluator import evaluate_rule
from semconv_policy.engine.otel import (
    emit_evaluation_anomaly,
    emit_evaluation_complete,
    emit_ruleset_loaded,
)
from semconv_policy.engine.reporter import PolicyReport
from semconv_policy.errors import FactShapeMismatch
from semconv_policy.facts.registry import Group, RegistrySnapshot
from semconv_policy.facts.sample import RegistryContext, Sample
from semconv_policy.rules.catalog import RuleSet, builtin_rules, load
from semconv_policy.rules.schema import ResultRecord, Rule
from semconv_policy.types import AdviceLevel, FactShape, ResultKind

logger = logging.getLogger(__name__)


@dataclass
class EvaluationResult:
    """Ordered, deduplicated records from one ``evaluate`` call."""

    fact_shape: FactShape
    records: list[ResultRecord] = field(default_factory=list)
    rules_evaluated: int = 0
    warnings: list[str] = field(default_factory=list)
    subject: Optional[Sample] = None

    def __iter__(self) -> Iterator[ResultRecord]:
        return iter(self.records)

    def __len__(self) -> int:
        return len(self.records)

    @property
    def violations(self) -> list[ResultRecord]:
        return [r for r in self.records if r.is_violation]

    @property
    def advice(self) -> list[ResultRecord]:
        return [r for r in self.records if not r.is_violation]

    @property
    def passed(self) -> bool:
        return not self.violations

    def by_rule(self, rule_id: str) -> list[ResultRecord]:
        return [r for r in self.records if r.rule_id == rule_id]


def _internal_record(rule: Rule, error: BaseException) -> ResultRecord:
    return ResultRecord(
        kind=ResultKind.INTERNAL,
        rule_id=rule.name,
        advisory_level=AdviceLevel.VIOLATION,
        target=rule.fact_shape.value,
        message=f"Rule '{rule.name}' could not be evaluated: {type(error).__name__}: {error}",
        context={"error_type": type(error).__name__},
    )


def _normalize_facts(shape: FactShape, facts: Any) -> Optional[tuple[Any, ...]]:
    """Positional predicate arguments for *shape*, or ``None`` on mismatch."""
    if shape == FactShape.REGISTRY_PAIR:
        if isinstance(facts, Mapping):
            facts = (facts.get("baseline"), facts.get("candidate"))
        if (
            isinstance(facts, (tuple, list))
            and len(facts) == 2
            and all(isinstance(f, RegistrySnapshot) for f in facts)
        ):
            return tuple(facts)
        return None

    if shape == FactShape.REGISTRY_SINGLE:
        if isinstance(facts, Mapping):
            facts = facts.get("registry")
        if isinstance(facts, (tuple, list)) and len(facts) == 1:
            facts = facts[0]
        return (facts,) if isinstance(facts, RegistrySnapshot) else None

    if isinstance(facts, Mapping):
        facts = (facts.get("sample"), facts.get("context"))
    if isinstance(facts, Sample):
        facts = (facts, None)
    if isinstance(facts, (tuple, list)) and len(facts) == 2 and isinstance(facts[0], Sample):
        context = facts[1]
        if context is None:
            context = RegistryContext()
        if isinstance(context, RegistryContext):
            return (facts[0], context)
    return None


class PolicyEngine:
    """Runs a loaded ``RuleSet`` against registry or sample facts."""

    def __init__(
        self,
        ruleset: Optional[RuleSet] = None,
        config: Optional[PolicyConfig] = None,
    ) -> None:
        """Initialise the engine.

        Args:
            ruleset: Pre-loaded rules.  When omitted the rule set is built
                from the configuration: builtin rules (unless disabled)
                followed by every ``rules_paths`` catalog.
            config: Settings; defaults to ``get_config()``.

        Raises:
            RuleLoadError: If the configured catalog cannot be loaded.
        """
        self._config = config or get_config()
        if ruleset is None:
            ruleset = self._load_configured_rules()
        self._ruleset = ruleset
        emit_ruleset_loaded(ruleset)

    def _load_configured_rules(self) -> RuleSet:
        sources: list[Any] = []
        if self._config.include_builtin_rules:
            sources.extend(
                builtin_rules(self._config.banned_word, self._config.integral_units)
            )
        sources.extend(self._config.get_rules_paths())
        return load(sources)

    @property
    def ruleset(self) -> RuleSet:
        return self._ruleset

    @property
    def config(self) -> PolicyConfig:
        return self._config

    # ------------------------------------------------------------------
    # Core contract
    # ------------------------------------------------------------------

    def evaluate(self, fact_shape: Union[FactShape, str], facts: Any) -> EvaluationResult:
        """Run every rule bound to *fact_shape* against *facts*.

        Args:
            fact_shape: ``registry-pair``, ``registry-single`` or ``sample``.
            facts: ``(baseline, candidate)`` for pairs, a snapshot for
                single registries, and a ``Sample`` or
                ``(Sample, RegistryContext | None)`` for samples.  Mappings
                keyed by those parameter names are accepted too.

        Returns:
            The evaluation result.  Never raises for problems found while
            evaluating; those become ``internal`` records or warnings.
        """
        shape = FactShape(fact_shape)
        result = EvaluationResult(fact_shape=shape)
        rules = self._ruleset.for_shape(shape)

        if not rules:
            self._warn(result, f"no rule is loaded for fact shape '{shape.value}'")
            return result

        args = _normalize_facts(shape, facts)
        if args is None:
            self._warn(
                result,
                f"facts of type {type(facts).__name__} do not match fact shape '{shape.value}'",
            )
            return result

        if shape == FactShape.SAMPLE:
            result.subject = args[0]
            fact_instances = [(s, args[1]) for s in args[0].walk()]
        else:
            fact_instances = [args]

        seen: set[tuple[str, str, str]] = set()
        for rule in rules:
            result.rules_evaluated += 1
            for instance in fact_instances:
                for record in self._run(rule, instance):
                    if record.dedup_key in seen:
                        continue
                    seen.add(record.dedup_key)
                    result.records.append(record)

        emit_evaluation_complete(result)
        return result

    def _run(self, rule: Rule, facts: tuple[Any, ...]) -> list[ResultRecord]:
        try:
            return evaluate_rule(rule, facts)
        except Exception as exc:
            logger.warning(
                "Rule %s failed during evaluation; reporting an internal record",
                rule.name,
                exc_info=True,
            )
            emit_evaluation_anomaly(rule.name, exc)
            return [_internal_record(rule, exc)]

    def _warn(self, result: EvaluationResult, message: str) -> None:
        warnings.warn(message, FactShapeMismatch, stacklevel=3)
        logger.warning("Fact shape mismatch: %s", message)
        result.warnings.append(message)

    # ------------------------------------------------------------------
    # Conveniences
    # ------------------------------------------------------------------

    def check_registry(
        self,
        candidate: RegistrySnapshot,
        baseline: Optional[RegistrySnapshot] = None,
    ) -> PolicyReport:
        """Single-registry rules on *candidate*, then pair rules if *baseline* is given."""
        results = [self.evaluate(FactShape.REGISTRY_SINGLE, candidate)]
        if baseline is not None:
            results.append(self.evaluate(FactShape.REGISTRY_PAIR, (baseline, candidate)))
        return self.report(results)

    def advise(
        self,
        samples: Union[Sample, Iterable[Sample]],
        registry: Optional[RegistrySnapshot] = None,
        group: Optional[Group] = None,
        unit: Optional[str] = None,
    ) -> PolicyReport:
        """Sample rules for each sample, with context resolved from *registry*."""
        if isinstance(samples, Sample):
            samples = [samples]
        results = []
        for sample in samples:
            context = RegistryContext.for_sample(sample, registry, group)
            if unit is not None:
                context = context.model_copy(update={"unit": unit})
            results.append(self.evaluate(FactShape.SAMPLE, (sample, context)))
        return self.report(results)

    def report(self, results: Sequence[EvaluationResult]) -> PolicyReport:
        return PolicyReport(
            results=list(results),
            fail_on_improvement=self._config.fail_on_improvement,
        )
