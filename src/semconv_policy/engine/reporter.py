"""
Result reporter and CI gate.

Normalises evaluation output for its consumers:

- ``to_flat()`` mappings ``{kind, rule_id, advisory_level, target, message}``
- a text or JSON rendering for the command line
- an exit code: 0 unless a violation-level record exists

``advice`` records (information, improvement) never fail the gate unless
``fail_on_improvement`` is set, in which case improvement-level advice does.
``internal`` records carry the violation level and always fail it.

Usage::

    report = engine.check_registry(candidate, baseline=baseline)
    click.echo(report.render_text())
    sys.exit(report.exit_code)
"""

from __future__ import annotations

import json
import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Iterable

from semconv_policy.rules.schema import ResultRecord
from semconv_policy.types import AdviceLevel, ResultKind

if TYPE_CHECKING:
    from semconv_policy.engine.orchestrator import EvaluationResult

logger = logging.getLogger(__name__)


def is_failing(record: ResultRecord, fail_on_improvement: bool = False) -> bool:
    if record.is_violation:
        return True
    return fail_on_improvement and record.advisory_level == AdviceLevel.IMPROVEMENT


def exit_code(records: Iterable[ResultRecord], fail_on_improvement: bool = False) -> int:
    """CI exit status for *records*: 1 if any record fails the gate, else 0."""
    return 1 if any(is_failing(r, fail_on_improvement) for r in records) else 0


def flatten(records: Iterable[ResultRecord]) -> list[dict[str, str]]:
    return [r.to_flat() for r in records]


@dataclass
class PolicyReport:
    """Records from one or more evaluations, ready for output."""

    results: list["EvaluationResult"] = field(default_factory=list)
    fail_on_improvement: bool = False

    @property
    def records(self) -> list[ResultRecord]:
        return [record for result in self.results for record in result.records]

    @property
    def warnings(self) -> list[str]:
        return [w for result in self.results for w in result.warnings]

    @property
    def failures(self) -> list[ResultRecord]:
        return [r for r in self.records if is_failing(r, self.fail_on_improvement)]

    @property
    def passed(self) -> bool:
        return not self.failures

    @property
    def exit_code(self) -> int:
        code = exit_code(self.records, self.fail_on_improvement)
        if code:
            logger.warning(
                "Policy gate FAILED: %d failing record(s) of %d",
                len(self.failures),
                len(self.records),
            )
        return code

    def level_counts(self) -> dict[str, int]:
        counts = Counter(r.advisory_level.value for r in self.records)
        return {level.value: counts.get(level.value, 0) for level in AdviceLevel}

    def rule_counts(self) -> dict[str, int]:
        return dict(Counter(r.rule_id for r in self.records))

    def summary(self) -> str:
        levels = self.level_counts()
        internal = sum(1 for r in self.records if r.kind == ResultKind.INTERNAL)
        status = "PASSED" if self.passed else "FAILED"
        text = (
            f"Policy check: {status} "
            f"({len(self.records)} records: {levels['violation']} violations, "
            f"{levels['improvement']} improvements, {levels['information']} information"
        )
        if internal:
            text += f", {internal} internal"
        return text + ")"

    def to_dict(self) -> dict[str, Any]:
        results = []
        for result in self.results:
            entry: dict[str, Any] = {
                "fact_shape": result.fact_shape.value,
                "rules_evaluated": result.rules_evaluated,
                "records": flatten(result.records),
            }
            if result.subject is not None:
                entry["sample"] = result.subject.model_dump(mode="json", exclude_none=True)
            results.append(entry)
        return {
            "passed": self.passed,
            "exit_code": exit_code(self.records, self.fail_on_improvement),
            "total": len(self.records),
            "levels": self.level_counts(),
            "rules": self.rule_counts(),
            "warnings": self.warnings,
            "results": results,
        }

    def render_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2)

    def render_text(self) -> str:
        lines = [self.summary()]
        for warning in self.warnings:
            lines.append(f"  WARNING  {warning}")
        for record in self.records:
            lines.append(
                f"  {record.advisory_level.value.upper():<12} "
                f"{record.rule_id:<30} {record.target}: {record.message}"
            )
        return "\n".join(lines)

    def render(self, output_format: str = "text") -> str:
        if output_format == "json":
            return self.render_json()
        return self.render_text()
