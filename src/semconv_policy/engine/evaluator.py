"""
Predicate evaluator: run one rule against one fact instance.

The evaluator calls the rule's predicate with the arguments its fact shape
prescribes, drains every match (never stopping at the first), and stamps
each match with the rule's metadata to produce ``ResultRecord`` values.

A predicate that raises is not caught here: the orchestrator owns the
anomaly policy.  Because matches are collected into a list before anything
is returned, a failing rule never contributes a partial result.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from semconv_policy.facts.sample import RegistryContext, Sample
from semconv_policy.rules.schema import Match, ResultRecord, Rule
from semconv_policy.types import FactShape

logger = logging.getLogger(__name__)


def to_record(rule: Rule, match: Match, sample: Optional[Sample] = None) -> ResultRecord:
    """Build a result record from a rule and one of its matches."""
    signal_type = match.signal_type
    signal_name = match.signal_name
    if sample is not None:
        signal_type = signal_type or sample.signal_type
        signal_name = signal_name or sample.signal_name
    return ResultRecord(
        kind=rule.result_kind,
        rule_id=rule.name,
        advisory_level=match.level or rule.advisory_level,
        target=match.target,
        message=match.message,
        context=dict(match.context),
        signal_type=signal_type,
        signal_name=signal_name,
    )


def evaluate_rule(rule: Rule, facts: tuple[Any, ...]) -> list[ResultRecord]:
    """Every record *rule* produces for *facts*.

    Args:
        rule: The rule to run.
        facts: Positional predicate arguments for the rule's shape:
            ``(baseline, candidate)``, ``(registry,)`` or
            ``(sample, context)``.

    Raises:
        Exception: Whatever the predicate raises, unchanged.
    """
    sample: Optional[Sample] = None
    if rule.fact_shape == FactShape.SAMPLE:
        sample = facts[0]
        context = facts[1] if len(facts) > 1 and facts[1] is not None else RegistryContext()
        facts = (sample, context)

    records = [to_record(rule, match, sample) for match in rule.predicate(*facts)]
    if records:
        logger.debug("Rule %s produced %d record(s)", rule.name, len(records))
    return records
