"""
Rule registry: load rule catalogs into an immutable ``RuleSet``.

A ``RuleSet`` is built once per process and then shared read-only by every
evaluation.  ``load()`` accepts any mix of sources:

- ``Rule`` values (in-process plug-ins)
- ``RuleSpec`` / ``RuleCatalogSpec`` models
- paths to YAML catalog files (``rules:`` list of rule descriptions)

Loading is all-or-nothing.  Any bad rule raises ``RuleLoadError`` naming
the rule and its source, and no ``RuleSet`` is produced.  That covers
malformed catalog entries and duplicate names within one fact shape as
well as rules that fail static analysis.

Usage::

    from semconv_policy.rules.catalog import builtin_rules, load

    ruleset = load([*builtin_rules(), "policies/extra.yaml"])
    for rule in ruleset.for_shape("registry-pair"):
        print(rule.name)
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Iterable, Iterator, Optional, Union

from pydantic import ValidationError

from semconv_policy._loader_base import BaseDocumentLoader
from semconv_policy.errors import RuleLoadError
from semconv_policy.rules.expressions import compile_rule
from semconv_policy.rules.registry_rules import registry_rules
from semconv_policy.rules.sample_rules import (
    DEFAULT_BANNED_WORD,
    DEFAULT_INTEGRAL_UNITS,
    sample_rules,
)
from semconv_policy.rules.schema import Rule, RuleCatalogSpec, RuleSpec
from semconv_policy.types import FactShape

logger = logging.getLogger(__name__)

RuleSource = Union[Rule, RuleSpec, RuleCatalogSpec, str, Path]


def _validate_entry(entry: Any, index: int, origin: str) -> RuleSpec:
    name = f"rules[{index}]"
    if isinstance(entry, dict) and isinstance(entry.get("name"), str) and entry["name"]:
        name = entry["name"]
    try:
        return RuleSpec.model_validate(entry)
    except ValidationError as exc:
        reason = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'rule'}: {err['msg']}"
            for err in exc.errors()
        )
        raise RuleLoadError(name, reason, origin) from exc
    except RuleLoadError as exc:
        raise RuleLoadError(name, exc.reason, origin) from exc


class RuleCatalogLoader(BaseDocumentLoader[RuleCatalogSpec]):
    """Loads a declarative rule catalog YAML file."""

    _model_class = RuleCatalogSpec

    def _validate(self, raw: Any, origin: str) -> RuleCatalogSpec:
        # Validate entries one by one so a bad rule is reported by name
        if isinstance(raw, dict) and isinstance(raw.get("rules"), list):
            raw = {
                **raw,
                "rules": [
                    _validate_entry(entry, index, origin)
                    for index, entry in enumerate(raw["rules"])
                ],
            }
        return super()._validate(raw, origin)

    def _log_loaded(self, document: RuleCatalogSpec, key: str) -> None:
        self._logger.debug(
            "Loaded rule catalog: rules=%d source=%s", len(document.rules), key
        )


class RuleSet:
    """Immutable, ordered collection of rules grouped by fact shape."""

    __slots__ = ("_rules", "_by_shape")

    def __init__(self, rules: Iterable[Rule]) -> None:
        ordered = tuple(rules)
        by_shape: dict[FactShape, list[Rule]] = {shape: [] for shape in FactShape}
        seen: set[tuple[FactShape, str]] = set()
        for rule in ordered:
            if rule.key in seen:
                raise RuleLoadError(
                    rule.name,
                    f"duplicate rule name for fact shape '{rule.fact_shape.value}'",
                    rule.source,
                )
            seen.add(rule.key)
            by_shape[rule.fact_shape].append(rule)
        self._rules = ordered
        self._by_shape = {shape: tuple(rules) for shape, rules in by_shape.items()}

    def __len__(self) -> int:
        return len(self._rules)

    def __iter__(self) -> Iterator[Rule]:
        return iter(self._rules)

    def __repr__(self) -> str:
        counts = ", ".join(f"{s.value}={len(r)}" for s, r in self._by_shape.items())
        return f"RuleSet({counts})"

    def for_shape(self, shape: Union[FactShape, str]) -> tuple[Rule, ...]:
        """Rules bound to *shape*, in registration order."""
        return self._by_shape[FactShape(shape)]

    def get(self, shape: Union[FactShape, str], name: str) -> Optional[Rule]:
        for rule in self.for_shape(shape):
            if rule.name == name:
                return rule
        return None

    def names(self, shape: Union[FactShape, str]) -> list[str]:
        return [rule.name for rule in self.for_shape(shape)]


def builtin_rules(
    banned_word: str = DEFAULT_BANNED_WORD,
    integral_units: Iterable[str] = DEFAULT_INTEGRAL_UNITS,
) -> list[Rule]:
    """The first-party catalog: registry rules, then sample rules."""
    return [*registry_rules(), *sample_rules(banned_word, integral_units)]


def _expand(source: RuleSource, loader: RuleCatalogLoader) -> list[Rule]:
    if isinstance(source, Rule):
        return [source]
    if isinstance(source, RuleSpec):
        return [compile_rule(source)]
    if isinstance(source, (str, Path)):
        path = str(source)
        catalog = loader.load(source)
        return [compile_rule(spec, path) for spec in catalog.rules]
    if isinstance(source, RuleCatalogSpec):
        return [compile_rule(spec) for spec in source.rules]
    raise TypeError(f"Unsupported rule source: {type(source).__name__}")


def load(sources: Iterable[RuleSource]) -> RuleSet:
    """Build a ``RuleSet`` from *sources*, in order.

    Raises:
        RuleLoadError: On a malformed rule entry, a duplicate name within a
            fact shape, or a rule that fails static analysis.  Nothing is loaded in that case.
        FileNotFoundError: If a catalog path does not exist.
        pydantic.ValidationError: If a catalog file has unknown top-level keys.
    """
    loader = RuleCatalogLoader()
    rules: list[Rule] = []
    for source in sources:
        rules.extend(_expand(source, loader))
    ruleset = RuleSet(rules)
    logger.debug("Loaded rule set: %r", ruleset)
    return ruleset
