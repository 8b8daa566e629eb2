"""
First-party registry rules.

Single-registry rules inspect one candidate snapshot for invalid
definitions.  Pair rules compare a released baseline against a candidate
and report breaking changes.  Both are plain generator functions wrapped
in ``Rule`` values by ``registry_rules()``; order in that list is the
registration order used for result ordering.

Aggregate rules (duplicates, constant-name and namespace collisions) never
scan the registry per attribute: they read the snapshot's cached
``RegistryIndex``.
"""

from __future__ import annotations

import logging
from typing import Iterator, Optional

from semconv_policy.facts.registry import Attribute, Group, RegistrySnapshot
from semconv_policy.rules.naming import constant_key, is_valid_name
from semconv_policy.rules.schema import Match, Rule
from semconv_policy.types import AdviceLevel, FactShape, GroupKind, ResultKind, Stability

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Registry-single
# ---------------------------------------------------------------------------


def registry_with_ref_attr(registry: RegistrySnapshot) -> Iterator[Match]:
    for group, attr in registry.iter_attributes():
        if group.is_registry and attr.ref:
            yield Match(
                target=attr.ref,
                message=(
                    f"Attribute registry group '{group.id}' must define its "
                    f"attributes; it references '{attr.ref}'."
                ),
                context={"group": group.id, "ref": attr.ref},
            )


def attr_stability_deprecated(registry: RegistrySnapshot) -> Iterator[Match]:
    for group, attr in registry.iter_attributes():
        if attr.stability is None:
            continue
        stability_says = attr.stability == Stability.DEPRECATED
        if attr.deprecated == stability_says:
            continue
        if attr.deprecated:
            message = (
                f"Attribute '{attr.key}' is marked deprecated but its stability "
                f"is '{attr.stability.value}'."
            )
        else:
            message = (
                f"Attribute '{attr.key}' has stability 'deprecated' but is not "
                f"marked deprecated."
            )
        yield Match(
            target=attr.key,
            message=message,
            context={
                "group": group.id,
                "stability": attr.stability.value,
                "deprecated": attr.deprecated,
            },
        )


def invalid_format(registry: RegistrySnapshot) -> Iterator[Match]:
    for group in registry.groups:
        if group.kind == GroupKind.METRIC and group.metric_name:
            if not is_valid_name(group.metric_name):
                yield Match(
                    target=group.metric_name,
                    message=f"Metric name '{group.metric_name}' is not a valid identifier.",
                    context={"group": group.id, "metric_name": group.metric_name},
                )
        for attr in group.attributes:
            if attr.name and not is_valid_name(attr.name):
                yield Match(
                    target=attr.name,
                    message=f"Attribute name '{attr.name}' is not a valid identifier.",
                    context={"group": group.id, "attribute_name": attr.name},
                )


def attr_id_duplicated(registry: RegistrySnapshot) -> Iterator[Match]:
    index = registry.index
    for name in index.names:
        groups = index.defined_in[name]
        if len(groups) > 1:
            yield Match(
                target=name,
                message=(
                    f"Attribute '{name}' is defined in more than one group: "
                    f"{', '.join(groups)}."
                ),
                context={"groups": list(groups)},
            )


def attr_constant_name_collision(registry: RegistrySnapshot) -> Iterator[Match]:
    index = registry.index
    for name in index.names:
        key = constant_key(name)
        others = [other for other in index.constant_names[key] if other != name]
        for other in others:
            yield Match(
                target=name,
                message=(
                    f"Attribute '{name}' has the same constant name '{key}' "
                    f"as attribute '{other}'."
                ),
                context={"constant_name": key, "collides_with": other},
            )


def attr_namespace_collision(registry: RegistrySnapshot) -> Iterator[Match]:
    index = registry.index
    for name in index.names:
        if name in index.deprecated:
            continue
        for namespace in index.attribute_prefixes(name):
            yield Match(
                target=name,
                message=(
                    f"Attribute '{name}' uses the namespace '{namespace}', "
                    f"which is already an attribute."
                ),
                context={"namespace": namespace},
            )


# ---------------------------------------------------------------------------
# Registry-pair
# ---------------------------------------------------------------------------


def _shared_attributes(
    baseline: RegistrySnapshot, candidate: RegistrySnapshot
) -> Iterator[tuple[Group, Attribute, Attribute]]:
    """``(baseline group, baseline attr, candidate attr)`` keyed by (group id, key)."""
    for group in baseline.groups:
        other = candidate.group(group.id)
        if other is None:
            continue
        for attr in group.attributes:
            counterpart = other.attribute(attr.key)
            if counterpart is not None:
                yield group, attr, counterpart


def attr_removed(baseline: RegistrySnapshot, candidate: RegistrySnapshot) -> Iterator[Match]:
    for group in baseline.groups:
        other = candidate.group(group.id)
        for attr in group.attributes:
            key = attr.key
            if other is not None:
                present = other.attribute(key) is not None
            else:
                # Whole group gone: only a break if nothing defines the name
                present = candidate.index.is_defined(key)
            if not present:
                yield Match(
                    target=key,
                    message=f"Attribute '{key}' was removed from group '{group.id}'.",
                    context={"group": group.id},
                )


def attr_type_changed(baseline: RegistrySnapshot, candidate: RegistrySnapshot) -> Iterator[Match]:
    for group, before, after in _shared_attributes(baseline, candidate):
        old, new = before.type_name, after.type_name
        if old is None or new is None or old == new:
            continue
        yield Match(
            target=before.key,
            message=(
                f"Attribute '{before.key}' in group '{group.id}' changed type "
                f"from '{old}' to '{new}'."
            ),
            context={"group": group.id, "old_type": old, "new_type": new},
        )


def _is_deprecated(attr: Attribute) -> bool:
    return attr.deprecated or attr.stability == Stability.DEPRECATED


def attr_stability_downgraded(
    baseline: RegistrySnapshot, candidate: RegistrySnapshot
) -> Iterator[Match]:
    for group, before, after in _shared_attributes(baseline, candidate):
        if before.stability != Stability.STABLE or after.stability is None:
            continue
        if after.stability == Stability.STABLE or _is_deprecated(after):
            continue
        yield Match(
            target=before.key,
            message=(
                f"Stable attribute '{before.key}' in group '{group.id}' was "
                f"downgraded to '{after.stability.value}'."
            ),
            context={"group": group.id, "new_stability": after.stability.value},
        )


def illegal_namespace(baseline: RegistrySnapshot, candidate: RegistrySnapshot) -> Iterator[Match]:
    released = baseline.index
    for name in candidate.index.names:
        if released.is_defined(name):
            continue
        # New attribute nested under a released attribute
        for namespace in released.attribute_prefixes(name):
            yield Match(
                target=name,
                message=(
                    f"Attribute '{name}' uses the namespace '{namespace}', "
                    f"which is a released attribute."
                ),
                context={"namespace": namespace},
            )
        # New attribute that is itself a released namespace
        for member in released.members_of(name):
            if member in released.deprecated:
                continue
            yield Match(
                target=member,
                message=(
                    f"New attribute '{name}' is the namespace of released "
                    f"attribute '{member}'."
                ),
                context={"namespace": name},
            )


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------


def _rule(
    predicate,
    shape: FactShape,
    description: str,
    category: str,
    name: Optional[str] = None,
) -> Rule:
    return Rule(
        name=name or predicate.__name__,
        fact_shape=shape,
        result_kind=ResultKind.VIOLATION,
        advisory_level=AdviceLevel.VIOLATION,
        predicate=predicate,
        description=description,
        category=category,
        source="builtin",
    )


def registry_rules() -> list[Rule]:
    """First-party registry rules, single shape first, in registration order."""
    single = FactShape.REGISTRY_SINGLE
    pair = FactShape.REGISTRY_PAIR
    return [
        _rule(registry_with_ref_attr, single,
              "Attribute registry groups define attributes, never reference them.",
              "definition"),
        _rule(attr_stability_deprecated, single,
              "Deprecated flag and deprecated stability must agree.",
              "definition"),
        _rule(invalid_format, single,
              "Attribute and metric names follow the identifier grammar.",
              "naming"),
        _rule(attr_id_duplicated, single,
              "Each attribute is defined by exactly one group.",
              "definition"),
        _rule(attr_constant_name_collision, single,
              "No two attributes map to the same generated constant name.",
              "naming"),
        _rule(attr_namespace_collision, single,
              "No attribute name is also used as a namespace.",
              "naming"),
        _rule(attr_removed, pair,
              "Released attributes are never removed.",
              "schema_evolution"),
        _rule(attr_type_changed, pair,
              "Released attributes keep their type.",
              "schema_evolution"),
        _rule(attr_stability_downgraded, pair,
              "Stable attributes stay stable unless deprecated.",
              "schema_evolution"),
        _rule(illegal_namespace, pair,
              "New attributes must not collide with released namespaces.",
              "schema_evolution"),
    ]
