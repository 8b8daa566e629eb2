"""
First-party advice rules for live telemetry samples.

Every predicate receives ``(sample, context)`` and first checks which
variant the sample carries; a rule written for another variant yields
nothing.  Registry-aware rules only fire when the context carries a
registry (or the matched registry attribute).

Rule ids follow the live-check finding ids (``missing_attribute``,
``not_stable``, ``type_mismatch``, ...), so existing dashboards and
filters keep working.
"""

from __future__ import annotations

import logging
from typing import Iterable, Iterator, Optional

from semconv_policy.facts.registry import TEMPLATE_TYPE_PREFIX, Attribute, Group
from semconv_policy.facts.sample import RegistryContext, Sample
from semconv_policy.rules.naming import contains_word, is_valid_name
from semconv_policy.rules.schema import Match, Rule
from semconv_policy.types import AdviceLevel, FactShape, ResultKind, Stability

logger = logging.getLogger(__name__)

DEFAULT_BANNED_WORD = "test"
DEFAULT_INTEGRAL_UNITS = ("By", "bit")

_ENUM_SAMPLE_TYPES = ("string", "int")


# ---------------------------------------------------------------------------
# Context helpers
# ---------------------------------------------------------------------------


def _registry_attribute(name: str, context: RegistryContext) -> Optional[Attribute]:
    """The registry attribute for *name*: the context's own, else a lookup."""
    if context.attribute is not None and context.attribute.key == name:
        return context.attribute
    if context.registry is not None:
        return context.registry.find_attribute(name)
    return None


def _owning_group(sample: Sample, context: RegistryContext) -> Optional[Group]:
    if context.group is not None:
        return context.group
    if context.registry is not None and sample.log is not None and sample.log.event_name:
        return context.registry.find_event(sample.log.event_name)
    return None


def _expected_type(attr: Attribute) -> Optional[str]:
    type_name = attr.type_name
    if type_name and type_name.startswith(TEMPLATE_TYPE_PREFIX) and type_name.endswith("]"):
        return type_name[len(TEMPLATE_TYPE_PREFIX):-1]
    return type_name


def _is_unregistered(name: str, context: RegistryContext) -> bool:
    """Registry in context and *name* defined nowhere in it."""
    return context.registry is not None and _registry_attribute(name, context) is None


# ---------------------------------------------------------------------------
# Attribute samples
# ---------------------------------------------------------------------------


def attribute_invalid_format(sample: Sample, context: RegistryContext) -> Iterator[Match]:
    if sample.attribute is None:
        return
    name = sample.attribute.name
    if not is_valid_name(name):
        yield Match(
            target=name,
            message=f"Attribute name '{name}' is not a valid identifier.",
            context={"attribute_name": name},
        )


def missing_namespace(sample: Sample, context: RegistryContext) -> Iterator[Match]:
    if sample.attribute is None:
        return
    name = sample.attribute.name
    if "." not in name:
        yield Match(
            target=name,
            message=f"Attribute '{name}' does not have a namespace.",
            context={"attribute_name": name},
        )


def _contains_banned_word(word: str):
    def contains_test(sample: Sample, context: RegistryContext) -> Iterator[Match]:
        if sample.attribute is None:
            return
        name = sample.attribute.name
        if contains_word(name, word):
            yield Match(
                target=name,
                message=f"Attribute name '{name}' contains the word '{word}'.",
                context={"attribute_name": name, "word": word},
            )

    return contains_test


def missing_attribute(sample: Sample, context: RegistryContext) -> Iterator[Match]:
    if sample.attribute is None:
        return
    name = sample.attribute.name
    if not _is_unregistered(name, context):
        return
    assert context.registry is not None
    if context.registry.index.template_for(name) is not None:
        return
    yield Match(
        target=name,
        message=f"Attribute '{name}' does not exist in the registry.",
        context={"attribute_name": name},
    )


def template_attribute(sample: Sample, context: RegistryContext) -> Iterator[Match]:
    if sample.attribute is None:
        return
    name = sample.attribute.name
    if not _is_unregistered(name, context):
        return
    assert context.registry is not None
    template = context.registry.index.template_for(name)
    if template is not None:
        yield Match(
            target=name,
            message=f"Attribute '{name}' instantiates the template '{template}'.",
            context={"attribute_name": name, "template": template},
        )


def extends_namespace(sample: Sample, context: RegistryContext) -> Iterator[Match]:
    if sample.attribute is None:
        return
    name = sample.attribute.name
    if not _is_unregistered(name, context):
        return
    assert context.registry is not None
    index = context.registry.index
    if index.template_for(name) is not None:
        return
    existing = index.existing_namespaces(name)
    if existing:
        namespace = existing[-1]
        yield Match(
            target=name,
            message=f"Attribute '{name}' extends the existing namespace '{namespace}'.",
            context={"attribute_name": name, "namespace": namespace},
        )


def sample_illegal_namespace(sample: Sample, context: RegistryContext) -> Iterator[Match]:
    if sample.attribute is None:
        return
    name = sample.attribute.name
    if not _is_unregistered(name, context):
        return
    assert context.registry is not None
    index = context.registry.index
    if index.template_for(name) is not None:
        return
    for namespace in index.attribute_prefixes(name):
        yield Match(
            target=name,
            message=(
                f"Attribute '{name}' uses the namespace '{namespace}', "
                f"which is an existing attribute."
            ),
            context={"attribute_name": name, "namespace": namespace},
        )


def deprecated(sample: Sample, context: RegistryContext) -> Iterator[Match]:
    if sample.attribute is None:
        return
    attr = _registry_attribute(sample.attribute.name, context)
    if attr is None:
        return
    if attr.deprecated or attr.stability == Stability.DEPRECATED:
        yield Match(
            target=attr.key,
            message=f"Attribute '{attr.key}' is deprecated.",
            context={"attribute_name": attr.key},
        )


def not_stable(sample: Sample, context: RegistryContext) -> Iterator[Match]:
    if sample.attribute is None:
        return
    attr = _registry_attribute(sample.attribute.name, context)
    if attr is None or attr.stability is None or attr.stability == Stability.STABLE:
        return
    yield Match(
        target=attr.key,
        message=f"Attribute '{attr.key}' is not stable; stability = {attr.stability.value}.",
        context={"attribute_name": attr.key, "stability": attr.stability.value},
    )


def type_mismatch(sample: Sample, context: RegistryContext) -> Iterator[Match]:
    if sample.attribute is None or sample.attribute.type is None:
        return
    observed = sample.attribute.type
    attr = _registry_attribute(sample.attribute.name, context)
    if attr is None:
        return
    expected = _expected_type(attr)
    if expected is None:
        return
    if expected == "enum":
        if observed in _ENUM_SAMPLE_TYPES:
            return
        message = f"Attribute '{attr.key}' has type '{observed}'; type should be 'string' or 'int'."
    elif observed == expected:
        return
    else:
        message = f"Attribute '{attr.key}' has type '{observed}'; type should be '{expected}'."
    yield Match(
        target=attr.key,
        message=message,
        context={"attribute_name": attr.key, "attribute_type": observed, "expected": expected},
    )


def undefined_enum_variant(sample: Sample, context: RegistryContext) -> Iterator[Match]:
    if sample.attribute is None or sample.attribute.value is None:
        return
    if sample.attribute.type not in _ENUM_SAMPLE_TYPES:
        return
    attr = _registry_attribute(sample.attribute.name, context)
    if attr is None:
        return
    members = attr.enum_values
    if members is None:
        return
    value = sample.attribute.value
    if value not in members:
        yield Match(
            target=attr.key,
            message=f"Attribute '{attr.key}' has value '{value}', which is not a defined variant.",
            context={"attribute_name": attr.key, "attribute_value": value},
        )


# ---------------------------------------------------------------------------
# Spans
# ---------------------------------------------------------------------------


def _status_contains_banned_word(word: str):
    def contains_test_in_status(sample: Sample, context: RegistryContext) -> Iterator[Match]:
        if sample.span is None or sample.span.status is None:
            return
        status_message = sample.span.status.message
        if contains_word(status_message, word):
            yield Match(
                target="span.status.message",
                message=f"Span status message '{status_message}' contains the word '{word}'.",
                context={"status_message": status_message, "word": word},
                signal_type="span",
                signal_name=sample.span.name or None,
            )

    return contains_test_in_status


# ---------------------------------------------------------------------------
# Logs and events
# ---------------------------------------------------------------------------


def empty_body(sample: Sample, context: RegistryContext) -> Iterator[Match]:
    if sample.log is None:
        return
    if not sample.log.event_name and not sample.log.body:
        yield Match(
            target="log.body",
            message="Log record has neither an event name nor a body.",
            signal_type="event",
        )


def missing_event(sample: Sample, context: RegistryContext) -> Iterator[Match]:
    if sample.log is None or not sample.log.event_name or context.registry is None:
        return
    name = sample.log.event_name
    if context.registry.find_event(name) is None:
        yield Match(
            target=name,
            message=f"Event '{name}' does not exist in the registry.",
            context={"event_name": name},
            signal_type="event",
            signal_name=name,
        )


def required_phrase_missing(sample: Sample, context: RegistryContext) -> Iterator[Match]:
    if sample.log is None:
        return
    group = _owning_group(sample, context)
    if group is None:
        return
    phrase = group.annotations.get("required_phrase")
    if not phrase:
        return
    if str(phrase) not in (sample.log.body or ""):
        name = sample.log.event_name or group.id
        yield Match(
            target=name,
            message=f"Body of '{name}' must contain the phrase '{phrase}'.",
            context={"event_name": name, "required_phrase": phrase, "group": group.id},
            signal_type="event",
            signal_name=sample.log.event_name or None,
        )


# ---------------------------------------------------------------------------
# Data points and exemplars
# ---------------------------------------------------------------------------


def _fractional_in_integral_unit(units: Iterable[str]):
    integral = tuple(units)

    def invalid_data_point_value(sample: Sample, context: RegistryContext) -> Iterator[Match]:
        if sample.metric_number_data_point is not None:
            value, field_path = sample.metric_number_data_point.value, "metric_number_data_point.value"
        elif sample.exemplar is not None:
            value, field_path = sample.exemplar.value, "exemplar.value"
        else:
            return
        unit = context.effective_unit
        if unit not in integral:
            return
        if isinstance(value, float) and not value.is_integer():
            yield Match(
                target=field_path,
                message=f"Value {value} is fractional but unit '{unit}' is integral.",
                context={"value": value, "unit": unit},
                signal_type="metric",
                signal_name=context.group.metric_name if context.group is not None else None,
            )

    return invalid_data_point_value


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------


def _advice(
    name: str,
    predicate,
    level: AdviceLevel,
    description: str,
    category: str,
) -> Rule:
    kind = ResultKind.VIOLATION if level == AdviceLevel.VIOLATION else ResultKind.ADVICE
    return Rule(
        name=name,
        fact_shape=FactShape.SAMPLE,
        result_kind=kind,
        advisory_level=level,
        predicate=predicate,
        description=description,
        category=category,
        source="builtin",
    )


def sample_rules(
    banned_word: str = DEFAULT_BANNED_WORD,
    integral_units: Iterable[str] = DEFAULT_INTEGRAL_UNITS,
) -> list[Rule]:
    """First-party sample rules, in registration order.

    Args:
        banned_word: Word that must not appear in attribute names or span
            status messages.
        integral_units: Units whose data points must be whole numbers.
    """
    violation = AdviceLevel.VIOLATION
    return [
        _advice("invalid_format", attribute_invalid_format, violation,
                "Attribute names follow the identifier grammar.", "naming"),
        _advice("missing_namespace", missing_namespace, violation,
                "Attribute names carry a namespace.", "naming"),
        _advice("contains_test", _contains_banned_word(banned_word), violation,
                f"Attribute names do not contain '{banned_word}'.", "naming"),
        _advice("missing_attribute", missing_attribute, violation,
                "Observed attributes exist in the registry.", "registry"),
        _advice("template_attribute", template_attribute, AdviceLevel.INFORMATION,
                "Observed attribute instantiates a template attribute.", "registry"),
        _advice("extends_namespace", extends_namespace, AdviceLevel.INFORMATION,
                "Unregistered attribute extends an existing namespace.", "registry"),
        _advice("illegal_namespace", sample_illegal_namespace, violation,
                "Unregistered attribute is nested under an existing attribute.", "registry"),
        _advice("deprecated", deprecated, violation,
                "Observed attribute is deprecated.", "registry"),
        _advice("not_stable", not_stable, AdviceLevel.IMPROVEMENT,
                "Observed attribute is not stable.", "registry"),
        _advice("type_mismatch", type_mismatch, violation,
                "Observed value type matches the registry type.", "registry"),
        _advice("undefined_enum_variant", undefined_enum_variant, AdviceLevel.INFORMATION,
                "Observed value is a defined enum member.", "registry"),
        _advice("contains_test_in_status", _status_contains_banned_word(banned_word), violation,
                f"Span status messages do not contain '{banned_word}'.", "content"),
        _advice("empty_body", empty_body, violation,
                "Log records carry an event name or a body.", "content"),
        _advice("missing_event", missing_event, violation,
                "Observed events exist in the registry.", "registry"),
        _advice("required_phrase_missing", required_phrase_missing, violation,
                "Event bodies contain the group's required phrase.", "content"),
        _advice("invalid_data_point_value", _fractional_in_integral_unit(integral_units), violation,
                "Integral units carry whole-number values.", "metric"),
    ]
