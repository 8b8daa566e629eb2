"""
Telemetry sample facts.

A ``Sample`` is a discriminated union over a closed set of variants
(attribute, span, span_event, log, metric_number_data_point, exemplar,
resource).  Exactly one variant is populated per instance; construction
fails otherwise.  ``RegistryContext`` optionally accompanies a sample with
the registry group (and attribute) the sample is believed to belong to.

Usage::

    from semconv_policy.facts.sample import Sample, SampleLog

    sample = Sample(log=SampleLog(event_name="", body=""))
    assert sample.kind == SampleKind.LOG

    # JSON form used by live-check feeds: {"<variant>": {...}}
    sample = Sample.model_validate({"attribute": {"name": "http.method", "value": "GET"}})
"""

from __future__ import annotations

import json
import logging
from typing import Any, Iterator, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

from semconv_policy.errors import PredicateEvaluationError
from semconv_policy.facts.registry import Attribute, Group, RegistrySnapshot
from semconv_policy.types import SampleKind

logger = logging.getLogger(__name__)


def infer_value_type(value: Any) -> Optional[str]:
    """Infer a registry type name from a sample value.

    Returns ``None`` for nulls, mixed arrays, and unsupported values.
    """
    if value is None:
        return None
    # bool before int: bool is an int subclass
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, int):
        return "int"
    if isinstance(value, float):
        return "double"
    if isinstance(value, str):
        return "string"
    if isinstance(value, (list, tuple)):
        items = [v for v in value if v is not None]
        if not items:
            return None
        if all(isinstance(v, bool) for v in items):
            return "boolean[]"
        if all(isinstance(v, int) and not isinstance(v, bool) for v in items):
            return "int[]"
        if all(isinstance(v, (int, float)) and not isinstance(v, bool) for v in items):
            return "double[]"
        if all(isinstance(v, str) for v in items):
            return "string[]"
    return None


# ---------------------------------------------------------------------------
# Variants
# ---------------------------------------------------------------------------


class SampleAttribute(BaseModel):
    """An attribute observed in telemetry."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    name: str = Field(..., description="Attribute name as observed")
    value: Optional[Any] = None
    type: Optional[str] = Field(
        None, description="Value type; inferred from value when omitted"
    )

    @model_validator(mode="after")
    def _infer_type(self) -> "SampleAttribute":
        if self.type is None and self.value is not None:
            # frozen model: bypass __setattr__ during validation only
            object.__setattr__(self, "type", infer_value_type(self.value))
        return self

    @classmethod
    def parse(cls, line: str) -> "SampleAttribute":
        """Parse ``name`` or ``name=value`` text-feed lines.

        Values that parse as JSON keep their JSON type; anything else is
        taken as a string.

        Raises:
            ValueError: If the line is blank.
        """
        trimmed = line.strip()
        if not trimmed:
            raise ValueError("cannot parse an empty attribute line")
        if "=" not in trimmed:
            return cls(name=trimmed)
        name, raw = trimmed.split("=", 1)
        raw = raw.strip()
        try:
            value: Any = json.loads(raw)
        except ValueError:
            value = raw
        return cls(name=name.strip(), value=value)


class SpanStatus(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    code: Optional[str] = None
    message: Optional[str] = None


class SampleSpanEvent(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    name: str = ""
    attributes: tuple[SampleAttribute, ...] = ()


class SampleSpan(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    name: str = ""
    kind: Optional[str] = None
    status: Optional[SpanStatus] = None
    attributes: tuple[SampleAttribute, ...] = ()
    span_events: tuple[SampleSpanEvent, ...] = ()


class SampleLog(BaseModel):
    """A log record, or an event carried as a log record."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    event_name: str = ""
    severity_number: Optional[int] = None
    severity_text: Optional[str] = None
    body: Optional[str] = None
    attributes: tuple[SampleAttribute, ...] = ()
    trace_id: Optional[str] = None
    span_id: Optional[str] = None


class SampleExemplar(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    value: Union[int, float]
    timestamp: Optional[str] = None
    span_id: Optional[str] = None
    trace_id: Optional[str] = None
    filtered_attributes: tuple[SampleAttribute, ...] = ()


class SampleNumberDataPoint(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    value: Union[int, float]
    attributes: tuple[SampleAttribute, ...] = ()
    exemplars: tuple[SampleExemplar, ...] = ()


class SampleResource(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    attributes: tuple[SampleAttribute, ...] = ()


# ---------------------------------------------------------------------------
# Union
# ---------------------------------------------------------------------------


_VARIANT_FIELDS = tuple(k.value for k in SampleKind)


class Sample(BaseModel):
    """One telemetry item; exactly one variant field is set."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    attribute: Optional[SampleAttribute] = None
    span: Optional[SampleSpan] = None
    span_event: Optional[SampleSpanEvent] = None
    log: Optional[SampleLog] = None
    metric_number_data_point: Optional[SampleNumberDataPoint] = None
    exemplar: Optional[SampleExemplar] = None
    resource: Optional[SampleResource] = None

    @model_validator(mode="after")
    def _exactly_one_variant(self) -> "Sample":
        populated = [f for f in _VARIANT_FIELDS if getattr(self, f) is not None]
        if len(populated) != 1:
            raise ValueError(
                f"a sample must populate exactly one of {list(_VARIANT_FIELDS)}, "
                f"got {populated or 'none'}"
            )
        return self

    @property
    def kind(self) -> SampleKind:
        for f in _VARIANT_FIELDS:
            if getattr(self, f) is not None:
                return SampleKind(f)
        raise AssertionError("unreachable: validated sample has no variant")

    @property
    def payload(self) -> BaseModel:
        """The populated variant model."""
        return getattr(self, self.kind.value)

    @property
    def signal_type(self) -> Optional[str]:
        return {
            SampleKind.SPAN: "span",
            SampleKind.SPAN_EVENT: "span",
            SampleKind.LOG: "event",
            SampleKind.METRIC_NUMBER_DATA_POINT: "metric",
            SampleKind.EXEMPLAR: "metric",
            SampleKind.RESOURCE: "resource",
        }.get(self.kind)

    @property
    def signal_name(self) -> Optional[str]:
        if self.span is not None:
            return self.span.name or None
        if self.span_event is not None:
            return self.span_event.name or None
        if self.log is not None:
            return self.log.event_name or None
        return None

    def walk(self) -> Iterator["Sample"]:
        """Yield this sample, then nested samples, depth first in document order."""
        yield self
        for child in self._children():
            yield from child.walk()

    def _children(self) -> Iterator["Sample"]:
        if self.span is not None:
            for attr in self.span.attributes:
                yield Sample(attribute=attr)
            for event in self.span.span_events:
                yield Sample(span_event=event)
        elif self.span_event is not None:
            for attr in self.span_event.attributes:
                yield Sample(attribute=attr)
        elif self.log is not None:
            for attr in self.log.attributes:
                yield Sample(attribute=attr)
        elif self.metric_number_data_point is not None:
            for attr in self.metric_number_data_point.attributes:
                yield Sample(attribute=attr)
            for exemplar in self.metric_number_data_point.exemplars:
                yield Sample(exemplar=exemplar)
        elif self.exemplar is not None:
            for attr in self.exemplar.filtered_attributes:
                yield Sample(attribute=attr)
        elif self.resource is not None:
            for attr in self.resource.attributes:
                yield Sample(attribute=attr)


# ---------------------------------------------------------------------------
# Context
# ---------------------------------------------------------------------------


class RegistryContext(BaseModel):
    """Registry facts that accompany a sample.  Every field is optional."""

    model_config = ConfigDict(frozen=True, extra="forbid", arbitrary_types_allowed=True)

    group: Optional[Group] = Field(None, description="Group the sample belongs to")
    attribute: Optional[Attribute] = Field(
        None, description="Registry attribute matched by an attribute sample"
    )
    unit: Optional[str] = Field(None, description="Overrides group.unit")
    registry: Optional[RegistrySnapshot] = Field(
        None, description="Full registry, for registry-wide advice"
    )

    @property
    def effective_unit(self) -> Optional[str]:
        if self.unit is not None:
            return self.unit
        return self.group.unit if self.group is not None else None

    @classmethod
    def for_sample(
        cls,
        sample: Sample,
        registry: Optional[RegistrySnapshot],
        group: Optional[Group] = None,
    ) -> "RegistryContext":
        """Resolve context for *sample* by looking it up in *registry*.

        Attribute samples get their registry attribute, log samples their
        event group.  An explicit *group* wins over lookup.
        """
        attribute = None
        if registry is not None:
            if sample.attribute is not None:
                try:
                    attribute = registry.find_attribute(sample.attribute.name)
                except PredicateEvaluationError as exc:
                    # Left to the rules, which report it as an internal record
                    logger.debug("Attribute lookup skipped: %s", exc)
            if group is None and sample.log is not None and sample.log.event_name:
                group = registry.find_event(sample.log.event_name)
        return cls(group=group, attribute=attribute, registry=registry)
