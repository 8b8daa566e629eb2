"""
Fact model: immutable registry snapshots and telemetry samples.
"""

from semconv_policy.facts.loader import RegistryLoader, load_samples, parse_samples
from semconv_policy.facts.registry import Attribute, Group, RegistrySnapshot
from semconv_policy.facts.sample import (
    RegistryContext,
    Sample,
    SampleAttribute,
    SampleExemplar,
    SampleLog,
    SampleNumberDataPoint,
    SampleResource,
    SampleSpan,
    SampleSpanEvent,
    SpanStatus,
)

__all__ = [
    "Attribute",
    "Group",
    "RegistryContext",
    "RegistryLoader",
    "RegistrySnapshot",
    "Sample",
    "SampleAttribute",
    "SampleExemplar",
    "SampleLog",
    "SampleNumberDataPoint",
    "SampleResource",
    "SampleSpan",
    "SampleSpanEvent",
    "SpanStatus",
    "load_samples",
    "parse_samples",
]
