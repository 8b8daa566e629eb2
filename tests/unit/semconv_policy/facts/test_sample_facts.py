"""Tests for telemetry sample facts and registry context."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from semconv_policy.facts.registry import Group
from semconv_policy.facts.sample import (
    RegistryContext,
    Sample,
    SampleAttribute,
    SampleLog,
    SampleNumberDataPoint,
    SampleSpan,
    infer_value_type,
)
from semconv_policy.types import SampleKind


class TestInferValueType:
    @pytest.mark.parametrize(
        "value,expected",
        [
            (True, "boolean"),
            (3, "int"),
            (2.5, "double"),
            ("GET", "string"),
            ([True, False], "boolean[]"),
            ([1, 2], "int[]"),
            ([1, 2.5], "double[]"),
            (["a", "b"], "string[]"),
            (["a", 1], None),
            ([], None),
            (None, None),
        ],
    )
    def test_inference(self, value, expected):
        assert infer_value_type(value) == expected


class TestSampleAttribute:
    def test_type_inferred_from_value(self):
        assert SampleAttribute(name="a.b", value=200).type == "int"

    def test_explicit_type_wins(self):
        assert SampleAttribute(name="a.b", value="200", type="int").type == "int"

    def test_no_value_no_type(self):
        assert SampleAttribute(name="a.b").type is None

    def test_parse_name_only(self):
        attr = SampleAttribute.parse("  http.route \n")
        assert attr.name == "http.route"
        assert attr.value is None

    def test_parse_json_value(self):
        attr = SampleAttribute.parse("http.response.status_code=200")
        assert attr.value == 200
        assert attr.type == "int"

    def test_parse_plain_string_value(self):
        attr = SampleAttribute.parse("http.request.method=GET")
        assert attr.value == "GET"
        assert attr.type == "string"

    def test_parse_blank_rejected(self):
        with pytest.raises(ValueError):
            SampleAttribute.parse("   ")


class TestSampleUnion:
    def test_exactly_one_variant(self):
        sample = Sample(log=SampleLog(event_name="", body=""))
        assert sample.kind == SampleKind.LOG
        assert sample.payload is sample.log

    def test_no_variant_rejected(self):
        with pytest.raises(ValidationError, match="exactly one"):
            Sample()

    def test_two_variants_rejected(self):
        with pytest.raises(ValidationError, match="exactly one"):
            Sample(log=SampleLog(), span=SampleSpan(name="x"))

    def test_unknown_variant_rejected(self):
        with pytest.raises(ValidationError):
            Sample.model_validate({"histogram": {"value": 1}})

    def test_json_form(self):
        sample = Sample.model_validate({"attribute": {"name": "http.route", "value": "/"}})
        assert sample.kind == SampleKind.ATTRIBUTE
        assert sample.attribute.type == "string"

    def test_data_point_keeps_float(self):
        sample = Sample(metric_number_data_point=SampleNumberDataPoint(value=2.5))
        assert sample.metric_number_data_point.value == 2.5
        assert isinstance(sample.metric_number_data_point.value, float)

    def test_signal_helpers(self):
        span = Sample(span=SampleSpan(name="GET /"))
        assert span.signal_type == "span"
        assert span.signal_name == "GET /"
        attr = Sample(attribute=SampleAttribute(name="a.b"))
        assert attr.signal_type is None
        assert attr.signal_name is None


class TestSampleWalk:
    def test_walk_span_in_document_order(self):
        sample = Sample.model_validate(
            {
                "span": {
                    "name": "op",
                    "attributes": [{"name": "a.one"}, {"name": "a.two"}],
                    "span_events": [
                        {"name": "evt", "attributes": [{"name": "a.three"}]},
                    ],
                }
            }
        )
        kinds = [(s.kind.value, getattr(s.payload, "name", None)) for s in sample.walk()]
        assert kinds == [
            ("span", "op"),
            ("attribute", "a.one"),
            ("attribute", "a.two"),
            ("span_event", "evt"),
            ("attribute", "a.three"),
        ]

    def test_walk_data_point_exemplars(self):
        sample = Sample.model_validate(
            {
                "metric_number_data_point": {
                    "value": 3,
                    "attributes": [{"name": "a.one"}],
                    "exemplars": [{"value": 1.5, "filtered_attributes": [{"name": "a.two"}]}],
                }
            }
        )
        kinds = [s.kind for s in sample.walk()]
        assert kinds == [
            SampleKind.METRIC_NUMBER_DATA_POINT,
            SampleKind.ATTRIBUTE,
            SampleKind.EXEMPLAR,
            SampleKind.ATTRIBUTE,
        ]

    def test_walk_leaf(self):
        sample = Sample(attribute=SampleAttribute(name="a.b"))
        assert list(sample.walk()) == [sample]


class TestRegistryContext:
    def test_all_optional(self):
        ctx = RegistryContext()
        assert ctx.group is None
        assert ctx.effective_unit is None

    def test_unit_overrides_group_unit(self):
        group = Group(id="m", kind="metric", unit="s")
        assert RegistryContext(group=group).effective_unit == "s"
        assert RegistryContext(group=group, unit="By").effective_unit == "By"

    def test_for_attribute_sample(self, http_registry):
        sample = Sample(attribute=SampleAttribute(name="http.route"))
        ctx = RegistryContext.for_sample(sample, http_registry)
        assert ctx.attribute is not None
        assert ctx.attribute.name == "http.route"
        assert ctx.registry is http_registry

    def test_for_log_sample_resolves_event_group(self, http_registry):
        sample = Sample(log=SampleLog(event_name="session.start"))
        ctx = RegistryContext.for_sample(sample, http_registry)
        assert ctx.group.id == "event.session.start"

    def test_explicit_group_wins(self, http_registry):
        group = Group(id="custom", kind="event")
        sample = Sample(log=SampleLog(event_name="session.start"))
        ctx = RegistryContext.for_sample(sample, http_registry, group=group)
        assert ctx.group is group

    def test_without_registry(self):
        sample = Sample(attribute=SampleAttribute(name="a.b"))
        ctx = RegistryContext.for_sample(sample, None)
        assert ctx.attribute is None
        assert ctx.registry is None
