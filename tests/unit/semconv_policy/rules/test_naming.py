"""Tests for the identifier grammar and namespace helpers."""

from __future__ import annotations

import re

import pytest
from hypothesis import given
from hypothesis import strategies as st

from semconv_policy.rules.naming import (
    NAME_PATTERN,
    constant_key,
    contains_word,
    is_valid_name,
    namespace_of,
    namespaces_of,
)

_segment = st.from_regex(r"[a-z0-9]{1,6}", fullmatch=True)
_head = st.from_regex(r"[a-z][a-z0-9]{0,6}", fullmatch=True)
_sep = st.sampled_from([".", "_"])


@st.composite
def valid_names(draw):
    parts = [draw(_head)]
    for _ in range(draw(st.integers(min_value=0, max_value=4))):
        parts.append(draw(_sep))
        parts.append(draw(_segment))
    return "".join(parts)


class TestIsValidName:
    @pytest.mark.parametrize(
        "name",
        ["http", "http.request.method", "foo.1bar", "db_user", "a.b_c.d2", "k8s.pod.uid"],
    )
    def test_valid(self, name):
        assert is_valid_name(name) is True

    @pytest.mark.parametrize(
        "name",
        [
            "",
            "1foo.bar",
            "Foo.bar",
            "foo..bar",
            "foo._bar",
            ".foo",
            "foo.",
            "foo_",
            "foo-bar",
            "foo bar",
            "foo.bar\n",
        ],
    )
    def test_invalid(self, name):
        assert is_valid_name(name) is False

    @given(valid_names())
    def test_generated_names_are_valid(self, name):
        assert is_valid_name(name)

    @given(valid_names(), st.sampled_from(["..", "._", "__", "_."]))
    def test_doubled_separator_is_invalid(self, name, doubled):
        assert not is_valid_name(name + doubled + "x")

    @given(valid_names())
    def test_trailing_separator_is_invalid(self, name):
        assert not is_valid_name(name + ".")
        assert not is_valid_name(name + "_")

    @given(st.from_regex(r"[0-9]", fullmatch=True), valid_names())
    def test_leading_digit_is_invalid(self, digit, name):
        assert not is_valid_name(digit + name)

    @given(st.text(max_size=20))
    def test_agrees_with_reference_regex(self, text):
        expected = re.fullmatch(NAME_PATTERN, text) is not None
        assert is_valid_name(text) == expected


class TestNamespaces:
    def test_namespaces_of(self):
        assert namespaces_of("a.b.c") == ["a", "a.b"]

    def test_namespaces_of_bare_name(self):
        assert namespaces_of("a") == []

    def test_namespace_of(self):
        assert namespace_of("a.b.c") == "a.b"
        assert namespace_of("a") is None

    @given(valid_names())
    def test_every_namespace_is_a_prefix(self, name):
        for ns in namespaces_of(name):
            assert name.startswith(ns + ".")

    def test_constant_key(self):
        assert constant_key("db.user") == "db_user"
        assert constant_key("db_user") == "db_user"


class TestContainsWord:
    def test_contains(self):
        assert contains_word("my.test.attr", "test") is True

    def test_absent_or_empty(self):
        assert contains_word("my.attr", "test") is False
        assert contains_word(None, "test") is False
        assert contains_word("", "test") is False
