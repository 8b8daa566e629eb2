"""
Pytest configuration and fixtures for semconv-policy tests.
"""

from __future__ import annotations

import logging
import os
from typing import Any, Generator

import pytest

from semconv_policy.config import reset_config
from semconv_policy.facts.loader import RegistryLoader
from semconv_policy.facts.registry import RegistrySnapshot
from semconv_policy.log import ROOT_LOGGER
from semconv_policy.rules.catalog import RuleCatalogLoader


# ============================================================================
# Environment Fixtures
# ============================================================================


@pytest.fixture(autouse=True)
def clean_env() -> Generator[None, None, None]:
    """Isolate each test from SEMCONV_POLICY_* variables and cached state."""
    original = {k: v for k, v in os.environ.items() if k.startswith("SEMCONV_POLICY_")}
    for key in original:
        os.environ.pop(key)
    reset_config()
    RegistryLoader.clear_cache()
    RuleCatalogLoader.clear_cache()

    yield

    for key in [k for k in os.environ if k.startswith("SEMCONV_POLICY_")]:
        os.environ.pop(key)
    os.environ.update(original)
    reset_config()
    # CliRunner swaps stderr; drop handlers bound to closed streams
    package_logger = logging.getLogger(ROOT_LOGGER)
    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)


# ============================================================================
# Fact Fixtures
# ============================================================================


def make_registry(*groups: dict[str, Any]) -> RegistrySnapshot:
    """Build a snapshot from raw group mappings."""
    return RegistrySnapshot.model_validate({"groups": list(groups)})


@pytest.fixture
def build_registry():
    return make_registry


@pytest.fixture
def registry_db() -> dict[str, Any]:
    """Released ``registry.db`` group with one stable attribute."""
    return {
        "id": "registry.db",
        "type": "attribute_group",
        "attributes": [
            {
                "id": "db.user",
                "type": "string",
                "stability": "stable",
                "deprecated": False,
                "brief": "Database user name.",
            },
        ],
    }


@pytest.fixture
def http_registry() -> RegistrySnapshot:
    """Small registry with attributes, a template, an enum, an event and a metric."""
    return make_registry(
        {
            "id": "registry.http",
            "type": "attribute_group",
            "attributes": [
                {"id": "http.request.method", "type": {"members": [
                    {"id": "get", "value": "GET"},
                    {"id": "post", "value": "POST"},
                ]}, "stability": "stable"},
                {"id": "http.response.status_code", "type": "int", "stability": "stable"},
                {"id": "http.request.header", "type": "template[string[]]",
                 "stability": "stable"},
                {"id": "http.route", "type": "string", "stability": "experimental"},
                {"id": "http.method", "type": "string", "stability": "deprecated",
                 "deprecated": "Replaced by `http.request.method`."},
            ],
        },
        {
            "id": "event.session.start",
            "type": "event",
            "name": "session.start",
            "annotations": {"required_phrase": "hello world"},
        },
        {
            "id": "metric.http.server.request.body.size",
            "type": "metric",
            "metric_name": "http.server.request.body.size",
            "instrument": "histogram",
            "unit": "By",
        },
    )
