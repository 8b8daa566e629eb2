"""
File loaders for registry snapshots and telemetry samples.

The engine itself never touches files; these are conveniences for the CLI
and for callers that keep snapshots on disk.

Usage::

    from semconv_policy.facts.loader import RegistryLoader, load_samples

    baseline = RegistryLoader().load("baseline/resolved.yaml")
    samples = load_samples("samples.json")
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Union

import yaml

from semconv_policy._loader_base import BaseDocumentLoader
from semconv_policy.facts.registry import RegistrySnapshot
from semconv_policy.facts.sample import Sample, SampleAttribute

logger = logging.getLogger(__name__)

TEXT_SUFFIXES = (".txt", ".text")


class RegistryLoader(BaseDocumentLoader[RegistrySnapshot]):
    """Loads a resolved registry (``groups:`` mapping, or a bare group list)."""

    _model_class = RegistrySnapshot

    def _coerce_root(self, raw: Any) -> Any:
        if isinstance(raw, list):
            return {"groups": raw}
        return raw

    def _log_loaded(self, document: RegistrySnapshot, key: str) -> None:
        self._logger.debug(
            "Loaded registry snapshot: groups=%d source=%s",
            len(document.groups),
            key,
        )


def parse_samples(raw: Any) -> list[Sample]:
    """Validate already-parsed sample data.

    Accepts a list of samples, a ``{"samples": [...]}`` mapping, or a single
    sample mapping.

    Raises:
        TypeError: If *raw* has none of those shapes.
        pydantic.ValidationError: If a sample is malformed.
    """
    if isinstance(raw, dict) and "samples" in raw:
        raw = raw["samples"]
    if isinstance(raw, dict):
        raw = [raw]
    if not isinstance(raw, list):
        raise TypeError(f"Expected a list of samples, got {type(raw).__name__}")
    return [Sample.model_validate(item) for item in raw]


def load_samples(path: Union[str, Path]) -> list[Sample]:
    """Load samples from a YAML/JSON file, or a text file of attribute lines.

    Raises:
        FileNotFoundError: If the file does not exist.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Sample file not found: {path}")

    if path.suffix in TEXT_SUFFIXES:
        with open(path, encoding="utf-8") as fh:
            samples = [
                Sample(attribute=SampleAttribute.parse(line))
                for line in fh
                if line.strip()
            ]
    else:
        with open(path, encoding="utf-8") as fh:
            samples = parse_samples(yaml.safe_load(fh))

    logger.debug("Loaded %d samples from %s", len(samples), path)
    return samples
