"""
Generic YAML/JSON document loader with per-path caching.

``BaseDocumentLoader[T]`` is the base for every loader that turns a file
into a validated pydantic model: resolved registry snapshots and rule
catalogs.  It centralises:

- per-path caching in a class-level dict (each subclass gets its own)
- file existence checks
- YAML parsing (JSON is a YAML subset, so ``.json`` files load too)
- root-shape normalisation via ``_coerce_root()``
- pydantic ``model_validate`` dispatch

Usage::

    from semconv_policy._loader_base import BaseDocumentLoader
    from semconv_policy.facts.registry import RegistrySnapshot

    class RegistryLoader(BaseDocumentLoader[RegistrySnapshot]):
        _model_class = RegistrySnapshot
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, ClassVar, Generic, TypeVar, Union

import yaml
from pydantic import BaseModel

T = TypeVar("T", bound=BaseModel)


class BaseDocumentLoader(Generic[T]):
    """Base for cached YAML/JSON document loaders.

    Subclasses set ``_model_class``.  Override ``_coerce_root()`` to accept
    root shapes other than a mapping, and ``_log_loaded()`` for
    domain-specific debug logging.
    """

    _model_class: type[T]
    _cache: ClassVar[dict[str, BaseModel]] = {}
    _logger: ClassVar[logging.Logger]

    def __init_subclass__(cls, **kwargs: object) -> None:
        super().__init_subclass__(**kwargs)
        cls._cache = {}
        cls._logger = logging.getLogger(cls.__module__)

    @classmethod
    def clear_cache(cls) -> None:
        """Clear the document cache (useful in tests)."""
        cls._cache.clear()

    def load(self, path: Union[str, Path]) -> T:
        """Load and validate a document file.

        Raises:
            FileNotFoundError: If the file does not exist.
            TypeError: If the document root has an unsupported shape.
            yaml.YAMLError: If the file is not valid YAML/JSON.
            pydantic.ValidationError: If the document does not match the model.
        """
        path = Path(path)
        key = str(path.resolve())
        cached = self._cache.get(key)
        if cached is not None:
            self._logger.debug("%s cache hit: %s", type(self).__name__, key)
            return cached  # type: ignore[return-value]

        if not path.exists():
            raise FileNotFoundError(f"Document not found: {path}")

        with open(path, encoding="utf-8") as fh:
            raw = yaml.safe_load(fh)

        document = self._validate(raw, str(path))
        self._cache[key] = document
        self._log_loaded(document, key)
        return document

    def load_from_string(self, text: str) -> T:
        """Validate a document given as a YAML/JSON string (not cached)."""
        return self._validate(yaml.safe_load(text), "<string>")

    def _validate(self, raw: Any, origin: str) -> T:
        root = self._coerce_root(raw)
        if not isinstance(root, dict):
            raise TypeError(
                f"Expected a mapping at the root of {origin}, got {type(raw).__name__}"
            )
        return self._model_class.model_validate(root)

    def _coerce_root(self, raw: Any) -> Any:
        return raw

    def _log_loaded(self, document: T, key: str) -> None:
        self._logger.debug("Loaded %s from %s", type(self).__name__, key)
