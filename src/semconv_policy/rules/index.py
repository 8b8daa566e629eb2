"""
Aggregate index over every attribute of one registry snapshot.

Collision checks need every attribute visible at once.  Rather than scan
the registry once per attribute, ``RegistryIndex.build`` walks the snapshot
a single time and records:

- ``definitions``: attribute name -> first defining entry (refs excluded)
- ``defined_in``: attribute name -> ids of every group defining it
- ``namespaces``: dotted prefix -> attribute names living under it
- ``constant_names``: constant key (``.`` -> ``_``) -> distinct names

Every collision test afterwards is a dict lookup.

Usage::

    index = snapshot.index          # cached on the snapshot
    index.is_namespace("db")        # True when any attribute starts with "db."
    index.constant_names["db_user"] # ["db.user", "db_user"]
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from semconv_policy.errors import PredicateEvaluationError
from semconv_policy.facts.registry import Attribute
from semconv_policy.rules.naming import constant_key, namespaces_of

if TYPE_CHECKING:
    from semconv_policy.facts.registry import RegistrySnapshot

logger = logging.getLogger(__name__)


@dataclass
class RegistryIndex:
    """Lookup tables derived from one snapshot.  Read-only once built."""

    names: list[str] = field(default_factory=list)
    definitions: dict[str, Attribute] = field(default_factory=dict)
    defined_in: dict[str, list[str]] = field(default_factory=dict)
    namespaces: dict[str, list[str]] = field(default_factory=dict)
    constant_names: dict[str, list[str]] = field(default_factory=dict)
    templates: list[str] = field(default_factory=list)
    deprecated: set[str] = field(default_factory=set)

    @classmethod
    def build(cls, snapshot: "RegistrySnapshot") -> "RegistryIndex":
        """Index *snapshot* in one pass.

        Raises:
            PredicateEvaluationError: If two groups share an id.
        """
        index = cls()
        seen_groups: set[str] = set()

        for group in snapshot.groups:
            if group.id in seen_groups:
                raise PredicateEvaluationError(
                    f"group id '{group.id}' appears more than once in the registry"
                )
            seen_groups.add(group.id)

            for attr in group.attributes:
                if not attr.name:
                    continue
                index._add_definition(group.id, attr)

        logger.debug(
            "Indexed registry: groups=%d attributes=%d namespaces=%d",
            len(seen_groups),
            len(index.names),
            len(index.namespaces),
        )
        return index

    def _add_definition(self, group_id: str, attr: Attribute) -> None:
        name = attr.name
        assert name is not None
        groups = self.defined_in.setdefault(name, [])
        groups.append(group_id)
        if len(groups) > 1:
            return

        self.names.append(name)
        self.definitions[name] = attr
        for ns in namespaces_of(name):
            self.namespaces.setdefault(ns, []).append(name)
        self.constant_names.setdefault(constant_key(name), []).append(name)
        if attr.is_template:
            self.templates.append(name)
        if attr.deprecated:
            self.deprecated.add(name)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def is_defined(self, name: str) -> bool:
        return name in self.definitions

    def is_namespace(self, name: str) -> bool:
        return name in self.namespaces

    def members_of(self, namespace: str) -> list[str]:
        """Attribute names under *namespace*, in registry order."""
        return self.namespaces.get(namespace, [])

    def is_live(self, name: str) -> bool:
        """Defined and not deprecated."""
        return name in self.definitions and name not in self.deprecated

    def attribute_prefixes(self, name: str) -> list[str]:
        """Dotted prefixes of *name* that are themselves live attributes."""
        return [ns for ns in namespaces_of(name) if self.is_live(ns)]

    def existing_namespaces(self, name: str) -> list[str]:
        """Dotted prefixes of *name* that already hold attributes."""
        return [ns for ns in namespaces_of(name) if ns in self.namespaces]

    def template_for(self, name: str) -> str | None:
        """The template attribute *name* instantiates (``<template>.<key>``)."""
        for template in self.templates:
            if name.startswith(template + "."):
                return template
        return None
