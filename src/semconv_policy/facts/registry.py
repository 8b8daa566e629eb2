"""
Pydantic v2 models for resolved registry snapshots.

A ``RegistrySnapshot`` is the structured fact tree produced by the external
registry resolver: an ordered sequence of groups, each carrying attributes
and optional annotations.  Snapshots are immutable (``frozen=True``) and
are shared read-only between concurrent evaluations.

Unlike the rule catalog models, fact models ignore unknown keys: resolved
registries carry many fields (brief, note, examples, lineage, ...) that no
rule looks at.

Usage::

    from semconv_policy.facts.registry import RegistrySnapshot
    import yaml

    with open("registry.resolved.yaml") as fh:
        raw = yaml.safe_load(fh)
    snapshot = RegistrySnapshot.model_validate(raw)
    for group, attr in snapshot.iter_attributes():
        ...
"""

from __future__ import annotations

import logging
from functools import cached_property
from typing import TYPE_CHECKING, Any, Iterator, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

from semconv_policy.types import GroupKind, Stability

if TYPE_CHECKING:
    from semconv_policy.rules.index import RegistryIndex

logger = logging.getLogger(__name__)

TEMPLATE_TYPE_PREFIX = "template["


def _coerce_deprecated(value: Any) -> bool:
    """Resolved registries carry a note or a mapping; only presence matters."""
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() not in ("", "false", "no")
    return bool(value)


# ---------------------------------------------------------------------------
# Attribute
# ---------------------------------------------------------------------------


class Attribute(BaseModel):
    """A single attribute definition or reference inside a group."""

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    name: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("name", "id"),
        description="Dotted attribute identifier (absent for pure references)",
    )
    ref: Optional[str] = Field(
        None, description="Name of the attribute this entry refers to"
    )
    type: Optional[Any] = Field(
        None,
        description="Type string (string, int, template[string], ...) or enum mapping",
    )
    stability: Optional[Stability] = None
    deprecated: bool = Field(
        False, description="Deprecation flag, independent of stability"
    )
    brief: str = ""
    requirement_level: Optional[Any] = None
    annotations: dict[str, Any] = Field(default_factory=dict)

    @field_validator("deprecated", mode="before")
    @classmethod
    def _normalise_deprecated(cls, v: Any) -> bool:
        return _coerce_deprecated(v)

    @field_validator("annotations", mode="before")
    @classmethod
    def _none_annotations(cls, v: Any) -> Any:
        return {} if v is None else v

    @model_validator(mode="after")
    def _check_identity(self) -> "Attribute":
        if not self.name and not self.ref:
            raise ValueError("attribute needs a 'name'/'id' or a 'ref'")
        return self

    @property
    def key(self) -> str:
        """The name this entry stands for, defined or referenced."""
        return self.name or self.ref or ""

    @property
    def type_name(self) -> Optional[str]:
        """Flattened type name; enum mappings report ``"enum"``."""
        if self.type is None:
            return None
        if isinstance(self.type, dict):
            return "enum" if "members" in self.type else None
        return str(self.type)

    @property
    def enum_values(self) -> Optional[list[Any]]:
        """Member values of an enum type, or ``None`` for non-enums."""
        if not isinstance(self.type, dict) or "members" not in self.type:
            return None
        values: list[Any] = []
        for member in self.type.get("members") or []:
            if isinstance(member, dict) and "value" in member:
                values.append(member["value"])
        return values

    @property
    def is_template(self) -> bool:
        return bool(self.type_name and self.type_name.startswith(TEMPLATE_TYPE_PREFIX))


# ---------------------------------------------------------------------------
# Group
# ---------------------------------------------------------------------------


class Group(BaseModel):
    """A registry group: attribute registry, span, metric, event, ..."""

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    id: str = Field(..., min_length=1, description="Group id, unique within a snapshot")
    kind: str = Field(
        GroupKind.ATTRIBUTE_GROUP.value,
        validation_alias=AliasChoices("kind", "type"),
        description="Group kind (registry, attribute_group, metric, span, event, ...)",
    )
    attributes: tuple[Attribute, ...] = ()
    annotations: dict[str, Any] = Field(default_factory=dict)
    stability: Optional[Stability] = None
    deprecated: bool = False
    brief: str = ""
    name: Optional[str] = Field(None, description="Event name for event groups")
    metric_name: Optional[str] = None
    instrument: Optional[str] = None
    unit: Optional[str] = None
    span_kind: Optional[str] = None

    @field_validator("deprecated", mode="before")
    @classmethod
    def _normalise_deprecated(cls, v: Any) -> bool:
        return _coerce_deprecated(v)

    @field_validator("annotations", mode="before")
    @classmethod
    def _none_annotations(cls, v: Any) -> Any:
        return {} if v is None else v

    @field_validator("attributes", mode="before")
    @classmethod
    def _none_attributes(cls, v: Any) -> Any:
        return () if v is None else v

    def attribute(self, key: str) -> Optional[Attribute]:
        """First attribute in this group whose key matches."""
        for attr in self.attributes:
            if attr.key == key:
                return attr
        return None

    @property
    def is_registry(self) -> bool:
        return self.id.startswith("registry.") or self.kind == GroupKind.REGISTRY


# ---------------------------------------------------------------------------
# Snapshot
# ---------------------------------------------------------------------------


class RegistrySnapshot(BaseModel):
    """Root fact model: one resolved registry at one point in time."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    registry_url: Optional[str] = None
    groups: tuple[Group, ...] = ()

    @field_validator("groups", mode="before")
    @classmethod
    def _none_groups(cls, v: Any) -> Any:
        return () if v is None else v

    def group(self, group_id: str) -> Optional[Group]:
        for group in self.groups:
            if group.id == group_id:
                return group
        return None

    def iter_attributes(self) -> Iterator[tuple[Group, Attribute]]:
        """Yield ``(group, attribute)`` pairs in document order."""
        for group in self.groups:
            for attr in group.attributes:
                yield group, attr

    def find_attribute(self, name: str) -> Optional[Attribute]:
        """The defining entry for *name*, if any group defines it."""
        return self.index.definitions.get(name)

    def find_event(self, name: str) -> Optional[Group]:
        for group in self.groups:
            if group.kind == GroupKind.EVENT and (group.name or group.id) == name:
                return group
        return None

    def find_metric(self, name: str) -> Optional[Group]:
        for group in self.groups:
            if group.kind == GroupKind.METRIC and group.metric_name == name:
                return group
        return None

    @cached_property
    def index(self) -> "RegistryIndex":
        """Aggregate index over every attribute, built once per snapshot.

        Raises:
            PredicateEvaluationError: If the snapshot is internally
                inconsistent (e.g. duplicate group ids).
        """
        from semconv_policy.rules.index import RegistryIndex

        return RegistryIndex.build(self)
