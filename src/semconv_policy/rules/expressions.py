"""
Compile declarative rule descriptions into predicates.

A ``RuleSpec`` carries a ``when`` expression written in a small subset of
Python plus ``target`` / ``message`` format templates.  Everything is
checked statically when the catalog is loaded:

- the expression must parse and stay under ``MAX_EXPRESSION_LENGTH``
- only allowlisted AST nodes may appear (no lambdas, walrus, f-strings)
- every free name must be bound for the rule's fact shape
- no attribute access or method call on names starting with ``_``
- plain calls only to ``SAFE_FUNCTIONS``
- template fields must reference bound names

A rejected expression raises ``ValueError`` from ``validate_expression``;
``compile_rule`` converts it into ``RuleLoadError`` naming the rule.

At evaluation time an expression that trips over a missing optional field
(``None`` attribute access, missing key, ``None`` comparison) simply does
not match.

Usage::

    from semconv_policy.rules.expressions import compile_rule
    from semconv_policy.rules.schema import RuleSpec

    spec = RuleSpec(
        name="no_brief",
        fact_shape="registry-single",
        for_each="attribute",
        when="attribute.name and not attribute.brief",
        target="{attribute.name}",
        message="Attribute '{attribute.name}' has no brief.",
    )
    rule = compile_rule(spec)
"""

from __future__ import annotations

import ast
import logging
import string
from typing import Any, Callable, Iterator, Optional

from semconv_policy.errors import RuleLoadError
from semconv_policy.facts.registry import RegistrySnapshot
from semconv_policy.facts.sample import RegistryContext, Sample
from semconv_policy.rules.naming import (
    constant_key,
    contains_word,
    is_valid_name,
    namespace_of,
    namespaces_of,
)
from semconv_policy.rules.schema import Match, Rule, RuleSpec
from semconv_policy.types import SAMPLE_KIND_VALUES, FactShape

logger = logging.getLogger(__name__)

MAX_EXPRESSION_LENGTH = 500

SAFE_FUNCTIONS: dict[str, Callable[..., Any]] = {
    "len": len,
    "any": any,
    "all": all,
    "min": min,
    "max": max,
    "abs": abs,
    "round": round,
    "str": str,
    "int": int,
    "float": float,
    "bool": bool,
    "set": set,
    "list": list,
    "tuple": tuple,
    "sorted": sorted,
    "isinstance": isinstance,
    "is_valid_name": is_valid_name,
    "namespaces_of": namespaces_of,
    "namespace_of": namespace_of,
    "constant_key": constant_key,
    "contains_word": contains_word,
}

# str.format can reach attributes through its own field syntax
_BLOCKED_METHODS = frozenset({"format", "format_map", "mro"})

_ALLOWED_NODES: tuple[type, ...] = (
    ast.Expression,
    ast.BoolOp, ast.And, ast.Or,
    ast.BinOp, ast.Add, ast.Sub, ast.Mult, ast.Div, ast.Mod, ast.FloorDiv,
    ast.UnaryOp, ast.Not, ast.USub, ast.UAdd,
    ast.Compare, ast.Eq, ast.NotEq, ast.Lt, ast.LtE, ast.Gt, ast.GtE,
    ast.In, ast.NotIn, ast.Is, ast.IsNot,
    ast.IfExp, ast.Call, ast.keyword, ast.Attribute, ast.Subscript, ast.Slice,
    ast.Name, ast.Load, ast.Store, ast.Constant,
    ast.List, ast.Tuple, ast.Set, ast.Dict,
    ast.GeneratorExp, ast.ListComp, ast.SetComp, ast.comprehension,
)

# Evaluation-time errors that mean "an optional field was absent"
_ABSENT_FIELD_ERRORS = (AttributeError, KeyError, IndexError, TypeError)


# ---------------------------------------------------------------------------
# Bindings per shape
# ---------------------------------------------------------------------------


def bound_names(spec: RuleSpec) -> set[str]:
    """Names a rule's expression and templates may reference."""
    if spec.fact_shape == FactShape.REGISTRY_SINGLE:
        names = {"registry"}
    elif spec.fact_shape == FactShape.REGISTRY_PAIR:
        names = {"baseline", "candidate"}
    else:
        names = {"sample", "context"}
        if spec.variant:
            names.add(spec.variant)
    if spec.for_each == "group":
        names.add("group")
    elif spec.for_each == "attribute":
        names.update(("group", "attribute"))
    return names


# ---------------------------------------------------------------------------
# Static analysis
# ---------------------------------------------------------------------------


_COMPREHENSIONS = (ast.GeneratorExp, ast.ListComp, ast.SetComp)


def _target_names(target: ast.AST) -> set[str]:
    return {sub.id for sub in ast.walk(target) if isinstance(sub, ast.Name)}


def _check_bound(node: ast.AST, bound: set[str]) -> None:
    """Reject loads of names not bound in the enclosing scope.

    A comprehension variable is bound only inside its own comprehension.
    """
    if isinstance(node, _COMPREHENSIONS):
        scope = set(bound)
        for generator in node.generators:
            _check_bound(generator.iter, scope)
            scope = scope | _target_names(generator.target)
            for condition in generator.ifs:
                _check_bound(condition, scope)
        _check_bound(node.elt, scope)
        return
    if isinstance(node, ast.Name) and isinstance(node.ctx, ast.Load) and node.id not in bound:
        raise ValueError(f"Name '{node.id}' is not allowed: it is never bound")
    for child in ast.iter_child_nodes(node):
        _check_bound(child, bound)


def validate_expression(expr: str, names: set[str]) -> ast.Expression:
    """Parse *expr* and check it against the allowlist.

    Args:
        expr: The ``when`` expression.
        names: Names bound for the rule's fact shape.

    Returns:
        The parsed expression tree.

    Raises:
        ValueError: If the expression is unsafe, malformed, or references
            a name that is never bound.
    """
    if len(expr) > MAX_EXPRESSION_LENGTH:
        raise ValueError(
            f"Expression too long ({len(expr)} > {MAX_EXPRESSION_LENGTH} chars)"
        )
    try:
        tree = ast.parse(expr, mode="eval")
    except SyntaxError as exc:
        raise ValueError(f"Invalid expression syntax: {exc.msg}") from exc

    for node in ast.walk(tree):
        if isinstance(node, ast.JoinedStr):
            raise ValueError("f-string expressions are not allowed")
        if not isinstance(node, _ALLOWED_NODES):
            raise ValueError(f"{type(node).__name__} is not allowed in rule expressions")
        if isinstance(node, ast.Name):
            if node.id.startswith("_"):
                raise ValueError(f"Name '{node.id}' is not allowed")
        elif isinstance(node, ast.Attribute):
            if node.attr.startswith("_"):
                raise ValueError(f"Attribute '{node.attr}' is not allowed")
        elif isinstance(node, ast.Call):
            func = node.func
            if isinstance(func, ast.Name):
                if func.id not in SAFE_FUNCTIONS:
                    raise ValueError(f"Call to '{func.id}' is not allowed")
            elif isinstance(func, ast.Attribute):
                if func.attr in _BLOCKED_METHODS:
                    raise ValueError(f"Method '{func.attr}' is not allowed")
            else:
                raise ValueError("Calls through computed expressions are not allowed")
    _check_bound(tree, names | set(SAFE_FUNCTIONS))
    return tree


def validate_template(template: str, names: set[str]) -> None:
    """Check that every ``{field}`` in *template* starts from a bound name.

    Raises:
        ValueError: On a malformed template or an unbound/private field.
    """
    try:
        fields = [f for _, f, _, _ in string.Formatter().parse(template) if f is not None]
    except ValueError as exc:
        raise ValueError(f"Malformed template {template!r}: {exc}") from exc
    for field_name in fields:
        if not field_name:
            raise ValueError(f"Positional field in template {template!r} is not allowed")
        root = field_name.split(".", 1)[0].split("[", 1)[0]
        if root not in names:
            raise ValueError(f"Template field '{field_name}' is not bound")
        for part in field_name.replace("[", ".").replace("]", "").split("."):
            if part.startswith("_"):
                raise ValueError(f"Template field '{field_name}' is not allowed")


# ---------------------------------------------------------------------------
# Compilation
# ---------------------------------------------------------------------------


def _check_shape_options(spec: RuleSpec) -> None:
    shape = spec.fact_shape
    if spec.for_each is not None and shape == FactShape.SAMPLE:
        raise ValueError("for_each applies to registry shapes only")
    if spec.variant is not None:
        if shape != FactShape.SAMPLE:
            raise ValueError("variant applies to the sample shape only")
        if spec.variant not in SAMPLE_KIND_VALUES:
            raise ValueError(
                f"unknown sample variant '{spec.variant}' (expected one of {SAMPLE_KIND_VALUES})"
            )
    if "over" in spec.model_fields_set and shape != FactShape.REGISTRY_PAIR:
        raise ValueError("over applies to the registry-pair shape only")


def compile_rule(spec: RuleSpec, source: Optional[str] = None) -> Rule:
    """Turn a declarative description into a ``Rule``.

    Raises:
        RuleLoadError: If any static check fails.
    """
    names = bound_names(spec)
    try:
        _check_shape_options(spec)
        tree = validate_expression(spec.when, names)
        validate_template(spec.target, names)
        validate_template(spec.message, names)
    except ValueError as exc:
        raise RuleLoadError(spec.name, str(exc), source) from exc

    code = compile(tree, f"<rule {spec.name}>", "eval")
    predicate = _DeclarativePredicate(spec, code)
    return Rule(
        name=spec.name,
        fact_shape=spec.fact_shape,
        result_kind=spec.result_kind,
        advisory_level=spec.advisory_level,
        predicate=predicate,
        description=spec.description,
        category=spec.category,
        source=source,
    )


class _DeclarativePredicate:
    """Callable predicate backed by a compiled ``when`` expression."""

    def __init__(self, spec: RuleSpec, code: Any) -> None:
        self._spec = spec
        self._code = code

    def __repr__(self) -> str:
        return f"<declarative predicate {self._spec.name}>"

    def __call__(self, *facts: Any) -> Iterator[Match]:
        for bindings in self._bindings(*facts):
            match = self._try(bindings)
            if match is not None:
                yield match

    def _bindings(self, *facts: Any) -> Iterator[dict[str, Any]]:
        spec = self._spec
        if spec.fact_shape == FactShape.SAMPLE:
            sample: Sample = facts[0]
            context: RegistryContext = facts[1] if len(facts) > 1 and facts[1] else RegistryContext()
            base: dict[str, Any] = {"sample": sample, "context": context}
            if spec.variant:
                payload = getattr(sample, spec.variant, None)
                if payload is None:
                    return
                base[spec.variant] = payload
            yield base
            return

        if spec.fact_shape == FactShape.REGISTRY_PAIR:
            baseline, candidate = facts
            base = {"baseline": baseline, "candidate": candidate}
            snapshot: RegistrySnapshot = candidate if spec.over == "candidate" else baseline
        else:
            snapshot = facts[0]
            base = {"registry": snapshot}

        if spec.for_each == "group":
            for group in snapshot.groups:
                yield {**base, "group": group}
        elif spec.for_each == "attribute":
            for group, attr in snapshot.iter_attributes():
                yield {**base, "group": group, "attribute": attr}
        else:
            yield base

    def _try(self, bindings: dict[str, Any]) -> Optional[Match]:
        scope = {"__builtins__": {}, **SAFE_FUNCTIONS, **bindings}
        try:
            if not eval(self._code, scope):  # noqa: S307 - AST allowlisted at load
                return None
            target = self._spec.target.format(**bindings)
            message = self._spec.message.format(**bindings)
        except _ABSENT_FIELD_ERRORS as exc:
            logger.debug("Rule %s did not match: %s", self._spec.name, exc)
            return None
        return Match(target=target, message=message)
