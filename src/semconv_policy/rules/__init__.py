"""
Rules: the extension contract, first-party catalog, and catalog loader.
"""

from semconv_policy.rules.catalog import RuleCatalogLoader, RuleSet, builtin_rules, load
from semconv_policy.rules.expressions import compile_rule, validate_expression
from semconv_policy.rules.index import RegistryIndex
from semconv_policy.rules.naming import NAME_PATTERN, is_valid_name, namespaces_of
from semconv_policy.rules.schema import Match, ResultRecord, Rule, RuleCatalogSpec, RuleSpec

__all__ = [
    "Match",
    "NAME_PATTERN",
    "RegistryIndex",
    "ResultRecord",
    "Rule",
    "RuleCatalogLoader",
    "RuleCatalogSpec",
    "RuleSet",
    "RuleSpec",
    "builtin_rules",
    "compile_rule",
    "is_valid_name",
    "load",
    "namespaces_of",
    "validate_expression",
]
