"""
Evaluation engine: orchestrator, predicate evaluator, reporter.
"""

from semconv_policy.engine.evaluator import evaluate_rule
from semconv_policy.engine.orchestrator import EvaluationResult, PolicyEngine
from semconv_policy.engine.reporter import PolicyReport, exit_code

__all__ = [
    "EvaluationResult",
    "PolicyEngine",
    "PolicyReport",
    "evaluate_rule",
    "exit_code",
]
