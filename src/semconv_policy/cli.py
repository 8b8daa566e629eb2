"""
semconv-policy CLI - evaluate registries and telemetry samples against rules.

Commands:
    semconv-policy check    Check a candidate registry (and diff against a baseline)
    semconv-policy advise   Advise on telemetry samples against a registry
    semconv-policy rules    List the loaded rule catalog

Usage::

    semconv-policy check candidate.yaml --baseline released.yaml
    semconv-policy advise samples.json --registry candidate.yaml --format json
    semconv-policy rules --shape sample
"""

from __future__ import annotations

import json
import logging
import sys
from typing import Optional

import click
import yaml
from pydantic import ValidationError

from semconv_policy.config import PolicyConfig, get_config
from semconv_policy.engine.orchestrator import PolicyEngine
from semconv_policy.errors import RuleLoadError
from semconv_policy.facts.loader import RegistryLoader, load_samples
from semconv_policy.log import configure_logging
from semconv_policy.types import FACT_SHAPE_VALUES, FactShape

logger = logging.getLogger(__name__)


_format_option = click.option(
    "--format",
    "-f",
    "output_format",
    type=click.Choice(["text", "json"]),
    default=None,
    help="Report format (default from SEMCONV_POLICY_OUTPUT_FORMAT)",
)
_rules_option = click.option(
    "--rules",
    "-r",
    "rules_paths",
    multiple=True,
    type=click.Path(exists=True, dir_okay=False),
    help="Extra rule catalog file (repeatable)",
)
_no_builtin_option = click.option(
    "--no-builtin",
    is_flag=True,
    help="Do not load the first-party rule catalog",
)


def _config(rules_paths: tuple[str, ...], no_builtin: bool, **extra) -> PolicyConfig:
    base = get_config()
    update = {
        "rules_paths": [*base.rules_paths, *rules_paths],
        "include_builtin_rules": base.include_builtin_rules and not no_builtin,
        **{k: v for k, v in extra.items() if v is not None},
    }
    return base.model_copy(update=update)


def _engine(config: PolicyConfig) -> PolicyEngine:
    try:
        return PolicyEngine(config=config)
    except RuleLoadError as exc:
        raise click.ClickException(str(exc)) from exc
    except (ValidationError, yaml.YAMLError, TypeError) as exc:
        raise click.ClickException(f"Invalid rule catalog: {exc}") from exc


def _load_registry(path: str):
    try:
        return RegistryLoader().load(path)
    except (ValidationError, yaml.YAMLError, TypeError) as exc:
        raise click.ClickException(f"Invalid registry {path}: {exc}") from exc


@click.group()
@click.version_option(package_name="semconv-policy")
@click.option(
    "--log-level",
    type=click.Choice(["debug", "info", "warning", "error"]),
    default=None,
    help="Logging level (default from SEMCONV_POLICY_LOG_LEVEL)",
)
@click.option(
    "--log-format",
    type=click.Choice(["json", "text"]),
    default=None,
    help="Log format (default from SEMCONV_POLICY_LOG_FORMAT)",
)
def main(log_level: Optional[str], log_format: Optional[str]):
    """semconv-policy - rule checks for semantic-convention registries."""
    config = get_config()
    configure_logging(log_level or config.log_level, log_format or config.log_format)


@main.command("check")
@click.argument("candidate", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--baseline",
    "-b",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
    help="Released registry to diff the candidate against",
)
@_rules_option
@_no_builtin_option
@_format_option
@click.option(
    "--fail-on-improvement",
    is_flag=True,
    default=None,
    help="Exit with error on improvement-level advice too",
)
def check(
    candidate: str,
    baseline: Optional[str],
    rules_paths: tuple[str, ...],
    no_builtin: bool,
    output_format: Optional[str],
    fail_on_improvement: Optional[bool],
):
    """Check a resolved candidate registry.

    Runs the single-registry rules on CANDIDATE, plus the registry-pair
    rules when --baseline is given.  Exits 1 if any violation is found.

    Examples:
        semconv-policy check candidate.yaml
        semconv-policy check candidate.yaml --baseline v1.yaml --format json
    """
    config = _config(rules_paths, no_builtin, fail_on_improvement=fail_on_improvement or None)
    engine = _engine(config)

    candidate_snapshot = _load_registry(candidate)
    baseline_snapshot = _load_registry(baseline) if baseline else None

    report = engine.check_registry(candidate_snapshot, baseline=baseline_snapshot)
    click.echo(report.render(output_format or config.output_format))
    sys.exit(report.exit_code)


@main.command("advise")
@click.argument("samples", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--registry",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
    help="Resolved registry providing context for the samples",
)
@click.option("--group", "group_id", default=None, help="Registry group id to use as context")
@click.option("--unit", default=None, help="Unit override for data point samples")
@_rules_option
@_no_builtin_option
@_format_option
def advise(
    samples: str,
    registry: Optional[str],
    group_id: Optional[str],
    unit: Optional[str],
    rules_paths: tuple[str, ...],
    no_builtin: bool,
    output_format: Optional[str],
):
    """Advise on telemetry SAMPLES (YAML/JSON list, or text file of attributes).

    Examples:
        semconv-policy advise samples.json --registry candidate.yaml
        semconv-policy advise points.yaml --unit By
    """
    config = _config(rules_paths, no_builtin)
    engine = _engine(config)

    snapshot = _load_registry(registry) if registry else None
    group = None
    if group_id:
        if snapshot is None:
            raise click.UsageError("--group requires --registry")
        group = snapshot.group(group_id)
        if group is None:
            raise click.BadParameter(f"no group '{group_id}' in {registry}", param_hint="--group")

    try:
        loaded = load_samples(samples)
    except (ValidationError, yaml.YAMLError, TypeError, ValueError) as exc:
        raise click.ClickException(f"Invalid samples {samples}: {exc}") from exc

    report = engine.advise(loaded, registry=snapshot, group=group, unit=unit)
    click.echo(report.render(output_format or config.output_format))
    sys.exit(report.exit_code)


@main.command("rules")
@click.option(
    "--shape",
    type=click.Choice(FACT_SHAPE_VALUES),
    default=None,
    help="Only list rules for this fact shape",
)
@_rules_option
@_no_builtin_option
@_format_option
def list_rules(
    shape: Optional[str],
    rules_paths: tuple[str, ...],
    no_builtin: bool,
    output_format: Optional[str],
):
    """List the loaded rule catalog in registration order."""
    config = _config(rules_paths, no_builtin)
    engine = _engine(config)

    shapes = [FactShape(shape)] if shape else list(FactShape)
    rules = [rule for s in shapes for rule in engine.ruleset.for_shape(s)]

    if (output_format or config.output_format) == "json":
        data = [
            {
                "name": rule.name,
                "fact_shape": rule.fact_shape.value,
                "result_kind": rule.result_kind.value,
                "advisory_level": rule.advisory_level.value,
                "category": rule.category,
                "description": rule.description,
                "source": rule.source,
            }
            for rule in rules
        ]
        click.echo(json.dumps(data, indent=2))
        return

    click.echo(f"{len(rules)} rules")
    for rule in rules:
        click.echo(
            f"  {rule.fact_shape.value:<16} {rule.name:<30} "
            f"{rule.advisory_level.value:<12} {rule.description}"
        )


if __name__ == "__main__":
    main()
