"""
CLI interface for lakeboot.

Provides commands: run, plan, configure-compute, buckets, init.
"""

from pathlib import Path
from typing import Optional

import click
import yaml

from lakeboot import __version__
from lakeboot.config import DEFAULTS, STACK_VARIANTS, BootstrapConfig, get_lakeboot_home, load_config
from lakeboot.context import KEY_REGISTRY
from lakeboot.errors import LakebootError
from lakeboot.pipeline import PipelineResult, Step, StepResult, StepStatus
from lakeboot.stacks import build_pipeline
from lakeboot.tools import Presence, build_toolbox
from lakeboot.utils import (
    console,
    format_duration,
    print_banner,
    print_error,
    print_info,
    print_skipped,
    print_success,
    print_warning,
    setup_logging,
)


def _load(config_path: Optional[Path], stack: Optional[str] = None, verbose: bool = False) -> BootstrapConfig:
    config = load_config(config_path)
    if stack:
        config.stack = stack
    config.validate()
    setup_logging(
        config.get_log_file_path(),
        "DEBUG" if verbose else config.get_log_level(),
        config.get_log_format(),
        config.should_log_to_console(),
    )
    return config


def _report_step(step: Step, result: StepResult) -> None:
    duration = format_duration(result.duration_seconds)
    if result.status == StepStatus.DONE:
        print_success(f"{step.id} ({duration})")
    elif result.status == StepStatus.SKIPPED:
        print_skipped(f"{step.id} already in place")
    elif step.critical:
        print_error(f"{step.id}: {result.error_message}")
    else:
        print_warning(f"{step.id} (advisory): {result.error_message}")


def _print_summary(result: PipelineResult) -> None:
    console.print()
    counts = {status: 0 for status in StepStatus}
    for step_result in result.steps:
        counts[step_result.status] += 1
    print_info(
        f"{counts[StepStatus.DONE]} done, {counts[StepStatus.SKIPPED]} skipped, "
        f"{counts[StepStatus.FAILED]} failed in {format_duration(result.duration_seconds)}"
    )

    for key, value in sorted(result.context.redacted().items()):
        print_info(f"{KEY_REGISTRY[key].description}: {value}")

    for warning in result.warnings:
        print_warning(f"{warning.step_id}: {warning.error_message}")


def _execute(config: BootstrapConfig, stack: str, dry_run: bool) -> None:
    tools = build_toolbox(config)
    pipeline = build_pipeline(config, tools, stack=stack, on_step=_report_step)

    if dry_run:
        print_success(f"Stack '{stack}' is valid ({len(pipeline.steps)} steps)")
        return

    result = pipeline.run()
    _print_summary(result)

    if result.success:
        print_success("Setup complete.")
        return

    print_error(f"Failed at step {result.aborted_at}: {result.error_message}")
    raise SystemExit(1)


@click.group()
@click.version_option(version=__version__, prog_name="lakeboot")
def main():
    """
    lakeboot - Single-node data lakehouse bootstrapper.

    Cluster → object store → metastore → cache → query engine → catalog → compute.
    """
    pass


@main.command()
@click.option(
    "--stack",
    type=click.Choice(STACK_VARIANTS, case_sensitive=False),
    help="Stack variant (default: from config, else 'full')",
)
@click.option(
    "--config",
    type=click.Path(exists=True, path_type=Path),
    help="Custom configuration file (default: $LAKEBOOT_HOME/config.yaml)",
)
@click.option(
    "--dry-run",
    is_flag=True,
    help="Validate configuration and step order without executing",
)
@click.option(
    "--verbose",
    is_flag=True,
    help="Enable debug logging",
)
def run(stack, config, dry_run, verbose):
    """
    Bootstrap the stack.

    Every step checks before it acts, so re-running after a failure
    resumes where the previous run stopped.

    Examples:

      # Full stack
      lakeboot run

      # Hive + Trino only
      lakeboot run --stack hive-trino

      # Validate without touching the host
      lakeboot run --dry-run
    """
    try:
        bootstrap_config = _load(config, stack, verbose)
        print_banner(f"lakeboot: {bootstrap_config.stack}")
        _execute(bootstrap_config, bootstrap_config.stack, dry_run)
    except LakebootError as e:
        print_error(f"Bootstrap failed: {e}")
        raise SystemExit(1)


@main.command()
@click.option(
    "--stack",
    type=click.Choice(STACK_VARIANTS, case_sensitive=False),
    help="Stack variant",
)
@click.option(
    "--config",
    type=click.Path(exists=True, path_type=Path),
    help="Custom configuration file",
)
def plan(stack, config):
    """
    Show the ordered steps of a stack without running them.

    Examples:

      lakeboot plan --stack dremio
    """
    try:
        bootstrap_config = _load(config, stack)
        pipeline = build_pipeline(bootstrap_config, build_toolbox(bootstrap_config))
    except LakebootError as e:
        print_error(f"Invalid stack: {e}")
        raise SystemExit(1)

    print_banner(f"Plan: {bootstrap_config.stack}")
    for index, entry in enumerate(pipeline.plan(), start=1):
        marker = "" if entry["criticality"] == "critical" else " [dim](advisory)[/dim]"
        console.print(f"{index:>3}. [bold]{entry['id']}[/bold]{marker}  {entry['description']}")
        if entry["requires"]:
            console.print(f"       reads: {', '.join(entry['requires'])}")
        if entry["provides"]:
            console.print(f"       publishes: {', '.join(entry['provides'])}")


@main.command("configure-compute")
@click.option(
    "--config",
    type=click.Path(exists=True, path_type=Path),
    help="Custom configuration file",
)
@click.option(
    "--verbose",
    is_flag=True,
    help="Enable debug logging",
)
def configure_compute(config, verbose):
    """
    Rewrite the Spark client profile from the running object store.

    Reads the current credentials and endpoint, updates the profile and
    writes the snapshot file. Equivalent to `lakeboot run --stack compute-only`.
    """
    try:
        bootstrap_config = _load(config, "compute-only", verbose)
        print_banner("lakeboot: configure compute")
        _execute(bootstrap_config, "compute-only", dry_run=False)
    except LakebootError as e:
        print_error(f"Compute configuration failed: {e}")
        raise SystemExit(1)


@main.command()
@click.option(
    "--config",
    type=click.Path(exists=True, path_type=Path),
    help="Custom configuration file",
)
def buckets(config):
    """Show whether each configured bucket exists."""
    try:
        bootstrap_config = _load(config)
        client = build_toolbox(bootstrap_config).object_store
        states = {name: client.bucket_exists(name) for name in bootstrap_config.get_buckets()}
    except LakebootError as e:
        print_error(f"Could not inspect buckets: {e}")
        raise SystemExit(1)

    for name, presence in states.items():
        if presence == Presence.EXISTS:
            print_success(f"{name}")
        elif presence == Presence.ABSENT:
            print_warning(f"{name}: missing")
        else:
            print_error(f"{name}: {presence.value}")

    if any(p not in (Presence.EXISTS, Presence.ABSENT) for p in states.values()):
        raise SystemExit(1)


@main.command("init")
@click.option("--force", is_flag=True, help="Overwrite existing config")
def init(force: bool):
    """Initialize lakeboot configuration."""
    home = get_lakeboot_home()
    if not home.exists():
        home.mkdir(parents=True)

    cfg_path = home / "config.yaml"
    if cfg_path.exists() and not force:
        click.echo(f"Config already exists at {cfg_path}. Use --force to overwrite.", err=True)
        raise SystemExit(1)

    default_cfg = {
        "stack": DEFAULTS["stack"],
        "env_file": str(home / ".env"),
        "object_store": {"buckets": list(DEFAULTS["object_store"]["buckets"])},
        "readiness": dict(DEFAULTS["readiness"]),
        "paths": dict(DEFAULTS["paths"]),
        "compute": {"snapshot_path": DEFAULTS["compute"]["snapshot_path"]},
        "logging": dict(DEFAULTS["logging"]),
    }
    cfg_path.write_text(yaml.safe_dump(default_cfg, sort_keys=False))

    env_path = home / ".env"
    if not env_path.exists():
        env_path.write_text("# LAKEBOOT_METASTORE_DB_PASSWORD=...\n")

    click.echo(f"Initialized lakeboot config at {cfg_path}")


if __name__ == "__main__":
    main()
