"""
CLI interface for the noxium orchestrator.

Provides commands to list capabilities, run single transformations and run
pipelines defined in YAML/JSON files. Every command exits 1 on failure and
names the failing kind (and stage, for pipelines).
"""

import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Optional

import click
from rich.table import Table

from noxium import __version__
from noxium.backends.registry import CapabilityRegistry
from noxium.config import NoxiumConfig
from noxium.errors import NoxiumError
from noxium.schemas import JobKind, JobResult, PipelineResult
from noxium.utils import console, format_duration


def _get_config(ctx) -> NoxiumConfig:
    if "config" not in ctx.obj:
        click.echo(f"✗ Config not loaded: {ctx.obj.get('config_error', 'Unknown error')}", err=True)
        click.echo("Run 'noxium init' to create a configuration file.", err=True)
        raise SystemExit(1)
    return ctx.obj["config"]


def _make_orchestrator(config: NoxiumConfig, dry_run: bool):
    from noxium.orchestrator import Orchestrator

    registry = CapabilityRegistry.create_noop() if dry_run else None
    return Orchestrator(config, registry=registry)


def _echo_failure(label: str, error: Optional[NoxiumError]) -> None:
    click.echo(f"✗ {label} failed: {error}", err=True)
    diagnostics = getattr(error, "diagnostics", None)
    if isinstance(diagnostics, dict) and diagnostics.get("stderr"):
        click.echo(diagnostics["stderr"].rstrip(), err=True)


@click.group()
@click.version_option(version=__version__, prog_name="noxium")
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Configuration file (default: $NOXIUM_CONFIG or ~/.noxium/config.yaml)",
)
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.pass_context
def main(ctx, config_path: Optional[Path], verbose: bool):
    """
    noxium - Pluggable code-transformation orchestrator.

    Dispatches TypeScript compilation, regex rewrites, minification,
    bundling and WebAssembly lowering to registered back-ends.
    """
    from noxium.config import load_config
    from noxium.utils import setup_logging_from_config

    ctx.ensure_object(dict)
    try:
        config = load_config(config_path)
    except NoxiumError as e:
        # init must still work with a missing/broken config
        ctx.obj["config_error"] = str(e)
        return
    ctx.obj["config"] = config
    setup_logging_from_config(config, verbose=verbose)


@main.command("kinds")
@click.pass_context
def list_kinds(ctx):
    """List registered transformation kinds and their back-ends."""
    config = _get_config(ctx)
    try:
        registry = CapabilityRegistry.create_default(config)
    except (NoxiumError, ValueError) as e:
        click.echo(f"✗ Could not build registry: {e}", err=True)
        raise SystemExit(1)

    table = Table(title="Registered kinds")
    table.add_column("Kind", style="cyan")
    table.add_column("Back-end")
    table.add_column("Command / details")
    for kind, backend in registry.items():
        table.add_row(kind.value, backend.name, backend.describe())
    console.print(table)


@main.command("run")
@click.argument("kind")
@click.option("-i", "--input", "inputs", multiple=True, required=True, help="Input file (repeat for bundle)")
@click.option("-o", "--output", "output", required=True, help="Output file")
@click.option("--pattern", help="Regular expression (regex_transform)")
@click.option("--replacement", default="", show_default=True, help="Replacement text (regex_transform)")
@click.option("--timeout", "timeout_s", type=float, help="Deadline in seconds")
@click.option("--dry-run", is_flag=True, help="Copy inputs through without invoking any tool")
@click.option("--json", "as_json", is_flag=True, help="Print the result as JSON")
@click.pass_context
def run(ctx, kind: str, inputs: tuple, output: str, pattern: Optional[str], replacement: str,
        timeout_s: Optional[float], dry_run: bool, as_json: bool):
    """
    Run one transformation.

    KIND is a job kind (typescript_compile, regex_transform, minify, bundle,
    wasm_transform) or its short name (typescript, regex, wasm).

    Examples:

        noxium run typescript -i src/app.ts -o build/app.js

        noxium run regex -i app.js -o app.clean.js --pattern '//.*'

        noxium run bundle -i a.js -i b.js -o bundle.js
    """
    config = _get_config(ctx)

    job_config: dict[str, Any] = {"output_file": output}
    try:
        multi = JobKind.parse(kind).is_multi_input
    except ValueError:
        multi = False
    if multi:
        job_config["input_files"] = list(inputs)
    else:
        if len(inputs) > 1:
            raise click.UsageError(f"{kind} takes exactly one --input")
        job_config["input_file"] = inputs[0]
    if pattern is not None:
        job_config["pattern"] = pattern
        job_config["replacement"] = replacement

    if dry_run:
        click.echo("=== DRY RUN MODE === (no tools invoked)")

    async def _submit() -> JobResult:
        async with _make_orchestrator(config, dry_run) as orchestrator:
            return await orchestrator.submit(kind, job_config, timeout_s=timeout_s)

    result = asyncio.run(_submit())

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2, default=str))
    label = result.kind.value if result.kind else kind
    if result.success:
        if not as_json:
            click.echo(f"✓ {label} completed: {result.output_file} ({format_duration(result.duration_ms)})")
        return
    if not as_json:
        _echo_failure(label, result.error)
    raise SystemExit(1)


@main.command("pipeline")
@click.argument("definition", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--cleanup-on-failure/--keep-on-failure",
    default=None,
    help="Remove intermediate outputs when a stage fails (default from definition/config)",
)
@click.option("--dry-run", is_flag=True, help="Copy inputs through without invoking any tool")
@click.option("--json", "as_json", is_flag=True, help="Print the result as JSON")
@click.pass_context
def run_pipeline(ctx, definition: Path, cleanup_on_failure: Optional[bool], dry_run: bool, as_json: bool):
    """
    Run a pipeline definition (YAML or JSON).

    Example:

        noxium pipeline build.yaml --cleanup-on-failure
    """
    from noxium.pipeline import load_pipeline

    config = _get_config(ctx)
    try:
        pipeline_def = load_pipeline(definition)
    except (NoxiumError, ValueError) as e:
        click.echo(f"✗ Invalid pipeline {definition}: {e}", err=True)
        raise SystemExit(1)

    if cleanup_on_failure is None:
        cleanup_on_failure = pipeline_def.cleanup_on_failure
    if dry_run:
        click.echo("=== DRY RUN MODE === (no tools invoked)")

    async def _submit() -> PipelineResult:
        async with _make_orchestrator(config, dry_run) as orchestrator:
            return await orchestrator.submit_pipeline(
                pipeline_def.stages,
                cleanup_on_failure=cleanup_on_failure,
                pipeline_id=pipeline_def.pipeline_id,
            )

    result = asyncio.run(_submit())

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2, default=str))
    else:
        for index, stage in enumerate(result.stages):
            mark = "✓" if stage.success else "✗"
            click.echo(f"  {mark} [{index}] {stage.kind.value} {stage.status.value} ({format_duration(stage.duration_ms)})")
        for path in result.cleaned_up:
            click.echo(f"  removed {path}")

    if result.success:
        if not as_json:
            click.echo(f"✓ {result.pipeline_id} completed: {result.output_file}")
        return
    if not as_json:
        _echo_failure(result.pipeline_id, result.error)
    raise SystemExit(1)


@main.command("init")
@click.option("--force", is_flag=True, help="Overwrite existing configuration")
def init(force: bool):
    """Write a default configuration file to the noxium home directory."""
    from noxium.config import DEFAULTS, get_noxium_home
    import yaml

    home = get_noxium_home()
    home.mkdir(parents=True, exist_ok=True)

    cfg_path = home / "config.yaml"
    if cfg_path.exists() and not force:
        click.echo(f"Config already exists at {cfg_path}. Use --force to overwrite.", err=True)
        raise SystemExit(1)

    cfg_path.write_text(yaml.safe_dump(DEFAULTS, sort_keys=False))
    click.echo(f"Initialized noxium config at {cfg_path}")


if __name__ == "__main__":
    sys.exit(main())
