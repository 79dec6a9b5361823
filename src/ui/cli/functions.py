"""
CLI commands for function sources.

Thin wrappers over the runtime delegates in ``src.adapters.runtimes``.

Usage::

    fnruntimes functions runtimes
    fnruntimes functions detect --json
    fnruntimes functions validate --codebase api
    fnruntimes functions discover --json
    fnruntimes functions serve --port 8081 --watch
"""

from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path

import click

from src.core.config.loader import ConfigError
from src.core.errors import RuntimeDelegateError
from src.core.models.source import SourceDescriptor


def _load_sources(ctx: click.Context, codebase: str | None) -> list[SourceDescriptor]:
    """Resolve functions.yml into descriptors, exiting on config errors."""
    from src.core.config.loader import (
        FUNCTIONS_CONFIG_FILE,
        find_project_file,
        load_functions_config,
        source_descriptors,
    )

    config_path: Path | None = ctx.obj.get("config_path") or find_project_file()
    if config_path is None:
        click.secho(f"❌ No {FUNCTIONS_CONFIG_FILE} found; create one or pass --config.", fg="red")
        sys.exit(1)
    try:
        config = load_functions_config(config_path)
    except ConfigError as e:
        click.secho(f"❌ {e}", fg="red")
        sys.exit(1)

    if codebase is not None:
        config.functions = [f for f in config.functions if f.codebase == codebase]
        if not config.functions:
            click.secho(f"❌ No codebase named '{codebase}' in {config_path}", fg="red")
            sys.exit(1)

    return source_descriptors(config, config_path)


def _fail(err: RuntimeDelegateError, as_json: bool) -> None:
    if as_json:
        click.echo(json.dumps(err.to_dict(), indent=2))
    else:
        click.secho(f"❌ {err.message}", fg="red")
        if err.remediation:
            click.echo(f"   → {err.remediation}")
    sys.exit(err.exit_code)


_codebase_option = click.option(
    "--codebase", default=None, help="Only act on this codebase from functions.yml.",
)
_json_option = click.option(
    "--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.",
)


@click.group()
def functions() -> None:
    """Functions — detect, validate, discover and serve sources."""


# ── Runtimes ────────────────────────────────────────────────────


@functions.command("runtimes")
@_json_option
def runtimes(as_json: bool) -> None:
    """List the runtimes a source can target."""
    from src.core.models.runtime import RUNTIMES

    if as_json:
        click.echo(json.dumps([r.model_dump() for r in RUNTIMES.values()], indent=2))
        return

    click.secho("🧩 Runtimes:", fg="cyan", bold=True)
    for r in RUNTIMES.values():
        color = {"decommissioned": "red", "deprecated": "yellow"}.get(r.status, "green")
        click.secho(f"   {r.name:<10} ", fg=color, nl=False)
        click.echo(f"{r.friendly_name} ({r.status})")


# ── Detect ──────────────────────────────────────────────────────


@functions.command("detect")
@_codebase_option
@_json_option
@click.pass_context
def detect(ctx: click.Context, codebase: str | None, as_json: bool) -> None:
    """Detect the language and runtime of each source."""
    from src.adapters.runtimes.registry import default_registry

    sources = _load_sources(ctx, codebase)
    registry = default_registry()

    async def _detect() -> list[dict]:
        results = []
        for source in sources:
            delegate = await registry.detect(source)
            results.append({
                "source": source.relative_source,
                "language": delegate.language if delegate else None,
                "runtime": delegate.runtime if delegate else None,
                "sdk_version": delegate.sdk_version if delegate else None,
            })
        return results

    try:
        results = asyncio.run(_detect())
    except RuntimeDelegateError as e:
        _fail(e, as_json)
        return

    if as_json:
        click.echo(json.dumps(results, indent=2))
        return

    for r in results:
        if r["language"]:
            sdk = f" sdk {r['sdk_version']}" if r["sdk_version"] else ""
            click.secho(f"   ✓ {r['source']} ", fg="green", nl=False)
            click.echo(f"[{r['runtime']}]{sdk}")
        else:
            click.secho(f"   ✗ {r['source']} ", fg="red", nl=False)
            click.echo("(unknown language)")


# ── Validate ────────────────────────────────────────────────────


@functions.command("validate")
@_codebase_option
@_json_option
@click.pass_context
def validate(ctx: click.Context, codebase: str | None, as_json: bool) -> None:
    """Check each source is structurally deployable."""
    from src.adapters.runtimes.registry import default_registry
    from src.core.services.build_validation import functions_directory_exists

    sources = _load_sources(ctx, codebase)
    registry = default_registry()

    async def _validate() -> list[dict]:
        results = []
        for source in sources:
            functions_directory_exists(source.project_dir, source.relative_source)
            delegate = await registry.get_delegate(source)
            await delegate.validate()
            results.append({"source": source.relative_source, "runtime": delegate.runtime})
        return results

    try:
        results = asyncio.run(_validate())
    except RuntimeDelegateError as e:
        _fail(e, as_json)
        return

    if as_json:
        click.echo(json.dumps({"valid": True, "sources": results}, indent=2))
        return

    for r in results:
        click.secho(f"✅ {r['source']} is valid ", fg="green", nl=False)
        click.echo(f"[{r['runtime']}]")


# ── Discover ────────────────────────────────────────────────────


@functions.command("discover")
@_codebase_option
@_json_option
@click.pass_context
def discover(ctx: click.Context, codebase: str | None, as_json: bool) -> None:
    """Validate each source and describe the functions it exports."""
    from src.adapters.runtimes.registry import default_registry
    from src.core.config.loader import load_env_file, load_runtime_config
    from src.core.services.build_validation import (
        function_ids_are_valid,
        functions_directory_exists,
    )

    sources = _load_sources(ctx, codebase)
    registry = default_registry()

    async def _discover() -> dict[str, dict]:
        builds = {}
        for source in sources:
            functions_directory_exists(source.project_dir, source.relative_source)
            delegate = await registry.get_delegate(source)
            await delegate.validate()
            await delegate.build()
            build = await delegate.discover_build(
                load_runtime_config(source.source_dir),
                load_env_file(source.source_dir, source.project_id),
            )
            function_ids_are_valid(build.endpoint_list())
            builds[source.relative_source] = build.to_dict()
        return builds

    try:
        builds = asyncio.run(_discover())
    except RuntimeDelegateError as e:
        _fail(e, as_json)
        return
    except ConfigError as e:
        click.secho(f"❌ {e}", fg="red")
        sys.exit(1)

    if as_json:
        click.echo(json.dumps(builds, indent=2))
        return

    for source, build in builds.items():
        endpoints = build.get("endpoints", {})
        click.secho(f"\n🔍 {source} [{build['runtime']}]", fg="cyan", bold=True)
        click.echo(f"   Functions: {len(endpoints)}")
        for endpoint_id, endpoint in endpoints.items():
            regions = ", ".join(endpoint.get("region", []))
            click.echo(f"     • {endpoint_id} ({endpoint['platform']}, {regions})")
    click.echo()


# ── Serve ───────────────────────────────────────────────────────


@functions.command("serve")
@click.option("--port", "-p", type=int, default=8081, help="Port for the local server.")
@click.option("--watch", is_flag=True, help="Also start the source's watch processes.")
@_codebase_option
@click.pass_context
def serve(ctx: click.Context, port: int, watch: bool, codebase: str | None) -> None:
    """Run one source locally until interrupted (Ctrl+C)."""
    from src.adapters.runtimes.registry import default_registry
    from src.core.config.loader import load_env_file, load_runtime_config

    sources = _load_sources(ctx, codebase)
    if len(sources) > 1:
        click.secho("❌ Several codebases configured; pick one with --codebase", fg="red")
        sys.exit(1)
    source = sources[0]

    async def _serve() -> None:
        delegate = await default_registry().get_delegate(source)
        teardowns = []
        try:
            if watch:
                teardowns.append(await delegate.watch(serving=True))
            teardowns.append(await delegate.serve(
                port,
                load_runtime_config(source.source_dir),
                load_env_file(source.source_dir, source.project_id),
            ))
            click.secho(f"🚀 Serving {source.relative_source} on port {port}", fg="green")
            await asyncio.Event().wait()
        finally:
            for teardown in reversed(teardowns):
                await teardown()

    try:
        asyncio.run(_serve())
    except RuntimeDelegateError as e:
        _fail(e, as_json=False)
    except ConfigError as e:
        click.secho(f"❌ {e}", fg="red")
        sys.exit(1)
    except KeyboardInterrupt:
        click.echo("\n   Stopped.")
