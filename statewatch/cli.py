"""Click CLI for statewatch.

Commands:
- diff: Compare two JSON documents
- capture: Print the captured graph of a JSON document
- watch: Poll a JSON file and print what changed between polls
- web: Launch the report viewer, optionally beside an application workload
"""

import asyncio
import functools
import importlib
import json
import logging
import sys
from typing import Any, Callable, Dict, List

import click
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from statewatch import __version__
from statewatch.capture import capture, diff
from statewatch.capture.differ import DiffEntry
from statewatch.config import DEFAULT_MAX_DEPTH, DiagnosticsConfig
from statewatch.diagnostics.logger import setup_logging
from statewatch.runtime import Diagnostics, get_diagnostics

console = Console()
logger = logging.getLogger(__name__)

DEFAULT_PORT = 8090


def run_async(coro):
    """Run async function in sync context."""
    return asyncio.run(coro)


def _load_json(path: str) -> Any:
    try:
        with open(path) as f:
            return json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        console.print(f"[red]Error: cannot read {escape(path)}: {escape(str(e))}[/]")
        sys.exit(2)


def _diff_table(entries: List[DiffEntry], title: str) -> Table:
    table = Table(title=title)
    table.add_column("Path")
    table.add_column("Before", style="red")
    table.add_column("After", style="green")
    for entry in entries:
        table.add_row(escape(entry.path), escape(str(entry.before)), escape(str(entry.after)))
    return table


@click.group()
@click.version_option(version=__version__)
@click.option(
    "--debug",
    is_flag=True,
    envvar="STATEWATCH_DEBUG",
    help="Enable debug logging",
)
@click.pass_context
def cli(ctx, debug: bool):
    """statewatch - snapshot, diff and watch live state."""
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug

    level = "DEBUG" if debug else "INFO"
    setup_logging(level=level, debug_server=debug)


@cli.command("diff")
@click.argument("old", type=click.Path(exists=True, dir_okay=False))
@click.argument("new", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--max-depth",
    type=int,
    default=DEFAULT_MAX_DEPTH,
    envvar="STATEWATCH_MAX_DEPTH",
    help="Capture depth cap",
)
def diff_cmd(old: str, new: str, max_depth: int):
    """Compare two JSON documents; exit code 1 when they differ."""
    before = capture(_load_json(old), max_depth)
    after = capture(_load_json(new), max_depth)
    entries = diff(before, after)

    if not entries:
        console.print("[green]No differences detected[/]")
        return

    console.print(_diff_table(entries, f"Differences ({len(entries)})"))
    sys.exit(1)


@cli.command("capture")
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--max-depth",
    type=int,
    default=DEFAULT_MAX_DEPTH,
    envvar="STATEWATCH_MAX_DEPTH",
    help="Capture depth cap",
)
def capture_cmd(file: str, max_depth: int):
    """Print the captured graph of a JSON document."""
    captured = capture(_load_json(file), max_depth)
    console.print_json(json.dumps(captured, default=str))


@cli.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.option("--interval", type=float, default=1.0, help="Seconds between polls")
@click.option("--count", type=int, default=10, help="Number of polls")
def watch(file: str, interval: float, count: int):
    """Poll a JSON file and print what changed since the previous poll."""

    async def _watch() -> int:
        changes = 0
        async with Diagnostics(DiagnosticsConfig.from_env()) as diagnostics:
            state: Dict[str, Any] = {}
            for poll in range(1, count + 1):
                data = _load_json(file)
                state.clear()
                state.update(data if isinstance(data, dict) else {"value": data})

                index = diagnostics.snapshot_history(state, note=f"poll {poll}")
                if index > 1:
                    entries = diagnostics.diff_history(state, index - 1) or []
                    if entries:
                        changes += len(entries)
                        console.print(_diff_table(entries, f"Poll {poll}"))
                if poll < count:
                    await asyncio.sleep(interval)
        return changes

    changes = run_async(_watch())
    console.print(
        Panel(
            f"[bold]File:[/] {escape(file)}\n[bold]Polls:[/] {count}\n[bold]Changes:[/] {changes}",
            title="Watch Summary",
        )
    )


@cli.command()
@click.option("--port", default=DEFAULT_PORT, help="Port to run the viewer on")
@click.option("--host", default="0.0.0.0", help="Interface to bind")
@click.option(
    "--app",
    "app_target",
    default=None,
    metavar="MODULE:CALLABLE",
    help="Workload to run beside the viewer; called with the Diagnostics instance",
)
@click.pass_context
def web(ctx, port: int, host: str, app_target: str):
    """Launch the report viewer."""
    from statewatch.web.server import run_server, serve

    debug = ctx.obj["debug"]
    if app_target is None:
        console.print(f"[bold green]Starting report viewer on http://localhost:{port}[/]")
        run_server(host=host, port=port, debug=debug)
        return

    workload = load_workload(app_target)

    async def _serve():
        diagnostics = get_diagnostics()
        informer = diagnostics.informer(functools.partial(workload, diagnostics))
        informer.catch(lambda e: console.print(f"[red]Workload failed: {escape(str(e))}[/]"))
        try:
            await serve(diagnostics, host=host, port=port, debug=debug)
        finally:
            informer.task.cancel()
            diagnostics.close()

    console.print(
        f"[bold green]Starting report viewer on http://localhost:{port} "
        f"with {escape(app_target)}[/]"
    )
    run_async(_serve())


def load_workload(target: str) -> Callable[..., Any]:
    """Resolve ``module:callable`` to the callable."""
    module_name, _, attr = target.partition(":")
    if not module_name or not attr:
        raise click.BadParameter("expected MODULE:CALLABLE", param_hint="--app")
    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise click.BadParameter(f"cannot import {module_name}: {e}", param_hint="--app")
    workload = getattr(module, attr, None)
    if not callable(workload):
        raise click.BadParameter(f"{target} is not callable", param_hint="--app")
    return workload


def main():
    """Main entry point."""
    cli(obj={})


if __name__ == "__main__":
    main()
