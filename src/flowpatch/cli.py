"""flowpatch CLI - typer application entry point."""

from __future__ import annotations

import asyncio
import atexit
import json
from pathlib import Path
from typing import TYPE_CHECKING, Annotated, Any

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.table import Table

from flowpatch.config import ConfigError, FlowPatchConfig, load_config
from flowpatch.observability import close_file_logging, configure_logging, get_logger
from flowpatch.patch.context import OperationResult

if TYPE_CHECKING:
    from flowpatch.services import InMemoryBackend

# Load environment variables from .env file
load_dotenv()

log = get_logger(__name__)

app = typer.Typer(
    name="flowpatch",
    help="flowpatch: apply path-addressed edits to agent flow graphs.",
    no_args_is_help=True,
)
console = Console()

# Backend entity kinds keyed by the resource map they mirror.
_BACKEND_KINDS = {
    "agents": "agents",
    "dataStoreNodes": "data_store_nodes",
    "ifNodes": "if_nodes",
}

# Global state for logging flags (set by callback, used by commands)
_verbose: int = 0
_config_path: Path | None = None


@app.callback()
def main(
    verbose: Annotated[
        int,
        typer.Option(
            "-v",
            "--verbose",
            count=True,
            help="Increase verbosity: -v for INFO, -vv for DEBUG.",
        ),
    ] = 0,
    log_dir: Annotated[
        Path | None,
        typer.Option(
            "--log-dir",
            help="Append JSONL logs to {log-dir}/flowpatch.jsonl.",
            envvar="FLOWPATCH_LOG_DIR",
        ),
    ] = None,
    config: Annotated[
        Path | None,
        typer.Option(
            "--config",
            "-c",
            help="Config file or directory holding flowpatch.yaml (default: ./).",
        ),
    ] = None,
) -> None:
    """flowpatch: apply path-addressed edits to agent flow graphs."""
    global _verbose, _config_path
    _verbose = verbose
    _config_path = config

    if log_dir is not None:
        configure_logging(verbosity=verbose, log_to_file=True, log_dir=log_dir)
        atexit.register(close_file_logging)
    else:
        configure_logging(verbosity=verbose)


def _load_config() -> FlowPatchConfig:
    try:
        return load_config(_config_path or Path())
    except ConfigError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from None


def _read_json(path: Path, what: str) -> Any:
    """Read a JSON file, exiting with a readable error when it is unusable."""
    if not path.exists():
        console.print(f"[red]Error:[/red] {what} file not found: {path}")
        raise typer.Exit(1)
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        console.print(f"[red]Error:[/red] {what} is not valid JSON: {e}")
        raise typer.Exit(1) from None


def _seed_backend(
    backend: InMemoryBackend, resource: dict[str, Any], flow_id: str | None
) -> None:
    """Mirror the resource into the in-memory backend so updates find their entities."""
    if not flow_id:
        return
    record = backend.flow(flow_id)
    record.update(
        {
            "name": resource.get("name", ""),
            "nodes": json.loads(json.dumps(resource.get("nodes") or [])),
            "edges": json.loads(json.dumps(resource.get("edges") or [])),
        }
    )
    for map_key, kind in _BACKEND_KINDS.items():
        for entity_id, entity in (resource.get(map_key) or {}).items():
            if isinstance(entity, dict):
                backend.entities[kind][entity_id] = {**entity, "id": entity_id, "flowId": flow_id}


def _results_table(operations: list[dict[str, Any]], results: list[OperationResult]) -> Table:
    table = Table(title="Operations")
    table.add_column("#", style="dim")
    table.add_column("Operation", style="cyan")
    table.add_column("Path")
    table.add_column("Result", style="bold")
    for i, (op, result) in enumerate(zip(operations, results, strict=False), start=1):
        op = op if isinstance(op, dict) else {}
        if result.success:
            status = "[green]ok[/green]"
        else:
            status = f"[red]{result.code or 'error'}[/red] {result.error}"
        table.add_row(str(i), str(op.get("operation")), str(op.get("path")), status)
    return table


@app.command()
def version() -> None:
    """Show version information."""
    from flowpatch import __version__

    console.print(f"flowpatch v{__version__}")


@app.command()
def apply(
    resource_file: Annotated[Path, typer.Argument(help="Flow resource JSON file")],
    operations_file: Annotated[
        Path, typer.Argument(help="JSON file holding one operation or a list of operations")
    ],
    flow_id: Annotated[
        str | None,
        typer.Option("--flow-id", help="Stable flow id (default: resource id or flowId)."),
    ] = None,
    approve: Annotated[
        bool,
        typer.Option("--approve", help="Approve deferred node and edge creations."),
    ] = False,
    fail_on: Annotated[
        list[str] | None,
        typer.Option(
            "--fail-on",
            help="Make a backend action fail, e.g. agents.create (repeatable).",
        ),
    ] = None,
    out: Annotated[
        Path | None,
        typer.Option("--out", "-o", help="Write the resulting resource to this file."),
    ] = None,
) -> None:
    """Apply operations to a resource against the in-memory backend."""
    from flowpatch.patch.engine import EditSession, PatchEngine
    from flowpatch.services import InMemoryBackend, RecordingNotifier

    config = _load_config()
    resource = _read_json(resource_file, "Resource")
    if not isinstance(resource, dict):
        console.print("[red]Error:[/red] Resource must be a JSON object")
        raise typer.Exit(1)
    raw_ops = _read_json(operations_file, "Operations")
    operations = raw_ops if isinstance(raw_ops, list) else [raw_ops]

    resolved_flow_id = flow_id or resource.get("id") or resource.get("flowId")
    backend = InMemoryBackend()
    _seed_backend(backend, resource, resolved_flow_id)
    for action in fail_on or []:
        backend.fail_on(action)
    notifier = RecordingNotifier()
    engine = PatchEngine(services=backend.bundle(notifier=notifier), config=config)
    session = EditSession(engine=engine, resource=resource, flow_id=flow_id)

    async def run() -> tuple[list[OperationResult], list[OperationResult]]:
        results = await session.apply_all(operations)
        approved = await session.approve() if approve else []
        return results, approved

    results, approved = asyncio.run(run())
    log.info("operations_applied", resource=str(resource_file), operations=len(results))
    console.print(_results_table(operations, results))

    if approved:
        console.print(f"Approved {len(approved)} deferred operation(s)")
    elif session.pending:
        console.print(
            f"[yellow]{len(session.pending)} deferred operation(s) not applied;"
            " rerun with --approve[/yellow]"
        )
    for title, details in notifier.notifications:
        console.print(f"[bold red]{title}[/bold red] {details or ''}")

    if out is not None:
        out.write_text(json.dumps(resource, indent=2) + "\n", encoding="utf-8")
        console.print(f"[green]✓[/green] Wrote {out}")

    if any(not r.success for r in [*results, *approved]):
        raise typer.Exit(1)


@app.command("hash")
def hash_command(
    resource_file: Annotated[Path, typer.Argument(help="Flow resource JSON file")],
) -> None:
    """Print the structural hash of a resource's nodes and edges."""
    from flowpatch.sync import sanitize_edges, structural_hash

    resource = _read_json(resource_file, "Resource")
    if not isinstance(resource, dict):
        console.print("[red]Error:[/red] Resource must be a JSON object")
        raise typer.Exit(1)
    nodes = resource.get("nodes") or []
    edges = sanitize_edges(nodes, resource.get("edges") or [])
    console.print(structural_hash(nodes, edges))


@app.command()
def patterns(
    validate: Annotated[
        bool,
        typer.Option("--validate", help="Check evaluation order against sample paths."),
    ] = False,
) -> None:
    """List registered processors in evaluation order."""
    from flowpatch.patch.processors import SAMPLE_PATHS, build_default_registry

    registry = build_default_registry()
    table = Table(title="Processors (evaluation order)")
    table.add_column("#", style="dim")
    table.add_column("Priority", style="dim")
    table.add_column("Processor", style="cyan")
    table.add_column("Family")
    table.add_column("Pattern", style="dim")
    for position, priority, name, family, pattern in registry.table():
        table.add_row(str(position), str(priority), name, family, pattern)
    console.print(table)

    if validate:
        errors = registry.validate(SAMPLE_PATHS)
        if errors:
            for error in errors:
                console.print(f"[red]✗[/red] {error}")
            raise typer.Exit(1)
        console.print(f"[green]✓[/green] {len(SAMPLE_PATHS)} sample paths resolve unambiguously")


if __name__ == "__main__":
    app()
