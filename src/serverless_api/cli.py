from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import json
import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from serverless_api.backend.memory import DEFAULT_ADDRESS_TEMPLATE
from serverless_api.backend.sqlite_state import SQLiteStateBackend
from serverless_api.config.resolver import resolve_config
from serverless_api.errors import ConfigError, ProvisioningError
from serverless_api.graph.builder import build_resource_graph
from serverless_api.orchestrator.pipeline import load_spec, run_synth


app = typer.Typer(no_args_is_help=True, add_completion=False)

resources_app = typer.Typer(no_args_is_help=True)
app.add_typer(resources_app, name="resources")

graph_app = typer.Typer(no_args_is_help=True)
app.add_typer(graph_app, name="graph")

console = Console()

STATE_DIR_ENV = "SERVERLESS_API_STATE_DIR"


def _open_state(state_dir: str) -> SQLiteStateBackend:
    db_path = SQLiteStateBackend.db_path_for_dir(Path(state_dir).expanduser().resolve())
    return SQLiteStateBackend(db_path)


def _spec_path(spec: str) -> Path:
    spec_path = Path(spec).expanduser().resolve()
    if not spec_path.is_file():
        raise typer.BadParameter(f"Spec file does not exist: {spec_path}")
    return spec_path


def _print_cleanup(exc: ProvisioningError) -> None:
    # gateway first: delete-handler refuses while a gateway still routes to the handler
    steps = []
    if exc.gateway is not None:
        console.print(f"Gateway [bold]{exc.gateway.id}[/bold] was created but never published.")
        steps.append(f"serverless-api resources delete-gateway {exc.gateway.id}")
    if exc.allocated_handler is not None:
        console.print(f"Handler [bold]{exc.allocated_handler.id}[/bold] was created and is still allocated.")
        steps.append(f"serverless-api resources delete-handler {exc.allocated_handler.id}")
    if steps:
        console.print("Clean up with:")
        for step in steps:
            console.print(f"  {step}", markup=False, soft_wrap=True)


@app.callback()
def main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@app.command()
def synth(
    spec: str = typer.Argument(..., help="Path to a JSON endpoint spec"),
    state_dir: str = typer.Option(".", envvar=STATE_DIR_ENV, help="Directory holding .serverless_api/state.db"),
    dry_run: bool = typer.Option(False, help="Build against an in-memory backend; nothing is recorded"),
    address_template: str = typer.Option(DEFAULT_ADDRESS_TEMPLATE, help="Gateway address template"),
    format: str = typer.Option("text", help="Output format: text|json"),
) -> None:
    spec_path = _spec_path(spec)

    try:
        result = run_synth(spec_path, Path(state_dir).expanduser(), dry_run=dry_run, address_template=address_template)
    except ConfigError as exc:
        console.print(f"[bold red]Config error[/bold red] ({exc.kind.value}): {escape(str(exc))}")
        raise typer.Exit(code=1)
    except ProvisioningError as exc:
        console.print(f"[bold red]Provisioning failed[/bold red] ({exc.kind.value}) at step {exc.step.value}: {escape(str(exc))}")
        _print_cleanup(exc)
        raise typer.Exit(code=1)

    topo = result.topology
    if format.lower() == "json":
        payload = {
            "name": topo.name,
            "mode": result.mode,
            "db": result.db_path,
            "handler": {"id": topo.handler.id, "owned": topo.handler_owned},
            "gateway": {"id": topo.gateway.id},
            "outputs": {topo.endpoint.output_key: topo.endpoint.address},
        }
        console.print(json.dumps(payload, indent=2), markup=False, soft_wrap=True)
        return

    console.print(f"[bold green]serverless-api[/bold green] synth: {spec_path} ({result.mode})")
    ownership = "owned" if topo.handler_owned else "borrowed"
    console.print(f"Handler: {topo.handler.id} ({ownership})")
    console.print(f"Gateway: {topo.gateway.id}")
    if topo.network:
        console.print(f"Network: {topo.network.id}")
    if result.db_path:
        console.print(f"DB: {result.db_path}")
    console.print("")
    console.print(f"[bold]{topo.endpoint.output_key}[/bold] = {topo.endpoint.address}")


@app.command()
def resolve(
    spec: str = typer.Argument(..., help="Path to a JSON endpoint spec"),
) -> None:
    """Print the resolved configuration without creating anything."""
    spec_path = _spec_path(spec)
    try:
        config = resolve_config(load_spec(spec_path))
    except ConfigError as exc:
        console.print(f"[bold red]Config error[/bold red] ({exc.kind.value}): {escape(str(exc))}")
        raise typer.Exit(code=1)

    console.print(config.model_dump_json(indent=2), markup=False, soft_wrap=True)


@resources_app.command("list")
def resources_list(
    state_dir: str = typer.Option(".", envvar=STATE_DIR_ENV, help="Directory holding .serverless_api/state.db"),
    name_contains: Optional[str] = typer.Option(None, help="Substring match on handler and gateway names"),
    limit: int = typer.Option(200, help="Max rows to print per kind"),
    format: str = typer.Option("table", help="Output format: table|json"),
) -> None:
    store = _open_state(state_dir)
    handlers = store.list_handlers(name_contains=name_contains, limit=limit)
    gateways = store.list_gateways(name_contains=name_contains, limit=limit)

    if format.lower() == "json":
        console.print(json.dumps({"handlers": handlers, "gateways": gateways}, indent=2), markup=False, soft_wrap=True)
        return

    console.print(f"[bold]DB:[/bold] {store.db_path}")

    table = Table(title="Handlers", show_header=True, header_style="bold")
    table.add_column("ID", no_wrap=True)
    table.add_column("NAME")
    table.add_column("LAYER")
    table.add_column("CODE")
    table.add_column("NETWORK", no_wrap=True)
    for h in handlers:
        table.add_row(h["id"], h["name"], h["runtime_layer"], h["code_location"], h["network_id"] or "-")
    console.print(table)

    table = Table(title="Gateways", show_header=True, header_style="bold")
    table.add_column("ID", no_wrap=True)
    table.add_column("NAME")
    table.add_column("HANDLER", no_wrap=True)
    table.add_column("ADDRESS")
    for g in gateways:
        table.add_row(g["id"], g["name"], g["handler_id"], g["address"])
    console.print(table)


@resources_app.command("orphans")
def resources_orphans(
    state_dir: str = typer.Option(".", envvar=STATE_DIR_ENV, help="Directory holding .serverless_api/state.db"),
) -> None:
    """List resources left behind by builds that failed after handler creation."""
    store = _open_state(state_dir)

    gateways = store.incomplete_gateways()
    console.print(f"[bold]Unpublished gateways:[/bold] {len(gateways)}")
    for g in gateways:
        console.print(f"  {g['id']:<24} -> {g['handler_id']}", markup=False)

    rows = store.orphan_handlers()
    console.print(f"[bold]Orphaned handlers:[/bold] {len(rows)}")
    for r in rows:
        console.print(f"  {r['id']:<24} {r['name']:<24} {r['code_location']}", markup=False)

    if gateways:
        console.print("Delete unpublished gateways before their handlers.")


@resources_app.command("delete-gateway")
def resources_delete_gateway(
    gateway_id: str = typer.Argument(..., help="Gateway id to forget"),
    state_dir: str = typer.Option(".", envvar=STATE_DIR_ENV, help="Directory holding .serverless_api/state.db"),
) -> None:
    store = _open_state(state_dir)
    if not store.delete_gateway(gateway_id):
        console.print(f"No gateway with id {gateway_id}")
        raise typer.Exit(code=1)
    console.print(f"[bold green]Deleted[/bold green] gateway {gateway_id}")


@resources_app.command("delete-handler")
def resources_delete_handler(
    handler_id: str = typer.Argument(..., help="Handler id to forget"),
    state_dir: str = typer.Option(".", envvar=STATE_DIR_ENV, help="Directory holding .serverless_api/state.db"),
) -> None:
    store = _open_state(state_dir)
    try:
        deleted = store.delete_handler(handler_id)
    except ValueError as exc:
        console.print(f"[bold red]Refused:[/bold red] {escape(str(exc))}")
        raise typer.Exit(code=1)

    if not deleted:
        console.print(f"No handler with id {handler_id}")
        raise typer.Exit(code=1)
    console.print(f"[bold green]Deleted[/bold green] handler {handler_id}")


@graph_app.command("export")
def graph_export(
    state_dir: str = typer.Option(".", envvar=STATE_DIR_ENV, help="Directory holding .serverless_api/state.db"),
    format: str = typer.Option("json", help="Export format: json|dot"),
    out: Optional[str] = typer.Option(None, help="Output path (default: print to stdout)"),
    limit: int = typer.Option(10_000, help="Max resources to load per kind"),
) -> None:
    fmt = format.lower().strip()
    if fmt not in ("json", "dot"):
        raise typer.BadParameter("format must be one of: json, dot")

    store = _open_state(state_dir)
    handlers = store.list_handlers(limit=limit)
    gateways = store.list_gateways(limit=limit)

    # Pull in handlers routed to by a loaded gateway but cut off by the limit,
    # so only handlers missing from the store are drawn as borrowed.
    loaded = {h["id"] for h in handlers}
    handlers += store.get_handlers(gw["handler_id"] for gw in gateways if gw["handler_id"] not in loaded)

    result = build_resource_graph(handlers, gateways)
    g = result.graph

    if fmt == "json":
        payload = {
            "db": str(store.db_path),
            "generated_at": result.generated_at,
            "nodes": [
                {"id": n.id, "type": n.type, "label": n.label}
                for n in sorted(g.nodes.values(), key=lambda x: (x.type, x.id))
            ],
            "edges": [
                {"src": e.src, "dst": e.dst, "type": e.type}
                for e in g.edges
            ],
        }
        text = json.dumps(payload, indent=2)
    else:
        # DOT (Graphviz) export
        lines = []
        lines.append("digraph topology {")
        lines.append('  rankdir="LR";')
        lines.append('  node [shape="box"];')

        for node in sorted(g.nodes.values(), key=lambda x: (x.type, x.id)):
            label = node.label.replace('"', '\\"')
            lines.append(f'  "{node.id}" [label="{label}"];')

        for e in g.edges:
            lines.append(f'  "{e.src}" -> "{e.dst}" [label="{e.type}"];')

        lines.append("}")
        text = "\n".join(lines)

    if out:
        out_path = Path(out).expanduser()
        out_path.parent.mkdir(parents=True, exist_ok=True)
        out_path.write_text(text, encoding="utf-8")
        console.print(f"[bold green]Wrote[/bold green] {fmt} graph to: {out_path}")
    else:
        console.print(text, markup=False, soft_wrap=True)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
