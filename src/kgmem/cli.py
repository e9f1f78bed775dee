"""kgmem CLI: per-project knowledge graph memory backed by JSONL files.

Commands:
    kgmem serve                        start stdio MCP server
    kgmem projects                     list project stores under the base dir
    kgmem show PROJECT                 tables of entities and relations
    kgmem search PROJECT QUERY         matching sub-graph as JSON
    kgmem open PROJECT NAME...         named sub-graph as JSON
    kgmem delete-entity PROJECT NAME...  delete entities and their relations
"""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path

import click

from kgmem.config import MemoryConfig, load_config
from kgmem.errors import KGMemoryError
from kgmem.mcp import run_server
from kgmem.models import KnowledgeGraph
from kgmem.operations import KnowledgeGraphManager
from kgmem.store import GraphStore

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _manager(cfg: MemoryConfig) -> KnowledgeGraphManager:
    return KnowledgeGraphManager(GraphStore.from_config(cfg))


def _echo_graph(graph: KnowledgeGraph) -> None:
    click.echo(json.dumps(graph.to_dict(), indent=2, ensure_ascii=False))


# ---------------------------------------------------------------------------
# Root group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(package_name="kgmem")
@click.option(
    "--base-dir",
    default=None,
    type=click.Path(file_okay=False, path_type=Path),
    help="Memory root (default: $MCP_BASE_MEMORY_DIR or ~/.mcp_server_memory)",
)
@click.option(
    "--config",
    "config_path",
    default=None,
    type=click.Path(dir_okay=False, path_type=Path),
    help="TOML config file",
)
@click.pass_context
def cli(ctx: click.Context, base_dir: Path | None, config_path: Path | None) -> None:
    """Per-project knowledge graph memory."""
    try:
        cfg = load_config(config_path)
    except (OSError, ValueError) as exc:
        raise click.ClickException(str(exc)) from exc
    if base_dir is not None:
        cfg.base_dir = base_dir.expanduser().resolve()
    ctx.obj = cfg


# ---------------------------------------------------------------------------
# kgmem serve
# ---------------------------------------------------------------------------


@cli.command()
@click.pass_obj
def serve(cfg: MemoryConfig) -> None:
    """Start stdio MCP server (register it in your agent's MCP config)."""
    logging.basicConfig(
        level=cfg.log_level,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
        stream=sys.stderr,
    )
    try:
        run_server(cfg)
    except KeyboardInterrupt:
        pass


# ---------------------------------------------------------------------------
# kgmem projects / show
# ---------------------------------------------------------------------------


@cli.command()
@click.pass_obj
def projects(cfg: MemoryConfig) -> None:
    """List project stores under the base directory."""
    names = GraphStore.from_config(cfg).list_projects()
    if not names:
        click.echo(f"No projects under {cfg.base_dir}")
        return
    for name in names:
        click.echo(name)


@cli.command()
@click.argument("project")
@click.pass_obj
def show(cfg: MemoryConfig, project: str) -> None:
    """Show a project's entities and relations as tables."""
    from rich.console import Console
    from rich.table import Table

    try:
        graph = _manager(cfg).read_graph(project)
    except KGMemoryError as exc:
        raise click.ClickException(f"{exc.kind}: {exc}") from exc

    console = Console()

    entities = Table(title=f"{project} — entities", show_header=True, header_style="bold")
    entities.add_column("Name", no_wrap=True)
    entities.add_column("Type", style="dim")
    entities.add_column("Observations")
    for e in graph.entities:
        entities.add_row(e.name, e.entity_type, "\n".join(f"- {o}" for o in e.observations))
    console.print(entities)

    relations = Table(title=f"{project} — relations", show_header=True, header_style="bold")
    relations.add_column("From", no_wrap=True)
    relations.add_column("Relation", style="dim")
    relations.add_column("To", no_wrap=True)
    for r in graph.relations:
        relations.add_row(r.source, r.relation_type, r.target)
    console.print(relations)

    console.print(f"[dim]{len(graph.entities)} entities, {len(graph.relations)} relations[/dim]")


# ---------------------------------------------------------------------------
# kgmem search / open
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("project")
@click.argument("query")
@click.pass_obj
def search(cfg: MemoryConfig, project: str, query: str) -> None:
    """Print entities matching QUERY (case-insensitive) and relations among them."""
    try:
        graph = _manager(cfg).search_nodes(project, query)
    except KGMemoryError as exc:
        raise click.ClickException(f"{exc.kind}: {exc}") from exc
    _echo_graph(graph)


@cli.command("open")
@click.argument("project")
@click.argument("names", nargs=-1, required=True)
@click.pass_obj
def open_cmd(cfg: MemoryConfig, project: str, names: tuple[str, ...]) -> None:
    """Print the named entities and relations among them."""
    try:
        graph = _manager(cfg).open_nodes(project, list(names))
    except KGMemoryError as exc:
        raise click.ClickException(f"{exc.kind}: {exc}") from exc
    _echo_graph(graph)


# ---------------------------------------------------------------------------
# kgmem delete-entity
# ---------------------------------------------------------------------------


@cli.command("delete-entity")
@click.argument("project")
@click.argument("names", nargs=-1, required=True)
@click.pass_obj
def delete_entity(cfg: MemoryConfig, project: str, names: tuple[str, ...]) -> None:
    """Delete entities and every relation that references them."""
    try:
        _manager(cfg).delete_entities(project, list(names))
    except KGMemoryError as exc:
        raise click.ClickException(f"{exc.kind}: {exc}") from exc
    click.echo(f"Deleted {len(names)} entit{'y' if len(names) == 1 else 'ies'} from [{project}]")


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
