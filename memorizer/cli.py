"""
CLI for Memorizer.

Commands:
- init: Create the storage directory and configuration
- add: Store a memory
- get: Show a memory and its relationships
- search: Search for memories
- list: List stored memories
- delete: Delete a memory by ID
- link: Create a relationship between two memories
- stats: Show memory and relationship counts
- serve: Start the MCP server
"""

import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional
from uuid import UUID

import click
from rich.console import Console
from rich.table import Table
from rich.prompt import Prompt, Confirm
from rich.panel import Panel

from memorizer import __version__
from memorizer.config import Config, EmbeddingProvider, TitleProvider
from memorizer.core.embedding_factory import EmbeddingError
from memorizer.core.memory_manager import MemoryManager, create_memory_manager
from memorizer.core.validation import ValidationError
from memorizer.models import RelationshipType
from memorizer.storage.vector_db import StorageError

console = Console()

logger = logging.getLogger("memorizer")


def configure_logging(level: str) -> None:
    """Configure root logging for CLI commands."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def ensure_initialized(config: Config) -> MemoryManager:
    """Ensure Memorizer is initialized and return a wired memory manager."""
    if not config.sqlite_path.exists():
        console.print("[red]Memorizer not initialized. Run 'memorizer init' first.[/red]")
        sys.exit(1)

    try:
        return create_memory_manager(config)
    except (ValueError, ImportError, StorageError) as e:
        console.print(f"[red]Error: {e}[/red]")
        if config.embedding_provider == EmbeddingProvider.LOCAL:
            console.print("[dim]Install local embeddings: pip install memorizer[local][/dim]")
        sys.exit(1)


def parse_memory_id(memory_id: str) -> UUID:
    """Parse a memory ID argument or exit with an error."""
    try:
        return UUID(memory_id)
    except ValueError:
        console.print(f"[red]Invalid memory ID: {memory_id}[/red]")
        sys.exit(1)


@click.group()
@click.option("--config", "-c", type=click.Path(exists=True), help="Path to config file")
@click.version_option(__version__)
@click.pass_context
def main(ctx: click.Context, config: Optional[str]) -> None:
    """Memorizer - memory storage and semantic retrieval."""
    ctx.ensure_object(dict)

    if config:
        ctx.obj["config"] = Config.load(Path(config))
    else:
        ctx.obj["config"] = Config.load()

    configure_logging(ctx.obj["config"].log_level)


@main.command()
@click.option(
    "--provider", "-p",
    type=click.Choice([p.value for p in EmbeddingProvider]),
    default="local",
    help="Embedding provider (default: local for free embeddings)",
)
@click.option(
    "--titles",
    type=click.Choice([p.value for p in TitleProvider]),
    default="truncate",
    help="Title generator (default: truncate text)",
)
@click.option("--api-key", "-k", default=None, help="OpenAI API key (optional)")
@click.pass_context
def init(ctx: click.Context, provider: str, titles: str, api_key: Optional[str]) -> None:
    """Initialize Memorizer storage and configuration."""
    config: Config = ctx.obj["config"]

    console.print(Panel.fit(
        f"[bold blue]Memorizer v{__version__}[/bold blue]\n"
        "Memory storage and semantic retrieval",
        border_style="blue",
    ))

    if config.sqlite_path.exists():
        console.print(f"[yellow]Database already exists at {config.sqlite_path}.[/yellow]")
        if not Confirm.ask("Rewrite configuration?"):
            return

    config.embedding_provider = EmbeddingProvider(provider)
    config.title_provider = TitleProvider(titles)

    if config.embedding_provider == EmbeddingProvider.OPENAI or config.title_provider == TitleProvider.OPENAI:
        if not api_key:
            if config.openai_api_key:
                api_key = config.openai_api_key
                console.print("[dim]Using existing OpenAI API key[/dim]")
            else:
                api_key = Prompt.ask("OpenAI API key")
        config.openai_api_key = api_key

    if config.embedding_provider == EmbeddingProvider.LOCAL:
        console.print("[green]Using local embeddings (free, no API key needed)[/green]")
        console.print(f"[dim]Model: {config.local_embedding_model}[/dim]")

    config.ensure_directories()

    # Creates the schema and pins the dimension the provider reports
    try:
        manager = create_memory_manager(config)
    except (EmbeddingError, StorageError, ValueError, ImportError) as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)
    manager.close()

    config.save()

    console.print("\n[green]✓ Memorizer initialized[/green]")
    console.print(f"[dim]Embedding provider: {config.embedding_provider.value}[/dim]")
    console.print(f"[dim]Config: {config.storage_path / 'config.yaml'}[/dim]")
    console.print(f"[dim]Database: {config.sqlite_path}[/dim]")
    console.print("\n[bold]Next steps:[/bold]")
    console.print("  1. Add memories: [cyan]memorizer add 'We use FastAPI' --type reference[/cyan]")
    console.print("  2. Start server: [cyan]memorizer serve[/cyan]")


@main.command()
@click.argument("text")
@click.option("--type", "-t", "memory_type", default="note", help="Memory type")
@click.option("--source", "-s", default="user", help="Memory source")
@click.option("--tag", "tags", multiple=True, help="Tag (repeatable)")
@click.option("--confidence", type=click.FloatRange(0.0, 1.0), default=1.0, help="Confidence score")
@click.option("--title", default=None, help="Title (generated when omitted)")
@click.option("--related-to", default=None, help="ID of a related memory")
@click.option(
    "--relationship",
    default=RelationshipType.RELATED.value,
    help="Relationship type used with --related-to",
)
@click.pass_context
def add(
    ctx: click.Context,
    text: str,
    memory_type: str,
    source: str,
    tags: tuple[str, ...],
    confidence: float,
    title: Optional[str],
    related_to: Optional[str],
    relationship: str,
) -> None:
    """Store a new memory."""
    config: Config = ctx.obj["config"]
    manager = ensure_initialized(config)
    related_id = parse_memory_id(related_to) if related_to else None

    try:
        with console.status("[bold green]Generating embeddings..."):
            memory = manager.store_text(
                memory_type=memory_type,
                text=text,
                source=source,
                tags=list(tags),
                confidence=confidence,
                title=title,
                related_to=related_id,
                relationship_type=relationship if related_id else None,
            )
    except ValidationError as e:
        console.print(f"[red]Validation error: {e.message}[/red]")
        sys.exit(1)
    except (EmbeddingError, StorageError) as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)
    finally:
        manager.close()

    console.print("\n[bold]Memory stored[/bold]")
    console.print(f"  ID: {memory.id}")
    console.print(f"  Title: {memory.title}")
    console.print(f"  Type: {memory.type}")
    if memory.tags:
        console.print(f"  Tags: {', '.join(memory.tags)}")


@main.command()
@click.argument("memory_id")
@click.pass_context
def get(ctx: click.Context, memory_id: str) -> None:
    """Show a memory and its relationships."""
    config: Config = ctx.obj["config"]
    manager = ensure_initialized(config)
    uuid = parse_memory_id(memory_id)

    try:
        memory = manager.get_memory(uuid)
    finally:
        manager.close()

    if memory is None:
        console.print(f"[red]Memory not found: {memory_id}[/red]")
        sys.exit(1)

    console.print(Panel(
        memory.text,
        title=f"[bold]{memory.title or memory.id}[/bold]",
        subtitle=f"{memory.type} | {memory.source} | confidence {memory.confidence:.2f}",
    ))
    if memory.tags:
        console.print(f"[dim]Tags: {', '.join(memory.tags)}[/dim]")

    for rel in memory.relationships:
        direction = "→" if rel.from_memory_id == uuid else "←"
        other = rel.to_memory_id if rel.from_memory_id == uuid else rel.from_memory_id
        label = rel.related_memory_title or str(other)
        console.print(f"  {direction} [cyan]{rel.type}[/cyan] {label} [dim]({other})[/dim]")


@main.command()
@click.argument("query")
@click.option("--limit", "-l", default=None, type=int, help="Maximum number of results")
@click.option("--min-similarity", "-m", default=None, type=click.FloatRange(-1.0, 1.0), help="Similarity threshold")
@click.option("--tag", "tags", multiple=True, help="Filter by tag (repeatable, any match)")
@click.pass_context
def search(
    ctx: click.Context,
    query: str,
    limit: Optional[int],
    min_similarity: Optional[float],
    tags: tuple[str, ...],
) -> None:
    """Search for relevant memories."""
    config: Config = ctx.obj["config"]
    manager = ensure_initialized(config)

    try:
        with console.status("[bold green]Searching..."):
            results = manager.search_memories(
                query=query,
                limit=limit or config.search_limit,
                filter_tags=list(tags) or None,
                min_similarity=config.min_similarity if min_similarity is None else min_similarity,
            )
    except ValidationError as e:
        console.print(f"[red]Validation error: {e.message}[/red]")
        sys.exit(1)
    except (EmbeddingError, StorageError) as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)
    finally:
        manager.close()

    if not results:
        console.print("[dim]No relevant memories found.[/dim]")
        return

    console.print(f"\n[bold]Found {len(results)} relevant memories:[/bold]\n")

    for i, memory in enumerate(results, 1):
        console.print(f"[cyan]{i}. [{memory.type}] {memory.title}[/cyan] [dim](score: {memory.similarity:.2f})[/dim]")
        console.print(f"   {memory.text[:200]}{'...' if len(memory.text) > 200 else ''}")
        console.print(f"   [dim]ID: {memory.id}[/dim]")
        console.print()


@main.command("list")
@click.option("--type", "-t", "memory_type", default=None, help="Filter by memory type")
@click.option("--limit", "-l", default=20, help="Maximum number of results")
@click.pass_context
def list_memories(ctx: click.Context, memory_type: Optional[str], limit: int) -> None:
    """List stored memories."""
    config: Config = ctx.obj["config"]
    manager = ensure_initialized(config)

    try:
        memories = manager.list_memories(memory_type=memory_type, limit=limit)
    finally:
        manager.close()

    if not memories:
        console.print("[dim]No memories stored yet.[/dim]")
        return

    table = Table(title=f"Memories ({len(memories)})")
    table.add_column("Type", style="cyan", width=12)
    table.add_column("Title", width=50)
    table.add_column("Tags", width=20)
    table.add_column("ID", style="dim", width=36)

    for memory in memories:
        table.add_row(
            memory.type,
            (memory.title or "").replace("\n", " "),
            ", ".join(memory.tags),
            str(memory.id),
        )

    console.print(table)


@main.command()
@click.argument("memory_id")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation")
@click.pass_context
def delete(ctx: click.Context, memory_id: str, yes: bool) -> None:
    """Delete a memory by ID."""
    config: Config = ctx.obj["config"]
    manager = ensure_initialized(config)
    uuid = parse_memory_id(memory_id)

    try:
        memory = manager.get_memory(uuid)
        if memory is None:
            console.print(f"[red]Memory not found: {memory_id}[/red]")
            sys.exit(1)

        console.print(f"Memory: {memory.title}")
        if memory.relationships:
            console.print(f"[dim]{len(memory.relationships)} relationship(s) will be removed too[/dim]")
        if not yes and not Confirm.ask("Delete this memory?"):
            return

        manager.delete_memory(uuid)
    finally:
        manager.close()

    console.print("[green]✓ Memory deleted[/green]")


@main.command()
@click.argument("from_id")
@click.argument("to_id")
@click.option(
    "--type", "-t", "relationship_type",
    default=RelationshipType.RELATED.value,
    help="Relationship type (e.g. Related, PartOf, ExampleOf)",
)
@click.pass_context
def link(ctx: click.Context, from_id: str, to_id: str, relationship_type: str) -> None:
    """Create a relationship between two memories."""
    config: Config = ctx.obj["config"]
    manager = ensure_initialized(config)

    try:
        relationship = manager.create_relationship(
            parse_memory_id(from_id),
            parse_memory_id(to_id),
            relationship_type,
        )
    except ValidationError as e:
        console.print(f"[red]Validation error: {e.message}[/red]")
        sys.exit(1)
    except StorageError as e:
        console.print(f"[red]Could not create relationship (do both memories exist?): {e}[/red]")
        sys.exit(1)
    finally:
        manager.close()

    console.print(f"[green]✓ Relationship created[/green] [dim]{relationship.id}[/dim]")


@main.command()
@click.pass_context
def stats(ctx: click.Context) -> None:
    """Show memory and relationship counts."""
    config: Config = ctx.obj["config"]
    manager = ensure_initialized(config)

    try:
        statistics = manager.get_statistics()
    finally:
        manager.close()

    table = Table(title=f"Memories ({statistics.total_memories})")
    table.add_column("Type", style="cyan")
    table.add_column("Count", justify="right")
    for memory_type, count in sorted(statistics.by_type.items()):
        table.add_row(memory_type, str(count))

    console.print(table)
    console.print(f"Relationships: {statistics.total_relationships}")


@main.command()
@click.pass_context
def serve(ctx: click.Context) -> None:
    """Start the MCP server."""
    config: Config = ctx.obj["config"]

    if not config.sqlite_path.exists():
        console.print("[red]Memorizer not initialized. Run 'memorizer init' first.[/red]")
        sys.exit(1)

    # stdout carries the MCP protocol, so status goes to stderr
    err_console = Console(stderr=True)
    err_console.print("[bold blue]Starting Memorizer MCP Server...[/bold blue]")
    err_console.print(f"[dim]Embedding: {config.embedding_provider.value}[/dim]")
    err_console.print(f"[dim]Storage: {config.storage_path}[/dim]")

    try:
        asyncio.run(_serve(config))
    except KeyboardInterrupt:
        err_console.print("\n[yellow]Server stopped.[/yellow]")


async def _serve(config: Config) -> None:
    from memorizer.mcp.server import run_mcp_server

    await run_mcp_server(config)


if __name__ == "__main__":
    main()
