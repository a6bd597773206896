"""Glimpse CLI - manage memory stores and query captured activity.

Usage:
    glimpse stores
    glimpse create Work
    glimpse ingest ./shots/*.png
    glimpse index
    glimpse ask "what was I reading about earlier?" -k 3
"""

from __future__ import annotations

import asyncio
import json
from datetime import datetime
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from glimpse.app.config import GlimpseConfig, set_config
from glimpse.core.errors import GlimpseError
from glimpse.core.models import RetrievalStatus
from glimpse.storage.database_manager import DatabaseManager
from glimpse.utils.logging import get_logger, log_context, log_error, log_operation, setup_logging

app = typer.Typer(
    name="glimpse",
    help="Glimpse - searchable memory of your screen activity",
    add_completion=False,
)

console = Console()
logger = get_logger("cli")


def _format_time(millis: int) -> str:
    return datetime.fromtimestamp(millis / 1000).strftime("%Y-%m-%d %H:%M:%S")


def _config(ctx: typer.Context) -> GlimpseConfig:
    return ctx.obj


def _open_manager(config: GlimpseConfig) -> DatabaseManager:
    """Manager for the configured data dir; use with ``async with``."""
    return DatabaseManager(
        config.data_dir,
        debounce_seconds=config.storage.debounce_seconds,
        requeue_orphans=config.storage.requeue_orphans,
    )


def _run(coro, command: str) -> None:
    """Run a command coroutine, turning library errors into exit code 1."""
    with log_context(command=command):
        try:
            asyncio.run(coro)
        except (GlimpseError, ValueError) as e:
            log_error(logger, command, e)
            console.print(f"[red]Error:[/red] {escape(str(e))}")
            raise typer.Exit(1)


@app.callback()
def main_callback(
    ctx: typer.Context,
    config_path: Annotated[Path | None, typer.Option("--config", "-c", help="Path to configuration file")] = None,
    data_dir: Annotated[Path | None, typer.Option("--data-dir", "-d", help="Override the data directory")] = None,
    log_level: Annotated[str | None, typer.Option("--log-level", "-l", help="DEBUG, INFO, WARNING or ERROR")] = None,
) -> None:
    """Load configuration and set up logging."""
    config = GlimpseConfig.load(config_path)
    if data_dir is not None:
        config.data_dir = data_dir
    if log_level:
        config.log_level = log_level.upper()
    config.ensure_directories()

    setup_logging(
        level=config.log_level,
        log_dir=config.log_dir,
        console_output=config.log_level == "DEBUG",
        file_output=True,
    )
    set_config(config)
    ctx.obj = config


# ============================================================================
# Store Management
# ============================================================================


@app.command("stores")
def list_stores(ctx: typer.Context) -> None:
    """List stores, marking the active one."""

    async def _list() -> None:
        async with _open_manager(_config(ctx)) as manager:
            table = Table(title="Memory Stores")
            table.add_column("", width=1)
            table.add_column("Name", style="bold", no_wrap=True)
            table.add_column("ID")
            table.add_column("Created")
            table.add_column("Last accessed")
            for entry in manager.list_stores():
                marker = "*" if entry.id == manager.active_id else ""
                table.add_row(
                    marker,
                    escape(entry.name),
                    entry.id,
                    _format_time(entry.created_at),
                    _format_time(entry.last_accessed_at),
                )
            console.print(table)

    _run(_list(), "stores")


@app.command("create")
def create_store(
    ctx: typer.Context,
    name: Annotated[str, typer.Argument(help="Display name of the new store")],
    activate: Annotated[bool, typer.Option("--activate", "-a", help="Make the new store active")] = False,
) -> None:
    """Create a new store."""

    async def _create() -> None:
        async with _open_manager(_config(ctx)) as manager:
            store_id = await manager.create(name)
            log_operation(logger, "Created store", {"name": name, "id": store_id})
            if activate:
                await manager.switch(store_id)
            console.print(f"[green]Created[/green] '{escape(name)}' ({store_id})")

    _run(_create(), "create")


@app.command("switch")
def switch_store(
    ctx: typer.Context,
    store: Annotated[str, typer.Argument(help="Store name or id")],
) -> None:
    """Make a store active."""

    async def _switch() -> None:
        async with _open_manager(_config(ctx)) as manager:
            entry = manager.resolve(store)
            await manager.switch(entry.id)
            console.print(f"Active store: [bold]{escape(entry.name)}[/bold] ({entry.id})")

    _run(_switch(), "switch")


@app.command("rename")
def rename_store(
    ctx: typer.Context,
    store: Annotated[str, typer.Argument(help="Store name or id")],
    new_name: Annotated[str, typer.Argument(help="New display name")],
) -> None:
    """Rename a store."""

    async def _rename() -> None:
        async with _open_manager(_config(ctx)) as manager:
            entry = manager.resolve(store)
            await manager.rename(entry.id, new_name)
            console.print(f"Renamed '{escape(entry.name)}' to '{escape(new_name)}'")

    _run(_rename(), "rename")


@app.command("delete")
def delete_store(
    ctx: typer.Context,
    store: Annotated[str, typer.Argument(help="Store name or id")],
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Skip confirmation")] = False,
) -> None:
    """Delete a store and all of its memories."""

    async def _delete() -> None:
        async with _open_manager(_config(ctx)) as manager:
            entry = manager.resolve(store)
            if not yes and not typer.confirm(f"Delete '{entry.name}' and all its memories?"):
                console.print("Aborted.")
                return
            await manager.delete(entry.id)
            console.print(f"[yellow]Deleted[/yellow] '{escape(entry.name)}'")

    _run(_delete(), "delete")


# ============================================================================
# Store Contents
# ============================================================================


@app.command("stats")
def show_stats(ctx: typer.Context) -> None:
    """Show record counts for the active store."""

    async def _stats() -> None:
        async with _open_manager(_config(ctx)) as manager:
            entry = manager.get_active_entry()
            store = await manager.get_active()
            stats = store.get_stats()
            console.print(Panel(
                f"[bold]Total:[/bold] {stats.total}\n"
                f"[bold]Completed:[/bold] {stats.completed}\n"
                f"[bold]Pending:[/bold] {stats.pending}\n"
                f"[bold]Processing:[/bold] {stats.processing}\n"
                f"[bold]Failed:[/bold] {stats.failed}",
                title=f"{escape(entry.name)} ({entry.id})",
                border_style="blue",
            ))

    _run(_stats(), "stats")


@app.command("export")
def export_records(
    ctx: typer.Context,
    output: Annotated[Path | None, typer.Option("--output", "-o", help="Write JSON here instead of stdout")] = None,
) -> None:
    """Dump every record of the active store as JSON."""

    async def _export() -> None:
        async with _open_manager(_config(ctx)) as manager:
            store = await manager.get_active()
            document = json.dumps(store.export_json(), indent=2, ensure_ascii=False)
            if output is not None:
                output.write_text(document, encoding="utf-8")
                console.print(f"Exported {len(store)} records to {output}")
            else:
                typer.echo(document)

    _run(_export(), "export")


@app.command("ingest")
def ingest_images(
    ctx: typer.Context,
    images: Annotated[list[Path], typer.Argument(help="Captured image files")],
) -> None:
    """Describe images with the vision model and add them to the active store.

    Records stored before a failure are still written to disk.
    """
    from glimpse.capture.ingest import CaptureIngestor
    from glimpse.providers.factory import create_rate_limiter, create_vision_provider

    async def _ingest() -> None:
        config = _config(ctx)
        async with _open_manager(config) as manager:
            with log_context(store=manager.active_id):
                vision = create_vision_provider(config, rate_limiter=create_rate_limiter(config))
                async with vision:
                    ingestor = CaptureIngestor(manager, vision)
                    for image in images:
                        if not image.exists():
                            console.print(f"[red]Missing:[/red] {image}")
                            continue
                        record_id = await ingestor.ingest(image)
                        if record_id:
                            console.print(f"[green]Stored[/green] {escape(image.name)} -> {record_id}")
                        else:
                            console.print(f"[yellow]Discarded[/yellow] {escape(image.name)}")
                log_operation(
                    logger,
                    "Ingested captures",
                    {"stored": ingestor.ingested, "discarded": ingestor.discarded},
                )

    _run(_ingest(), "ingest")


@app.command("index")
def index_pending(ctx: typer.Context) -> None:
    """Embed every pending record of the active store.

    Records are embedded one at a time, ``indexing.delay_seconds`` apart.
    """
    from glimpse.indexing.embedding_worker import EmbeddingWorker
    from glimpse.providers.factory import create_embedding_provider, create_rate_limiter

    async def _index() -> None:
        config = _config(ctx)
        async with _open_manager(config) as manager:
            with log_context(store=manager.active_id):
                store = await manager.get_active()
                provider = create_embedding_provider(config, rate_limiter=create_rate_limiter(config))
                async with provider:
                    worker = EmbeddingWorker(store, provider, delay=config.indexing.delay_seconds)
                    with console.status(f"Indexing {len(store.pending_records())} pending records..."):
                        processed = await worker.drain()
                log_operation(logger, "Indexed pending records", {"processed": processed})
                stats = store.get_stats()
                console.print(
                    f"Processed {processed}: {stats.completed} completed, {stats.failed} failed in total"
                )

    _run(_index(), "index")


@app.command("ask")
def ask(
    ctx: typer.Context,
    question: Annotated[str, typer.Argument(help="Natural-language question")],
    k: Annotated[int | None, typer.Option("--top-k", "-k", help="Number of memories to return")] = None,
    answer: Annotated[bool, typer.Option(
        "--answer/--no-answer", help="Ask the vision model to answer from the matched screenshots"
    )] = True,
) -> None:
    """Find the memories most relevant to a question and answer it from them."""
    from glimpse.providers.factory import create_embedding_provider, create_vision_provider
    from glimpse.retrieval.answer import answer_question
    from glimpse.retrieval.retriever import Retriever

    async def _ask() -> None:
        config = _config(ctx)
        async with _open_manager(config) as manager:
            with log_context(store=manager.active_id):
                store = await manager.get_active()
                async with create_embedding_provider(config) as provider:
                    retriever = Retriever(
                        store,
                        provider,
                        recency_weight=config.retrieval.recency_weight,
                        min_similarity=config.retrieval.min_similarity,
                    )
                    outcome = await retriever.retrieve(question, k or config.retrieval.top_k)

                if outcome.status is RetrievalStatus.EMPTY_CORPUS:
                    console.print(
                        "[yellow]No memories indexed yet.[/yellow] "
                        f"{outcome.pending} awaiting indexing."
                    )
                    return
                if outcome.status is RetrievalStatus.NO_MATCH:
                    console.print(f"No relevant memories among {outcome.indexed} indexed.")
                    return

                table = Table(title=f"Top {len(outcome.results)} of {outcome.indexed} indexed")
                table.add_column("#", justify="right")
                table.add_column("Captured")
                table.add_column("Similarity", justify="right")
                table.add_column("Description")
                for i, result in enumerate(outcome.results, 1):
                    table.add_row(
                        str(i),
                        _format_time(result.record.capture_time),
                        f"{result.similarity:.3f}",
                        escape(result.record.summary()),
                    )
                console.print(table)
                if outcome.indexing_in_progress:
                    console.print(f"[dim]{outcome.pending} memories still being indexed.[/dim]")

                if not answer:
                    return
                async with create_vision_provider(config) as vision:
                    with console.status("Asking the vision model..."):
                        reply = await answer_question(vision, question, outcome.results)
                if reply is None:
                    console.print("[yellow]None of the matched screenshots are on disk anymore.[/yellow]")
                else:
                    console.print(Panel(escape(reply), title="Answer", border_style="green"))

    _run(_ask(), "ask")


def main() -> None:
    """Console script entry point."""
    app()


if __name__ == "__main__":
    main()
