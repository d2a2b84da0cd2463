"""CLI interface for curator."""

import json
import logging
import sys
from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from curator.config import CuratorConfig, load_config, merge_cli_overrides
from curator.errors import CuratorError, InvalidURL
from curator.intake.models import Category, InputSource, RawInput
from curator.intake.urls import canonicalize_url, entry_id_for_url, validate_url
from curator.pipeline.models import WorkflowResult

app = typer.Typer(
    name="curator",
    help="Ingest links, classify them and keep a versioned content store.",
)

console = Console()
err_console = Console(stderr=True)

_state: dict[str, object] = {"config_path": None}


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        from curator import __version__

        console.print(f"curator {__version__}")
        raise typer.Exit()


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="%H:%M:%S",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )


@app.callback()
def main(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable debug logging."),
    ] = False,
    config_path: Annotated[
        Optional[Path],
        typer.Option("--config", "-c", help="Path to a .curator.toml file."),
    ] = None,
) -> None:
    """Curator - link intake into a versioned content store."""
    _setup_logging(verbose)
    _state["config_path"] = config_path


def _load(**overrides: object) -> CuratorConfig:
    try:
        config = load_config(_state["config_path"])  # type: ignore[arg-type]
        return merge_cli_overrides(config, **overrides)
    except ValueError as exc:
        err_console.print(f"[red]Error:[/red] Invalid configuration: {exc}")
        raise typer.Exit(1) from exc


def _print_result(result: WorkflowResult, as_json: bool) -> None:
    if as_json:
        typer.echo(json.dumps(result.to_payload(), indent=2))
    else:
        colour = "green" if result.success else "red"
        status = "succeeded" if result.success else "failed"
        console.print(f"[bold {colour}]Workflow {status}[/bold {colour}]")
        console.print(f"  Processed: {result.processed_count}")
        if result.created_files:
            console.print(f"  Files: {', '.join(result.created_files)}")
        if result.commit_ref:
            console.print(f"  Commit: {result.commit_ref}")
        for url in result.needs_review:
            console.print(f"  [yellow]Needs review:[/yellow] {url}")
        for url in result.excluded:
            console.print(f"  [dim]Excluded:[/dim] {url}")
        for error in result.errors:
            console.print(f"  [red]Error:[/red] {error}")
    if not result.success:
        raise typer.Exit(1)


@app.command()
def trigger(
    payload_file: Annotated[
        Optional[Path],
        typer.Argument(help="JSON payload file. Reads stdin when omitted."),
    ] = None,
    store_dir: Annotated[
        Optional[Path],
        typer.Option("--store-dir", "-o", help="Filesystem store directory."),
    ] = None,
    store_backend: Annotated[
        Optional[str],
        typer.Option("--backend", help="Store backend: filesystem or github."),
    ] = None,
    classifier_backend: Annotated[
        Optional[str],
        typer.Option("--classifier", help="Classifier backend: rules or llm."),
    ] = None,
    max_workers: Annotated[
        Optional[int],
        typer.Option("--workers", "-w", help="Extraction worker count."),
    ] = None,
) -> None:
    """Run the workflow for a JSON trigger payload and print the JSON result."""
    from curator.pipeline.trigger import handle_trigger
    from curator.pipeline.workflow import ContentWorkflow

    try:
        raw = payload_file.read_text(encoding="utf-8") if payload_file else sys.stdin.read()
        payload = json.loads(raw)
    except (OSError, json.JSONDecodeError) as exc:
        err_console.print(f"[red]Error:[/red] Could not read payload: {exc}")
        raise typer.Exit(1) from exc

    config = _load(
        store_dir=str(store_dir) if store_dir else None,
        store_backend=store_backend,
        classifier_backend=classifier_backend,
        max_workers=max_workers,
    )
    try:
        workflow = ContentWorkflow.from_config(config)
    except ValueError as exc:
        err_console.print(f"[red]Error:[/red] {exc}")
        raise typer.Exit(1) from exc

    result = WorkflowResult.model_validate(handle_trigger(payload, workflow=workflow, config=config))
    _print_result(result, as_json=True)


@app.command()
def ingest(
    urls: Annotated[list[str], typer.Argument(help="URLs to ingest.")],
    sender: Annotated[
        str,
        typer.Option("--sender", "-s", help="Sender recorded on the input."),
    ] = "cli",
    store_dir: Annotated[
        Optional[Path],
        typer.Option("--store-dir", "-o", help="Filesystem store directory."),
    ] = None,
    store_backend: Annotated[
        Optional[str],
        typer.Option("--backend", help="Store backend: filesystem or github."),
    ] = None,
    classifier_backend: Annotated[
        Optional[str],
        typer.Option("--classifier", help="Classifier backend: rules or llm."),
    ] = None,
    max_workers: Annotated[
        Optional[int],
        typer.Option("--workers", "-w", help="Extraction worker count."),
    ] = None,
    as_json: Annotated[
        bool,
        typer.Option("--json", help="Print the result as JSON."),
    ] = False,
) -> None:
    """Ingest one or more URLs directly."""
    from curator.pipeline.workflow import ContentWorkflow

    config = _load(
        store_dir=str(store_dir) if store_dir else None,
        store_backend=store_backend,
        classifier_backend=classifier_backend,
        max_workers=max_workers,
    )
    try:
        workflow = ContentWorkflow.from_config(config)
    except ValueError as exc:
        err_console.print(f"[red]Error:[/red] {exc}")
        raise typer.Exit(1) from exc

    raw = RawInput(sender=sender, urls=urls, source=InputSource.MANUAL)
    _print_result(workflow.run(raw), as_json)


@app.command(name="list")
def list_cmd(
    category: Annotated[str, typer.Argument(help="news, catalog or video.")],
    store_dir: Annotated[
        Optional[Path],
        typer.Option("--store-dir", "-o", help="Filesystem store directory."),
    ] = None,
    as_json: Annotated[
        bool,
        typer.Option("--json", help="Print entries as JSON."),
    ] = False,
) -> None:
    """List the entries stored for a category."""
    from curator.content.store import ContentStore

    try:
        cat = Category(category)
    except ValueError:
        err_console.print(f"[red]Error:[/red] Unknown category: {category}")
        raise typer.Exit(1)
    if cat not in Category.persistable():
        err_console.print(f"[red]Error:[/red] Category {category!r} is never stored")
        raise typer.Exit(1)

    config = _load(store_dir=str(store_dir) if store_dir else None)
    store = ContentStore(config.to_store_backend(), config.store.content_dir)
    try:
        entries = store.read_all(cat)
    except CuratorError as exc:
        err_console.print(f"[red]Error:[/red] {exc}")
        raise typer.Exit(1) from exc

    if as_json:
        typer.echo(json.dumps([e.model_dump(mode="json") for e in entries], indent=2))
        return
    if not entries:
        console.print(f"[yellow]No {cat.value} entries stored.[/yellow]")
        return

    table = Table(title=f"{cat.value} ({len(entries)})")
    table.add_column("Date")
    table.add_column("Title")
    table.add_column("Source")
    table.add_column("Conf.", justify="right")
    for entry in entries:
        when = entry.sort_date.date().isoformat() if entry.sort_date else "-"
        title = entry.title or entry.url
        if entry.needs_review:
            title = f"{title} [yellow](review)[/yellow]"
        table.add_row(when, title, entry.source or "", f"{entry.confidence:.2f}")
    console.print(table)


@app.command()
def canonical(
    url: Annotated[str, typer.Argument(help="URL to canonicalize.")],
) -> None:
    """Show the canonical dedup key and entry id for a URL."""
    try:
        valid = validate_url(url)
    except InvalidURL as exc:
        err_console.print(f"[red]Error:[/red] {exc}")
        raise typer.Exit(1) from exc
    key = canonicalize_url(valid)
    typer.echo(key)
    typer.echo(f"id: {entry_id_for_url(key)}")


if __name__ == "__main__":
    app()
