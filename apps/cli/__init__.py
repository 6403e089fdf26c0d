"""apkg-import CLI application."""

import json
from pathlib import Path

import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from packages.apkg.models import ImportResult
from packages.common.config import get_settings
from packages.common.exceptions import DeckImportError, MediaNotSupportedError
from packages.common.logging import configure_logging

app = typer.Typer(
    name="apkg-import",
    help="Validate and convert Anki .apkg packages into text-only decks",
    no_args_is_help=True,
)

console = Console()

VERSION = "0.1.0"


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logs"),
) -> None:
    """Configure logging for every command."""
    settings = get_settings()
    configure_logging(debug=verbose or settings.debug, json_output=settings.json_logs)


@app.command()
def version() -> None:
    """Show version information."""
    console.print(f"apkg-import {VERSION}")


@app.command()
def inspect(
    path: Path = typer.Argument(..., help="Path to the .apkg file"),
    previews: int | None = typer.Option(
        None,
        "--previews",
        "-p",
        help="Number of card previews to render (defaults to APKG_PREVIEW_LIMIT)",
    ),
    as_json: bool = typer.Option(
        False,
        "--json",
        help="Print the full import result as JSON",
    ),
) -> None:
    """Import a package and summarize its decks, note types and cards."""
    from packages.apkg.importer import import_apkg

    source_path = path.expanduser().resolve()
    if not source_path.is_file():
        console.print(f"[red]Error:[/red] File not found: {source_path}")
        raise typer.Exit(1)

    try:
        result = import_apkg(source_path.read_bytes(), source_path.name, preview_limit=previews)
    except DeckImportError as e:
        if as_json:
            typer.echo(json.dumps(e.to_dict(), indent=2, default=str))
        else:
            _print_error(e)
        raise typer.Exit(1) from None

    if as_json:
        typer.echo(result.model_dump_json(indent=2))
        return

    _print_summary(result)


def _print_error(error: DeckImportError) -> None:
    """Render an import failure with its explanation and remediation."""
    console.print(f"[red]Import failed ({error.kind}):[/red] {error.user_message}")
    console.print(f"[dim]{escape(str(error))}[/dim]")

    if isinstance(error, MediaNotSupportedError) and error.locations:
        table = Table(title="Media found")
        table.add_column("Location", style="cyan")
        table.add_column("Type", style="yellow")
        table.add_column("Reference")
        for location in error.locations[:20]:
            for ref in location.media:
                table.add_row(escape(location.location), ref.type, escape(ref.reference))
        console.print(table)
        if len(error.locations) > 20:
            console.print(f"[dim]...and {len(error.locations) - 20} more locations[/dim]")

    if error.remediation:
        console.print(Panel(error.remediation, title="How to fix", border_style="yellow"))


def _print_summary(result: ImportResult) -> None:
    """Render deck, note type, statistics and preview tables."""
    stats = result.statistics

    table = Table(title="Collection")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right", style="green")
    table.add_row("Database entry", result.database_entry or "-")
    table.add_row("Archive entries", str(result.entry_count))
    table.add_row("Decks", str(result.deck_info.deck_count))
    table.add_row("Note types", str(result.note_types.model_count))
    table.add_row("Notes", str(stats.total_notes))
    table.add_row("Cards", str(stats.total_cards))
    table.add_row("Cards per note", str(stats.average_cards_per_note))
    table.add_row("Orphaned cards", str(stats.orphaned_cards))
    console.print(table)

    if result.deck_info.decks:
        default_id = result.deck_info.default_deck.id if result.deck_info.default_deck else None
        table = Table(title="Decks")
        table.add_column("ID", style="dim")
        table.add_column("Name", style="cyan")
        table.add_column("Description")
        for deck in result.deck_info.decks.values():
            name = escape(deck.name)
            if deck.id == default_id:
                name += " [green](default)[/green]"
            table.add_row(str(deck.id), name, escape(deck.description[:60]) or "-")
        console.print(table)

    if result.note_types.models:
        table = Table(title="Note Types")
        table.add_column("Name", style="cyan")
        table.add_column("Fields")
        table.add_column("Cards", justify="right")
        for model in result.note_types.models.values():
            table.add_row(escape(model.name), ", ".join(model.fields) or "-", str(model.card_count))
        console.print(table)

    if stats.cards_by_status:
        table = Table(title="Cards by Status")
        table.add_column("Status", style="cyan")
        table.add_column("Count", justify="right", style="green")
        for entry in stats.cards_by_status:
            table.add_row(entry.status, str(entry.count))
        console.print(table)

    for preview in result.previews:
        console.print(
            Panel(
                f"[bold]Front:[/bold] {escape(preview.front)}\n[bold]Back:[/bold] {escape(preview.back)}",
                title=escape(f"Card {preview.card_id} · {preview.note_type} · {preview.template_name}"),
                subtitle=preview.status,
            )
        )

    for error in [*result.deck_info.errors, *result.note_types.errors]:
        console.print(f"[yellow]Warning:[/yellow] {escape(error)}")

    if result.unreferenced_files:
        console.print(
            f"[yellow]Warning:[/yellow] {len(result.unreferenced_files)} unreferenced "
            "file(s) in the package were ignored"
        )
