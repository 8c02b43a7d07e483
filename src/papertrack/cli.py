"""Command-line interface for papertrack."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import structlog
import typer
from rich.console import Console
from rich.table import Table

from papertrack.library import Library
from papertrack.models import PaperRecord, resolve_field
from papertrack.scheduling import ManualHost
from papertrack.services import StaticFilePicker
from papertrack.settings import configure_logging, get_settings
from papertrack.smart_input import SmartInputError, add_from_draft, parse_smart_input
from papertrack.store import RecordNotFoundError
from papertrack.transfer import EXPORT_FORMATS, ImportRejected, export_file, import_file

console = Console()
app = typer.Typer(help="papertrack – research paper tracker")
logger = structlog.get_logger(__name__)


class ConsoleNotifier:
    """Prints notices; confirmations are asked interactively unless ``assume_yes``."""

    def __init__(self, *, assume_yes: bool = False) -> None:
        self._assume_yes = assume_yes

    def notify(self, message: str) -> None:
        console.print(f"[yellow]{message}[/yellow]")

    def confirm(self, message: str) -> bool:
        if self._assume_yes:
            return True
        return typer.confirm(message, default=False)


def _open_library(*, assume_yes: bool = False) -> Library:
    return Library.from_settings(
        get_settings(),
        host=ManualHost(),
        notifier=ConsoleNotifier(assume_yes=assume_yes),
    )


def _get_record(library: Library, record_id: int) -> PaperRecord:
    try:
        return library.store.get(record_id)
    except RecordNotFoundError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=1) from exc


@app.callback()
def main() -> None:
    """Configure logging before any command runs."""
    configure_logging(get_settings().log_level)


@app.command()
def init(library_dir: Optional[Path] = typer.Option(None, help="Override data directory")) -> None:
    """Create the data directory and bootstrap configuration."""
    settings = get_settings()
    target = library_dir or settings.data_dir
    target.mkdir(parents=True, exist_ok=True)
    console.print(f"[green]Library ready:[/green] {target}")
    if library_dir:
        _write_env_var("PAPERTRACK_DATA_DIR", str(target))
        console.print("Updated .env with PAPERTRACK_DATA_DIR")


def _write_env_var(key: str, value: str) -> None:
    env_path = Path(".env")
    lines = []
    if env_path.exists():
        lines = [line for line in env_path.read_text().splitlines() if not line.startswith(f"{key}=")]
    lines.append(f"{key}={value}")
    env_path.write_text("\n".join(lines) + "\n")


@app.command()
def config(
    json_output: bool = typer.Option(False, "--json", help="Output settings as JSON"),
) -> None:
    """Display the resolved settings."""
    settings = get_settings()
    if json_output:
        typer.echo(settings.model_dump_json(indent=2))
        return
    table = Table(title="papertrack Settings")
    table.add_column("Key")
    table.add_column("Value", overflow="fold")
    for key, value in settings.model_dump().items():
        table.add_row(key, str(value))
    console.print(table)


@app.command()
def add(
    title: Optional[str] = typer.Option(None, help="Paper title"),
    authors: Optional[str] = typer.Option(None, help='Authors, e.g. "Smith, J., Jones, A."'),
    year: Optional[str] = typer.Option(None, help="Publication year"),
    journal: Optional[str] = typer.Option(None, help="Journal or venue"),
    volume: Optional[str] = typer.Option(None),
    issue: Optional[str] = typer.Option(None),
    pages: Optional[str] = typer.Option(None),
    doi: Optional[str] = typer.Option(None, help="DOI or URL"),
    keywords: Optional[str] = typer.Option(None, help="Comma-separated keywords"),
    item_type: Optional[str] = typer.Option(None, "--item-type", help="article, book, misc, ..."),
    status: Optional[str] = typer.Option(None, help="to-read, reading, read or skimmed"),
    priority: Optional[str] = typer.Option(None, help="low, medium or high"),
    rating: Optional[str] = typer.Option(None, help="1-5"),
    notes: Optional[str] = typer.Option(None),
) -> None:
    """Add a paper; invalid values fall back to the field defaults."""
    library = _open_library()
    record_id = library.add(
        {
            "item_type": item_type,
            "title": title,
            "authors": authors,
            "year": year,
            "journal": journal,
            "volume": volume,
            "issue": issue,
            "pages": pages,
            "doi": doi,
            "keywords": keywords,
            "status": status,
            "priority": priority,
            "rating": rating,
            "notes": notes,
        }
    )
    library.flush()
    record = library.store.get(record_id)
    console.print(f"[green]Added[/green] #{record_id}: {record.title or 'Untitled Paper'}")
    if record.citation:
        console.print(record.citation)


@app.command("set")
def set_field(
    record_id: int = typer.Argument(..., help="Paper id"),
    field: str = typer.Argument(..., help="Field name (camelCase or snake_case)"),
    value: str = typer.Argument(..., help="New value"),
) -> None:
    """Update one field of a paper."""
    library = _open_library()
    _get_record(library, record_id)
    if not library.store.update(record_id, field, value):
        console.print(f"[red]Cannot update field {field!r}.[/red]")
        raise typer.Exit(code=1)
    library.flush()
    stored = getattr(library.store.get(record_id), resolve_field(field) or field)
    console.print(f"[green]Updated[/green] #{record_id} {field} = {stored!r}")


@app.command()
def delete(
    record_id: int = typer.Argument(..., help="Paper id"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip the confirmation prompt"),
) -> None:
    """Delete a paper and its attached PDF."""
    library = _open_library(assume_yes=yes)
    _get_record(library, record_id)
    if library.store.delete(record_id):
        console.print(f"[green]Deleted[/green] #{record_id}")
    else:
        console.print("Nothing deleted.")
    library.flush()


@app.command()
def clear(
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip the confirmation prompt"),
) -> None:
    """Remove every paper and reset the id counter."""
    library = _open_library(assume_yes=yes)
    if library.store.clear():
        console.print("[green]Library cleared.[/green]")
    else:
        console.print("Nothing cleared.")
    library.flush()


@app.command("list")
def list_items(
    status: Optional[str] = typer.Option(None, help="Filter by reading status"),
) -> None:
    """List stored papers."""
    library = _open_library()
    items = library.store.records()
    if status:
        items = [record for record in items if record.status == status]
    if not items:
        console.print("[yellow]Library is empty. Use `papertrack add` to add papers.")
        return
    table = Table(title="Papers")
    table.add_column("ID", justify="right")
    table.add_column("Title")
    table.add_column("Authors")
    table.add_column("Year")
    table.add_column("Status")
    table.add_column("Priority")
    table.add_column("PDF")
    for record in items:
        table.add_row(
            str(record.id),
            record.title or "Untitled Paper",
            record.authors or "—",
            record.year or "—",
            record.status,
            record.priority,
            "Yes" if record.pdf else "No",
        )
    console.print(table)


@app.command()
def show(record_id: int = typer.Argument(..., help="Paper id")) -> None:
    """Show every field of one paper."""
    library = _open_library()
    record = _get_record(library, record_id)
    table = Table(title=f"Paper #{record_id}")
    table.add_column("Field")
    table.add_column("Value", overflow="fold")
    for key, value in record.to_payload().items():
        if key == "pdf":
            value = value["filename"] if value else ""
        table.add_row(key, str(value) if value not in (None, "") else "—")
    console.print(table)


@app.command()
def cite(
    record_id: int = typer.Argument(..., help="Paper id"),
    copy: bool = typer.Option(False, "--copy", help="Copy the citation to the clipboard"),
) -> None:
    """Print the APA citation of a paper."""
    library = _open_library()
    record = _get_record(library, record_id)
    if copy:
        result = library.copy_citation(record_id)
        library.flush()
        if result.copied:
            console.print("[green]Citation copied to clipboard.[/green]")
        if result.text:
            console.print(result.text)
        return
    citation = library.formatter.cached(record)
    if not citation:
        console.print("[yellow]Cannot generate citation - title and authors are required.")
        raise typer.Exit(code=1)
    console.print(citation.plain_text)


@app.command()
def stats() -> None:
    """Show reading-status counts."""
    library = _open_library()
    summary = library.stats()
    table = Table(title="Library Stats")
    table.add_column("Metric")
    table.add_column("Count", justify="right")
    table.add_row("Total", str(summary.total))
    table.add_row("Read", str(summary.read))
    table.add_row("Reading", str(summary.reading))
    table.add_row("To read", str(summary.to_read))
    table.add_row("Skimmed", str(summary.skimmed))
    console.print(table)


@app.command("import")
def import_command(path: Path = typer.Argument(..., help="CSV, JSON or BibTeX file")) -> None:
    """Import papers from a file."""
    library = _open_library()
    picked = StaticFilePicker(path).pick_file()
    if picked is None:
        console.print(f"[red]File not found: {path}[/red]")
        raise typer.Exit(code=1)
    try:
        summary = import_file(library, picked)
    except ImportRejected as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=1) from exc
    library.flush()
    if summary.skipped:
        console.print(f"Skipped {summary.skipped} malformed entries.")


@app.command()
def export(
    format: str = typer.Option("csv", help="csv, json or bibtex", case_sensitive=False),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write to file"),
) -> None:
    """Export every paper."""
    fmt = format.lower()
    if fmt not in EXPORT_FORMATS:
        raise typer.BadParameter("Format must be 'csv', 'json' or 'bibtex'.")
    library = _open_library()
    if not len(library.store):
        console.print("[yellow]No papers to export.")
        return
    destination = export_file(library, fmt, output)
    console.print(f"[green]Wrote {fmt} export to {destination}")


@app.command()
def attach(
    record_id: int = typer.Argument(..., help="Paper id"),
    pdf: Path = typer.Argument(..., help="PDF file to attach"),
) -> None:
    """Attach a PDF to a paper."""
    library = _open_library()
    _get_record(library, record_id)
    picked = StaticFilePicker(pdf).pick_file()
    if picked is None:
        raise typer.BadParameter("PDF path must point to a file.")
    if not library.store.attach_pdf(record_id, picked.read_bytes(), picked.name):
        console.print("[red]Could not store the PDF.[/red]")
        raise typer.Exit(code=1)
    library.flush()
    console.print(f"[green]Attached[/green] {picked.name} to #{record_id}")


@app.command()
def smart(
    text: str = typer.Argument(..., help="JSON paper info or free text"),
    add_draft: bool = typer.Option(False, "--add", help="Insert the parsed paper right away"),
) -> None:
    """Parse JSON paper info, or print an extraction prompt for free text."""
    try:
        result = parse_smart_input(text)
    except SmartInputError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=1) from exc
    if result.draft is None:
        typer.echo(result.prompt)
        return
    if add_draft:
        library = _open_library()
        record_id = add_from_draft(library, result.draft)
        library.flush()
        console.print(f"[green]Added[/green] #{record_id}")
        return
    table = Table(title="Preview")
    table.add_column("Field")
    table.add_column("Value", overflow="fold")
    for key, value in result.draft.to_payload().items():
        table.add_row(key, str(value) or "—")
    console.print(table)


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", help="Host interface"),
    port: int = typer.Option(8000, help="Port to bind"),
    reload: bool = typer.Option(False, help="Enable auto-reload"),
) -> None:
    """Launch the FastAPI dashboard."""
    import uvicorn

    uvicorn.run(
        "papertrack.web.app:create_app",
        host=host,
        port=port,
        reload=reload,
        factory=True,
    )


if __name__ == "__main__":
    app()
