"""
Command-line interface for the blog archive importer.

Imports a blog's back catalogue into the local record set, marks records as
deleted, and exports the set as CSV.
"""

from __future__ import annotations

import asyncio
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from blog_archive_scraper.config import load_config
from blog_archive_scraper.errors import ImportInputError
from blog_archive_scraper.logging_utils import setup_logging
from blog_archive_scraper.pipeline import Importer, open_store, run_import, run_preview


app = typer.Typer(add_completion=False)
console = Console()


def _offline_importer(config: Path | None) -> Importer:
    cfg = load_config(str(config) if config else None)
    setup_logging(str(cfg.section("logging").get("level", "INFO")))
    return Importer(cfg, open_store(cfg))


@app.command("import-url")
def import_url(
    seed: str = typer.Argument(..., help="Blog home page or any page on the blog."),
    max_items: int | None = typer.Option(None, "--max-items", "-n", help="Articles to fetch (1-100)."),
    force_refresh: bool = typer.Option(False, "--force-refresh", help="Ignore cached discovery results."),
    config: Path | None = typer.Option(None, "--config", "-c", exists=True),
    log_level: str | None = typer.Option(None, "--log-level", help="Logging level."),
    log_file: Path | None = typer.Option(None, "--log-file", help="Also write the log to this file."),
):
    """Discover and import articles starting from SEED."""

    cfg = load_config(str(config) if config else None)
    setup_logging(log_level or str(cfg.section("logging").get("level", "INFO")), log_file)

    try:
        summary = asyncio.run(
            run_import(str(config) if config else None, seed, max_items, force_refresh=force_refresh)
        )
    except ImportInputError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=2) from exc

    console.print(
        f"Imported: {summary.records_imported} | Failed: {summary.records_failed} | "
        f"Skipped: {summary.skipped} | Stored: {len(summary.records)}"
    )
    if summary.truncated:
        console.print("[yellow]Stopped early: the dataset reached its size budget.[/yellow]")
    for err in summary.errors:
        console.print(f"  [dim]{err}[/dim]")
    if not summary.persisted:
        console.print(f"[red]Not saved:[/red] {summary.persistence_error}")
        raise typer.Exit(code=1)


@app.command()
def discover(
    seed: str = typer.Argument(..., help="Blog home page or any page on the blog."),
    max_items: int | None = typer.Option(None, "--max-items", "-n", help="URLs to list (1-100)."),
    force_refresh: bool = typer.Option(False, "--force-refresh", help="Ignore cached discovery results."),
    no_fetch: bool = typer.Option(False, "--no-fetch", help="Do not fetch pages to fill in missing titles."),
    config: Path | None = typer.Option(None, "--config", "-c", exists=True),
):
    """List the article URLs and titles found from SEED without importing them."""

    cfg = load_config(str(config) if config else None)
    setup_logging(str(cfg.section("logging").get("level", "INFO")))

    try:
        found = asyncio.run(
            run_preview(
                str(config) if config else None,
                seed,
                max_items,
                force_refresh=force_refresh,
                fetch_titles=not no_fetch,
            )
        )
    except ImportInputError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=2) from exc

    table = Table(title=f"{len(found)} URLs")
    table.add_column("Date")
    table.add_column("Title")
    table.add_column("URL", overflow="fold")
    table.add_column("Via")
    for d in found:
        table.add_row((d.recency_signal or "")[:10], d.title or "", d.url, d.via)
    console.print(table)


@app.command()
def delete(
    key: str = typer.Argument(..., help="Identity key (url:..., platform:...) or article URL."),
    config: Path | None = typer.Option(None, "--config", "-c", exists=True),
):
    """Hide a record from future loads, merges and exports."""

    importer = _offline_importer(config)
    try:
        added = importer.mark_deleted(key)
    except ImportInputError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=2) from exc
    console.print("Marked as deleted." if added else "Already deleted.")


@app.command()
def export(
    output: Path | None = typer.Option(None, "--output", "-o", help="Write CSV here instead of stdout."),
    config: Path | None = typer.Option(None, "--config", "-c", exists=True),
):
    """Export the record set as Date,Title,Content,Category,Tags,URL CSV."""

    text = _offline_importer(config).export_csv()
    if output is None:
        typer.echo(text, nl=False)
        return
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(text, encoding="utf-8")
    console.print(f"Wrote {output}")


@app.command()
def show(
    limit: int = typer.Option(20, "--limit", "-l"),
    config: Path | None = typer.Option(None, "--config", "-c", exists=True),
):
    """List the newest stored records."""

    records = _offline_importer(config).load_records()
    table = Table(title=f"{len(records)} records")
    table.add_column("Date")
    table.add_column("Title")
    table.add_column("URL", overflow="fold")
    for r in records[: max(0, limit)]:
        date = (r.published_at or "") + ("*" if r.date_is_inferred else "")
        table.add_row(date, r.title, r.source_url)
    console.print(table)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
