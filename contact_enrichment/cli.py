"""Command line interface: run enrichment, report coverage, manage the opportunity store."""

import asyncio
import csv
import json
import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

import click
import httpx
from rich.console import Console
from rich.table import Table

from contact_enrichment.config import Settings
from contact_enrichment.database.store import DatabaseManager, SqlOpportunityStore
from contact_enrichment.exceptions.custom import ParseFailure, PersistenceError
from contact_enrichment.mappers.contact_normalizer import normalize_contact_payload
from contact_enrichment.mappers.coverage import compute_coverage
from contact_enrichment.schemas.opportunity import Opportunity
from contact_enrichment.schemas.responses import CoverageReport, EnrichmentRunReport
from contact_enrichment.services.enrichment import build_enrichment_service

logger = logging.getLogger(__name__)

console = Console()


def setup_logging(log_level: str = "INFO") -> None:
    logging.basicConfig(
        level=log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stdout,
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)


@contextmanager
def _open_store(settings: Settings) -> Iterator[SqlOpportunityStore]:
    db = DatabaseManager(settings.database_url, echo=settings.database_echo)
    try:
        db.init_database()
        yield SqlOpportunityStore(db)
    finally:
        db.dispose()


def _coverage_table(report: CoverageReport, title: str = "Contact coverage") -> Table:
    table = Table(title=title)
    table.add_column("Segment", style="cyan")
    table.add_column("With contact", justify="right")
    table.add_column("Total", justify="right")
    table.add_column("Coverage", justify="right", style="green")
    for name, stats in (
        ("Overall", report.overall),
        ("Premium", report.premium),
        ("Regular", report.regular),
        ("High authority", report.high_authority),
    ):
        table.add_row(name, str(stats.with_contact), str(stats.total), f"{stats.percentage:.1f}%")
    return table


def _print_run_report(report: EnrichmentRunReport) -> None:
    table = Table(title="Enrichment results" + (" (dry run)" if report.dry_run else ""))
    table.add_column("ID", justify="right")
    table.add_column("Domain", style="cyan")
    table.add_column("Premium")
    table.add_column("Status")
    table.add_column("Emails", justify="right")
    table.add_column("Social", justify="right")
    table.add_column("Forms", justify="right")
    table.add_column("Pages", justify="right")
    for r in report.results:
        style = {"updated": "green", "dry_run": "yellow", "failed": "red"}.get(r.status, "")
        table.add_row(
            str(r.opportunity_id),
            r.domain,
            "yes" if r.is_premium else "",
            f"[{style}]{r.status}[/{style}]" if style else r.status,
            str(r.after.emails),
            str(r.after.social_profiles),
            str(r.after.contact_forms),
            f"{r.pages_attempted - r.pages_failed}/{r.pages_attempted}",
        )
    console.print(table)
    console.print(
        f"Processed {report.processed}: [green]{report.updated} updated[/green], "
        f"{report.unchanged} unchanged, [red]{report.failed} failed[/red]"
    )
    if report.coverage is not None:
        delta = report.coverage
        console.print(
            f"Coverage {delta.before.overall.percentage:.1f}% -> {delta.after.overall.percentage:.1f}% "
            f"({delta.overall_change:+.1f} pts); premium "
            f"{delta.before.premium.percentage:.1f}% -> {delta.after.premium.percentage:.1f}%"
        )


@click.group()
@click.option("--log-level", default=None, help="Logging level (defaults to LOG_LEVEL)")
@click.option("--database-url", default=None, help="Override DATABASE_URL")
@click.pass_context
def cli(ctx, log_level, database_url):
    """Contact enrichment for discovered outreach opportunities."""
    ctx.ensure_object(dict)
    settings = Settings()
    if database_url:
        settings = settings.model_copy(update={"database_url": database_url})
    setup_logging(log_level or settings.log_level)
    ctx.obj["settings"] = settings


@cli.command()
@click.option("--dry-run", is_flag=True, help="Extract and merge but do not write")
@click.option("--premium-only", is_flag=True, help="Only premium opportunities")
@click.option("--batch-size", type=click.IntRange(min=1), default=None, help="Concurrent opportunities")
@click.option("--limit", type=click.IntRange(min=1), default=None, help="Max opportunities this run")
@click.pass_context
def run(ctx, dry_run, premium_only, batch_size, limit):
    """Enrich opportunities that lack an email or contact form."""
    settings: Settings = ctx.obj["settings"]

    async def _run() -> EnrichmentRunReport:
        with _open_store(settings) as store:
            async with httpx.AsyncClient(
                timeout=settings.request_timeout,
                max_redirects=settings.max_redirects,
            ) as client:
                service = build_enrichment_service(client, store, settings)
                return await service.run(
                    dry_run=dry_run,
                    premium_only=premium_only,
                    batch_size=batch_size,
                    limit=limit,
                )

    try:
        report = asyncio.run(_run())
    except PersistenceError as exc:
        console.print(f"[red]Opportunity store error: {exc.message}[/red]")
        ctx.exit(1)
    _print_run_report(report)


@cli.command()
@click.option("--json", "as_json", is_flag=True, help="Print the report as JSON")
@click.pass_context
def coverage(ctx, as_json):
    """Show contact coverage by segment."""
    settings: Settings = ctx.obj["settings"]
    try:
        with _open_store(settings) as store:
            opportunities = asyncio.run(store.list_all())
    except PersistenceError as exc:
        console.print(f"[red]Opportunity store error: {exc.message}[/red]")
        ctx.exit(1)

    report = compute_coverage(opportunities, settings.high_authority_threshold)
    if as_json:
        click.echo(report.model_dump_json(indent=2))
        return
    console.print(_coverage_table(report))
    ch = report.channels
    console.print(
        f"Emails: {ch.emails}  Social: {ch.social}  Forms: {ch.forms}  Phones: {ch.phones}  "
        f"Guessed only: {ch.guessed_only}"
    )


@cli.command("init-db")
@click.pass_context
def init_db(ctx):
    """Create the opportunity tables."""
    settings: Settings = ctx.obj["settings"]
    try:
        with _open_store(settings):
            pass
    except PersistenceError as exc:
        console.print(f"[red]Opportunity store error: {exc.message}[/red]")
        ctx.exit(1)
    console.print("[green]Database initialized[/green]")


def _read_rows(path: Path) -> list[dict]:
    if path.suffix.lower() == ".csv":
        with path.open(newline="", encoding="utf-8") as fh:
            return list(csv.DictReader(fh))
    data = json.loads(path.read_text(encoding="utf-8"))
    if isinstance(data, dict):
        data = data.get("opportunities", [])
    return data


def _to_opportunity(row: dict) -> Opportunity:
    raw_contact = row.get("contactInfo", row.get("contact_info"))
    try:
        contact = normalize_contact_payload(raw_contact)
    except ParseFailure as exc:
        logger.warning("Dropping unreadable contact info for %s: %s", row.get("id"), exc.message)
        contact = None
    premium = row.get("isPremium", row.get("is_premium", False))
    if isinstance(premium, str):
        premium = premium.strip().lower() in ("1", "true", "yes")
    return Opportunity(
        id=int(row["id"]),
        url=row.get("url") or "",
        domain=row.get("domain") or "",
        is_premium=bool(premium),
        domain_authority=int(row.get("domainAuthority") or row.get("domain_authority") or 0),
        contact_info=contact,
    )


@cli.command("import-opportunities")
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.pass_context
def import_opportunities(ctx, file):
    """Load opportunities from a JSON or CSV file (upsert by id)."""
    settings: Settings = ctx.obj["settings"]
    try:
        rows = _read_rows(file)
    except (json.JSONDecodeError, UnicodeDecodeError, csv.Error) as exc:
        console.print(f"[red]Cannot read {file}: {exc}[/red]")
        ctx.exit(1)

    items: list[Opportunity] = []
    skipped = 0
    for row in rows:
        try:
            items.append(_to_opportunity(row))
        except (KeyError, TypeError, ValueError) as exc:
            logger.warning("Skipping row %r: %s", row, exc)
            skipped += 1

    try:
        with _open_store(settings) as store:
            count = asyncio.run(store.upsert_opportunities(items))
    except PersistenceError as exc:
        console.print(f"[red]Opportunity store error: {exc.message}[/red]")
        ctx.exit(1)
    console.print(f"[green]Imported {count} opportunities[/green]" + (f", skipped {skipped}" if skipped else ""))


@cli.command()
@click.pass_context
def normalize(ctx):
    """Rewrite stored contact info into the canonical shape."""
    settings: Settings = ctx.obj["settings"]
    try:
        with _open_store(settings) as store:
            summary = asyncio.run(store.normalize_contact_records())
    except PersistenceError as exc:
        console.print(f"[red]Opportunity store error: {exc.message}[/red]")
        ctx.exit(1)
    console.print(
        f"Normalized {summary.total} records: [green]{summary.rewritten} rewritten[/green], "
        f"{summary.unchanged} unchanged, [red]{summary.invalid} invalid[/red]"
    )


if __name__ == "__main__":
    cli()
