"""CLI interface for tackle-content."""

import logging
from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from tackle_content.config import TackleConfig, load_config, merge_cli_overrides
from tackle_content.content.drift import DriftValidator, render_drift_report
from tackle_content.content.index_store import IndexStore
from tackle_content.content.lock import LockHeldError
from tackle_content.content.migrate import MigrationError, migrate_index
from tackle_content.content.models import PageType
from tackle_content.content.recovery import RebuildStats, RecoveryEngine, RecoveryError
from tackle_content.publish.publisher import (
    PublishError,
    PublishErrorCode,
    Publisher,
    generate_topic_key,
    load_for_publish,
)
from tackle_content.publish.quality import QualityGate
from tackle_content.publish.refresh import needs_refresh, refresh_priority
from tackle_content.publish.topics import TopicStateError

app = typer.Typer(
    name="tackle-content",
    help="Manage the JSON content store: index validation, recovery and publishing.",
)

console = Console()

# Conflicts need a human; recording them as topic failures would hide the owner.
_NO_FAILURE_RECORD = {
    PublishErrorCode.SLUG_TOPICKEY_CONFLICT,
    PublishErrorCode.EXISTING_FILE_INVALID,
    PublishErrorCode.INVALID_DOCUMENT,
}


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        from tackle_content import __version__

        console.print(f"tackle-content {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    root: Annotated[
        Optional[Path],
        typer.Option("--root", "-r", help="Content root directory."),
    ] = None,
    collection: Annotated[
        Optional[str],
        typer.Option("--collection", help="Index collection name (<name>Index.json)."),
    ] = None,
    config_path: Annotated[
        Optional[Path],
        typer.Option("--config", "-c", help="Path to a .tackle-content.toml file."),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", help="Enable debug logging."),
    ] = False,
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = False,
) -> None:
    """Tackle Content - keep the content index and documents consistent."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    config = merge_cli_overrides(
        load_config(config_path), content_root=root, collection=collection
    )
    ctx.obj = config


def _config(ctx: typer.Context) -> TackleConfig:
    config = ctx.obj
    if not isinstance(config, TackleConfig):
        config = load_config()
        ctx.obj = config
    return config


def _store(ctx: typer.Context) -> IndexStore:
    return _config(ctx).to_index_store()


def _print_stats(stats: RebuildStats) -> None:
    console.print("[green]Index rebuilt from files.[/green]")
    console.print(f"  Files scanned: {stats.total_files}")
    console.print(f"  Indexed: {stats.valid_posts}")
    console.print(f"  Draft/noindex skipped: {stats.draft_posts}")
    console.print(f"  Unloadable: {stats.invalid_posts}")
    console.print(f"  Quarantined: {stats.quarantined_posts}")
    for issue in stats.errors:
        console.print(f"    - {issue.page_type}:{issue.slug}: {issue.reason}", markup=False)


@app.command(name="validate-index")
def validate_index_cmd(
    ctx: typer.Context,
    page_type: Annotated[
        PageType,
        typer.Option("--type", "-t", help="Page type to check."),
    ] = PageType.BLOG,
    fix: Annotated[
        bool,
        typer.Option("--fix", help="Rebuild the index from files if drift is found."),
    ] = False,
) -> None:
    """Compare the index with the documents on disk.

    Exits with status 1 while any issue remains.  ``--fix`` repairs
    everything a rebuild can repair; invalid documents stay reported.
    """
    store = _store(ctx)
    validator = DriftValidator(store)
    report = validator.validate_index_drift(page_type)
    render_drift_report(report, console)

    if fix and report.auto_fixable:
        console.print("Rebuilding index from files...")
        try:
            stats = RecoveryEngine(store).rebuild_and_save_index()
        except RecoveryError as exc:
            console.print(f"[red]Error:[/red] Rebuild failed: {escape(str(exc))}")
            raise typer.Exit(1)
        _print_stats(stats)
        report = validator.validate_index_drift(page_type)
        render_drift_report(report, console)

    if report.has_issues:
        raise typer.Exit(1)


@app.command(name="rebuild-index")
def rebuild_index_cmd(ctx: typer.Context) -> None:
    """Rebuild the index from every document on disk and save it."""
    store = _store(ctx)
    try:
        stats = RecoveryEngine(store).rebuild_and_save_index()
    except RecoveryError as exc:
        console.print(f"[red]Error:[/red] Rebuild failed: {escape(str(exc))}")
        raise typer.Exit(1)
    _print_stats(stats)
    console.print(f"Saved to: {store.index_path}")


@app.command(name="backup-index")
def backup_index_cmd(ctx: typer.Context) -> None:
    """Copy the current index to its backup file."""
    store = _store(ctx)
    if not store.backup_content_index():
        console.print(
            f"[red]Error:[/red] No valid index to back up at {store.index_path}"
        )
        raise typer.Exit(1)
    console.print(f"[green]Backup written:[/green] {store.backup_path}")


@app.command(name="publish")
def publish_cmd(
    ctx: typer.Context,
    file: Annotated[
        Path,
        typer.Argument(help="Document JSON file to publish.", exists=True, dir_okay=False),
    ],
    topic_key: Annotated[
        Optional[str],
        typer.Option("--topic-key", help="Override the derived topic key."),
    ] = None,
    skip_quality_gate: Annotated[
        bool,
        typer.Option("--skip-quality-gate", help="Publish without editorial checks."),
    ] = False,
) -> None:
    """Publish a document: write the file, record the topic, index it.

    Safe to re-run; steps that already happened are skipped.
    """
    config = _config(ctx)
    store = config.to_index_store()
    gate = None
    if config.quality.enabled and not skip_quality_gate:
        gate = QualityGate(config.quality)
    publisher = Publisher(store, quality_gate=gate)

    try:
        document = load_for_publish(file)
    except PublishError as exc:
        console.print(f"[red]Error:[/red] {escape(str(exc))}")
        raise typer.Exit(1)

    key = topic_key or generate_topic_key(document)
    try:
        result = publisher.publish(document, key)
    except PublishError as exc:
        console.print(f"[red]Error:[/red] {escape(str(exc))}")
        if exc.code not in _NO_FAILURE_RECORD:
            existing = publisher.topics.get(key)
            if existing is None or not existing.is_published:
                publisher.topics.mark_failed(key, document.page_type, exc.message)
        raise typer.Exit(1)
    except TopicStateError as exc:
        console.print(f"[red]Error:[/red] {escape(str(exc))}")
        raise typer.Exit(1)

    if result.was_noop:
        console.print(f"[yellow]Already published:[/yellow] {result.route_path}")
    else:
        console.print(f"[green]Published:[/green] {result.route_path}")
        console.print(
            f"  file: {'written' if result.wrote_file else 'kept'}, "
            f"topic: {'recorded' if result.wrote_topic else 'kept'}, "
            f"index: {'added' if result.wrote_index else 'kept'}"
        )


@app.command(name="list")
def list_cmd(
    ctx: typer.Context,
    page_type: Annotated[
        PageType,
        typer.Option("--type", "-t", help="Page type to list."),
    ] = PageType.BLOG,
    limit: Annotated[
        Optional[int],
        typer.Option("--limit", "-n", help="Show at most N entries."),
    ] = None,
) -> None:
    """List indexed entries, newest first."""
    entries = _store(ctx).get_sorted_entries(page_type)
    if limit is not None:
        entries = entries[:limit]
    if not entries:
        console.print(f"[yellow]No {page_type} entries in the index.[/yellow]")
        return
    table = Table(title=f"{page_type} entries (newest first)")
    table.add_column("Published", style="cyan", no_wrap=True)
    table.add_column("Slug", style="green")
    table.add_column("Title")
    for entry in entries:
        published = entry.published_at[:10] if entry.published_at else "----------"
        table.add_row(published, escape(entry.slug), escape(entry.title))
    console.print(table)


@app.command(name="migrate-index")
def migrate_index_cmd(
    ctx: typer.Context,
    page_type: Annotated[
        Optional[PageType],
        typer.Option("--type", "-t", help="Only migrate this page type (default: all)."),
    ] = None,
) -> None:
    """Fill in listing fields missing from older index entries."""
    store = _store(ctx)
    try:
        report = migrate_index(store, [page_type] if page_type else None)
    except MigrationError as exc:
        console.print(f"[red]Error:[/red] Migration failed: {escape(str(exc))}")
        raise typer.Exit(1)
    for slug in report.complete:
        console.print(f"  [green]ok[/green] {escape(slug)} - already complete")
    for slug in report.migrated:
        console.print(f"  [green]ok[/green] {escape(slug)} - migrated")
    for slug in report.skipped:
        console.print(f"  [yellow]skip[/yellow] {escape(slug)} - file not found or invalid")
    console.print(
        f"[green]Migration complete.[/green] Updated {report.total_kept} index entries."
    )


@app.command(name="refresh-due")
def refresh_due_cmd(ctx: typer.Context) -> None:
    """List published documents due for a scheduled refresh."""
    store = _store(ctx)
    due = []
    for page_type in PageType:
        for slug in store.get_slugs(page_type):
            document = store.get_document(page_type, slug)
            if document is not None and needs_refresh(document):
                due.append(document)
    if not due:
        console.print("No documents are due for refresh.")
        return
    table = Table(title="Due for refresh")
    table.add_column("Priority", style="yellow", no_wrap=True)
    table.add_column("Type")
    table.add_column("Slug", style="green")
    table.add_column("Updated", style="cyan", no_wrap=True)
    for document in due:
        table.add_row(
            refresh_priority(document),
            document.page_type,
            document.slug,
            document.dates.updated_at[:10],
        )
    console.print(table)


@app.command(name="lock-status")
def lock_status_cmd(ctx: typer.Context) -> None:
    """Show who holds the index lock, if anyone, and how often it was cleaned up."""
    lock = _store(ctx).lock
    data = lock.read_lock_data()
    if lock.is_locked():
        console.print("[yellow]Index lock held[/yellow]")
    elif data is not None:
        console.print("[yellow]Index lock free, but a dead holder left its record[/yellow]")
    else:
        console.print("Index lock is free.")
    if data is not None:
        console.print(f"  lockId: {escape(data.lock_id)}")
        console.print(f"  processId: {escape(data.process_id)}")
        console.print(f"  createdAt: {data.created_at} ({data.age_seconds():.0f}s ago)")
    if lock.metrics is not None:
        metrics = lock.metrics.load()
        console.print(f"  Abandoned locks cleaned up: {metrics.total_cleanups}")


@app.command(name="force-release-lock")
def force_release_lock_cmd(ctx: typer.Context) -> None:
    """Remove a lock record left behind by a crashed process."""
    try:
        released = _store(ctx).lock.force_release()
    except LockHeldError as exc:
        console.print(f"[red]Error:[/red] {escape(str(exc))}")
        raise typer.Exit(1)
    if released is None:
        console.print("No lock to release.")
    else:
        console.print(f"[green]Released lock[/green] {escape(released.lock_id)}")
