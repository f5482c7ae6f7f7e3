"""Command-line interface for newsletter-manager."""

import asyncio
import logging
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import BarColumn, Progress, TaskProgressColumn, TextColumn
from rich.table import Table

from newsletter_manager import __version__
from newsletter_manager.config import Settings, load_settings
from newsletter_manager.exceptions import NewsletterManagerError
from newsletter_manager.models import EmailRecord, ScanProgress, ScanResult
from newsletter_manager.processors.llm import create_model_client
from newsletter_manager.service import NewsletterScanner, StatsStore, UnsubscribeHandler
from newsletter_manager.sources import JsonFileSource

app = typer.Typer(
    name="newsletter-manager",
    help="Detect newsletters in an exported inbox view and manage them in bulk.",
    no_args_is_help=True,
    add_completion=False,
)
console = Console()


def version_callback(value: bool) -> None:
    if value:
        console.print(f"newsletter-manager version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool,
        typer.Option("--version", "-v", callback=version_callback, is_eager=True),
    ] = False,
    verbose: Annotated[bool, typer.Option("--verbose", help="Show debug logging")] = False,
) -> None:
    """Newsletter detection toolkit."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


# ─── Scan Commands ──────────────────────────────────────────────────────────


@app.command("scan")
def scan(
    ctx: typer.Context,
    path: Annotated[Path, typer.Argument(help="JSON or YAML export of inbox elements")],
    rules_only: Annotated[bool, typer.Option("--rules-only", help="Never call the model")] = False,
    visible: Annotated[
        bool, typer.Option("--visible", help="Quick rule-only scan grouped by sender")
    ] = False,
    batch_size: Annotated[int | None, typer.Option(min=1, help="Emails per batch")] = None,
    delay: Annotated[
        float | None, typer.Option(min=0, help="Pause between batches (seconds)")
    ] = None,
) -> None:
    """Scan exported emails for newsletters."""
    if not path.exists():
        _error_with_help(ctx, f"File not found: {path}")

    settings = load_settings()
    if batch_size is not None:
        settings.scan.batch_size = batch_size
    if delay is not None:
        settings.scan.batch_delay = delay

    scanner = _build_scanner(settings, use_model=not (rules_only or visible))
    source = JsonFileSource(path, max_candidates=settings.scan.max_candidates)

    async def _scan() -> ScanResult:
        if visible:
            return await scanner.run_visible_scan(source)

        with Progress(
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TaskProgressColumn(),
            console=console,
            transient=True,
        ) as progress:
            task = progress.add_task("Initializing scan...", total=None)

            def on_progress(update: ScanProgress) -> None:
                progress.update(
                    task,
                    completed=update.processed,
                    total=update.total,
                    description=update.status,
                )

            return await scanner.run_full_scan(source, progress_sink=on_progress)

    result = asyncio.run(_scan())

    if not result.success:
        console.print(f"[red]Scan failed: {result.error}[/red]")
        raise typer.Exit(1)

    _display_results(result)


def _build_scanner(settings: Settings, use_model: bool) -> NewsletterScanner:
    try:
        return NewsletterScanner.from_settings(settings, use_model=use_model)
    except NewsletterManagerError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)


def _display_results(result: ScanResult) -> None:
    if not result.newsletters:
        console.print(f"[yellow]No newsletters found in {result.total} emails.[/yellow]")
        return

    table = Table(title=f"Found {len(result.newsletters)} newsletters")
    table.add_column("Sender", style="cyan")
    table.add_column("Subject")
    table.add_column("Confidence", style="dim")
    table.add_column("Count", justify="right", style="green")
    table.add_column("Unsubscribe", style="dim")

    for newsletter in result.newsletters:
        confidence = ""
        if newsletter.confidence is not None and newsletter.method is not None:
            confidence = f"{round(newsletter.confidence * 100)}% ({newsletter.method.value})"
        table.add_row(
            newsletter.sender,
            newsletter.subject,
            confidence,
            str(newsletter.count),
            "yes" if newsletter.unsubscribe_link else "",
        )

    console.print(table)
    console.print(f"Analyzed {result.processed} of {result.total} emails")


@app.command("classify")
def classify(
    sender: Annotated[str, typer.Option(help="Sender address or name")],
    subject: Annotated[str, typer.Option(help="Subject line")] = "",
    snippet: Annotated[str, typer.Option(help="Preview text")] = "",
    rules_only: Annotated[bool, typer.Option("--rules-only", help="Never call the model")] = False,
    explain: Annotated[bool, typer.Option("--explain", help="Show matched signals")] = False,
) -> None:
    """Classify a single email."""
    settings = load_settings()
    scanner = _build_scanner(settings, use_model=not rules_only)
    record = EmailRecord(sender=sender, subject=subject, snippet=snippet)

    result = asyncio.run(scanner.classifier.classify(record))

    verdict = "[green]newsletter[/green]" if result.is_newsletter else "[yellow]transactional[/yellow]"
    console.print(f"{verdict}  {round(result.confidence * 100)}% ({result.method.value})")

    if explain:
        matched = scanner.rules.extractor.matched_signals(record)
        for tier, names in matched.items():
            console.print(f"  {tier}: {', '.join(names) if names else '-'}")


# ─── Model Commands ─────────────────────────────────────────────────────────


model_app = typer.Typer(help="Local model service", no_args_is_help=True)
app.add_typer(model_app, name="model")


@model_app.command("check")
def model_check() -> None:
    """Check that the Ollama service is reachable."""
    settings = load_settings()
    client = create_model_client(settings.llm)

    console.print(f"Probing {settings.llm.ollama_base_url}...")
    if asyncio.run(client.probe()):
        console.print(f"[green]Model service reachable[/green] (model: {settings.llm.model})")
    else:
        console.print("[red]Model service unreachable; scans will use rules only.[/red]")
        raise typer.Exit(1)


# ─── Stats Commands ─────────────────────────────────────────────────────────


stats_app = typer.Typer(help="Scan statistics", no_args_is_help=True)
app.add_typer(stats_app, name="stats")


def _get_stats_store(settings: Settings) -> StatsStore:
    settings.ensure_dirs()
    return StatsStore(settings.db_path)


@stats_app.command("show")
def stats_show() -> None:
    """Show cumulative scan statistics."""
    stats = _get_stats_store(load_settings()).get()

    console.print("[bold cyan]Newsletter Statistics[/bold cyan]")
    console.print(f"  Newsletters detected: {stats.newsletters_detected}")
    console.print(f"  Unsubscribed: {stats.unsubscribed}")
    last_scan = stats.last_scan.strftime("%Y-%m-%d %H:%M") if stats.last_scan else "never"
    console.print(f"  Last scan: {last_scan}")


@stats_app.command("reset")
def stats_reset(
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Skip confirmation")] = False,
) -> None:
    """Reset all statistics."""
    if not yes and not typer.confirm("Reset all statistics?"):
        raise typer.Exit()
    _get_stats_store(load_settings()).reset()
    console.print("[green]Statistics reset.[/green]")


# ─── Unsubscribe Commands ───────────────────────────────────────────────────


@app.command("unsubscribe")
def unsubscribe(
    ctx: typer.Context,
    path: Annotated[Path, typer.Argument(help="JSON or YAML export of inbox elements")],
    sender: Annotated[
        list[str] | None, typer.Option("--sender", "-s", help="Sender to unsubscribe from")
    ] = None,
    all_senders: Annotated[bool, typer.Option("--all", help="Select every newsletter")] = False,
) -> None:
    """Unsubscribe from detected newsletters (placeholder, nothing is sent)."""
    if not sender and not all_senders:
        _error_with_help(ctx, "Select newsletters with --sender or --all")

    settings = load_settings()
    scanner = _build_scanner(settings, use_model=False)
    source = JsonFileSource(path, max_candidates=settings.scan.max_candidates)

    async def _unsubscribe() -> None:
        result = await scanner.run_visible_scan(source)
        if not result.success:
            console.print(f"[red]Scan failed: {result.error}[/red]")
            raise typer.Exit(1)

        wanted = {s.lower() for s in sender or []}
        selected = [
            n for n in result.newsletters if all_senders or n.sender.lower() in wanted
        ]
        outcome = await UnsubscribeHandler().perform(selected)

        if outcome.success:
            console.print(f"[green]{outcome.message}[/green]")
            for name in outcome.senders:
                console.print(f"  - {name}")
        else:
            console.print(f"[yellow]{outcome.message}[/yellow]")
            raise typer.Exit(1)

    asyncio.run(_unsubscribe())


# ─── Config Commands ────────────────────────────────────────────────────────


config_app = typer.Typer(help="Configuration management", no_args_is_help=True)
app.add_typer(config_app, name="config")


@config_app.command("show")
def config_show() -> None:
    """Show current configuration."""
    settings = load_settings()

    console.print("[bold cyan]Newsletter Manager Configuration[/bold cyan]")
    console.print(f"Config dir: {settings.config_dir}")
    console.print(f"Data dir: {settings.data_dir}")
    console.print(f"Database: {settings.db_path}")

    console.print("\n[bold]Model Settings:[/bold]")
    console.print(f"  Enabled: {settings.llm.enabled}")
    console.print(f"  Model: {settings.llm.model}")
    console.print(f"  Ollama URL: {settings.llm.ollama_base_url}")
    console.print(f"  Timeouts: probe {settings.llm.probe_timeout}s, request {settings.llm.request_timeout}s")

    console.print("\n[bold]Scan Settings:[/bold]")
    console.print(f"  Batch size: {settings.scan.batch_size}")
    console.print(f"  Batch delay: {settings.scan.batch_delay}s")
    console.print(f"  Max candidates: {settings.scan.max_candidates}")

    console.print("\n[bold]Signals:[/bold]")
    console.print(f"  Policy: {settings.signals.policy_path or 'built-in default'}")
    console.print(f"  Medium threshold: {settings.signals.medium_threshold}")


@config_app.command("init")
def config_init() -> None:
    """Initialize configuration directory."""
    settings = load_settings()
    settings.ensure_dirs()

    config_file = settings.config_dir / "config.yaml"
    if not config_file.exists():
        config_file.write_text(
            """# Newsletter Manager Configuration

# Local model (Ollama). Set enabled: false to use rules only.
llm:
  enabled: true
  model: llama3.2
  ollama_base_url: http://localhost:11434
  probe_timeout: 2.0
  request_timeout: 2.0

scan:
  batch_size: 5
  batch_delay: 0.2
  max_candidates: 50

# Custom signal policy (YAML). Omit to use the built-in policy.
# signals:
#   policy_path: ~/.config/newsletter-manager/policy.yaml
#   medium_threshold: 2
"""
        )
        console.print(f"[green]Created config file: {config_file}[/green]")
    else:
        console.print(f"Config file already exists: {config_file}")

    console.print(f"[green]Configuration initialized at {settings.config_dir}[/green]")


def _error_with_help(ctx: typer.Context, message: str) -> None:
    """Print error message followed by relevant help text, then exit."""
    console.print(f"[red]Error: {message}[/red]\n")
    console.print(ctx.get_help())
    raise typer.Exit(1)
