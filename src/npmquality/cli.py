"""CLI entry point for npmquality."""

import asyncio
import logging
from pathlib import Path

import httpx
import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from npmquality.batch import BatchScheduler, BatchSummary, UpdatePolicy, load_worklist
from npmquality.config import Settings, load_settings
from npmquality.dates import utcnow
from npmquality.errors import QualityError, StoreUnavailableError
from npmquality.estimation import Estimator
from npmquality.models.schemas import Estimation
from npmquality.sources import NpmSource, PackageNotFoundError
from npmquality.storage import open_stores

app = typer.Typer(help="Quality estimation for npm packages.")

console = Console()


def _setup(verbose: bool = False) -> Settings:
    """Load settings and configure logging."""
    try:
        settings = load_settings()
    except ValueError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    logging.basicConfig(
        level=logging.DEBUG if verbose else settings.log_level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
    )
    # Request lines from httpx are too noisy for batch runs
    logging.getLogger("httpx").setLevel(logging.WARNING)
    return settings


def _quality_style(quality: float) -> str:
    return "green" if quality >= 0.8 else "yellow" if quality >= 0.5 else "red"


def _print_estimation(estimation: Estimation) -> None:
    """Print an estimation as a factor table."""
    console.print()
    console.print(f"[bold cyan]{estimation.name}[/bold cyan]")
    if estimation.description:
        console.print(f"[dim]{estimation.description}[/dim]")
    console.print()

    table = Table(title="Factors")
    table.add_column("Factor", style="cyan")
    table.add_column("Quality", justify="right")
    table.add_column("Weight", justify="right", style="dim")
    for field, (quality, weight) in estimation.factor_values().items():
        style = _quality_style(quality)
        table.add_row(field, f"[{style}]{quality:.3f}[/{style}]", f"{weight:.2f}")
    console.print(table)

    if estimation.quality is not None:
        style = _quality_style(estimation.quality)
        console.print(f"\n[bold]Quality:[/bold] [{style}]{estimation.quality:.3f}[/{style}]")
    console.print(
        f"[dim]Updated {estimation.last_updated:%Y-%m-%d %H:%M} "
        f"({estimation.times_updated} updates), next update {estimation.next_update:%Y-%m-%d}[/dim]"
    )


def _print_summary(summary: BatchSummary) -> None:
    table = Table(title="Batch Summary")
    table.add_column("Metric", style="cyan")
    table.add_column("Count", justify="right")
    table.add_row("Chunks", str(summary.chunks_processed))
    table.add_row("Estimated", f"[green]{summary.estimated}[/green]")
    table.add_row("Deferred", f"[yellow]{summary.deferred}[/yellow]")
    table.add_row("Skipped", str(summary.skipped))
    table.add_row("Failed", f"[red]{summary.failed}[/red]")
    if summary.budget.is_known:
        table.add_row("GitHub calls remaining", str(summary.budget.remaining_calls))
    console.print(table)

    if summary.retryable:
        console.print(
            f"[yellow]{len(summary.retryable)} package(s) kept pending for retry, "
            f"run `npmquality run-pending` later[/yellow]"
        )


@app.command()
def estimate(
    name: str = typer.Argument(..., help="Package name"),
    save: bool = typer.Option(False, "--save", "-s", help="Store the estimation"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
) -> None:
    """Estimate the quality of a single package."""
    settings = _setup(verbose)
    asyncio.run(_estimate(settings, name, save))


async def _estimate(settings: Settings, name: str, save: bool) -> None:
    """Async implementation of estimate."""
    async with httpx.AsyncClient(timeout=settings.http_timeout) as client:
        npm = NpmSource(client=client, timeout=settings.http_timeout)
        estimator = Estimator.from_settings(settings, client)

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=console,
        ) as progress:
            task = progress.add_task(f"Looking up {name}...", total=None)
            try:
                entry = await npm.get_package_entry(name)
                progress.update(task, description=f"Estimating {name}...")
                result = await estimator.estimate_complete(entry)
            except PackageNotFoundError:
                console.print(f"[red]Package not found: {name}[/red]")
                raise typer.Exit(1)
            except QualityError as e:
                console.print(f"[red]Error estimating {name}: {e}[/red]")
                raise typer.Exit(1)

    estimation = result.estimation
    if save:
        packages, _ = open_stores(settings)
        try:
            stored = await packages.find(estimation.name)
            estimation = UpdatePolicy().apply(stored, estimation, utcnow())
            await packages.save(estimation)
        except QualityError as e:
            console.print(f"[red]Could not save {name}: {e}[/red]")
            raise typer.Exit(1)

    _print_estimation(estimation)
    if result.budget.is_known:
        console.print(f"[dim]GitHub calls remaining: {result.budget.remaining_calls}[/dim]")
    if save:
        console.print(f"\n[green]Saved {estimation.name} to {settings.data_dir}[/green]")


@app.command()
def run_batch(
    worklist: Path = typer.Argument(..., help="Registry dump (JSON object of package entries)"),
    offset: int = typer.Option(0, "--offset", "-o", help="Skip the first N entries"),
    chunk_size: int | None = typer.Option(None, "--chunk-size", "-c", help="Packages per chunk"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
) -> None:
    """Estimate every package of a worklist, in rate-limited chunks."""
    settings = _setup(verbose)
    if not worklist.exists():
        console.print(f"[red]Worklist not found: {worklist}[/red]")
        raise typer.Exit(1)
    try:
        entries = load_worklist(worklist, offset)
    except ValueError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    summary = asyncio.run(_run(settings, lambda s: s.run_batch(entries, chunk_size)))
    _print_summary(summary)


@app.command()
def run_pending(
    chunk_size: int | None = typer.Option(None, "--chunk-size", "-c", help="Records per chunk"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
) -> None:
    """Resolve deferred and retained packages from the pending store."""
    settings = _setup(verbose)
    summary = asyncio.run(_run(settings, lambda s: s.run_pending(chunk_size)))
    _print_summary(summary)


async def _run(settings: Settings, job) -> BatchSummary:
    """Build a scheduler around a shared client and run `job` on it."""
    packages, pending = open_stores(settings)
    async with httpx.AsyncClient(timeout=settings.http_timeout) as client:
        scheduler = BatchScheduler(
            Estimator.from_settings(settings, client),
            packages,
            pending,
            chunk_size=settings.chunk_size,
        )
        try:
            return await job(scheduler)
        except StoreUnavailableError as e:
            console.print(f"[red]Store unavailable, stopping: {e}[/red]")
            raise typer.Exit(1)


@app.command()
def show(
    name: str = typer.Argument(..., help="Package name"),
) -> None:
    """Show a stored estimation."""
    settings = _setup()
    packages, _ = open_stores(settings)
    try:
        estimation = asyncio.run(packages.find(name))
    except QualityError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)
    if estimation is None:
        console.print(f"[yellow]No estimation stored for {name}[/yellow]")
        raise typer.Exit(1)
    _print_estimation(estimation)


@app.command()
def version() -> None:
    """Show version information."""
    from npmquality import __version__

    console.print(f"npmquality v{__version__}")


if __name__ == "__main__":
    app()
