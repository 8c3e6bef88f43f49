"""
Defines the command-line interface for the application using Typer.
"""

import asyncio
import logging
import shutil
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler

from tubemp3 import __version__
from tubemp3.core.job_manager import JobManager
from tubemp3.exceptions import Tubemp3Error
from tubemp3.models.job import Job
from tubemp3.storage.config_manager import ConfigManager, get_config_dir
from tubemp3.storage.workspace import WorkspaceManager

from .formatters import (
    format_error_with_suggestions,
    print_config,
    print_summary_panel,
    print_validation_table,
)
from .progress_manager import ProgressManager

console = Console()

logging.basicConfig(
    level="WARNING",
    format="%(message)s",
    datefmt="[%X]",
    handlers=[
        RichHandler(
            console=console,
            rich_tracebacks=True,
            show_path=False,
            show_level=False,
            markup=True,
        )
    ],
)
log = logging.getLogger("tubemp3")
log.setLevel("INFO")

app = typer.Typer(
    name="tubemp3",
    help="Convert YouTube videos to MP3, from the command line or as an HTTP service.",
    rich_markup_mode="rich",
    pretty_exceptions_show_locals=False,
    add_completion=False,
)

CONFIG_DIR = get_config_dir()
CONFIG_FILE = CONFIG_DIR / "config.ini"


def _load_config(cli_options: dict | None = None):
    try:
        return ConfigManager(CONFIG_FILE).load_config(cli_options)
    except Tubemp3Error as e:
        console.print(format_error_with_suggestions(e))
        raise typer.Exit(code=1) from e


@app.callback(invoke_without_command=True)
def main_callback(
    ctx: typer.Context,
    verbose: int = typer.Option(
        0,
        "--verbose",
        "-v",
        count=True,
        help="Increase logging verbosity (-vv for debug).",
    ),
    version: bool = typer.Option(
        False, "--version", help="Show version and exit.", is_eager=True
    ),
    show_config: bool = typer.Option(
        False, "--show-config", help="Display the configuration file's values."
    ),
):
    """YouTube to MP3 converter"""
    if version:
        console.print(f"[bold]tubemp3[/bold] version [cyan]{__version__}[/cyan]")
        raise typer.Exit()

    if verbose >= 2:
        logging.getLogger("tubemp3").setLevel("DEBUG")

    if show_config:
        print_config(CONFIG_FILE, ConfigManager(CONFIG_FILE).get_config_as_dict())
        raise typer.Exit()

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())


@app.command()
def init(
    force: bool = typer.Option(
        False, "--force", "-f", help="Overwrite an existing config without asking."
    ),
):
    """Write a configuration file with every setting at its default."""
    if (
        CONFIG_FILE.exists()
        and not force
        and not typer.confirm("Configuration file already exists. Overwrite it?")
    ):
        raise typer.Abort()

    try:
        ConfigManager(CONFIG_FILE).save_new_config()
    except Tubemp3Error as e:
        console.print(format_error_with_suggestions(e))
        raise typer.Exit(code=1) from e
    console.print(f"[bold green]✓ Configuration saved to '{CONFIG_FILE}'[/bold green]")


@app.command()
def serve(
    host: str | None = typer.Option(None, "--host", help="Interface to bind."),
    port: int | None = typer.Option(None, "--port", "-p", help="Port to listen on."),
):
    """Run the HTTP API server."""
    from tubemp3.web.server import run_server

    config = _load_config({"host": host, "port": port})
    run_server(config)


@app.command(name="download")
def download_command(
    url: str = typer.Argument(..., help="YouTube video URL."),
    output_dir: Path = typer.Option(
        Path("."), "-o", "--output", help="Directory to save the MP3 into."
    ),
    bitrate: int | None = typer.Option(
        None, "--bitrate", "-b", help="Target bitrate in kbps (default 320)."
    ),
):
    """Convert one video and save the MP3 locally."""
    config = _load_config({"bitrate_kbps": bitrate})
    output_dir.mkdir(parents=True, exist_ok=True)
    saved: dict[str, Path] = {}

    async def _download_async() -> tuple[Job, JobManager]:
        manager = JobManager(config)

        async def deliver(job: Job) -> int:
            destination = output_dir / job.download_filename
            await asyncio.to_thread(shutil.copyfile, job.output_path, destination)
            saved["path"] = destination
            return destination.stat().st_size

        await manager.start()
        try:
            with ProgressManager(console, description="Downloading") as progress:
                job = await manager.submit(url, deliver, on_progress=progress.update)
        finally:
            await manager.stop()
        return job, manager

    job, manager = asyncio.run(_download_async())
    print_summary_panel(job, manager.stats, saved.get("path"))
    if job.error is not None:
        raise typer.Exit(code=1)


@app.command()
def validate():
    """Validate the effective configuration."""
    config = _load_config()
    print_validation_table(config)


@app.command()
def cleanup(
    older_than: float | None = typer.Option(
        None,
        "--older-than",
        help="Only remove workspaces idle for this many seconds "
        "(default: acquire + transcode timeouts).",
    ),
):
    """Remove workspaces left behind by an interrupted run."""
    config = _load_config()
    if older_than is None:
        # Longer than the acquire and transcode stages may run together
        older_than = config.acquire_timeout + config.transcode_timeout
    workspaces = WorkspaceManager(Path(config.temp_dir))
    removed = workspaces.sweep_stale(older_than=older_than)
    console.print(f"[green]✓ Removed {removed} leftover workspaces.[/green]")


@app.command()
def diagnose():
    """Diagnose common configuration and tooling issues."""
    console.print("\n[bold cyan]Running diagnostics...[/bold cyan]\n")
    issues_found = False

    if CONFIG_FILE.is_file():
        console.print(f"[green]✓[/] Config file exists at: [dim]{CONFIG_FILE}[/dim]")
    else:
        console.print("[yellow]○[/] No config file; defaults apply.")

    try:
        config = ConfigManager(CONFIG_FILE).load_config()
        console.print("[green]✓[/] Configuration is valid.")
    except Tubemp3Error as e:
        console.print(f"[red]✗ Configuration validation failed: {e}[/red]")
        raise typer.Exit(code=1) from e

    if ffmpeg := shutil.which(config.ffmpeg_path):
        console.print(f"[green]✓[/] ffmpeg found: [dim]{ffmpeg}[/dim]")
    else:
        console.print(f"[red]✗ ffmpeg not found ('{config.ffmpeg_path}').[/red]")
        issues_found = True

    import yt_dlp.version

    console.print(f"[green]✓[/] yt-dlp version {yt_dlp.version.__version__}")

    temp_root = Path(config.temp_dir)
    try:
        temp_root.mkdir(parents=True, exist_ok=True)
        marker = temp_root / ".write-test"
        marker.write_bytes(b"")
        marker.unlink()
        console.print(f"[green]✓[/] Temp directory is writable: [dim]{temp_root}[/dim]")
    except OSError as e:
        console.print(f"[red]✗ Temp directory is not writable: {e}[/red]")
        issues_found = True

    console.print()
    if not issues_found:
        console.print("[bold green]✓ All checks passed! Your setup looks good.[/bold green]\n")
    else:
        console.print(
            "[bold red]✗ Some issues were found. "
            "Please review the messages above.[/bold red]\n"
        )
        raise typer.Exit(code=1)
