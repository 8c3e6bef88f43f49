"""
Functions for formatting and displaying data in the console using Rich.
"""

from pathlib import Path
from typing import Any

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from tubemp3.models.config import ServiceConfig, get_codec_info
from tubemp3.models.job import Job
from tubemp3.models.stats import ServiceStats
from tubemp3.utils.formatting import format_duration, format_size, format_speed


def format_error_with_suggestions(
    error: Exception, context: dict | None = None
) -> Panel:
    """Formats an error with actionable suggestions into a Rich Panel."""
    error_type = type(error).__name__
    error_msg = str(error)

    suggestions_map = {
        "MissingUrlError": [
            "• Pass a YouTube URL, e.g. `tubemp3 download https://youtu.be/<id>`.",
        ],
        "InvalidInputError": [
            "• Only youtube.com and youtu.be video URLs are supported.",
            "• Playlist and channel URLs are not accepted.",
        ],
        "SourceUnavailableError": [
            "• The video may be private, removed or blocked in your region.",
            "• Open the URL in a browser to confirm it plays.",
        ],
        "AcquisitionError": [
            "• A network connection issue occurred while streaming the audio.",
            "• YouTube may be throttling requests; try again in a few minutes.",
        ],
        "TranscodeError": [
            "• Check that ffmpeg is installed and on your PATH (`tubemp3 diagnose`).",
            "• Run the command with -vv to see ffmpeg's output.",
        ],
        "ConfigurationError": [
            "• Fix the reported value in your config file or environment.",
            "• Run `tubemp3 init --force` to write a fresh default config.",
        ],
    }

    suggestions = suggestions_map.get(
        error_type, ["• Run the command with -vv for detailed logs."]
    )

    error_text = Text()
    error_text.append(f"{error_type}: ", style="bold red")
    error_text.append(error_msg)

    content = Table.grid(padding=(1, 0))
    content.add_row(error_text)
    content.add_row()
    content.add_row(Text("Suggestions", style="bold yellow"))
    content.add_row(Text("\n".join(suggestions)))

    if context:
        content.add_row()
        content.add_row(Text(f"Context: {context}", style="dim"))

    return Panel(
        content,
        title="[bold red]An Error Occurred[/bold red]",
        border_style="red",
        expand=False,
    )


def print_config(config_path: Path, config_data: dict[str, Any]):
    """Displays the configuration file's current values."""
    console = Console()
    content = "\n".join(f"{key} = {value}" for key, value in sorted(config_data.items()))
    console.print(
        Panel(
            content or "[dim](empty, defaults apply)[/dim]",
            title=f"Configuration ([dim]{config_path}[/dim])",
            border_style="cyan",
        )
    )


def print_validation_table(config: ServiceConfig):
    """Displays a summary of the effective settings."""
    console = Console()
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column(style="bold cyan")
    table.add_column()

    codec_name = get_codec_info(config.codec)["name"]
    table.add_row("Listen:", f"{config.host}:{config.port}")
    table.add_row("CORS Origin:", config.cors_origin or "[dim]disabled[/dim]")
    table.add_row("Output:", f"{codec_name} @ {config.bitrate_kbps} kbps")
    table.add_row("Temp Directory:", f"[dim]{config.temp_dir}[/dim]")
    table.add_row(
        "Concurrency:",
        f"{config.max_concurrent_jobs} jobs / "
        f"{config.max_concurrent_transcodes} transcodes",
    )
    table.add_row(
        "Timeouts:",
        f"acquire {format_duration(config.acquire_timeout)}, "
        f"transcode {format_duration(config.transcode_timeout)}",
    )

    console.print(
        Panel(
            table,
            title="[bold green]✓ Validated Settings[/bold green]",
            border_style="green",
        )
    )


def print_summary_panel(job: Job, stats: ServiceStats, output_path: Path | None):
    """Displays the outcome of a local download."""
    console = Console()

    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column(style="bold cyan", justify="right", width=16)
    table.add_column(style="white", justify="left")

    if job.metadata:
        table.add_row("Title:", job.metadata.title)
        table.add_row("Length:", format_duration(job.metadata.duration_seconds))
    table.add_row("Job:", f"[dim]{job.id}[/dim]")
    table.add_row("Downloaded:", format_size(stats.total_bytes_acquired))
    if stats.peak_speed_bps > 0:
        table.add_row("Peak Speed:", format_speed(stats.peak_speed_bps))
    table.add_row("Elapsed:", format_duration(job.elapsed))

    if job.error is None and output_path:
        table.add_row("Saved To:", f"[green]{output_path}[/green]")
        title, style = "[bold green]✓ Complete[/bold green]", "green"
    else:
        table.add_row("Failed:", f"[red]{job.error}[/red]")
        title, style = "[bold red]✗ Failed[/bold red]", "red"

    console.print(Panel(table, title=title, border_style=style, expand=False))
