"""
Console entry point: `tubemp3` or `python -m tubemp3`.
"""

import logging
import os
import sys

import typer
from rich.console import Console

from tubemp3.cli.app import app
from tubemp3.cli.formatters import format_error_with_suggestions
from tubemp3.exceptions import InvalidInputError, Tubemp3Error

# Exit codes: 1 for pipeline failures, 2 for bad input, 130 when interrupted
EXIT_FAILURE = 1
EXIT_USAGE = 2
EXIT_INTERRUPTED = 130


def main() -> None:
    if os.name == "nt":
        # Titles and panels contain non-ASCII glyphs
        for stream in (sys.stdout, sys.stderr):
            if hasattr(stream, "reconfigure"):
                stream.reconfigure(encoding="utf-8")

    console = Console(stderr=True)
    try:
        app()
    except (typer.Exit, typer.Abort):
        pass
    except KeyboardInterrupt:
        console.print("\n[yellow]⚠️  Interrupted.[/yellow]")
        sys.exit(EXIT_INTERRUPTED)
    except Tubemp3Error as e:
        console.print(format_error_with_suggestions(e))
        sys.exit(EXIT_USAGE if isinstance(e, InvalidInputError) else EXIT_FAILURE)
    except Exception as e:
        console.print(format_error_with_suggestions(e, {"type": "Unexpected"}))
        logging.getLogger("tubemp3").debug("Full traceback:", exc_info=True)
        sys.exit(EXIT_FAILURE)


if __name__ == "__main__":
    main()
