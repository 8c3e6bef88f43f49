"""
Command-Line Interface Layer.

Typer commands, Rich formatters and the transfer progress display.
"""
