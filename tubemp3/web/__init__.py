"""
Web Layer.

This package exposes the conversion pipeline as an aiohttp HTTP service.
"""

from .server import create_app, run_server

__all__ = ["create_app", "run_server"]
