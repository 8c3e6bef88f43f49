"""
Persistence Layer.

This package manages everything the application keeps on disk: the per-job
temporary workspaces and the INI configuration file.
"""

from .config_manager import ConfigManager
from .workspace import Workspace, WorkspaceManager

__all__ = ["ConfigManager", "Workspace", "WorkspaceManager"]
