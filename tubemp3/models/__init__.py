"""
Data Models Layer.

This package contains the Pydantic and dataclass models that define the core
data structures used throughout the application, such as configuration, jobs
and statistics.
"""

from .config import ServiceConfig
from .job import Job, JobState, SourceMetadata
from .stats import ServiceStats

__all__ = ["Job", "JobState", "ServiceConfig", "ServiceStats", "SourceMetadata"]
