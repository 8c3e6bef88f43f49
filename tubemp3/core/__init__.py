"""
Core application engine for orchestrating the conversion pipeline.

This package contains the primary logic. The `JobManager` acts as the
service-level coordinator, delegating the processing of each individual
request to the `JobProcessor`.
"""

from .job_manager import JobManager
from .job_processor import Deliverer, JobProcessor

__all__ = ["Deliverer", "JobManager", "JobProcessor"]
