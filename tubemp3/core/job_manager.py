"""
The service-level coordinator: admits jobs, wires the pipeline together and
keeps service statistics.
"""

import asyncio
import logging
import time
from pathlib import Path

from tubemp3.api.provider import SourceStreamProvider
from tubemp3.api.youtube import YouTubeProvider, close_connection_pool
from tubemp3.exceptions import InvalidInputError, JobCancelledError
from tubemp3.media.acquirer import ProgressCallback, StreamAcquirer
from tubemp3.media.transcoder import FfmpegTranscoder, Transcoder, TranscoderAdapter
from tubemp3.models.config import ServiceConfig
from tubemp3.models.job import Job
from tubemp3.models.stats import ServiceStats
from tubemp3.storage.workspace import WorkspaceManager
from tubemp3.utils.structured_logger import create_structured_logger

from .job_processor import Deliverer, JobProcessor

log = logging.getLogger(__name__)


class JobManager:
    """
    Orchestrates jobs for the whole process.

    At most `max_concurrent_jobs` jobs run their stages at the same time;
    further submissions wait for a free slot. Invalid input is rejected before
    admission, so it never waits.
    """

    def __init__(
        self,
        config: ServiceConfig,
        provider: SourceStreamProvider | None = None,
        transcoder: Transcoder | None = None,
    ):
        self.config = config
        self.stats = ServiceStats()
        self.start_time = time.monotonic()
        self.provider = provider or YouTubeProvider(
            max_connections=config.max_concurrent_jobs
        )
        self.workspaces = WorkspaceManager(Path(config.temp_dir))

        log_dir = Path(config.log_dir) if config.log_dir else None
        self.logger, self.job_logger, self.service_logger = create_structured_logger(
            log_dir=log_dir, enable_json=config.json_logs
        )

        acquirer = StreamAcquirer(
            self.provider,
            chunk_size=config.chunk_size,
            timeout=config.acquire_timeout,
            stats=self.stats,
        )
        adapter = TranscoderAdapter(
            transcoder or FfmpegTranscoder(config.ffmpeg_path),
            bitrate_kbps=config.bitrate_kbps,
            codec=config.codec,
            max_concurrent=config.max_concurrent_transcodes,
            timeout=config.transcode_timeout,
        )
        self.processor = JobProcessor(
            self.provider, acquirer, adapter, self.workspaces, self.job_logger
        )
        self.semaphore = asyncio.Semaphore(config.max_concurrent_jobs)
        self._jobs: dict[str, Job] = {}

    @property
    def active_jobs(self) -> int:
        return len(self._jobs)

    async def start(self) -> None:
        """
        Prepares the workspace root. The root may be shared with other
        processes, so leftovers are only removed by `tubemp3 cleanup`.
        """
        await asyncio.to_thread(self.workspaces.ensure_root)
        self.service_logger.service_started(
            self.config.host,
            self.config.port,
            self.config.temp_dir,
            self.config.max_concurrent_jobs,
        )

    async def stop(self) -> None:
        """Closes shared resources."""
        await close_connection_pool()
        self.service_logger.service_stopped(
            self.stats.jobs_completed,
            self.stats.jobs_failed,
            time.monotonic() - self.start_time,
        )
        self.logger.close()

    async def submit(
        self,
        url: str | None,
        deliver: Deliverer,
        abort: asyncio.Event | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> Job:
        """
        Runs one job to a terminal state and returns it.

        Exactly one outcome is produced per job: either `deliver` was called
        with the finished job, or `job.error` classifies the failure.
        """
        job = Job(url=(url or "").strip())
        self._jobs[job.id] = job
        self.stats.job_started()
        try:
            try:
                self.processor.check_input(job.url)
            except InvalidInputError as e:
                self.processor.reject(job, e)
                return job

            async with self.semaphore:
                await self.processor.process(job, deliver, abort, on_progress)
            self.stats.total_bytes_delivered += job.bytes_delivered
            return job
        finally:
            if not job.is_finished:
                # Cancelled while waiting for admission
                self.processor.reject(
                    job, JobCancelledError("Cancelled before the job was admitted.")
                )
            self._jobs.pop(job.id, None)
            self.stats.job_finished(job.error.kind if job.error else None)
