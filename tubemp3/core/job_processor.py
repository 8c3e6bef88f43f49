"""
Handles the processing of a single job, from URL resolution to delivery and cleanup.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

from tubemp3.api.provider import SourceStreamProvider
from tubemp3.exceptions import (
    DeliveryError,
    InternalError,
    InvalidInputError,
    JobCancelledError,
    MissingUrlError,
    Tubemp3Error,
)
from tubemp3.media.acquirer import ProgressCallback, StreamAcquirer
from tubemp3.media.transcoder import TranscoderAdapter
from tubemp3.models.job import Job, JobState
from tubemp3.storage.workspace import WorkspaceManager
from tubemp3.utils.path import display_title
from tubemp3.utils.structured_logger import JobLogger

log = logging.getLogger(__name__)

# Sends the finished file to the requester; may return the number of bytes sent
Deliverer = Callable[[Job], Awaitable[Optional[int]]]


class JobProcessor:
    """
    Drives one job through Resolving, Acquiring, Transcoding and Delivering.

    Each stage starts only after the previous one has reported completion. The
    first failing stage ends the job; whatever the outcome, the job's workspace
    is torn down once the job reaches a terminal state.
    """

    def __init__(
        self,
        provider: SourceStreamProvider,
        acquirer: StreamAcquirer,
        transcoder: TranscoderAdapter,
        workspaces: WorkspaceManager,
        job_logger: JobLogger | None = None,
    ):
        self.provider = provider
        self.acquirer = acquirer
        self.transcoder = transcoder
        self.workspaces = workspaces
        self.job_logger = job_logger

    def check_input(self, url: str) -> None:
        """
        Rejects missing or malformed URLs. Performs no network or disk activity.

        Raises:
            MissingUrlError: If `url` is empty.
            InvalidInputError: If `url` is not in the provider's URL grammar.
        """
        if not url or not url.strip():
            raise MissingUrlError("No URL provided.")
        if not self.provider.validate(url.strip()):
            raise InvalidInputError(f"Not a recognized YouTube URL: {url}")

    def reject(self, job: Job, error: Tubemp3Error) -> None:
        """Fails a job that never got past input validation."""
        self._fail(job, error)

    async def process(
        self,
        job: Job,
        deliver: Deliverer,
        abort: asyncio.Event | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> Job:
        """
        Manages the complete lifecycle of a job. Returns the job in a terminal
        state; failures are recorded on `job.error`, never raised, except for
        cancellation of the calling task, which is re-raised after cleanup.
        """
        if self.job_logger:
            self.job_logger.job_started(job.id, job.url)

        try:
            self.check_input(job.url)

            metadata = await self._run_stage(
                self.provider.get_metadata(job.url), abort
            )
            job.metadata = metadata
            job.display_title = display_title(metadata.title)
            log.info(
                f"[cyan]▶ {job.id}:[/] {metadata.title} "
                f"({metadata.duration_seconds}s)"
            )

            self._enter(job, JobState.ACQUIRING)
            workspace = await self.workspaces.create(job.id)
            job.raw_path = await self._run_stage(
                self.acquirer.acquire(
                    job.url,
                    workspace,
                    total_size_estimate=metadata.filesize,
                    on_progress=on_progress,
                ),
                abort,
            )

            self._enter(job, JobState.TRANSCODING)
            job.output_path = await self._run_stage(
                self.transcoder.transcode(
                    job.raw_path, workspace, f"{job.display_title}_{job.id}"
                ),
                abort,
            )

            self._enter(job, JobState.DELIVERING)
            await self._deliver(job, deliver, abort)

            self._enter(job, JobState.COMPLETED)
            if self.job_logger:
                size = job.output_path.stat().st_size if job.output_path else 0
                self.job_logger.job_completed(
                    job.id, job.display_title, size, job.elapsed
                )
            log.info(f"[green]✓ {job.id}:[/] sent {job.download_filename}")

        except asyncio.CancelledError:
            self._fail(job, JobCancelledError("The job's task was cancelled."))
            raise
        except Tubemp3Error as e:
            self._fail(job, e)
        except Exception as e:
            error = InternalError(f"Unexpected error: {e}")
            error.__cause__ = e
            log.debug("Full traceback:", exc_info=True)
            self._fail(job, error)
        finally:
            removed = await self.workspaces.release_job(job.id)
            if removed is not None and self.job_logger:
                self.job_logger.job_cleaned_up(job.id, removed)

        return job

    async def _deliver(
        self, job: Job, deliver: Deliverer, abort: asyncio.Event | None
    ) -> None:
        try:
            sent = await self._run_stage(deliver(job), abort)
        except (asyncio.CancelledError, Tubemp3Error):
            raise
        except Exception as e:
            raise DeliveryError(f"Transfer to requester interrupted: {e}") from e
        if isinstance(sent, int):
            job.bytes_delivered = sent

    async def _run_stage(self, coro: Awaitable[Any], abort: asyncio.Event | None) -> Any:
        """
        Awaits one stage, aborting it as soon as `abort` is set.

        On abort the stage task is cancelled and awaited, so its streams and
        processes are closed before JobCancelledError is raised.
        """
        if abort is None:
            return await coro
        if abort.is_set():
            coro.close()
            raise JobCancelledError("Job was aborted before the stage started.")

        stage = asyncio.ensure_future(coro)
        waiter = asyncio.ensure_future(abort.wait())
        try:
            done, _ = await asyncio.wait(
                {stage, waiter}, return_when=asyncio.FIRST_COMPLETED
            )
        except asyncio.CancelledError:
            stage.cancel()
            waiter.cancel()
            await asyncio.gather(stage, waiter, return_exceptions=True)
            raise

        if stage in done:
            waiter.cancel()
            return stage.result()

        stage.cancel()
        await asyncio.gather(stage, return_exceptions=True)
        raise JobCancelledError("Job was aborted.")

    def _enter(self, job: Job, state: JobState) -> None:
        job.transition(state)
        if self.job_logger:
            self.job_logger.job_stage(job.id, state.value)

    def _fail(self, job: Job, error: Tubemp3Error) -> None:
        if job.is_finished:
            log.debug(f"Job {job.id} already finished; ignoring {error!r}")
            return
        stage = job.state.value
        job.fail(error)
        if self.job_logger:
            self.job_logger.job_failed(job.id, stage, error.kind, str(error))
        if isinstance(error, DeliveryError):
            log.warning(f"[yellow]⚠ {job.id}:[/] {error}")
        else:
            log.error(f"[red]✗ {job.id} failed while {stage}:[/] {error}")
