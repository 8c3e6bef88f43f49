"""
Job lifecycle model: the per-request state machine and the metadata it carries.
"""

import secrets
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional

from tubemp3.exceptions import InvalidTransitionError, Tubemp3Error


class JobState(Enum):
    """States a job moves through from admission to disposal."""

    RESOLVING = "resolving"
    ACQUIRING = "acquiring"
    TRANSCODING = "transcoding"
    DELIVERING = "delivering"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobState.COMPLETED, JobState.FAILED)


# Every non-terminal state may also fail.
_ALLOWED_TRANSITIONS: dict[JobState, set[JobState]] = {
    JobState.RESOLVING: {JobState.ACQUIRING, JobState.FAILED},
    JobState.ACQUIRING: {JobState.TRANSCODING, JobState.FAILED},
    JobState.TRANSCODING: {JobState.DELIVERING, JobState.FAILED},
    JobState.DELIVERING: {JobState.COMPLETED, JobState.FAILED},
    JobState.COMPLETED: set(),
    JobState.FAILED: set(),
}


@dataclass(frozen=True)
class SourceMetadata:
    """Descriptive metadata for a source video. Read-only once fetched."""

    title: str
    duration_seconds: int = 0
    video_id: str = ""
    uploader: str = ""
    filesize: Optional[int] = None


def new_job_id() -> str:
    """Returns a random, collision-resistant job identifier."""
    return secrets.token_hex(8)


@dataclass
class Job:
    """One end-to-end request to produce an audio file from a source URL."""

    url: str
    id: str = field(default_factory=new_job_id)
    display_title: str = ""
    metadata: Optional[SourceMetadata] = None
    raw_path: Optional[Path] = None
    output_path: Optional[Path] = None
    bytes_delivered: int = 0
    state: JobState = JobState.RESOLVING
    error: Optional[Tubemp3Error] = None
    history: list[JobState] = field(default_factory=lambda: [JobState.RESOLVING])
    created_at: float = field(default_factory=time.monotonic)
    finished_at: Optional[float] = None

    def transition(self, new_state: JobState) -> None:
        """Moves the job to `new_state`, rejecting moves the lifecycle forbids."""
        if new_state not in _ALLOWED_TRANSITIONS[self.state]:
            raise InvalidTransitionError(
                f"Job {self.id}: cannot move from {self.state.value} "
                f"to {new_state.value}."
            )
        self.state = new_state
        self.history.append(new_state)
        if new_state.is_terminal:
            self.finished_at = time.monotonic()

    def fail(self, error: Tubemp3Error) -> None:
        """Records `error` and moves the job to FAILED."""
        self.error = error
        self.transition(JobState.FAILED)

    @property
    def is_finished(self) -> bool:
        return self.state.is_terminal

    @property
    def elapsed(self) -> float:
        end = self.finished_at if self.finished_at is not None else time.monotonic()
        return end - self.created_at

    @property
    def download_filename(self) -> str:
        ext = self.output_path.suffix if self.output_path else ".mp3"
        return f"{self.display_title}{ext}"
