"""
Per-job temporary workspaces.

Each job gets its own directory under the workspace root. Everything the job
writes lives inside it, so tearing the directory down removes every entry the
job created.
"""

import asyncio
import logging
import re
import shutil
import time
from pathlib import Path

from tubemp3.utils.path import create_dir

log = logging.getLogger(__name__)

# Workspace directories are named after job ids (`secrets.token_hex(8)`)
JOB_DIR_PATTERN = re.compile(r"[0-9a-f]{16}")


class Workspace:
    """The set of temporary files owned by one job."""

    def __init__(self, root: Path, job_id: str):
        self.job_id = job_id
        self.path = root / job_id
        self._created: list[Path] = []
        self._torn_down = False
        self._lock = asyncio.Lock()

    @property
    def is_torn_down(self) -> bool:
        return self._torn_down

    @property
    def files(self) -> list[Path]:
        return list(self._created)

    def path_for(self, name: str) -> Path:
        """
        Reserves a file name inside the workspace and returns its path.

        Names may not escape the workspace directory.
        """
        if self._torn_down:
            raise RuntimeError(f"Workspace {self.job_id} has already been torn down.")
        candidate = self.path / name
        if candidate.parent != self.path or name in ("", ".", ".."):
            raise ValueError(f"Invalid workspace file name: {name!r}")
        self._created.append(candidate)
        return candidate

    def make_dir(self) -> None:
        """Blocking; creates the workspace directory, which must not exist yet."""
        self.path.mkdir(parents=True, exist_ok=False)

    def _remove_all(self) -> int:
        removed = 0
        for file_path in self._created:
            try:
                file_path.unlink()
                removed += 1
            except FileNotFoundError:
                pass
        # Catches anything a collaborator wrote next to the reserved names
        shutil.rmtree(self.path, ignore_errors=True)
        return removed

    async def teardown(self) -> int:
        """
        Removes every entry of the workspace. Safe to call any number of times;
        only the first call has an effect.

        Returns:
            The number of reserved files that were actually removed.
        """
        async with self._lock:
            if self._torn_down:
                return 0
            self._torn_down = True
        removed = await asyncio.to_thread(self._remove_all)
        log.debug(f"Workspace {self.job_id} torn down ({removed} files removed).")
        return removed


class WorkspaceManager:
    """Allocates and tracks workspaces under a single root directory."""

    def __init__(self, root: Path):
        self.root = Path(root)
        self._active: dict[str, Workspace] = {}

    @property
    def active_count(self) -> int:
        return len(self._active)

    def ensure_root(self) -> None:
        create_dir(self.root)

    async def create(self, job_id: str) -> Workspace:
        """
        Creates a fresh, empty workspace directory for `job_id`.

        The workspace is tracked before its directory exists, so
        `release_job(job_id)` cleans up even when the caller is cancelled
        while the directory is being made.
        """
        if job_id in self._active:
            raise ValueError(f"Workspace for job {job_id} already exists.")
        workspace = Workspace(self.root, job_id)
        self._active[job_id] = workspace

        mkdir = asyncio.ensure_future(asyncio.to_thread(workspace.make_dir))
        try:
            await asyncio.shield(mkdir)
        except asyncio.CancelledError:
            # The worker thread cannot be stopped; let it finish so that a
            # following teardown sees the directory it made.
            await asyncio.gather(mkdir, return_exceptions=True)
            raise
        except BaseException:
            self._active.pop(job_id, None)
            raise
        return workspace

    async def release(self, workspace: Workspace) -> int:
        """Tears the workspace down and stops tracking it."""
        removed = await workspace.teardown()
        self._active.pop(workspace.job_id, None)
        return removed

    async def release_job(self, job_id: str) -> int | None:
        """
        Releases the workspace of `job_id`, if one was ever created.

        Returns None when the job had no workspace.
        """
        workspace = self._active.get(job_id)
        if workspace is None:
            return None
        return await self.release(workspace)

    def sweep_stale(self, older_than: float = 0.0) -> int:
        """
        Removes job directories left under the root by crashed runs.

        Only directories named like a job id, not owned by this manager and
        last modified more than `older_than` seconds ago are removed. Other
        files and directories under the root are never touched.
        """
        if not self.root.is_dir():
            return 0
        cutoff = time.time() - older_than
        swept = 0
        for entry in self.root.iterdir():
            if entry.name in self._active or not JOB_DIR_PATTERN.fullmatch(entry.name):
                continue
            try:
                if not entry.is_dir() or entry.is_symlink():
                    continue
                if entry.stat().st_mtime > cutoff:
                    continue
            except FileNotFoundError:
                continue
            shutil.rmtree(entry, ignore_errors=True)
            swept += 1
        if swept:
            log.info(f"Removed {swept} stale workspaces from {self.root}")
        return swept
