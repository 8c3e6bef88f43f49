"""
Audio transcoding through an ffmpeg subprocess, and the adapter the pipeline
uses to run it with fixed output parameters.
"""

import asyncio
import logging
import re
from abc import ABC, abstractmethod
from pathlib import Path

from tubemp3.exceptions import TranscodeError
from tubemp3.models.config import get_codec_info
from tubemp3.storage.workspace import Workspace

from .integrity import FileIntegrityChecker

log = logging.getLogger(__name__)

# ffmpeg may exit 0 after reporting these on stderr
_STDERR_ERROR_PATTERN = re.compile(
    r"(Error while decoding|Invalid data found|Error opening|Conversion failed|"
    r"could not find codec|Unknown encoder|Error initializing|"
    r"Output file #\d+ does not contain any stream)",
    re.IGNORECASE,
)


class Transcoder(ABC):
    """Converts an audio file to a target codec and bitrate."""

    @abstractmethod
    async def convert(
        self, input_path: Path, output_path: Path, bitrate_kbps: int, codec: str
    ) -> None:
        """
        Returns once the output file is complete.

        Raises:
            TranscodeError: If the conversion fails for any reason.
        """


class FfmpegTranscoder(Transcoder):
    """Runs ffmpeg as an asyncio subprocess."""

    def __init__(self, ffmpeg_path: str = "ffmpeg", verify_output: bool = True):
        self.ffmpeg_path = ffmpeg_path
        self.verify_output = verify_output

    def build_command(
        self, input_path: Path, output_path: Path, bitrate_kbps: int, codec: str
    ) -> list[str]:
        container = get_codec_info(codec)["format"]
        return [
            self.ffmpeg_path,
            "-hide_banner",
            "-nostdin",
            "-loglevel", "error",
            "-y",
            "-i", str(input_path),
            "-vn",
            "-c:a", codec,
            "-b:a", f"{bitrate_kbps}k",
            "-f", container,
            str(output_path),
        ]

    @staticmethod
    def find_stream_errors(stderr: str) -> list[str]:
        """Returns the stderr lines that report a stream or codec error."""
        return [
            line.strip()
            for line in stderr.splitlines()
            if _STDERR_ERROR_PATTERN.search(line)
        ]

    async def convert(
        self, input_path: Path, output_path: Path, bitrate_kbps: int, codec: str
    ) -> None:
        cmd = self.build_command(input_path, output_path, bitrate_kbps, codec)
        log.debug(f"Running: {' '.join(cmd)}")
        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise TranscodeError(f"Could not start ffmpeg ({self.ffmpeg_path}): {e}") from e

        try:
            _, stderr_bytes = await process.communicate()
        except BaseException:
            # Timeout or cancellation: do not leave ffmpeg running
            if process.returncode is None:
                process.kill()
                await process.wait()
            raise

        stderr = stderr_bytes.decode("utf-8", errors="replace")
        if process.returncode != 0:
            raise TranscodeError(
                f"ffmpeg exited with code {process.returncode}: "
                f"{stderr.strip()[-500:] or 'no output'}"
            )

        if errors := self.find_stream_errors(stderr):
            raise TranscodeError(f"ffmpeg reported stream errors: {errors[0]}")

        if not output_path.is_file() or output_path.stat().st_size == 0:
            raise TranscodeError("ffmpeg finished without writing any output.")

        if self.verify_output and get_codec_info(codec)["ext"] == "mp3":
            valid = await asyncio.to_thread(
                FileIntegrityChecker.check_mp3, str(output_path)
            )
            if not valid:
                raise TranscodeError("Converted file failed the MP3 integrity check.")


class TranscoderAdapter:
    """
    Runs a `Transcoder` for a job with fixed output parameters.

    A shared semaphore caps how many conversions run at once across all jobs;
    extra jobs wait for a slot instead of starting another encoder.
    """

    def __init__(
        self,
        transcoder: Transcoder,
        bitrate_kbps: int = 320,
        codec: str = "libmp3lame",
        max_concurrent: int = 2,
        timeout: float | None = None,
    ):
        self.transcoder = transcoder
        self.bitrate_kbps = bitrate_kbps
        self.codec = codec
        self.timeout = timeout
        self._slots = asyncio.Semaphore(max_concurrent)

    @property
    def output_ext(self) -> str:
        return get_codec_info(self.codec)["ext"]

    async def transcode(
        self, raw_path: Path, workspace: Workspace, output_name: str
    ) -> Path:
        """
        Converts `raw_path` into `output_name` inside the workspace.

        Raises:
            TranscodeError: For conversion failures, crashes and timeouts. Any
            partial output stays in the workspace for teardown to remove.
        """
        output_path = workspace.path_for(f"{output_name}.{self.output_ext}")
        async with self._slots:
            try:
                await asyncio.wait_for(
                    self.transcoder.convert(
                        raw_path, output_path, self.bitrate_kbps, self.codec
                    ),
                    timeout=self.timeout,
                )
            except asyncio.TimeoutError as e:
                raise TranscodeError(
                    f"Conversion did not finish within {self.timeout:.0f}s."
                ) from e
            except TranscodeError:
                raise
            except OSError as e:
                raise TranscodeError(f"Conversion failed: {e}") from e
        log.debug(f"Converted {raw_path.name} -> {output_path.name}")
        return output_path
