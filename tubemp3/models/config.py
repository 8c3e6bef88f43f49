"""
Pydantic model for application configuration.
Provides robust validation for all settings.
"""

from pathlib import Path
import tempfile

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

# Output formats the transcoder knows how to produce and verify
CODEC_MAP = {
    "libmp3lame": {
        "name": "MP3 (LAME)",
        "ext": "mp3",
        "format": "mp3",
        "mime": "audio/mpeg",
    },
}

DEFAULT_TEMP_ROOT = str(Path(tempfile.gettempdir()) / "tubemp3")


def get_codec_info(codec: str) -> dict[str, str]:
    """Gets container and MIME information for a codec from the central map."""
    return CODEC_MAP.get(codec, CODEC_MAP["libmp3lame"])


class ServiceConfig(BaseModel):
    """A validated configuration model for the service and the CLI."""

    model_config = ConfigDict(validate_assignment=True, str_strip_whitespace=True)

    # HTTP service
    host: str = "0.0.0.0"
    port: int = 3000
    cors_origin: str = "http://localhost:4200"

    # Pipeline
    temp_dir: str = DEFAULT_TEMP_ROOT
    bitrate_kbps: int = 320
    codec: str = "libmp3lame"
    ffmpeg_path: str = "ffmpeg"
    chunk_size: int = 262144  # 256 KB
    max_concurrent_jobs: int = 4
    max_concurrent_transcodes: int = 2
    acquire_timeout: float = 900.0
    transcode_timeout: float = 600.0

    # Logging
    log_dir: str = ""
    json_logs: bool = False

    # Internal fields not loaded from INI file
    config_path: str = Field(default="", repr=False)

    @field_validator("port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        if not 0 < v < 65536:
            raise ValueError("Port must be between 1 and 65535.")
        return v

    @field_validator("bitrate_kbps")
    @classmethod
    def validate_bitrate(cls, v: int) -> int:
        """Keeps the bitrate within what the LAME encoder accepts."""
        if v < 32 or v > 320:
            raise ValueError("Bitrate must be between 32 and 320 kbps.")
        return v

    @field_validator("codec")
    @classmethod
    def validate_codec(cls, v: str) -> str:
        if v not in CODEC_MAP:
            raise ValueError(
                f"Unsupported codec '{v}'. Supported: {', '.join(CODEC_MAP)}."
            )
        return v

    @field_validator("max_concurrent_jobs", "max_concurrent_transcodes")
    @classmethod
    def validate_workers(cls, v: int) -> int:
        """Ensures a reasonable number of concurrent workers."""
        if v < 1 or v > 32:
            raise ValueError("Concurrency limits must be between 1 and 32.")
        return v

    @field_validator("acquire_timeout", "transcode_timeout")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("Timeouts must be positive.")
        return v

    @field_validator("chunk_size")
    @classmethod
    def validate_chunk_size(cls, v: int) -> int:
        if v < 1024:
            raise ValueError("Chunk size must be at least 1024 bytes.")
        return v

    @field_validator("temp_dir")
    @classmethod
    def validate_temp_dir(cls, v: str) -> str:
        if not v:
            raise ValueError("Temp directory cannot be empty.")
        return v

    @model_validator(mode="after")
    def validate_concurrency(self) -> "ServiceConfig":
        """Transcodes run inside jobs, so they cannot outnumber them."""
        if self.max_concurrent_transcodes > self.max_concurrent_jobs:
            raise ValueError(
                "max_concurrent_transcodes cannot exceed max_concurrent_jobs."
            )
        return self

    @property
    def output_ext(self) -> str:
        return get_codec_info(self.codec)["ext"]

    @property
    def output_mime(self) -> str:
        return get_codec_info(self.codec)["mime"]

    @classmethod
    def get_ini_keys(cls) -> set[str]:
        """Returns a set of all keys that are expected in the INI file."""
        internal_fields = {"config_path"}
        return {key for key in cls.model_fields if key not in internal_fields}
