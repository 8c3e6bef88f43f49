"""
Defines custom exceptions for the application to allow for more specific error handling.

Every pipeline failure is mapped onto one of these classes before it reaches a
caller. Each class carries the HTTP status and the user-facing message that the
web layer reports for it.
"""


class Tubemp3Error(Exception):
    """Base exception for all application-specific errors."""

    status_code: int = 500
    user_message: str = "Internal server error"
    kind: str = "internal"


class InvalidInputError(Tubemp3Error):
    """Raised when the submitted URL is not a recognized YouTube URL."""

    status_code = 400
    user_message = "Invalid YouTube URL"
    kind = "invalid_input"


class MissingUrlError(InvalidInputError):
    """Raised when the request does not carry a URL at all."""

    user_message = "YouTube URL is required"


class SourceUnavailableError(Tubemp3Error):
    """
    Raised when YouTube rejects or lacks the content (removed, private, geo-blocked).

    Reported as 502 "Video is unavailable on YouTube", so clients can tell an
    upstream refusal apart from a failure of this service. Earlier releases of
    the API answered these with a generic 500 "Internal server error".
    """

    status_code = 502
    user_message = "Video is unavailable on YouTube"
    kind = "source_unavailable"


class AcquisitionError(Tubemp3Error):
    """Raised when the audio stream transfer fails at the transport level."""

    user_message = "Error downloading video from YouTube"
    kind = "acquisition"


class TranscodeError(Tubemp3Error):
    """Raised when ffmpeg fails to produce a valid output file."""

    user_message = "Error converting video to MP3"
    kind = "transcode"


class DeliveryError(Tubemp3Error):
    """Raised when sending the finished file to the requester is interrupted."""

    kind = "delivery"


class JobCancelledError(Tubemp3Error):
    """Raised when a job is aborted from outside before it completes."""

    status_code = 499
    user_message = "Request was cancelled"
    kind = "cancelled"


class InternalError(Tubemp3Error):
    """Wraps any uncategorized fault raised inside the pipeline."""


class InvalidTransitionError(Tubemp3Error):
    """Raised when a job is moved to a state its lifecycle does not allow."""


class ConfigurationError(Tubemp3Error):
    """Raised for issues related to configuration loading or validation."""
