"""
Error taxonomy for the storage core.

Every failure the core raises derives from ChronoFrameError so callers can
catch the whole family at a boundary. The split matters for two decisions:

- Retry: only TransientResourceError (and its subclasses) is worth retrying.
- Propagation: ConfigError and CryptoError must reach the caller. They mean
  operator misconfiguration or possible data loss, never "file not found".
"""


class ChronoFrameError(Exception):
    """Base class for all storage core errors."""
    pass


class ConfigError(ChronoFrameError):
    """Raised when configuration is missing or invalid. Never retried."""
    pass


class ObjectNotFoundError(ChronoFrameError):
    """
    Raised when an object that must exist is absent.

    Plain reads (get, get_file_meta) return None instead. Only operations
    that cannot proceed without the object raise this.
    """

    def __init__(self, key: str) -> None:
        super().__init__(f"Object not found: {key}")
        self.key = key


class StorageIOError(ChronoFrameError):
    """Raised when a backend read or write fails."""
    pass


class CryptoError(ChronoFrameError):
    """Raised when a payload cannot be decrypted (wrong key, tampering)."""
    pass


class TransientResourceError(ChronoFrameError):
    """
    A failure expected to go away on its own.

    Eventual-consistency races, resource contention and timeouts land here.
    """
    pass


class OperationTimeoutError(TransientResourceError):
    """Raised when a single attempt exceeds its timeout."""

    def __init__(self, timeout: float, operation: str = "operation") -> None:
        super().__init__(f"{operation} timed out after {timeout:g}s")
        self.timeout = timeout


class RetryExhaustedError(ChronoFrameError):
    """Raised after the last permitted attempt fails."""

    def __init__(self, attempts: int, last_error: BaseException, operation: str = "operation") -> None:
        super().__init__(f"{operation} failed after {attempts} attempt(s): {last_error}")
        self.attempts = attempts
        self.last_error = last_error


class ToolUnavailableError(ChronoFrameError):
    """Raised when an external media tool is missing or broken."""
    pass


class MediaToolError(ChronoFrameError):
    """Raised when an external media tool exits with an error."""

    def __init__(self, command: str, returncode: int, stderr: str = "") -> None:
        message = f"{command} exited with status {returncode}"
        if stderr:
            message = f"{message}: {stderr.strip()[:500]}"
        super().__init__(message)
        self.command = command
        self.returncode = returncode
        self.stderr = stderr


class TransientMediaToolError(MediaToolError, TransientResourceError):
    """A media tool failure caused by resource exhaustion, safe to retry."""
    pass


class VideoMetadataError(ChronoFrameError):
    """Raised when ffprobe output cannot be parsed. Never retried."""
    pass


class ThumbnailError(ChronoFrameError):
    """Raised when a grabbed frame cannot be decoded or re-encoded."""
    pass
