"""
Error types for the watch → normalize → merge pipeline.

All errors inherit from ClipBatchError so callers can catch the whole family.
ProbeError, EncodeError and VerifyError are retryable at the queue level.
"""
from pathlib import Path
from typing import Optional


class ClipBatchError(Exception):
    """Base exception for all pipeline failures."""
    pass


class NotFoundError(ClipBatchError):
    """Raised when the watched root or an input file does not exist."""

    def __init__(self, path: Path):
        self.path = path
        super().__init__(f"Path not found: {path}")


class StabilityTimeoutError(ClipBatchError):
    """Raised when a file keeps changing size past the stability budget."""

    def __init__(self, path: Path, timeout: float, reason: Optional[str] = None):
        self.path = path
        self.timeout = timeout
        message = reason or f"file still growing after {timeout:.1f}s"
        super().__init__(f"Stability wait failed for {path.name}: {message}")


class FileAccessError(ClipBatchError):
    """Raised when a file disappears or cannot be read mid-operation."""

    def __init__(self, path: Path, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Cannot access {path.name}: {reason}")


class ProbeError(ClipBatchError):
    """Raised when ffprobe cannot report a usable duration."""

    def __init__(self, path: Path, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Cannot read duration of {path.name}: {reason}")


class EncodeError(ClipBatchError):
    """Raised when ffmpeg exits non-zero, crashes or is interrupted."""

    def __init__(self, path: Path, returncode: Optional[int], detail: str = ""):
        self.path = path
        self.returncode = returncode
        self.detail = detail
        if returncode is None:
            # Never ran to completion: failed to start or was terminated
            message = f"ffmpeg {detail}" if detail else "ffmpeg interrupted"
        else:
            message = f"ffmpeg exited with code {returncode}"
            if detail:
                message = f"{message}: {detail}"
        super().__init__(message)


class VerifyError(ClipBatchError):
    """Raised when an output is missing or its duration is out of tolerance."""

    def __init__(self, path: Path, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Output verification failed for {path.name}: {reason}")


class MergeCountMismatchError(ClipBatchError):
    """Raised when the merge selection does not contain exactly K×M files."""

    def __init__(self, expected: int, actual: int):
        self.expected = expected
        self.actual = actual
        super().__init__(f"Expected {expected} clips for merge, found {actual}")


class CleanupError(ClipBatchError):
    """Raised when deleting or renaming during cleanup fails."""

    def __init__(self, path: Path, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Cleanup failed for {path.name}: {reason}")
