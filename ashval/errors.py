"""
Error types and error logging for ashval.

Pre-request failures are raised. Failures that happen while a response is
streaming are recorded on the draft result and shown inline instead.
Full stack traces go to a log file while the CLI shows clean messages.
"""

import os
import traceback
from datetime import datetime, timezone
from pathlib import Path


class AshvalError(Exception):
    """Base class for ashval errors."""


class InputTooLarge(AshvalError):
    """The raw instruction exceeds the hard input ceiling."""

    def __init__(self, length: int, limit: int):
        super().__init__(f"Input is {length} characters; the limit is {limit}")
        self.length = length
        self.limit = limit


class EmptyInstruction(AshvalError):
    """The instruction is blank and the mode requires one."""


class UnknownMode(AshvalError):
    """No operation mode is registered under the given name."""


class NoUsableCredential(AshvalError):
    """Stored-key mode without a saved key, or prompt mode yielded nothing."""


class CredentialAcquisitionCancelled(AshvalError):
    """The user dismissed the credential prompt."""


class StreamFailure(AshvalError):
    """A failure that ended a stream. ``payload`` is the displayable content."""

    def __init__(self, payload: str):
        super().__init__(payload)
        self.payload = payload


class InStreamError(StreamFailure):
    """The provider reported an error on the in-band error channel."""


class TransportFailure(StreamFailure):
    """The chunk source itself raised."""


class StreamCancelled(StreamFailure):
    """The consumer was asked to stop between chunks."""


def _error_log_path() -> Path:
    """Resolve error log path, respecting ASHVAL_STORE_PATH."""
    store = os.environ.get("ASHVAL_STORE_PATH")
    if store:
        return Path(store) / "ashval-errors.log"
    return Path.home() / ".ashval" / "ashval-errors.log"


def log_exception(exc: Exception, context: str = "") -> Path:
    """
    Log exception with full traceback to file.

    Args:
        exc: The exception that occurred
        context: Optional context string (e.g., command name)

    Returns:
        Path to the error log file
    """
    log_path = _error_log_path()
    timestamp = datetime.now(timezone.utc).isoformat()
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(log_path, os.O_WRONLY | os.O_CREAT | os.O_APPEND, 0o600)
        with os.fdopen(fd, "a") as f:
            f.write(f"\n{'='*60}\n")
            f.write(f"[{timestamp}]")
            if context:
                f.write(f" {context}")
            f.write("\n")
            f.write("".join(traceback.format_exception(type(exc), exc, exc.__traceback__)))
    except OSError:
        pass  # Can't write error log, don't crash over it
    return log_path
