"""
Custom exception hierarchy for the Boxer pipeline.

Only SchedulerFatal is allowed to escape a scheduler run; everything else is
caught at the file boundary and turned into a result.
"""
from typing import Optional


class BoxerError(Exception):
    """Base exception for all Boxer errors."""
    pass


class DecodeError(BoxerError):
    """Raised when an embedded metadata block is malformed or truncated."""
    pass


class AdapterError(BoxerError):
    """Raised when an enrichment backend cannot produce a result."""
    pass


class VisionError(AdapterError):
    """Raised by the vision adapter with a machine-readable code."""

    def __init__(self, code: str, message: str = ''):
        super().__init__(f"{code}: {message}" if message else code)
        self.code = code


class GeocodeError(AdapterError):
    """Raised when a reverse-geocoding response cannot be used."""
    pass


class RemoteError(BoxerError):
    """Raised for non-retryable HTTP failures from a remote service."""

    def __init__(self, status: Optional[int], message: str = ''):
        super().__init__(f"HTTP {status}: {message}" if status else message)
        self.status = status


class TransientRemoteError(RemoteError):
    """Raised for rate limits, server errors and connection failures."""

    def __init__(self, status: Optional[int], message: str = '', retry_after: Optional[float] = None):
        super().__init__(status, message)
        self.retry_after = retry_after


class MetadataConflict(RemoteError):
    """Raised when creating a metadata instance that already exists."""

    def __init__(self, message: str = 'metadata instance already exists'):
        super().__init__(409, message)


class SyncFailure(BoxerError):
    """Raised when the sync protocol gives up on a file."""

    def __init__(self, file_id: str, state: str, cause: Optional[BaseException] = None):
        super().__init__(f"sync of {file_id} failed in {state}: {cause}")
        self.file_id = file_id
        self.state = state
        self.cause = cause


class SchedulerFatal(BoxerError):
    """Raised when the checkpoint store cannot be read or written."""
    pass
