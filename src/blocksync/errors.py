"""
Exception hierarchy for blocksync.

Errors raised here never reach the request-interception path; the components
that hit them convert them into download or load state.
"""


class BlocksyncError(Exception):
    """Base class for all blocksync errors."""

    pass


class ResourceError(BlocksyncError):
    """A resource could not be downloaded or stored."""

    pass


class FailedToCreateCacheFolder(ResourceError):
    """The cache folder for a resource could not be created."""

    pass


class NoData(ResourceError):
    """The server answered with an empty body."""

    pass


class TransportError(BlocksyncError):
    """Network failure or non-2xx response."""

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class NotModified(BlocksyncError):
    """The server reported that the cached copy is current.

    This is a signal rather than a failure.
    """

    pass


class EngineSealedError(BlocksyncError):
    """An installed engine was asked to load more rules."""

    pass


class ContentBlockerError(BlocksyncError):
    """A content-blocking behavior manifest could not be compiled."""

    pass


class DeserializationError(BlocksyncError):
    """Cached rule data could not be decoded into an engine."""

    pass
