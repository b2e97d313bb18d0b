"""
Error taxonomy shared by the ordering and communication layers.

Routers translate these into HTTP status codes (see main.py).
"""


class ERPError(Exception):
    """Base class for all domain errors."""

    status_code: int = 500

    def __init__(self, message: str, **context):
        super().__init__(message)
        self.message = message
        self.context = context


class NotFound(ERPError):
    """Referenced item, container or record does not exist or is soft-deleted."""

    status_code = 404


class ValidationFailed(ERPError):
    """A workflow guard or input rule was not met."""

    status_code = 422


class Conflict(ERPError):
    """Concurrent modification detected by the transaction isolation check."""

    status_code = 409


class DispatchFailed(ERPError):
    """A single channel's outbound send failed."""

    status_code = 502

    def __init__(self, channel: str, message: str, **context):
        super().__init__(message, channel=channel, **context)
        self.channel = channel


class StorageUnavailable(ERPError):
    """Blob store or data store could not be reached."""

    status_code = 503
