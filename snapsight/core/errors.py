"""Error taxonomy shared by the camera, client and proxy layers."""

from typing import Any


class SnapsightError(Exception):
    """Base for all domain errors."""


class AcquisitionError(SnapsightError):
    """
    Camera access failed after every constraint in the fallback chain.

    reason is one of: permission_denied, no_device, constraint_unsatisfiable, device_busy, unknown.
    attempts lists (constraint_label, reason, message) for each try, in order.
    restored_session is set by CameraController.switch when the previous facing mode came back.
    """

    def __init__(
        self,
        reason: str,
        message: str,
        *,
        attempts: list[tuple[str, str, str]] | None = None,
        restored_session: Any = None,
    ) -> None:
        super().__init__(message)
        self.reason = reason
        self.message = message
        self.attempts = list(attempts or [])
        self.restored_session = restored_session


class NotReadyError(SnapsightError):
    """Capture attempted before the feed has a decoded frame."""


class EncodingError(SnapsightError):
    """Crop, resize or JPEG encoding failed."""


class UploadError(SnapsightError):
    """Network failure, non-2xx status, or malformed JSON from the proxy."""

    def __init__(self, message: str, *, status_code: int | None = None, details: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.details = details


class AnalysisTimeoutError(SnapsightError, TimeoutError):
    """Analysis exceeded its bounded wait (client timeout or proxy 504)."""


class AnalysisInProgressError(SnapsightError):
    """A second analysis was started while one is pending and the surface disallows overlap."""


class ProxyInputError(SnapsightError):
    """Unsupported content type, missing image field, or malformed image on the proxy."""

    status_code = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class RemoteModelError(SnapsightError):
    """The vision API returned an error or a response without the expected shape."""

    def __init__(self, message: str, *, status_code: int | None = None, details: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.details = details


class RemoteModelTimeoutError(RemoteModelError):
    """The vision API did not answer within the proxy's timeout."""
