"""One in-flight analysis per UI surface: either disallow overlap or let the newest request win."""

from __future__ import annotations

import logging
import threading
from enum import Enum
from typing import Literal

from snapsight.ai.schema import AnalysisResponse
from snapsight.camera.capture import CaptureResult
from snapsight.client.upload import UploadClient
from snapsight.core.errors import AnalysisInProgressError, AnalysisTimeoutError, SnapsightError, UploadError

_log = logging.getLogger(__name__)

ANALYZING_MESSAGE = "Analyzing image..."
TIMEOUT_MESSAGE = "Service busy, try a smaller image or retry."


class SurfaceState(str, Enum):
    idle = "idle"
    analyzing = "analyzing"
    done = "done"
    failed = "failed"


class AnalysisSurface:
    """
    Tracks the analysis shown on one UI surface.

    policy="disallow": begin() raises AnalysisInProgressError while a request is pending
    (the capture button is disabled). policy="supersede": each begin() issues a newer ticket
    and results for older tickets are dropped on arrival.
    """

    def __init__(
        self,
        client: UploadClient,
        policy: Literal["disallow", "supersede"] = "disallow",
    ) -> None:
        self._client = client
        self._policy = policy
        self._lock = threading.Lock()
        self._latest_ticket = 0
        self._pending: set[int] = set()
        self.state = SurfaceState.idle
        self.message = ""
        self.last_response: AnalysisResponse | None = None
        self.last_error: SnapsightError | None = None

    @property
    def busy(self) -> bool:
        with self._lock:
            return bool(self._pending)

    def begin(self) -> int:
        with self._lock:
            if self._pending and self._policy == "disallow":
                raise AnalysisInProgressError("An analysis is already in progress")
            self._latest_ticket += 1
            ticket = self._latest_ticket
            self._pending.add(ticket)
            self.state = SurfaceState.analyzing
            self.message = ANALYZING_MESSAGE
            return ticket

    def complete(self, ticket: int, response: AnalysisResponse) -> bool:
        """Publish response if ticket is still the newest; return whether it was shown."""
        with self._lock:
            self._pending.discard(ticket)
            if ticket != self._latest_ticket:
                _log.debug("Discarding superseded analysis result (ticket %d)", ticket)
                return False
            self.state = SurfaceState.done
            self.message = response.primary_content
            self.last_response = response
            self.last_error = None
            return True

    def fail(self, ticket: int, error: SnapsightError) -> bool:
        with self._lock:
            self._pending.discard(ticket)
            if ticket != self._latest_ticket:
                return False
            self.state = SurfaceState.failed
            if isinstance(error, AnalysisTimeoutError):
                self.message = TIMEOUT_MESSAGE
            else:
                self.message = f"Error: {error}"
            self.last_error = error
            return True

    def analyze(self, capture: CaptureResult) -> AnalysisResponse | None:
        """
        Run one analysis through the surface. Returns the response, or None if a newer
        request superseded it. Errors are recorded on the surface and re-raised.
        """
        ticket = self.begin()
        try:
            response = self._client.analyze(capture)
        except SnapsightError as e:
            self.fail(ticket, e)
            raise
        except Exception as e:
            _log.exception("Unexpected error during analysis")
            self.fail(ticket, UploadError(str(e) or type(e).__name__))
            raise
        return response if self.complete(ticket, response) else None
