"""Camera acquisition: facing-mode constraint fallback and one live session per sink."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from snapsight.camera.media import DeviceError, MediaDevices, MediaStream, VideoSink
from snapsight.core.config import CameraSettings
from snapsight.core.errors import AcquisitionError

_log = logging.getLogger(__name__)


class FacingMode(str, Enum):
    rear = "rear"
    front = "front"

    @property
    def browser_value(self) -> str:
        """facingMode string understood by getUserMedia."""
        return "environment" if self is FacingMode.rear else "user"

    @property
    def opposite(self) -> "FacingMode":
        return FacingMode.front if self is FacingMode.rear else FacingMode.rear


@dataclass
class CameraSession:
    """One acquired stream bound to a sink. release() stops every track and is idempotent."""

    facing_mode: FacingMode
    mirrored: bool
    stream: MediaStream | None
    sink: VideoSink
    is_active: bool = True
    settings: dict[str, Any] = field(default_factory=dict)

    def release(self) -> None:
        stream = self.stream
        if stream is not None:
            stream.stop()
            if self.sink.src_object is stream:
                self.sink.detach()
        self.stream = None
        self.is_active = False


def build_constraints(facing_mode: FacingMode, settings: CameraSettings) -> list[tuple[str, dict[str, Any]]]:
    """Constraint fallback chain, strictest first: exact, ideal, then (optionally) any camera."""
    size = {
        "width": {"ideal": settings.ideal_width},
        "height": {"ideal": settings.ideal_height},
    }
    chain: list[tuple[str, dict[str, Any]]] = [
        (
            "exact",
            {"video": {"facingMode": {"exact": facing_mode.browser_value}, **size}, "audio": False},
        ),
        (
            "ideal",
            {"video": {"facingMode": {"ideal": facing_mode.browser_value}, **size}, "audio": False},
        ),
    ]
    if settings.allow_any_device:
        chain.append(("any", {"video": True, "audio": False}))
    return chain


def _failure_reason(attempts: list[tuple[str, str, str]]) -> str:
    """A permission denial on any attempt wins; otherwise the last attempt's reason."""
    if any(reason == "permission_denied" for _, reason, _ in attempts):
        return "permission_denied"
    return attempts[-1][1] if attempts else "unknown"


class CameraController:
    """
    Owns the camera session for one VideoSink.

    The previous session is always released before a new acquisition attempt, so at most one
    hardware lock is ever held per sink.
    """

    def __init__(self, devices: MediaDevices, sink: VideoSink, settings: CameraSettings) -> None:
        self._devices = devices
        self._sink = sink
        self._settings = settings
        self._session: CameraSession | None = None

    @property
    def session(self) -> CameraSession | None:
        return self._session

    @property
    def sink(self) -> VideoSink:
        return self._sink

    def release(self) -> None:
        """Stop every track of the current session and clear the sink."""
        if self._session is not None:
            _log.info("Releasing %s camera", self._session.facing_mode.value)
            self._session.release()
            self._session = None
        elif self._sink.src_object is not None:
            # Stream bound by someone else; still must not leak a lock.
            self._sink.src_object.stop()
            self._sink.detach()

    def acquire(self, facing_mode: FacingMode | str) -> CameraSession:
        """
        Open a stream for facing_mode and bind it to the sink.

        Tries exact, ideal, then any-device constraints. Raises AcquisitionError with the
        browser-reported reason when every attempt fails. Safe to call again after a failure.
        """
        facing_mode = FacingMode(facing_mode)
        self.release()

        attempts: list[tuple[str, str, str]] = []
        stream: MediaStream | None = None
        for label, constraints in build_constraints(facing_mode, self._settings):
            try:
                stream = self._devices.get_user_media(constraints)
                break
            except DeviceError as e:
                _log.info("Camera %s constraint for %s failed: %s (%s)", label, facing_mode.value, e.name, e.message)
                attempts.append((label, e.reason, e.message))

        if stream is None:
            reason = _failure_reason(attempts)
            message = attempts[-1][2] if attempts else "Could not access camera"
            _log.warning("Camera acquisition failed for %s: %s", facing_mode.value, reason)
            raise AcquisitionError(reason, message, attempts=attempts)

        mirrored = facing_mode is FacingMode.front and self._settings.mirror_front_camera
        self._sink.attach(stream, mirrored=mirrored)
        tracks = stream.get_video_tracks()
        track_settings = tracks[0].get_settings() if tracks else {}
        self._session = CameraSession(
            facing_mode=facing_mode,
            mirrored=mirrored,
            stream=stream,
            sink=self._sink,
            settings=track_settings,
        )
        _log.info("%s camera active (mirrored=%s)", facing_mode.value.capitalize(), mirrored)
        return self._session

    def switch(self, session: CameraSession | None = None) -> CameraSession:
        """
        Release the current session and acquire the opposite facing mode.

        On failure the previous facing mode is retried once; the original AcquisitionError is
        raised either way, with restored_session set when the old feed came back.
        """
        current = session or self._session
        if current is None:
            return self.acquire(self._settings.default_facing_mode)
        previous = current.facing_mode
        if current is not self._session:
            current.release()
        try:
            return self.acquire(previous.opposite)
        except AcquisitionError as switch_error:
            _log.warning("Switch to %s failed; restoring %s", previous.opposite.value, previous.value)
            try:
                switch_error.restored_session = self.acquire(previous)
            except AcquisitionError as restore_error:
                _log.error("Restoring %s camera failed: %s", previous.value, restore_error.reason)
            raise
