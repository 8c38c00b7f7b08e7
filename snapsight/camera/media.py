"""Media seams mirroring the browser model: devices hand out streams of tracks, a sink renders one stream."""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from PIL import Image

# Browser DOMException names -> AcquisitionError.reason
DEVICE_ERROR_REASONS = {
    "NotAllowedError": "permission_denied",
    "SecurityError": "permission_denied",
    "NotFoundError": "no_device",
    "OverconstrainedError": "constraint_unsatisfiable",
    "NotReadableError": "device_busy",
    "AbortError": "device_busy",
}


class DeviceError(Exception):
    """Raised by MediaDevices.get_user_media; name uses the browser's error names."""

    def __init__(self, name: str, message: str = "") -> None:
        super().__init__(message or name)
        self.name = name
        self.message = message or name

    @property
    def reason(self) -> str:
        return DEVICE_ERROR_REASONS.get(self.name, "unknown")


@runtime_checkable
class VideoTrack(Protocol):
    """One hardware-backed video track. stop() must release the device."""

    kind: str

    @property
    def ready_state(self) -> str:
        """'live' until stop() is called, then 'ended'."""
        ...

    def stop(self) -> None: ...

    def get_settings(self) -> dict[str, Any]:
        """Negotiated settings: at least width, height; facingMode when known."""
        ...

    def grab(self) -> Image.Image | None:
        """Return the current frame, or None when nothing has decoded yet."""
        ...


class MediaDevices(Protocol):
    """Source of camera streams, shaped like navigator.mediaDevices."""

    def get_user_media(self, constraints: dict[str, Any]) -> "MediaStream":
        """Open a stream matching constraints; raise DeviceError on failure."""
        ...


class MediaStream:
    """A bundle of tracks handed out by MediaDevices."""

    def __init__(self, tracks: list[VideoTrack]) -> None:
        self._tracks = list(tracks)

    def get_tracks(self) -> list[VideoTrack]:
        return list(self._tracks)

    def get_video_tracks(self) -> list[VideoTrack]:
        return [t for t in self._tracks if t.kind == "video"]

    @property
    def active(self) -> bool:
        return any(t.ready_state == "live" for t in self._tracks)

    def stop(self) -> None:
        """Stop every track."""
        for track in self._tracks:
            track.stop()


class VideoSink:
    """
    Display sink for one live stream, the counterpart of a <video> element.

    src_object is the bound stream (or None). mirrored is the preview's horizontal flip.
    video_width/video_height are the intrinsic dimensions of the feed (0 until known).
    """

    def __init__(self) -> None:
        self.src_object: MediaStream | None = None
        self.mirrored = False

    def attach(self, stream: MediaStream, *, mirrored: bool) -> None:
        self.src_object = stream
        self.mirrored = mirrored

    def detach(self) -> None:
        self.src_object = None
        self.mirrored = False

    def _track(self) -> VideoTrack | None:
        if self.src_object is None:
            return None
        tracks = self.src_object.get_video_tracks()
        return tracks[0] if tracks else None

    @property
    def video_width(self) -> int:
        track = self._track()
        if track is None:
            return 0
        return int(track.get_settings().get("width") or 0)

    @property
    def video_height(self) -> int:
        track = self._track()
        if track is None:
            return 0
        return int(track.get_settings().get("height") or 0)

    def current_frame(self) -> Image.Image | None:
        """The unmirrored frame currently displayed, or None."""
        track = self._track()
        if track is None or track.ready_state != "live":
            return None
        return track.grab()
