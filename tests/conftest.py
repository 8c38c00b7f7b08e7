"""Pytest fixtures: in-memory camera fakes, synthetic frames, and API dependency overrides."""

from typing import Any

import pytest
from PIL import Image

from snapsight.camera.media import DeviceError, MediaStream, VideoSink
from snapsight.core import config as config_module
from snapsight.core.config import CameraSettings, CaptureSettings


class FakeTrack:
    """VideoTrack backed by a fixed PIL frame."""

    kind = "video"

    def __init__(self, frame: Image.Image | None, facing_mode: str | None = None) -> None:
        self.frame = frame
        self.facing_mode = facing_mode
        self.stop_calls = 0
        self._ready_state = "live"

    @property
    def ready_state(self) -> str:
        return self._ready_state

    def stop(self) -> None:
        self.stop_calls += 1
        self._ready_state = "ended"

    def get_settings(self) -> dict[str, Any]:
        width, height = self.frame.size if self.frame is not None else (0, 0)
        return {"width": width, "height": height, "facingMode": self.facing_mode}

    def grab(self) -> Image.Image | None:
        if self._ready_state != "live" or self.frame is None:
            return None
        return self.frame.copy()


class FakeMediaDevices:
    """
    getUserMedia stand-in.

    cameras maps browser facingMode ('environment', 'user') to the frame that camera produces.
    deny: error name raised for every request (e.g. 'NotAllowedError').
    busy: facing modes whose camera raises NotReadableError.
    reject_exact: raise OverconstrainedError for any exact constraint (desktop browsers).
    ideal_substitutes: ideal constraints fall back to any camera when the facing mode is absent.
    """

    def __init__(
        self,
        cameras: dict[str, Image.Image | None],
        *,
        deny: str | None = None,
        busy: set[str] | None = None,
        reject_exact: bool = False,
        ideal_substitutes: bool = True,
    ) -> None:
        self.cameras = dict(cameras)
        self.deny = deny
        self.busy = set(busy or ())
        self.reject_exact = reject_exact
        self.ideal_substitutes = ideal_substitutes
        self.calls: list[dict[str, Any]] = []
        self.streams: list[MediaStream] = []
        self.max_live = 0

    def _issue(self, facing: str) -> MediaStream:
        if facing in self.busy:
            raise DeviceError("NotReadableError", f"Could not start {facing} video source")
        stream = MediaStream([FakeTrack(self.cameras[facing], facing)])
        self.streams.append(stream)
        live = sum(1 for s in self.streams if s.active)
        self.max_live = max(self.max_live, live)
        return stream

    def get_user_media(self, constraints: dict[str, Any]) -> MediaStream:
        self.calls.append(constraints)
        if self.deny:
            raise DeviceError(self.deny, "Permission denied")
        if not self.cameras:
            raise DeviceError("NotFoundError", "Requested device not found")
        video = constraints["video"]
        if video is True:
            return self._issue(next(iter(self.cameras)))
        facing = video["facingMode"]
        if "exact" in facing:
            if self.reject_exact or facing["exact"] not in self.cameras:
                raise DeviceError("OverconstrainedError", "facingMode exact not satisfiable")
            return self._issue(facing["exact"])
        wanted = facing["ideal"]
        if wanted in self.cameras:
            return self._issue(wanted)
        if self.ideal_substitutes:
            return self._issue(next(iter(self.cameras)))
        raise DeviceError("NotFoundError", "Requested device not found")

    def live_tracks(self) -> list[FakeTrack]:
        return [t for s in self.streams for t in s.get_tracks() if t.ready_state == "live"]


def make_scene(width: int, height: int) -> Image.Image:
    """Asymmetric test scene: red left half, blue right half."""
    img = Image.new("RGB", (width, height), (0, 0, 255))
    img.paste((255, 0, 0), (0, 0, width // 2, height))
    return img


@pytest.fixture
def rear_frame() -> Image.Image:
    return make_scene(640, 480)


@pytest.fixture
def front_frame() -> Image.Image:
    return make_scene(1280, 720)


@pytest.fixture
def devices(rear_frame, front_frame) -> FakeMediaDevices:
    return FakeMediaDevices({"environment": rear_frame, "user": front_frame})


@pytest.fixture
def sink() -> VideoSink:
    return VideoSink()


@pytest.fixture
def camera_settings() -> CameraSettings:
    return CameraSettings()


@pytest.fixture
def capture_settings() -> CaptureSettings:
    return CaptureSettings()


@pytest.fixture
def scene_factory():
    return make_scene


@pytest.fixture
def fake_devices_cls():
    return FakeMediaDevices


@pytest.fixture
def fake_track_cls():
    return FakeTrack


@pytest.fixture(autouse=True)
def _reset_config():
    """Never leak a cached Settings between tests."""
    config_module.reset_config()
    yield
    config_module.reset_config()
