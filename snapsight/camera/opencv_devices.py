"""OpenCV-backed MediaDevices for desktop use: maps facing modes onto VideoCapture indices."""

from __future__ import annotations

import logging
import threading
from typing import Any, Mapping

import cv2
import numpy as np
from PIL import Image

from snapsight.camera.media import DeviceError, MediaStream

_log = logging.getLogger(__name__)

# Browser facingMode values -> config keys
FACING_KEYS = {"environment": "rear", "user": "front"}
MAX_PROBE_INDEX = 4


class OpenCVVideoTrack:
    """A live cv2.VideoCapture wrapped as a VideoTrack."""

    kind = "video"

    def __init__(self, capture: "cv2.VideoCapture", index: int, facing_mode: str | None) -> None:
        self._capture = capture
        self._index = index
        self._facing_mode = facing_mode
        self._lock = threading.Lock()
        self._ready_state = "live"

    @property
    def ready_state(self) -> str:
        return self._ready_state

    def stop(self) -> None:
        with self._lock:
            if self._ready_state == "ended":
                return
            self._capture.release()
            self._ready_state = "ended"
        _log.debug("Released camera index %d", self._index)

    def get_settings(self) -> dict[str, Any]:
        if self._ready_state != "live":
            return {"width": 0, "height": 0, "deviceId": str(self._index)}
        return {
            "width": int(self._capture.get(cv2.CAP_PROP_FRAME_WIDTH)),
            "height": int(self._capture.get(cv2.CAP_PROP_FRAME_HEIGHT)),
            "facingMode": self._facing_mode,
            "deviceId": str(self._index),
        }

    def grab(self) -> Image.Image | None:
        with self._lock:
            if self._ready_state != "live":
                return None
            ok, frame = self._capture.read()
        if not ok or frame is None:
            _log.warning("Failed to read frame from camera index %d", self._index)
            return None
        rgb = cv2.cvtColor(np.asarray(frame), cv2.COLOR_BGR2RGB)
        return Image.fromarray(rgb, "RGB")


class OpenCVMediaDevices:
    """
    get_user_media over local cameras.

    Exact facingMode constraints only open the index configured for that mode; ideal
    constraints prefer it and fall back to any index that opens; video=True probes indices.
    """

    def __init__(self, device_indices: Mapping[str, int], max_probe_index: int = MAX_PROBE_INDEX) -> None:
        self._device_indices = dict(device_indices)
        self._max_probe_index = max_probe_index

    def _open(self, index: int, video: Mapping[str, Any]) -> "cv2.VideoCapture | None":
        capture = cv2.VideoCapture(index)
        if not capture.isOpened():
            capture.release()
            return None
        width = _ideal(video.get("width"))
        height = _ideal(video.get("height"))
        if width:
            capture.set(cv2.CAP_PROP_FRAME_WIDTH, width)
        if height:
            capture.set(cv2.CAP_PROP_FRAME_HEIGHT, height)
        return capture

    def _candidates(self, preferred: int | None) -> list[int]:
        order: list[int] = []
        if preferred is not None:
            order.append(preferred)
        for idx in list(self._device_indices.values()) + list(range(self._max_probe_index)):
            if idx not in order:
                order.append(idx)
        return order

    def get_user_media(self, constraints: dict[str, Any]) -> MediaStream:
        video = constraints.get("video")
        if not video:
            raise DeviceError("TypeError", "At least one of audio and video must be requested")
        if constraints.get("audio"):
            raise DeviceError("NotSupportedError", "Audio capture is not supported")

        if video is True:
            video = {}
        facing = video.get("facingMode")
        exact: str | None = None
        ideal: str | None = None
        if isinstance(facing, Mapping):
            exact = facing.get("exact")
            ideal = facing.get("ideal")
        elif isinstance(facing, str):
            ideal = facing

        if exact is not None:
            key = FACING_KEYS.get(exact)
            index = self._device_indices.get(key) if key else None
            if index is None:
                raise DeviceError("OverconstrainedError", f"No camera configured for facingMode {exact!r}")
            capture = self._open(index, video)
            if capture is None:
                raise DeviceError("NotReadableError", f"Could not open camera index {index}")
            _log.info("Opened camera index %d (exact %s)", index, exact)
            return MediaStream([OpenCVVideoTrack(capture, index, exact)])

        key = FACING_KEYS.get(ideal) if ideal else None
        preferred = self._device_indices.get(key) if key else None
        for index in self._candidates(preferred):
            capture = self._open(index, video)
            if capture is not None:
                facing_mode = ideal if index == preferred else None
                _log.info("Opened camera index %d (ideal %s)", index, ideal)
                return MediaStream([OpenCVVideoTrack(capture, index, facing_mode)])
        raise DeviceError("NotFoundError", "No camera could be opened")


def _ideal(value: Any) -> int | None:
    if isinstance(value, Mapping):
        value = value.get("ideal") or value.get("exact")
    if isinstance(value, (int, float)) and value > 0:
        return int(value)
    return None
