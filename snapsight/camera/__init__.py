"""Camera acquisition (facing-mode fallback) and still frame capture."""

from snapsight.camera.acquisition import CameraController, CameraSession, FacingMode
from snapsight.camera.capture import CaptureResult, capture, render_capture
from snapsight.camera.media import DeviceError, MediaStream, VideoSink

__all__ = [
    "CameraController",
    "CameraSession",
    "CaptureResult",
    "DeviceError",
    "FacingMode",
    "MediaStream",
    "VideoSink",
    "capture",
    "render_capture",
]
