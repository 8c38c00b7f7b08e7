"""Frame capture: centre-crop a live frame to a square, downscale, mirror like the preview, encode JPEG."""

from __future__ import annotations

import base64
import io
import logging
from dataclasses import dataclass

from PIL import Image, ImageOps

from snapsight.camera.acquisition import CameraSession, FacingMode
from snapsight.core.config import CaptureSettings
from snapsight.core.errors import EncodingError, NotReadyError

_log = logging.getLogger(__name__)

JPEG_CONTENT_TYPE = "image/jpeg"


@dataclass(frozen=True)
class CaptureResult:
    """One encoded still frame. Square (width == height) in square crop mode."""

    encoded_bytes: bytes
    width: int
    height: int
    source_facing_mode: FacingMode | None = None
    mirrored: bool = False
    content_type: str = JPEG_CONTENT_TYPE

    def to_base64(self) -> str:
        return base64.b64encode(self.encoded_bytes).decode("ascii")

    def to_data_url(self) -> str:
        return f"data:{self.content_type};base64,{self.to_base64()}"


def square_crop_box(width: int, height: int) -> tuple[int, int, int, int]:
    """Centred square (left, upper, right, lower) with side min(width, height)."""
    size = min(width, height)
    start_x = (width - size) // 2
    start_y = (height - size) // 2
    return start_x, start_y, start_x + size, start_y + size


def target_dimensions(width: int, height: int, settings: CaptureSettings) -> tuple[int, int]:
    """Output size for a source of width x height; scales down, never up."""
    if settings.crop_mode == "square":
        size = min(width, height)
        side = settings.max_size if size > settings.max_size else size
        return side, side
    if width > settings.max_size:
        ratio = settings.max_size / width
        return settings.max_size, max(1, int(round(height * ratio)))
    return width, height


def render_capture(
    image: Image.Image,
    settings: CaptureSettings,
    *,
    mirrored: bool,
    facing_mode: FacingMode | None = None,
) -> CaptureResult:
    """
    Crop, resize, mirror and encode an unmirrored frame.

    The horizontal flip is applied to the output when mirrored so the bytes look like the
    mirrored preview the user saw. Raises EncodingError on any Pillow failure; never returns
    a partial result.
    """
    width, height = image.size
    if width <= 0 or height <= 0:
        raise NotReadyError(f"Frame has no dimensions ({width}x{height})")
    out_w, out_h = target_dimensions(width, height, settings)
    try:
        frame = image.convert("RGB") if image.mode != "RGB" else image
        if settings.crop_mode == "square":
            frame = frame.crop(square_crop_box(width, height))
        if frame.size != (out_w, out_h):
            frame = frame.resize((out_w, out_h), Image.Resampling.LANCZOS)
        if mirrored:
            frame = ImageOps.mirror(frame)
        buffered = io.BytesIO()
        frame.save(buffered, format="JPEG", quality=settings.jpeg_quality)
        data = buffered.getvalue()
    except (OSError, ValueError) as e:
        raise EncodingError(f"Failed to encode capture: {e}") from e
    if not data:
        raise EncodingError("JPEG encoder produced no data")

    _log.debug(
        "Capture %dx%d from frame %dx%d (%s, mirrored=%s, %d bytes)",
        out_w,
        out_h,
        width,
        height,
        settings.crop_mode,
        mirrored,
        len(data),
    )
    return CaptureResult(
        encoded_bytes=data,
        width=out_w,
        height=out_h,
        source_facing_mode=facing_mode,
        mirrored=mirrored,
    )


def capture(session: CameraSession, settings: CaptureSettings) -> CaptureResult:
    """Sample the session's sink at this instant and return one encoded still."""
    if not session.is_active or session.stream is None:
        raise NotReadyError("Camera session is not active")
    sink = session.sink
    if not sink.video_width or not sink.video_height:
        raise NotReadyError("Video feed has no intrinsic dimensions yet")
    frame = sink.current_frame()
    if frame is None:
        raise NotReadyError("No video frame has decoded yet")
    return render_capture(
        frame,
        settings,
        mirrored=session.mirrored,
        facing_mode=session.facing_mode,
    )
