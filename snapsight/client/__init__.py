"""Upload client and per-surface analysis coordination."""

from snapsight.client.surface import AnalysisSurface, SurfaceState
from snapsight.client.upload import NO_ANALYSIS_TEXT, UploadClient, normalize_analysis_payload

__all__ = [
    "AnalysisSurface",
    "NO_ANALYSIS_TEXT",
    "SurfaceState",
    "UploadClient",
    "normalize_analysis_payload",
]
