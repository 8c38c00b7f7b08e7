"""AI module: analysis envelope and remote vision model abstraction."""

from snapsight.ai.schema import AnalysisResponse, Modality, ModelCard
from snapsight.ai.vision_base import BaseVisionModel, MockVisionModel
from snapsight.ai.factory import get_vision_model

__all__ = [
    "AnalysisResponse",
    "BaseVisionModel",
    "Modality",
    "MockVisionModel",
    "ModelCard",
    "get_vision_model",
]
