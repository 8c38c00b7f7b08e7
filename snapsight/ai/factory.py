"""Factory for vision models."""

from snapsight.ai.vision_base import BaseVisionModel
from snapsight.core.config import ProxySettings


def get_vision_model(name: str, settings: ProxySettings, api_key: str | None = None) -> BaseVisionModel:
    """Return a vision model by name ('openai' or 'mock')."""
    if name == "mock":
        from snapsight.ai.vision_base import MockVisionModel

        return MockVisionModel()
    if name == "openai":
        from snapsight.ai.vision_openai import OpenAIVisionModel

        return OpenAIVisionModel(settings, api_key)
    raise ValueError(f"Unknown vision model: {name}")
