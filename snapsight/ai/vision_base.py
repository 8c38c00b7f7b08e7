"""Abstract base and mock implementation for remote vision models."""

from abc import ABC, abstractmethod

from snapsight.ai.schema import ModelCard


class BaseVisionModel(ABC):
    """Abstract base for single-image description."""

    @abstractmethod
    def get_model_card(self) -> ModelCard:
        """Return model identity (name, version)."""
        ...

    @abstractmethod
    def describe(self, image_url: str) -> str:
        """Describe the image referenced by a data URL; return plain text."""
        ...


class MockVisionModel(BaseVisionModel):
    """Placeholder model for testing and development."""

    def __init__(self, description: str = "A placeholder description.") -> None:
        self.description = description
        self.calls: list[str] = []

    def get_model_card(self) -> ModelCard:
        return ModelCard(name="mock-vision", version="1.0")

    def describe(self, image_url: str) -> str:
        self.calls.append(image_url)
        return self.description
