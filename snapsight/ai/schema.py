"""Pydantic data contracts for vision models and the analysis response envelope."""

from pydantic import BaseModel, Field, model_validator

SCHEMA_VERSION = "1.0"
TEXT_MODALITY = "text"
PLAIN_TEXT = "plain_text"


class ModelCard(BaseModel):
    """Metadata identifying a vision model."""

    name: str
    version: str


class Modality(BaseModel):
    """One output channel of an analysis result."""

    content: str
    format: str = PLAIN_TEXT


class AnalysisResponse(BaseModel):
    """
    Versioned analysis envelope returned by the proxy.

    text and result are flattened copies of modalities[primary].content kept for older
    clients; the validator rejects any envelope where they disagree.
    """

    version: str = SCHEMA_VERSION
    modalities: dict[str, Modality] = Field(default_factory=dict)
    primary: str = TEXT_MODALITY
    text: str
    result: str

    @model_validator(mode="after")
    def legacy_fields_mirror_primary(self) -> "AnalysisResponse":
        primary = self.modalities.get(self.primary)
        if primary is None:
            raise ValueError(f"primary modality {self.primary!r} missing from modalities")
        if not (primary.content == self.text == self.result):
            raise ValueError("legacy text/result must equal the primary modality content")
        return self

    @classmethod
    def from_text(cls, content: str) -> "AnalysisResponse":
        return cls(
            modalities={TEXT_MODALITY: Modality(content=content)},
            primary=TEXT_MODALITY,
            text=content,
            result=content,
        )

    @property
    def primary_content(self) -> str:
        return self.modalities[self.primary].content
