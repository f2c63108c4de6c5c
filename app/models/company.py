"""Company metadata accepted by the enrichment pipeline."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator


class CompanyRecord(BaseModel):
    """Descriptive metadata for one company, as sent by the dashboard.

    Only ``name`` and ``website`` are required. Extra dashboard fields
    (``id``, ``hq``, ``score``...) are accepted and ignored.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    name: str
    website: str
    description: str = ""
    sector: str = ""
    stage: str = ""
    founded: int | None = None
    tags: list[str] = Field(default_factory=list)

    @field_validator("name", "website")
    @classmethod
    def _require_text(cls, value: str) -> str:
        trimmed = value.strip()
        if not trimmed:
            raise ValueError("must not be blank")
        return trimmed

    @field_validator("description", "sector", "stage", mode="before")
    @classmethod
    def _none_to_empty(cls, value: object) -> object:
        return "" if value is None else value

    @field_validator("tags", mode="before")
    @classmethod
    def _coerce_tags(cls, value: object) -> object:
        if value is None:
            return []
        if isinstance(value, str):
            return [tag.strip() for tag in value.split(",") if tag.strip()]
        return value
