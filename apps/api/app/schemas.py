from __future__ import annotations

from pydantic import BaseModel, Field, model_validator
from nettrailers_core.types import MediaType
from nettrailers_interactions.schemas import (
    ContentRef,
    InteractionCreate,
    InteractionSource,
    InteractionSummary,
    InteractionType,
)


class InteractionsCreateRequest(BaseModel):
    content_id: int = Field(..., gt=0, examples=[603])
    media_type: MediaType = MediaType.MOVIE
    interaction_type: InteractionType
    genre_ids: list[int] = Field(default_factory=list, examples=[[28, 878]])
    trailer_duration: float | None = Field(default=None, ge=0)
    search_query: str | None = None
    collection_id: str | None = None
    source: InteractionSource | None = None

    def to_event(self) -> InteractionCreate:
        return InteractionCreate(**self.model_dump())


class InteractionsBatchRequest(BaseModel):
    # size cap is enforced by the service so the limit stays configurable
    interactions: list[InteractionsCreateRequest] = Field(..., min_length=1)


class TrackRequest(BaseModel):
    content: ContentRef
    interaction_type: InteractionType
    trailer_duration: float | None = None
    search_query: str | None = None
    collection_id: str | None = None
    source: InteractionSource | None = None


class TrackResponse(BaseModel):
    logged: bool
    interaction_id: str | None = None


class SummaryOut(InteractionSummary):
    ready_for_recommendations: bool = False


class CleanupOut(BaseModel):
    deleted: int
    retention_days: float


class PrivacyUpdateRequest(BaseModel):
    enabled: bool = True
    improve_recommendations: bool = True
    anonymize_data: bool = False

    @model_validator(mode="after")
    def _requires_enabled(self):
        # tracking off implies no recommendation improvements
        if not self.enabled:
            self.improve_recommendations = False
        return self
