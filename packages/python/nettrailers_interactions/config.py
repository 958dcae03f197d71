from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from .schemas import INTERACTION_WEIGHTS, InteractionType

HOUR_MS = 60 * 60 * 1000
DAY_MS = 24 * HOUR_MS
MINUTE_MS = 60 * 1000


class TrackingConfig(BaseModel):
    """Limits and weights for interaction tracking. Passed in at construction."""

    model_config = ConfigDict(frozen=True)

    max_interactions_per_user: int = Field(default=10_000, gt=0)
    max_batch_size: int = Field(default=50, gt=0)
    retention_days: float = Field(default=90, gt=0)
    summary_refresh_hours: float = Field(default=24, ge=0)
    min_interactions_for_recommendations: int = Field(default=5, ge=0)
    top_content_limit: int = Field(default=20, gt=0)
    delete_batch_size: int = Field(default=500, gt=0, le=500)
    claim_ttl_minutes: float = Field(default=10, gt=0)
    analytics_top_genres: int = Field(default=5, ge=0)
    analytics_recent: int = Field(default=10, ge=0)
    weights: dict[InteractionType, float] = Field(
        default_factory=lambda: dict(INTERACTION_WEIGHTS)
    )

    @property
    def refresh_threshold_ms(self) -> int:
        return int(self.summary_refresh_hours * HOUR_MS)

    @property
    def claim_ttl_ms(self) -> int:
        return int(self.claim_ttl_minutes * MINUTE_MS)

    def retention_ms(self, retention_days: float | None = None) -> int:
        days = self.retention_days if retention_days is None else retention_days
        return int(days * DAY_MS)
