from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field

from nettrailers_core.types import ContentId, EpochMs, GenreId, MediaType


class InteractionType(str, Enum):
    VIEW_MODAL = "view_modal"  # light signal
    ADD_TO_WATCHLIST = "add_to_watchlist"  # strong positive
    REMOVE_FROM_WATCHLIST = "remove_from_watchlist"
    LIKE = "like"  # strongest positive
    UNLIKE = "unlike"
    PLAY_TRAILER = "play_trailer"
    HIDE_CONTENT = "hide_content"  # strongest negative
    UNHIDE_CONTENT = "unhide_content"
    SEARCH = "search"
    VOICE_SEARCH = "voice_search"


class InteractionSource(str, Enum):
    HOME = "home"
    SEARCH = "search"
    COLLECTION = "collection"
    RECOMMENDED = "recommended"
    SIMILAR = "similar"
    TRENDING = "trending"
    WATCHLIST = "watchlist"
    MODAL = "modal"
    VOICE = "voice"


INTERACTION_WEIGHTS: dict[InteractionType, float] = {
    InteractionType.LIKE: 5,
    InteractionType.ADD_TO_WATCHLIST: 3,
    InteractionType.PLAY_TRAILER: 2,
    InteractionType.VOICE_SEARCH: 2,
    InteractionType.VIEW_MODAL: 1,
    InteractionType.SEARCH: 1,
    InteractionType.UNHIDE_CONTENT: 0,
    InteractionType.UNLIKE: -2,
    InteractionType.REMOVE_FROM_WATCHLIST: -2,
    InteractionType.HIDE_CONTENT: -5,
}


class ContentRef(BaseModel):
    """The slice of a TMDB title needed to log an interaction against it."""

    id: ContentId
    media_type: MediaType
    genre_ids: list[GenreId] = Field(default_factory=list)


class InteractionCreate(BaseModel):
    content_id: ContentId
    media_type: MediaType
    interaction_type: InteractionType
    genre_ids: list[GenreId] = Field(default_factory=list)
    trailer_duration: float | None = None  # seconds watched (play_trailer)
    search_query: str | None = None
    collection_id: str | None = None
    source: InteractionSource | None = None

    @classmethod
    def from_content(
        cls,
        content: ContentRef,
        interaction_type: InteractionType,
        *,
        trailer_duration: float | None = None,
        search_query: str | None = None,
        collection_id: str | None = None,
        source: InteractionSource | None = None,
    ) -> "InteractionCreate":
        return cls(
            content_id=content.id,
            media_type=content.media_type,
            interaction_type=interaction_type,
            genre_ids=list(content.genre_ids or []),
            trailer_duration=trailer_duration,
            search_query=search_query,
            collection_id=collection_id,
            source=source,
        )


class InteractionRecord(InteractionCreate):
    id: str
    user_id: str
    timestamp: EpochMs


class GenrePreference(BaseModel):
    genre_id: GenreId
    genre_name: str
    score: float  # weighted sum of interactions
    count: int  # number of interactions carrying the genre


class InteractionSummary(BaseModel):
    user_id: str
    total_interactions: int = 0
    genre_preferences: list[GenrePreference] = Field(default_factory=list)
    top_content_ids: list[ContentId] = Field(default_factory=list)
    last_updated: EpochMs = 0
    calculating: bool = False
    claim_expires_at: EpochMs | None = None


class TrailerEngagement(BaseModel):
    total_plays: int = 0
    average_duration: float = 0.0
    total_duration: float = 0.0


class InteractionAnalytics(BaseModel):
    total_interactions: int
    interactions_by_type: dict[InteractionType, int] = Field(default_factory=dict)
    top_genres: list[GenrePreference] = Field(default_factory=list)
    recent_interactions: list[InteractionRecord] = Field(default_factory=list)
    trailer_engagement: TrailerEngagement = Field(default_factory=TrailerEngagement)


class PrivacySettings(BaseModel):
    enabled: bool = True  # master toggle
    improve_recommendations: bool = True
    anonymize_data: bool = False

    def allows_tracking(self) -> bool:
        return self.enabled and self.improve_recommendations
