from __future__ import annotations

import logging
import secrets
from typing import Sequence

from nettrailers_core.errors import RuleViolation
from nettrailers_core.types import Clock, EpochMs, to_epoch_ms, utc_now
from nettrailers_logging.logger import DebugLogger
from nettrailers_tmdb.genres import GenreDirectory

from .aggregation import build_analytics, build_summary, is_ready_for_recommendations
from .config import TrackingConfig
from .interactions_repo import InteractionsRepo
from .refresh_guard import RefreshState
from .refresh_queue import NoopRefreshQueue, RefreshQueue
from .schemas import (
    InteractionAnalytics,
    InteractionCreate,
    InteractionRecord,
    InteractionSummary,
    InteractionType,
    PrivacySettings,
)

log = logging.getLogger(__name__)

_SEARCH_TYPES = {InteractionType.SEARCH, InteractionType.VOICE_SEARCH}


def new_interaction_id() -> str:
    return secrets.token_urlsafe(9)  # 12 url-safe chars


def _summary_from_doc(doc: dict | None) -> InteractionSummary | None:
    # a claim placeholder (never computed) reads as "no summary"
    if not doc or not int(doc.get("last_updated") or 0):
        return None
    return InteractionSummary(**doc)


class InteractionsService:
    def __init__(
        self,
        repo: InteractionsRepo,
        *,
        config: TrackingConfig | None = None,
        genres: GenreDirectory | None = None,
        refresh_queue: RefreshQueue | None = None,
        debug: DebugLogger | None = None,
        clock: Clock = utc_now,
    ):
        self.repo = repo
        self.config = config or TrackingConfig()
        self.genres = genres or GenreDirectory()
        self.refresh_queue = refresh_queue or NoopRefreshQueue()
        self.debug = debug or DebugLogger()
        self.clock = clock

    def _now_ms(self) -> EpochMs:
        return to_epoch_ms(self.clock())

    # ---------- Logging ----------
    async def log_interaction(
        self, user_id: str, event: InteractionCreate
    ) -> InteractionRecord:
        event = self._normalize_event(user_id, event)
        rec = InteractionRecord(
            id=new_interaction_id(),
            user_id=user_id,
            timestamp=self._now_ms(),
            **event.model_dump(),
        )
        try:
            await self.repo.create(rec)
        except Exception as e:
            log.error("Failed to log interaction for %s: %r", user_id, e)
            raise
        self.debug.tracking(
            "Logged %s for content %s", rec.interaction_type.value, rec.content_id
        )
        self.refresh_queue.enqueue(user_id)
        return rec

    async def log_interaction_batch(
        self, user_id: str, events: Sequence[InteractionCreate]
    ) -> list[InteractionRecord]:
        if not events:
            return []
        if len(events) > self.config.max_batch_size:
            raise RuleViolation(
                f"Batch size {len(events)} exceeds maximum {self.config.max_batch_size}"
            )
        normalized = [self._normalize_event(user_id, event) for event in events]

        now = self._now_ms()
        recs = [
            InteractionRecord(
                id=new_interaction_id(),
                user_id=user_id,
                timestamp=now,
                **event.model_dump(),
            )
            for event in normalized
        ]
        try:
            await self.repo.create_many(recs)
        except Exception as e:
            log.error("Failed to log interaction batch for %s: %r", user_id, e)
            raise
        self.debug.tracking("Logged batch of %d interactions", len(recs))
        self.refresh_queue.enqueue(user_id)
        return recs

    def _normalize_event(
        self, user_id: str, event: InteractionCreate
    ) -> InteractionCreate:
        """Validate before any write; returns a normalized copy, the caller's event is untouched."""
        if not user_id:
            raise RuleViolation("user_id is required")
        if event.content_id <= 0:
            raise RuleViolation("content_id must be positive")
        if any(g < 0 for g in event.genre_ids):
            raise RuleViolation("genre_ids must be non-negative")
        if event.trailer_duration is not None and event.trailer_duration < 0:
            raise RuleViolation("trailer_duration must be non-negative")

        search_query = event.search_query
        if search_query is not None:
            search_query = search_query.strip() or None
        if event.interaction_type in _SEARCH_TYPES and not search_query:
            raise RuleViolation(
                f"search_query is required for {event.interaction_type.value}"
            )
        return event.model_copy(
            update={
                "genre_ids": list(dict.fromkeys(event.genre_ids)),
                "search_query": search_query,
            }
        )

    # ---------- Reads ----------
    async def get_recent_interactions(
        self, user_id: str, limit: int = 50
    ) -> list[InteractionRecord]:
        try:
            return await self.repo.list_recent(user_id, limit=limit)
        except Exception as e:
            log.error("Failed to get recent interactions for %s: %r", user_id, e)
            return []

    async def get_interactions_by_type(
        self, user_id: str, interaction_type: InteractionType, limit: int = 50
    ) -> list[InteractionRecord]:
        try:
            return await self.repo.list_recent(
                user_id, limit=limit, interaction_type=interaction_type
            )
        except Exception as e:
            log.error("Failed to get interactions by type for %s: %r", user_id, e)
            return []

    async def get_summary(self, user_id: str) -> InteractionSummary | None:
        try:
            return _summary_from_doc(await self.repo.get_summary_doc(user_id))
        except Exception as e:
            log.error("Failed to get interaction summary for %s: %r", user_id, e)
            return None

    def is_ready_for_recommendations(self, summary: InteractionSummary | None) -> bool:
        return is_ready_for_recommendations(
            summary, self.config.min_interactions_for_recommendations
        )

    # ---------- Summary ----------
    async def calculate_summary(
        self, user_id: str, *, lease_token: EpochMs | None = None
    ) -> InteractionSummary | None:
        """
        Recompute from the bounded window of recent records and overwrite the stored summary.

        The write is skipped when a newer summary is already stored or, with
        `lease_token`, when the lease was taken over; the stored summary is
        returned instead (None for a bare claim placeholder).
        """
        try:
            interactions = await self.repo.list_recent(
                user_id, limit=self.config.max_interactions_per_user
            )
            previous = await self.repo.get_summary_doc(user_id)
            summary = build_summary(
                user_id,
                interactions,
                weights=self.config.weights,
                genre_name=self.genres.name,
                now_ms=self._now_ms(),
                previous_last_updated=int((previous or {}).get("last_updated") or 0),
                top_limit=self.config.top_content_limit,
            )
            written, current = await self.repo.put_summary(
                summary, lease_token=lease_token
            )
        except Exception as e:
            log.error("Failed to calculate interaction summary for %s: %r", user_id, e)
            raise
        if not written:
            self.debug.tracking("Summary for %s superseded, keeping stored one", user_id)
            return _summary_from_doc(current)
        self.debug.tracking(
            "Summary for %s: %d interactions, %d genres",
            user_id,
            summary.total_interactions,
            len(summary.genre_preferences),
        )
        return summary

    async def refresh_summary_if_needed(
        self, user_id: str
    ) -> InteractionSummary | None:
        """
        Recompute the summary if it is stale and nobody else holds the lease.

        The claim is one transaction; the recompute runs outside it. A fresh
        summary or a live foreign claim returns the stored summary untouched.
        """
        lease_token: EpochMs | None = None
        try:
            state, doc, lease_token = await self.repo.claim_refresh(
                user_id,
                now_ms=self._now_ms(),
                threshold_ms=self.config.refresh_threshold_ms,
                lease_ms=self.config.claim_ttl_ms,
            )
            if state != RefreshState.STALE:
                self.debug.tracking("Summary refresh for %s skipped: %s", user_id, state.value)
                return _summary_from_doc(doc)
            return await self.calculate_summary(user_id, lease_token=lease_token)
        except Exception as e:
            log.error("Failed to refresh interaction summary for %s: %r", user_id, e)
            if lease_token is not None:
                try:
                    if not await self.repo.release_claim(user_id, lease_token):
                        self.debug.tracking("Lease for %s already taken over", user_id)
                except Exception as cleanup_error:
                    log.error(
                        "Failed to clear calculating flag for %s: %r",
                        user_id,
                        cleanup_error,
                    )
            return None

    # ---------- Analytics ----------
    async def get_analytics(self, user_id: str) -> InteractionAnalytics:
        try:
            interactions = await self.repo.list_recent(
                user_id, limit=self.config.max_interactions_per_user
            )
            summary = _summary_from_doc(await self.repo.get_summary_doc(user_id))
        except Exception as e:
            log.error("Failed to get interaction analytics for %s: %r", user_id, e)
            raise
        return build_analytics(
            interactions,
            summary,
            top_genres=self.config.analytics_top_genres,
            recent=self.config.analytics_recent,
        )

    # ---------- Retention ----------
    async def cleanup_old_interactions(
        self, user_id: str, retention_days: float | None = None
    ) -> int:
        if retention_days is not None and not retention_days > 0:
            raise RuleViolation("retention_days must be positive")
        cutoff = self._now_ms() - self.config.retention_ms(retention_days)
        try:
            deleted = await self.repo.delete_older_than(
                user_id, cutoff, batch_size=self.config.delete_batch_size
            )
        except Exception as e:
            log.error("Failed to cleanup old interactions for %s: %r", user_id, e)
            return 0
        if deleted:
            log.info("Deleted %d old interactions for user %s", deleted, user_id)
        return deleted

    # ---------- Privacy ----------
    async def get_privacy(self, user_id: str) -> PrivacySettings:
        return await self.repo.get_privacy(user_id) or PrivacySettings()

    async def update_privacy(
        self, user_id: str, settings: PrivacySettings
    ) -> PrivacySettings:
        return await self.repo.put_privacy(user_id, settings)
