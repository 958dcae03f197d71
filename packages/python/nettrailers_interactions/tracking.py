from __future__ import annotations

import logging

from nettrailers_logging.logger import DebugLogger

from .interactions_service import InteractionsService
from .schemas import (
    ContentRef,
    InteractionCreate,
    InteractionRecord,
    InteractionSource,
    InteractionType,
)

log = logging.getLogger(__name__)


class InteractionTracker:
    """
    Telemetry call site for user actions. Never raises: tracking must not
    interrupt the action that triggered it.

    Usage:
      tracker = InteractionTracker(service)
      await tracker.view_modal(user_id, content, source=InteractionSource.HOME)
      await tracker.play_trailer(user_id, content, duration=45)
    """

    def __init__(self, service: InteractionsService, debug: DebugLogger | None = None):
        self.service = service
        self.debug = debug or service.debug

    async def track(
        self,
        user_id: str | None,
        content: ContentRef,
        interaction_type: InteractionType,
        *,
        trailer_duration: float | None = None,
        search_query: str | None = None,
        collection_id: str | None = None,
        source: InteractionSource | None = None,
    ) -> InteractionRecord | None:
        if not user_id:
            self.debug.tracking("Skipping interaction (no user ID)")
            return None
        try:
            privacy = await self.service.get_privacy(user_id)
            if not privacy.allows_tracking():
                self.debug.tracking(
                    "Skipping interaction (user disabled recommendation improvements)"
                )
                return None

            event = InteractionCreate.from_content(
                content,
                interaction_type,
                trailer_duration=trailer_duration,
                search_query=search_query,
                collection_id=collection_id,
                source=source,
            )
            return await self.service.log_interaction(user_id, event)
        except Exception as e:
            log.error("[Tracking] Failed to log interaction: %r", e)
            return None

    async def view_modal(self, user_id, content, source=None):
        return await self.track(user_id, content, InteractionType.VIEW_MODAL, source=source)

    async def add_to_watchlist(self, user_id, content, source=None):
        return await self.track(user_id, content, InteractionType.ADD_TO_WATCHLIST, source=source)

    async def remove_from_watchlist(self, user_id, content, source=None):
        return await self.track(
            user_id, content, InteractionType.REMOVE_FROM_WATCHLIST, source=source
        )

    async def like(self, user_id, content, source=None):
        return await self.track(user_id, content, InteractionType.LIKE, source=source)

    async def unlike(self, user_id, content, source=None):
        return await self.track(user_id, content, InteractionType.UNLIKE, source=source)

    async def play_trailer(self, user_id, content, duration=None, source=None):
        return await self.track(
            user_id,
            content,
            InteractionType.PLAY_TRAILER,
            trailer_duration=duration,
            source=source,
        )

    async def hide_content(self, user_id, content, source=None):
        return await self.track(user_id, content, InteractionType.HIDE_CONTENT, source=source)

    async def unhide_content(self, user_id, content, source=None):
        return await self.track(user_id, content, InteractionType.UNHIDE_CONTENT, source=source)

    async def search(self, user_id, content, query: str, source=None):
        return await self.track(
            user_id, content, InteractionType.SEARCH, search_query=query, source=source
        )

    async def voice_search(self, user_id, content, query: str, source=None):
        return await self.track(
            user_id,
            content,
            InteractionType.VOICE_SEARCH,
            search_query=query,
            source=source or InteractionSource.VOICE,
        )
