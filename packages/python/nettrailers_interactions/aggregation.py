"""
Pure aggregation over interaction records. No store access here; the
service fetches records and persists the results.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from typing import Callable, Mapping, Sequence

from nettrailers_core.types import ContentId, EpochMs, GenreId

from .schemas import (
    GenrePreference,
    InteractionAnalytics,
    InteractionRecord,
    InteractionSummary,
    InteractionType,
    TrailerEngagement,
)

GenreNamer = Callable[[GenreId], str]


@dataclass
class GenreTally:
    score: float = 0.0
    count: int = 0


def tally_genres(
    interactions: Sequence[InteractionRecord],
    weights: Mapping[InteractionType, float],
) -> dict[GenreId, GenreTally]:
    """Add the record's type weight to every genre it carries; count every hit."""
    tallies: dict[GenreId, GenreTally] = {}
    for it in interactions:
        w = float(weights.get(it.interaction_type, 0.0))
        for genre_id in it.genre_ids:
            t = tallies.setdefault(genre_id, GenreTally())
            t.score += w
            t.count += 1
    return tallies


def rank_genre_preferences(
    tallies: Mapping[GenreId, GenreTally],
    genre_name: GenreNamer,
) -> list[GenrePreference]:
    # positive only, score desc; stable sort keeps first-seen order on ties
    prefs = [
        GenrePreference(
            genre_id=genre_id,
            genre_name=genre_name(genre_id),
            score=t.score,
            count=t.count,
        )
        for genre_id, t in tallies.items()
        if t.score > 0
    ]
    prefs.sort(key=lambda p: p.score, reverse=True)
    return prefs


def top_content_ids(
    interactions: Sequence[InteractionRecord], limit: int = 20
) -> list[ContentId]:
    # Counter.most_common is stable on ties (insertion order)
    counts = Counter(it.content_id for it in interactions)
    return [cid for cid, _ in counts.most_common(limit)]


def build_summary(
    user_id: str,
    interactions: Sequence[InteractionRecord],
    *,
    weights: Mapping[InteractionType, float],
    genre_name: GenreNamer,
    now_ms: EpochMs,
    previous_last_updated: EpochMs = 0,
    top_limit: int = 20,
) -> InteractionSummary:
    tallies = tally_genres(interactions, weights)
    return InteractionSummary(
        user_id=user_id,
        total_interactions=len(interactions),
        genre_preferences=rank_genre_preferences(tallies, genre_name),
        top_content_ids=top_content_ids(interactions, top_limit),
        last_updated=max(now_ms, previous_last_updated),
        calculating=False,
        claim_expires_at=None,
    )


def trailer_engagement(interactions: Sequence[InteractionRecord]) -> TrailerEngagement:
    plays = [
        float(it.trailer_duration)
        for it in interactions
        if it.interaction_type == InteractionType.PLAY_TRAILER and it.trailer_duration
    ]
    total = sum(plays)
    return TrailerEngagement(
        total_plays=len(plays),
        average_duration=(total / len(plays)) if plays else 0.0,
        total_duration=total,
    )


def build_analytics(
    interactions: Sequence[InteractionRecord],
    summary: InteractionSummary | None,
    *,
    top_genres: int = 5,
    recent: int = 10,
) -> InteractionAnalytics:
    by_type: dict[InteractionType, int] = dict(
        Counter(it.interaction_type for it in interactions)
    )
    return InteractionAnalytics(
        total_interactions=len(interactions),
        interactions_by_type=by_type,
        top_genres=list(summary.genre_preferences[:top_genres]) if summary else [],
        recent_interactions=list(interactions[:recent]),
        trailer_engagement=trailer_engagement(interactions),
    )


def is_ready_for_recommendations(
    summary: InteractionSummary | None, minimum: int
) -> bool:
    return summary is not None and summary.total_interactions >= minimum
