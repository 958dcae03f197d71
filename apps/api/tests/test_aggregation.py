import random

import pytest

from nettrailers_core.types import MediaType
from nettrailers_interactions.aggregation import (
    build_analytics,
    build_summary,
    is_ready_for_recommendations,
    rank_genre_preferences,
    tally_genres,
    top_content_ids,
    trailer_engagement,
)
from nettrailers_interactions.schemas import (
    INTERACTION_WEIGHTS,
    InteractionRecord,
    InteractionSummary,
    InteractionType,
)
from nettrailers_tmdb.genres import UNKNOWN_GENRE, GenreDirectory

NOW = 1_717_243_200_000


def _rec(i, content_id=603, itype=InteractionType.VIEW_MODAL, genre_ids=(28,), **kw):
    return InteractionRecord(
        id=f"r{i}",
        user_id="u1",
        timestamp=NOW - i,
        content_id=content_id,
        media_type=MediaType.MOVIE,
        interaction_type=itype,
        genre_ids=list(genre_ids),
        **kw,
    )


def test_three_likes_on_two_genres():
    recs = [_rec(i, itype=InteractionType.LIKE, genre_ids=(28, 12)) for i in range(3)]
    summary = build_summary(
        "u1",
        recs,
        weights=INTERACTION_WEIGHTS,
        genre_name=GenreDirectory().name,
        now_ms=NOW,
    )
    assert summary.total_interactions == 3
    assert [(p.genre_id, p.genre_name, p.score, p.count) for p in summary.genre_preferences] == [
        (28, "Action", 15, 3),
        (12, "Adventure", 15, 3),
    ]
    assert summary.top_content_ids == [603]
    assert summary.last_updated == NOW
    assert summary.calculating is False


def test_non_positive_genres_are_dropped():
    recs = [
        _rec(0, itype=InteractionType.HIDE_CONTENT, genre_ids=(27,)),
        _rec(1, itype=InteractionType.UNHIDE_CONTENT, genre_ids=(35,)),
        _rec(2, itype=InteractionType.VIEW_MODAL, genre_ids=(18,)),
    ]
    prefs = rank_genre_preferences(
        tally_genres(recs, INTERACTION_WEIGHTS), GenreDirectory().name
    )
    assert [p.genre_id for p in prefs] == [18]


def test_negative_signals_offset_positive_ones():
    recs = [
        _rec(0, itype=InteractionType.LIKE, genre_ids=(28,)),
        _rec(1, itype=InteractionType.UNLIKE, genre_ids=(28,)),
    ]
    tallies = tally_genres(recs, INTERACTION_WEIGHTS)
    assert tallies[28].score == 3
    assert tallies[28].count == 2


def test_preferences_sorted_by_score_desc():
    recs = [
        _rec(0, itype=InteractionType.VIEW_MODAL, genre_ids=(18,)),
        _rec(1, itype=InteractionType.ADD_TO_WATCHLIST, genre_ids=(35,)),
        _rec(2, itype=InteractionType.LIKE, genre_ids=(80,)),
    ]
    prefs = rank_genre_preferences(
        tally_genres(recs, INTERACTION_WEIGHTS), GenreDirectory().name
    )
    assert [p.genre_id for p in prefs] == [80, 35, 18]
    scores = [p.score for p in prefs]
    assert scores == sorted(scores, reverse=True)


def test_unknown_genre_gets_placeholder_name():
    prefs = rank_genre_preferences(
        tally_genres([_rec(0, genre_ids=(99999,))], INTERACTION_WEIGHTS),
        GenreDirectory().name,
    )
    assert prefs[0].genre_name == UNKNOWN_GENRE


def test_top_content_ids_by_frequency_with_limit():
    recs = [_rec(0, content_id=1), _rec(1, content_id=2), _rec(2, content_id=2)]
    recs += [_rec(10 + i, content_id=100 + i) for i in range(30)]
    top = top_content_ids(recs, 20)
    assert len(top) == 20
    assert top[0] == 2
    assert top[1] == 1


def test_last_updated_never_moves_backwards():
    summary = build_summary(
        "u1",
        [],
        weights=INTERACTION_WEIGHTS,
        genre_name=GenreDirectory().name,
        now_ms=NOW,
        previous_last_updated=NOW + 5_000,
    )
    assert summary.last_updated == NOW + 5_000
    assert summary.total_interactions == 0
    assert summary.genre_preferences == []


def test_trailer_engagement():
    recs = [
        _rec(0, itype=InteractionType.PLAY_TRAILER, trailer_duration=30),
        _rec(1, itype=InteractionType.PLAY_TRAILER, trailer_duration=60),
        _rec(2, itype=InteractionType.LIKE),
    ]
    engagement = trailer_engagement(recs)
    assert engagement.total_plays == 2
    assert engagement.total_duration == 90
    assert engagement.average_duration == 45


def test_analytics_without_summary():
    recs = [_rec(i) for i in range(12)] + [_rec(20, itype=InteractionType.LIKE)]
    analytics = build_analytics(recs, None, top_genres=5, recent=10)
    assert analytics.total_interactions == 13
    assert analytics.interactions_by_type[InteractionType.VIEW_MODAL] == 12
    assert analytics.interactions_by_type[InteractionType.LIKE] == 1
    assert analytics.top_genres == []
    assert [r.id for r in analytics.recent_interactions] == [f"r{i}" for i in range(10)]


def test_ready_for_recommendations_threshold():
    assert is_ready_for_recommendations(None, 5) is False
    assert is_ready_for_recommendations(InteractionSummary(user_id="u1", total_interactions=4), 5) is False
    assert is_ready_for_recommendations(InteractionSummary(user_id="u1", total_interactions=5), 5) is True


def test_genre_scores_match_weight_sums_for_any_table():
    rng = random.Random(7)
    types = list(InteractionType)
    for _ in range(25):
        weights = {t: rng.choice([-3, -1, 0, 0.5, 2, 4]) for t in types}
        recs = [
            _rec(
                i,
                content_id=rng.randint(1, 8),
                itype=rng.choice(types),
                genre_ids=rng.sample([12, 18, 28, 35, 80], rng.randint(0, 3)),
            )
            for i in range(rng.randint(0, 40))
        ]
        tallies = tally_genres(recs, weights)
        for genre_id, t in tallies.items():
            carrying = [r for r in recs if genre_id in r.genre_ids]
            assert t.score == pytest.approx(sum(weights[r.interaction_type] for r in carrying))
            assert t.count == len(carrying)

        summary = build_summary(
            "u1", recs, weights=weights, genre_name=GenreDirectory().name, now_ms=NOW
        )
        assert summary.total_interactions == len(recs)
        assert all(p.score > 0 for p in summary.genre_preferences)
        counts = [sum(r.content_id == cid for r in recs) for cid in summary.top_content_ids]
        assert len(summary.top_content_ids) <= 20
        assert counts == sorted(counts, reverse=True)
