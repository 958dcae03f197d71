from __future__ import annotations

import logging
from typing import Mapping

from nettrailers_core.types import GenreId, MediaType

from .tmdb_client import TMDBClient

log = logging.getLogger(__name__)

UNKNOWN_GENRE = "Unknown"

# TMDB movie + TV genres (ids are disjoint except the shared ones)
DEFAULT_GENRE_NAMES: dict[GenreId, str] = {
    28: "Action",
    12: "Adventure",
    16: "Animation",
    35: "Comedy",
    80: "Crime",
    99: "Documentary",
    18: "Drama",
    10751: "Family",
    14: "Fantasy",
    36: "History",
    27: "Horror",
    10402: "Music",
    9648: "Mystery",
    10749: "Romance",
    878: "Science Fiction",
    10770: "TV Movie",
    53: "Thriller",
    10752: "War",
    37: "Western",
    # TV-only
    10759: "Action & Adventure",
    10762: "Kids",
    10763: "News",
    10764: "Reality",
    10765: "Sci-Fi & Fantasy",
    10766: "Soap",
    10767: "Talk",
    10768: "War & Politics",
}


class GenreDirectory:
    def __init__(self, names: Mapping[GenreId, str] | None = None):
        self._names: dict[GenreId, str] = dict(
            DEFAULT_GENRE_NAMES if names is None else names
        )

    def name(self, genre_id: GenreId) -> str:
        return self._names.get(genre_id, UNKNOWN_GENRE)

    def __len__(self) -> int:
        return len(self._names)

    async def refresh_from_tmdb(self, client: TMDBClient) -> int:
        """
        Merge the live TMDB genre lists over the static map.
        Returns the number of names fetched; 0 means the static map is kept.
        """
        fetched: dict[GenreId, str] = {}
        for media_type in (MediaType.MOVIE, MediaType.TV):
            fetched.update(await client.fetch_genres(media_type.value))
        if not fetched:
            log.warning("TMDB genre refresh returned nothing; keeping static names")
            return 0
        self._names.update(fetched)
        return len(fetched)
