import httpx
import pytest

from nettrailers_tmdb.genres import UNKNOWN_GENRE, GenreDirectory
from nettrailers_tmdb.tmdb_client import TMDBClient

GENRES = {
    "/3/genre/movie/list": {"genres": [{"id": 28, "name": "Action!"}, {"id": 1, "name": "New"}]},
    "/3/genre/tv/list": {"genres": [{"id": 10759, "name": "Action & Adventure"}, {"bad": "row"}]},
}


def _transport(calls):
    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        body = GENRES.get(request.url.path)
        if body is None:
            return httpx.Response(404, json={"status_message": "not found"})
        return httpx.Response(200, json=body)

    return httpx.MockTransport(handler)


def test_static_names():
    genres = GenreDirectory()
    assert genres.name(28) == "Action"
    assert genres.name(10765) == "Sci-Fi & Fantasy"
    assert genres.name(-1) == UNKNOWN_GENRE


@pytest.mark.asyncio
async def test_fetch_genres_parses_rows():
    calls = []
    client = TMDBClient("k", transport=_transport(calls))
    try:
        assert await client.fetch_genres("movie") == {28: "Action!", 1: "New"}
        assert await client.fetch_genres("tv") == {10759: "Action & Adventure"}
    finally:
        await client.aclose()
    assert calls[0].url.params["api_key"] == "k"


@pytest.mark.asyncio
async def test_refresh_merges_over_static_map():
    genres = GenreDirectory()
    client = TMDBClient("k", transport=_transport([]))
    try:
        assert await genres.refresh_from_tmdb(client) == 3
    finally:
        await client.aclose()
    assert genres.name(28) == "Action!"
    assert genres.name(1) == "New"
    assert genres.name(12) == "Adventure"


@pytest.mark.asyncio
async def test_refresh_keeps_static_names_when_tmdb_fails():
    def handler(request):
        return httpx.Response(500)

    genres = GenreDirectory()
    size = len(genres)
    client = TMDBClient("k", transport=httpx.MockTransport(handler))
    try:
        assert await genres.refresh_from_tmdb(client) == 0
    finally:
        await client.aclose()
    assert len(genres) == size
    assert genres.name(28) == "Action"
