import asyncio
import logging
from typing import Dict, Optional

import httpx

from nettrailers_core.config import TMDB_BASE_URL

log = logging.getLogger(__name__)


class TMDBClient:
    BASE_URL = TMDB_BASE_URL

    def __init__(
        self,
        api_key: str,
        max_connections: int = 5,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_key = api_key
        limits = httpx.Limits(
            max_connections=max_connections, max_keepalive_connections=max_connections
        )
        self.client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout),
            limits=limits,
            headers={"Accept": "application/json"},
            transport=transport,
        )
        self.semaphore = asyncio.Semaphore(max_connections)

    async def get(self, url: str, params: Optional[dict] = None):
        async with self.semaphore:
            try:
                response = await self.client.get(url, params=params)
                response.raise_for_status()
                return response.json()
            except httpx.HTTPStatusError as e:
                log.warning("TMDB HTTP error %s: %s", e.response.status_code, url)
            except httpx.RequestError as e:
                log.warning("TMDB request error: %r", e)
        return None

    async def fetch_genres(self, media_type: str) -> Dict[int, str]:
        """GET /genre/{movie|tv}/list -> {genre_id: name}."""
        data = await self.get(
            f"{self.BASE_URL}/genre/{media_type}/list",
            params={"api_key": self.api_key, "language": "en-US"},
        )
        if not data:
            return {}
        out: Dict[int, str] = {}
        for g in data.get("genres", []):
            try:
                out[int(g["id"])] = str(g["name"])
            except (KeyError, TypeError, ValueError):
                continue
        return out

    async def aclose(self) -> None:
        await self.client.aclose()
