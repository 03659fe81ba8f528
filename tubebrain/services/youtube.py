"""
Minimal YouTube Data API v3 client.

Lists trending videos and pages through a video's top-level comments.
Plugs into the harvest orchestrator as both discovery and fetch source.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import aiohttp

logger = logging.getLogger(__name__)

DEFAULT_API_BASE = "https://www.googleapis.com/youtube/v3"
MAX_RESULTS_PER_PAGE = 100


class YouTubeAPIError(RuntimeError):
    def __init__(self, status: int, message: str, reason: str = ""):
        super().__init__(f"YouTube API error {status}: {message}")
        self.status = status
        self.message = message
        self.reason = reason


class YouTubeClient:
    """
    Async YouTube client.

    Args:
        api_base: API root URL
        region_code: Region for the trending chart
        trending_limit: Number of trending videos to list (max 50)
        timeout: Total seconds per HTTP request
        session: Optional shared aiohttp session (owned by the caller)
    """

    def __init__(
        self,
        api_base: str = DEFAULT_API_BASE,
        region_code: str = "US",
        trending_limit: int = 50,
        timeout: float = 30.0,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.api_base = api_base.rstrip("/")
        self.region_code = region_code
        self.trending_limit = max(1, min(trending_limit, 50))
        self.timeout = timeout
        self._session = session
        self._owns_session = session is None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            )
        return self._session

    async def close(self):
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None

    async def _get(self, endpoint: str, params: Dict[str, Any]) -> Dict[str, Any]:
        session = self._get_session()
        async with session.get(f"{self.api_base}/{endpoint}", params=params) as resp:
            payload = await resp.json(content_type=None)
            if resp.status != 200:
                error = (payload or {}).get("error") or {}
                errors = error.get("errors") or [{}]
                raise YouTubeAPIError(
                    resp.status,
                    error.get("message", "request failed"),
                    reason=errors[0].get("reason", ""),
                )
            return payload or {}

    async def list_trending(self, credential: str) -> List[str]:
        """Trending video ids, in chart order."""
        data = await self._get("videos", {
            "part": "id",
            "chart": "mostPopular",
            "regionCode": self.region_code,
            "maxResults": self.trending_limit,
            "key": credential,
        })
        ids = [item["id"] for item in data.get("items", []) if item.get("id")]
        logger.info(f"[YouTube] {len(ids)} trending videos")
        return ids

    async def fetch_snippets(self, item_id: str, credential: str, max_count: int = 100) -> List[str]:
        """
        Fetch up to ``max_count`` top-level comments for a video.

        Videos with comments disabled yield an empty list.
        """
        comments: List[str] = []
        page_token = None
        while len(comments) < max_count:
            params = {
                "part": "snippet",
                "videoId": item_id,
                "maxResults": min(MAX_RESULTS_PER_PAGE, max_count - len(comments)),
                "textFormat": "plainText",
                "key": credential,
            }
            if page_token:
                params["pageToken"] = page_token
            try:
                data = await self._get("commentThreads", params)
            except YouTubeAPIError as e:
                if e.reason == "commentsDisabled":
                    logger.info(f"[YouTube] Comments disabled for {item_id}")
                    return comments
                raise

            for item in data.get("items", []):
                snippet = item.get("snippet", {}).get("topLevelComment", {}).get("snippet", {})
                text = snippet.get("textOriginal") or snippet.get("textDisplay")
                if text:
                    comments.append(text)

            page_token = data.get("nextPageToken")
            if not page_token:
                break
        return comments[:max_count]
