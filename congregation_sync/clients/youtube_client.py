import logging
from typing import Dict, List, Optional
from ..config import settings
from ..errors import DecodeError
from .json_client import JsonClient

logger = logging.getLogger(__name__)

class YouTubeClient:
    def __init__(self, http: JsonClient, api_key: Optional[str] = None, playlist_id: Optional[str] = None):
        self.http = http
        self.api_key = api_key if api_key is not None else settings.YOUTUBE_API_KEY
        self.playlist_id = playlist_id if playlist_id is not None else settings.YOUTUBE_PLAYLIST_ID

    async def playlist_items(self) -> List[Dict]:
        """Raw `items` of the configured playlist (first page, up to YOUTUBE_MAX_RESULTS)."""
        data = await self.http.get_json(
            settings.YOUTUBE_PLAYLIST_ITEMS_URL,
            params={
                "part": "snippet",
                "playlistId": self.playlist_id,
                "key": self.api_key,
                "maxResults": settings.YOUTUBE_MAX_RESULTS
            }
        )
        if not isinstance(data, dict):
            raise DecodeError("Playlist response is not an object")
        items = data.get("items") or []
        if not isinstance(items, list):
            raise DecodeError("Playlist response 'items' is not a list")
        logger.debug(f"Playlist {self.playlist_id} returned {len(items)} items")
        return items

    async def video_status(self, video_id: str) -> Optional[Dict]:
        """
        Fetch the `status` block for a video.
        Returns None when the API no longer knows the video (deleted / never existed).
        """
        data = await self.http.get_json(
            settings.YOUTUBE_VIDEOS_URL,
            params={"part": "status", "id": video_id, "key": self.api_key}
        )
        items = data.get("items") if isinstance(data, dict) else None
        if not items:
            return None
        if not isinstance(items, list) or not all(isinstance(item, dict) for item in items):
            raise DecodeError(f"Malformed status response for {video_id}")

        match = next((item for item in items if item.get("id") == video_id), items[0])
        status = match.get("status") or {}
        if not isinstance(status, dict):
            raise DecodeError(f"Status block for {video_id} is not an object")
        return status


def is_playable(status: Optional[Dict]) -> bool:
    if not status:
        return False
    return (
        status.get("uploadStatus") == "processed"
        and status.get("embeddable") is True
        and status.get("privacyStatus") != "private"
    )


def watch_url(video_id: str) -> str:
    return f"{settings.YOUTUBE_WATCH_URL}?v={video_id}"
