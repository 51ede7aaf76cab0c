import asyncio
import logging
from pydantic import ValidationError
from .config import settings
from .errors import DecodeError, HttpStatusError, ItemUnavailableError
from .models import EmbedInfo, RemoteItem
from .clients.json_client import JsonClient
from .clients.youtube_client import YouTubeClient, is_playable, watch_url

logger = logging.getLogger(__name__)

# oEmbed answers these for removed, private or non-embeddable videos
UNAVAILABLE_STATUSES = {400, 401, 403, 404}

class EmbedChannel:
    """
    The one content channel items are rendered through.
    Only one load may be outstanding at a time; callers queue on the lock.
    """

    def __init__(self, http: JsonClient):
        self.http = http
        self._lock = asyncio.Lock()

    async def load(self, item: RemoteItem) -> EmbedInfo:
        async with self._lock:
            logger.debug(f"Loading embed for {item.id}")
            try:
                data = await self.http.get_json(
                    settings.YOUTUBE_OEMBED_URL,
                    params={"url": watch_url(item.payload), "format": "json"}
                )
            except HttpStatusError as e:
                if e.status_code in UNAVAILABLE_STATUSES:
                    raise ItemUnavailableError(item.id, f"{item.title or item.id} cannot be embedded ({e.status_code})") from e
                raise

            if not isinstance(data, dict):
                raise DecodeError(f"oEmbed response for {item.id} is not an object")
            try:
                return EmbedInfo(
                    item_id=item.id,
                    title=data.get("title") or item.title,
                    html=data.get("html") or "",
                    thumbnail_url=data.get("thumbnail_url") or item.thumbnail_url,
                    provider_name=data.get("provider_name")
                )
            except ValidationError as e:
                raise DecodeError(f"Malformed oEmbed response for {item.id}") from e


class StatusProbe:
    """Checks playability through the stateless videos.status endpoint."""

    concurrent_safe = True

    def __init__(self, youtube: YouTubeClient):
        self.youtube = youtube

    async def check(self, item: RemoteItem) -> bool:
        status = await self.youtube.video_status(item.payload)
        if not is_playable(status):
            logger.debug(f"Video {item.payload} not playable: {status}")
            return False
        return True


class EmbedProbe:
    """Checks playability by loading the item through the shared channel."""

    concurrent_safe = False

    def __init__(self, channel: EmbedChannel):
        self.channel = channel

    async def check(self, item: RemoteItem) -> bool:
        try:
            await self.channel.load(item)
        except ItemUnavailableError as e:
            logger.debug(str(e))
            return False
        return True
