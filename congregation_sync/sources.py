"""
Collection sources.

A source knows where a collection lives, how to decode it into RemoteItems
and which items are statically unusable. The synchronizer owns everything else.
"""
import logging
import time
from typing import Any, Dict, List, Optional, Sequence, Tuple
from urllib.parse import quote
from pydantic import ValidationError
from .config import settings
from .errors import DecodeError
from .models import RemoteItem
from .clients.json_client import JsonClient
from .clients.youtube_client import YouTubeClient, watch_url

logger = logging.getLogger(__name__)


def passes_static_filter(item: RemoteItem, deny_markers: Sequence[str] = (), require_thumbnail: bool = False) -> bool:
    if not item.id or not item.payload:
        return False
    title = item.title.lower()
    for marker in deny_markers:
        if marker and marker.lower() in title:
            return False
    if require_thumbnail and not item.thumbnail_url:
        return False
    return True


def dedupe(items: List[RemoteItem]) -> List[RemoteItem]:
    seen = set()
    unique = []
    for item in items:
        if item.id in seen:
            continue
        seen.add(item.id)
        unique.append(item)
    return unique


def _object(value: Any, what: str) -> Dict:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise DecodeError(f"{what} is not an object: {value!r}")
    return value


def build_item(**fields) -> RemoteItem:
    try:
        return RemoteItem(**fields)
    except ValidationError as e:
        raise DecodeError(f"Malformed item {fields.get('id')!r}: {e.error_count()} bad fields") from e


class ListSource:
    name = "collection"
    require_thumbnail = False

    @property
    def deny_markers(self) -> Sequence[str]:
        return ()

    # Shown only when nothing has ever been fetched or cached
    fallback_items: List[RemoteItem] = []

    async def fetch(self) -> Any:
        raise NotImplementedError

    def decode(self, data: Any) -> List[RemoteItem]:
        raise NotImplementedError

    def accept(self, item: RemoteItem) -> bool:
        return passes_static_filter(item, self.deny_markers, self.require_thumbnail)

    def external_url(self, item: RemoteItem) -> Optional[str]:
        return None


class PlaylistSource(ListSource):
    name = "playlist"
    require_thumbnail = True

    def __init__(self, youtube: YouTubeClient):
        self.youtube = youtube

    @property
    def deny_markers(self) -> Sequence[str]:
        return settings.DENY_TITLE_MARKERS

    async def fetch(self) -> Any:
        return await self.youtube.playlist_items()

    def decode(self, data: Any) -> List[RemoteItem]:
        if not isinstance(data, list):
            raise DecodeError("Playlist items must be a list")

        items = []
        for entry in data:
            if not isinstance(entry, dict):
                raise DecodeError(f"Unexpected playlist entry: {entry!r}")
            snippet = _object(entry.get("snippet"), "Playlist snippet")
            video_id = _object(snippet.get("resourceId"), "Snippet resourceId").get("videoId") or ""
            thumbnails = _object(snippet.get("thumbnails"), "Snippet thumbnails")
            thumbnail = _object(thumbnails.get("default"), "Default thumbnail").get("url")
            items.append(build_item(
                id=video_id,
                title=snippet.get("title") or "",
                payload=video_id,
                thumbnail_url=thumbnail
            ))
        return dedupe(items)

    def external_url(self, item: RemoteItem) -> Optional[str]:
        return watch_url(item.payload)


class AnnouncementsSource(ListSource):
    name = "announcements"

    fallback_items = [
        RemoteItem(id="1", title="Sunday School", payload="1", detail="Join us at 11 AM every Sunday", subtitle="Sunday 11 AM", priority=1),
        RemoteItem(id="2", title="Sunday Service", payload="2", detail="Join us at 12PM every Sunday", subtitle="Sunday 12PM", priority=2),
        RemoteItem(id="3", title="Bible Study", payload="3", detail="Join us for Bible Study!", subtitle="Wednesday 6PM", priority=3),
        RemoteItem(id="4", title="Good Friday Service", payload="4", detail="Join our annual Good Friday Service", subtitle="April 18th", priority=4),
    ]

    def __init__(self, http: JsonClient, url: Optional[str] = None):
        self.http = http
        self.url = url or settings.ANNOUNCEMENTS_URL

    async def fetch(self) -> Any:
        # Static hosting caches aggressively
        return await self.http.get_json(self.url, params={"cb": int(time.time())})

    def decode(self, data: Any) -> List[RemoteItem]:
        if not isinstance(data, list):
            raise DecodeError("Announcements document must be a list")

        items = []
        for entry in data:
            if not isinstance(entry, dict) or "id" not in entry or "title" not in entry:
                raise DecodeError(f"Malformed announcement: {entry!r}")
            try:
                priority = int(entry.get("priority", 0))
            except (TypeError, ValueError) as e:
                raise DecodeError(f"Bad priority in announcement {entry.get('id')}") from e
            items.append(build_item(
                id=str(entry["id"]),
                title=str(entry["title"]),
                payload=str(entry["id"]),
                detail=entry.get("body"),
                subtitle=entry.get("timeInfo"),
                priority=priority
            ))
        # sorted() is stable, equal priorities keep document order
        return dedupe(sorted(items, key=lambda i: i.priority))


class ScriptureSource(ListSource):
    """One chapter of a book, one item per verse."""

    def __init__(self, http: JsonClient, book: str, chapter: int):
        self.http = http
        self.book = book
        self.chapter = chapter
        self.name = f"scripture:{book}:{chapter}"

    async def fetch(self) -> Any:
        base = settings.BIBLE_API_BASE_URL.rstrip('/')
        return await self.http.get_json(f"{base}/{quote(self.book)}+{self.chapter}")

    def decode(self, data: Any) -> List[RemoteItem]:
        if not isinstance(data, dict) or not isinstance(data.get("verses"), list):
            raise DecodeError("Scripture response has no verses")

        items = []
        for verse in data["verses"]:
            try:
                book_name = verse["book_name"]
                number = int(verse["verse"])
                chapter = int(verse.get("chapter", self.chapter))
            except (AttributeError, KeyError, TypeError, ValueError) as e:
                raise DecodeError(f"Malformed verse: {verse!r}") from e
            text = verse.get("text") or ""
            if not isinstance(text, str):
                raise DecodeError(f"Verse text is not a string: {text!r}")
            verse_id = verse_key(book_name, chapter, number)
            items.append(build_item(
                id=verse_id,
                title=f"{book_name} {chapter}:{number}",
                payload=verse_id,
                detail=text.strip()
            ))
        return dedupe(items)


def verse_key(book_name: str, chapter: int, verse: int) -> str:
    return f"{book_name}:{chapter}:{verse}"


def parse_reference(reference: str) -> Tuple[str, int, Optional[int]]:
    """
    Split "John 3:16" / "1 John 4" into (book, chapter, verse).
    Book names are lower-cased; verse is None for whole-chapter references.
    """
    parts = reference.strip().lower().split()
    if len(parts) < 2:
        raise ValueError(f"Not a scripture reference: {reference!r}")

    book = " ".join(parts[:-1])
    location = parts[-1].split(":")
    if len(location) > 2:
        raise ValueError(f"Not a scripture reference: {reference!r}")
    try:
        chapter = int(location[0])
        verse = int(location[1]) if len(location) == 2 else None
    except ValueError:
        raise ValueError(f"Not a scripture reference: {reference!r}")

    if chapter < 1 or (verse is not None and verse < 1):
        raise ValueError(f"Not a scripture reference: {reference!r}")
    return book, chapter, verse
