import asyncio
import logging
import signal
import sys
import uvicorn
from collections import OrderedDict
from typing import Optional, Tuple

from .config import settings
from .state import StateManager
from .clients.json_client import JsonClient
from .clients.youtube_client import YouTubeClient
from .models import SyncSnapshot
from .probes import EmbedChannel, EmbedProbe, StatusProbe
from .sources import AnnouncementsSource, PlaylistSource, ScriptureSource, parse_reference
from .synchronizer import RemoteListSynchronizer
from . import server

# Setup logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
# Silence noisy libraries
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)

logger = logging.getLogger("main")

SCRIPTURE_CHAPTERS_KEPT = 20

class SyncService:
    def __init__(self, state_manager: Optional[StateManager] = None, http: Optional[JsonClient] = None):
        self.running = True
        self.state_manager = state_manager or StateManager(settings.STATE_PATH)
        self.http = http or JsonClient()
        self.youtube = YouTubeClient(self.http)
        self._channel: Optional[EmbedChannel] = None

        self.playlist = RemoteListSynchronizer(
            PlaylistSource(self.youtube),
            self.state_manager,
            probe=self._build_probe(),
            channel=self.channel
        )
        self.announcements = RemoteListSynchronizer(
            AnnouncementsSource(self.http),
            self.state_manager
        )
        # (book, chapter) -> synchronizer, least recently used first
        self.scripture: "OrderedDict[Tuple[str, int], RemoteListSynchronizer]" = OrderedDict()

        # Link service to server module
        server.service = self

    @property
    def channel(self) -> EmbedChannel:
        """The single embed channel, built on first use and shared afterwards."""
        if self._channel is None:
            self._channel = EmbedChannel(self.http)
        return self._channel

    def _build_probe(self):
        if settings.PROBE_MODE == "embed":
            return EmbedProbe(self.channel)
        if settings.PROBE_MODE != "status":
            logger.warning(f"Unknown PROBE_MODE {settings.PROBE_MODE!r}, using status probe")
        return StatusProbe(self.youtube)

    async def refresh_playlist(self) -> SyncSnapshot:
        snap = await self.playlist.fetch_collection()
        if snap.error is None and self.playlist.needs_validation():
            snap = await self.playlist.validate_all()
        return snap

    async def refresh_announcements(self) -> SyncSnapshot:
        return await self.announcements.fetch_collection()

    async def lookup_scripture(self, reference: str) -> SyncSnapshot:
        """Fetch the chapter a reference points into and select the referenced verse."""
        book, chapter, verse = parse_reference(reference)
        key = (book, chapter)

        sync = self.scripture.get(key)
        if sync is None:
            sync = RemoteListSynchronizer(ScriptureSource(self.http, book, chapter), self.state_manager)
            self.scripture[key] = sync
        self.scripture.move_to_end(key)
        while len(self.scripture) > SCRIPTURE_CHAPTERS_KEPT:
            _, evicted = self.scripture.popitem(last=False)
            self.state_manager.delete_cache(evicted.source.name)

        await sync.fetch_collection()
        if verse is not None:
            suffix = f":{chapter}:{verse}"
            for item in sync.items:
                if item.id.endswith(suffix):
                    sync.select(item.id)
                    break
        return sync.snapshot()

    async def sync_loop(self):
        while self.running:
            try:
                await self.refresh_announcements()
                await self.refresh_playlist()
            except Exception as e:
                logger.error(f"Error in sync loop: {e}", exc_info=True)

            await asyncio.sleep(max(1, settings.REFRESH_INTERVAL_SECONDS))

    async def start(self):
        if not settings.YOUTUBE_API_KEY or not settings.YOUTUBE_PLAYLIST_ID:
            logger.warning("YOUTUBE_API_KEY / YOUTUBE_PLAYLIST_ID not set, playlist fetches will fail")

        tasks = [asyncio.create_task(self.sync_loop())]

        if settings.HTTP_SERVER_ENABLED:
            config = uvicorn.Config(server.app, host="0.0.0.0", port=settings.HTTP_SERVER_PORT, log_level="warning")
            server_task = uvicorn.Server(config).serve()
            tasks.append(asyncio.create_task(server_task))

        try:
            await asyncio.gather(*tasks)
        except asyncio.CancelledError:
            pass
        finally:
            self.state_manager.save()
            await self.http.close()

def handle_sigterm(sig, frame):
    logger.info("Received SIGTERM, shutting down...")
    sys.exit(0)

if __name__ == "__main__":
    signal.signal(signal.SIGTERM, handle_sigterm)
    service = SyncService()
    try:
        asyncio.run(service.start())
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
