import asyncio
import logging
import time
from typing import Awaitable, Callable, Dict, List, Optional, Protocol, Set
from .config import settings
from .errors import ItemUnavailableError, NoItemsError, SyncError
from .models import (
    EmbedInfo, ErrorState, RemoteItem, SyncSnapshot, UnavailableItem, ValidationState
)
from .sources import ListSource
from .state import StateManager

logger = logging.getLogger(__name__)

Listener = Callable[[SyncSnapshot], None]

class Probe(Protocol):
    concurrent_safe: bool

    async def check(self, item: RemoteItem) -> bool: ...

class ContentChannel(Protocol):
    async def load(self, item: RemoteItem) -> EmbedInfo: ...


class RemoteListSynchronizer:
    """
    Locally cached, validated view of one remote collection.

    All state lives on the event loop that drives this object; nothing here is
    touched from other threads, so there are no locks around the fields.
    Stale fetch/load results are suppressed by cancelling the superseded task
    and by checking the load generation before applying a completion.
    """

    def __init__(
        self,
        source: ListSource,
        state_manager: StateManager,
        probe: Optional[Probe] = None,
        channel: Optional[ContentChannel] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    ):
        self.source = source
        self.sm = state_manager
        self.probe = probe
        self.channel = channel
        self._sleep = sleep

        # Seed optimistically from the last persisted pass
        self.cache = self.sm.load_cache(source.name)
        self.items: List[RemoteItem] = list(self.cache.items)
        self.fetched_at = self.cache.fetched_at
        self.selected: Optional[str] = self.items[0].id if self.items else None

        self.is_loading = False
        self.error: Optional[ErrorState] = None
        self.is_loading_selection = False
        self.has_playback_error = False
        self.now_showing: Optional[EmbedInfo] = None
        self.unavailable: Optional[UnavailableItem] = None

        # Per-pass probe bookkeeping, empty between passes
        self.validation: Dict[str, ValidationState] = {}
        self._inconclusive: Set[str] = set()
        self._validating = False

        self._fetch_task: Optional[asyncio.Task] = None
        self._load_task: Optional[asyncio.Task] = None
        self._loading_id: Optional[str] = None
        self._load_generation = 0
        self._listeners: List[Listener] = []

        if self.items:
            logger.info(f"Seeded {source.name} with {len(self.items)} cached items")

    # Consumer state

    @property
    def is_validating(self) -> bool:
        return self._validating

    def snapshot(self) -> SyncSnapshot:
        return SyncSnapshot(
            name=self.source.name,
            items=list(self.items),
            fetched_at=self.fetched_at,
            selected=self.selected,
            is_loading=self.is_loading,
            is_validating=self._validating,
            error=self.error,
            is_loading_selection=self.is_loading_selection,
            has_playback_error=self.has_playback_error,
            now_showing=self.now_showing,
            unavailable=self.unavailable
        )

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener called with a fresh snapshot after every change."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)
        return unsubscribe

    def _notify(self):
        if not self._listeners:
            return
        snap = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(snap)
            except Exception as e:
                logger.error(f"Listener for {self.source.name} failed: {e}", exc_info=True)

    def _surface(self, e: SyncError, message: Optional[str] = None):
        self.error = ErrorState(kind=e.kind, message=message or str(e))

    def get_item(self, item_id: str) -> Optional[RemoteItem]:
        for item in self.items:
            if item.id == item_id:
                return item
        return None

    # Fetch

    async def fetch_collection(self) -> SyncSnapshot:
        """
        Fetch, decode and statically filter the collection.
        Calls made while a fetch is in flight join that fetch instead of starting another.
        """
        if self._fetch_task is None or self._fetch_task.done():
            self._fetch_task = asyncio.create_task(self._fetch())
        else:
            logger.debug(f"Fetch for {self.source.name} already in flight, joining it")
        await asyncio.shield(self._fetch_task)
        return self.snapshot()

    async def _fetch(self):
        self.is_loading = True
        self._notify()

        failure: Optional[SyncError] = None
        fetched: List[RemoteItem] = []
        try:
            data = await self._fetch_with_retry()
            fetched = self.source.decode(data)
        except SyncError as e:
            failure = e
        finally:
            self.is_loading = False

        if failure is not None:
            self._fetch_failed(failure)
            return

        kept = [item for item in fetched if self.source.accept(item)]
        if len(kept) != len(fetched):
            logger.info(f"Filtered {len(fetched) - len(kept)} unusable items from {self.source.name}")

        if self.probe is not None and self._probe_fresh():
            known_bad = set(self.cache.invalid_ids)
            before = len(kept)
            kept = [item for item in kept if item.id not in known_bad]
            if len(kept) != before:
                logger.debug(f"Skipped {before - len(kept)} items that failed the last probe pass")

        self.items = kept
        self.fetched_at = time.time()
        self.cache.items = self._persistable(kept)
        self.cache.fetched_at = self.fetched_at
        self.sm.save_cache(self.source.name, self.cache)

        if kept:
            self.error = None
            logger.info(f"Fetched {len(kept)} items for {self.source.name}")
        else:
            self._surface(NoItemsError("No items found"))
            logger.warning(f"No usable items in {self.source.name}")

        self._reconcile_selection(load=False)
        self._notify()

    async def _fetch_with_retry(self):
        retries = 0
        while True:
            try:
                return await self.source.fetch()
            except SyncError as e:
                if not e.retryable or retries >= settings.FETCH_MAX_RETRIES:
                    raise
                retries += 1
                logger.warning(
                    f"Fetching {self.source.name} failed ({e}), "
                    f"retrying in {settings.FETCH_RETRY_DELAY_SECONDS}s ({retries}/{settings.FETCH_MAX_RETRIES})"
                )
                await self._sleep(settings.FETCH_RETRY_DELAY_SECONDS)

    def _fetch_failed(self, e: SyncError):
        logger.error(f"Fetching {self.source.name} failed: {e}")

        if not self.items and not self.fetched_at and self.source.fallback_items:
            logger.info(f"Using fallback data for {self.source.name}")
            self.items = list(self.source.fallback_items)
            self._reconcile_selection(load=False)

        message = str(e)
        if not self.items:
            message = f"No items found: {e}"
        self._surface(e, message)
        self._notify()

    # Validation

    def _probe_fresh(self) -> bool:
        return time.time() - self.cache.last_checked_at <= settings.PROBE_INTERVAL_SECONDS

    def _persistable(self, items: List[RemoteItem]) -> List[RemoteItem]:
        # With a probe, only items that passed it may seed the next start
        if self.probe is None:
            return list(items)
        passed = set(self.cache.valid_ids)
        return [item for item in items if item.id in passed]

    def needs_validation(self) -> bool:
        if self.probe is None or not self.items:
            return False
        if not self._probe_fresh():
            return True
        seen = set(self.cache.valid_ids) | set(self.cache.invalid_ids)
        return any(item.id not in seen for item in self.items)

    async def validate_all(self) -> SyncSnapshot:
        """
        Probe every current item and keep the ones that pass.
        A call made while a pass is running does nothing.
        """
        if self._validating:
            logger.debug(f"Validation of {self.source.name} already running, ignoring")
            return self.snapshot()
        if self.probe is None:
            return self.snapshot()

        candidates = list(self.items)
        self._validating = True
        self.validation = {item.id: ValidationState.UNCHECKED for item in candidates}
        self._notify()

        try:
            if self.probe.concurrent_safe and settings.PROBE_CONCURRENCY > 1:
                sem = asyncio.Semaphore(settings.PROBE_CONCURRENCY)

                async def bounded(item: RemoteItem):
                    async with sem:
                        await self._probe_one(item)

                await asyncio.gather(*(bounded(item) for item in candidates))
            else:
                for item in candidates:
                    await self._probe_one(item)

            valid_ids = [i.id for i in candidates if self.validation.get(i.id) == ValidationState.VALID]
            invalid = {i.id for i in candidates if self.validation.get(i.id) == ValidationState.INVALID}
            # Timeouts and errors drop the item for this pass only
            probed = {i.id for i in candidates}
            known_bad = [i for i in self.cache.invalid_ids if i not in probed]
            known_bad += [i.id for i in candidates if i.id in invalid and i.id not in self._inconclusive]
        finally:
            self._validating = False
            self.validation = {}
            self._inconclusive = set()

        self._apply_validation(valid_ids, invalid, known_bad)
        return self.snapshot()

    async def _probe_one(self, item: RemoteItem):
        self.validation[item.id] = ValidationState.CHECKING
        try:
            ok = await asyncio.wait_for(self.probe.check(item), timeout=settings.PROBE_TIMEOUT_SECONDS)
        except asyncio.TimeoutError:
            logger.info(f"Probe for {item.id} timed out after {settings.PROBE_TIMEOUT_SECONDS}s")
            self._inconclusive.add(item.id)
            ok = False
        except SyncError as e:
            logger.info(f"Probe for {item.id} failed: {e}")
            self._inconclusive.add(item.id)
            ok = False
        self.validation[item.id] = ValidationState.VALID if ok else ValidationState.INVALID

    def _apply_validation(self, valid_ids: List[str], invalid: Set[str], known_bad: List[str]):
        # Filter the current list so a fetch that landed mid-pass is not lost
        self.items = [item for item in self.items if item.id not in invalid]
        self.cache.valid_ids = valid_ids
        self.cache.invalid_ids = known_bad
        self.cache.last_checked_at = time.time()
        self.cache.items = self._persistable(self.items)
        self.sm.save_cache(self.source.name, self.cache)
        logger.info(f"Validated {self.source.name}: {len(valid_ids)} playable, {len(invalid)} dropped")

        self._reconcile_selection(load=True)
        if not self.items:
            self._surface(NoItemsError("No playable items available"))
        self._notify()

    def remove_invalid(self, item_id: str):
        """Drop an item found unusable and remember it as such until the next probe pass."""
        item = self.get_item(item_id)
        if item is None and item_id not in self.cache.valid_ids:
            return

        self.items = [i for i in self.items if i.id != item_id]
        self.cache.valid_ids = [i for i in self.cache.valid_ids if i != item_id]
        if item_id not in self.cache.invalid_ids:
            self.cache.invalid_ids.append(item_id)
        self.cache.items = self._persistable(self.items)
        self.sm.save_cache(self.source.name, self.cache)
        logger.info(f"Removed unavailable item {item_id} from {self.source.name}")

        self._reconcile_selection(load=True)
        if not self.items:
            self._surface(NoItemsError("No playable items available"))
        self._notify()

    def report_unavailable(self, item_id: str):
        """Playback error reported by the renderer after the item passed probing."""
        item = self.get_item(item_id)
        if item is None:
            return
        if self.selected == item_id:
            self.has_playback_error = True
            self.is_loading_selection = False
            self.now_showing = None
        self.unavailable = UnavailableItem(
            item_id=item.id,
            title=item.title,
            external_url=self.source.external_url(item)
        )
        self.remove_invalid(item_id)

    # Selection

    def select(self, item_id: str) -> Optional[asyncio.Task]:
        """
        Make item_id the selection and load it through the channel.
        Returns the load task, or None when nothing needs loading.
        """
        item = self.get_item(item_id)
        if item is None:
            logger.debug(f"Ignoring selection of unknown item {item_id}")
            return None
        if self._loading_id == item_id and self._load_task is not None and not self._load_task.done():
            return self._load_task
        return self._start_load(item)

    def _start_load(self, item: RemoteItem) -> Optional[asyncio.Task]:
        self._cancel_load()
        self._load_generation += 1
        self.selected = item.id
        self.has_playback_error = False

        if self.channel is None:
            self._notify()
            return None

        self.is_loading_selection = True
        self._loading_id = item.id
        self._load_task = asyncio.create_task(self._load(item, self._load_generation))
        self._notify()
        return self._load_task

    def _cancel_load(self):
        task = self._load_task
        self._load_task = None
        self._loading_id = None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    async def _load(self, item: RemoteItem, generation: int):
        unavailable = False
        info: Optional[EmbedInfo] = None
        try:
            info = await self.channel.load(item)
        except ItemUnavailableError as e:
            logger.warning(f"Selected item {item.id} failed to load: {e}")
            unavailable = True
        except SyncError as e:
            logger.warning(f"Loading {item.id} failed: {e}")

        if generation != self._load_generation:
            logger.debug(f"Discarding stale load completion for {item.id}")
            return

        self._load_task = None
        self._loading_id = None
        self.is_loading_selection = False

        if info is not None:
            self.now_showing = info
            self._notify()
            return

        self.has_playback_error = True
        self.now_showing = None
        if unavailable:
            self.unavailable = UnavailableItem(
                item_id=item.id,
                title=item.title,
                external_url=self.source.external_url(item)
            )
        self._notify()

        if unavailable:
            self.remove_invalid(item.id)

    def _reconcile_selection(self, load: bool):
        if self.selected is not None and self.get_item(self.selected) is not None:
            return

        previous = self.selected
        if not self.items:
            self._cancel_load()
            self.selected = None
            self.is_loading_selection = False
            self.now_showing = None
            return

        first = self.items[0]
        if load and previous is not None:
            self._start_load(first)
        else:
            self._cancel_load()
            self.is_loading_selection = False
            self.selected = first.id
            if self.now_showing is not None and self.now_showing.item_id != first.id:
                self.now_showing = None
