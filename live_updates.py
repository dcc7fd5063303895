"""
Live meal updates: the in-memory meal ledger and the realtime feed that fills it.
"""
from __future__ import annotations
import asyncio
import logging
import threading
import time
from concurrent.futures import Future
from datetime import date
from typing import Any, Callable, Dict, Iterable, Iterator, List, Mapping, Optional, Tuple

from supabase import acreate_client

from config import (
    FEED_IDLE_SECONDS,
    FEED_REAP_SECONDS,
    MEAL_FIELDS,
    MEALS_TABLE,
    SUPABASE_KEY,
    SUPABASE_URL,
)
from metrics import MacroTotals, sum_totals
from periods import ActivePeriod
from records import MealEntry, normalize_meal

logger = logging.getLogger(__name__)

STOP_TIMEOUT_SEC = 5.0


class MealLedger:
    """
    Newest-first meal entries for the active period.

    Replaced wholesale on every refresh and grown one entry at a time by the
    realtime feed. Entries are unique by id.
    """

    def __init__(self, period: ActivePeriod, entries: Iterable[MealEntry] = ()) -> None:
        self.period = period
        self._entries: List[MealEntry] = list(entries)
        self._lock = threading.Lock()

    def replace_all(self, entries: Iterable[MealEntry], period: Optional[ActivePeriod] = None) -> None:
        with self._lock:
            if period is not None:
                self.period = period
            self._entries = list(entries)

    def merge_one(self, entry: MealEntry, today: Optional[date] = None) -> bool:
        """
        Prepend an entry unless its id is already present or it belongs to another period.
        Entries without a date are taken as eaten today.
        Returns True when the ledger changed.
        """
        occurred_at = entry.occurred_at or (today or date.today()).isoformat()
        with self._lock:
            if not self.period.contains(occurred_at):
                logger.debug("Dropping meal %s outside period %s", entry.id, self.period.key)
                return False
            if any(e.id == entry.id for e in self._entries):
                return False
            self._entries.insert(0, entry)
        return True

    def merge_record(self, record: Mapping[str, Any]) -> bool:
        return self.merge_one(normalize_meal(record))

    @property
    def entries(self) -> Tuple[MealEntry, ...]:
        with self._lock:
            return tuple(self._entries)

    def totals(self) -> MacroTotals:
        return sum_totals(self.entries)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, entry_id: object) -> bool:
        return any(e.id == entry_id for e in self.entries)

    def __iter__(self) -> Iterator[MealEntry]:
        return iter(self.entries)


def extract_record(payload: Any) -> Optional[Mapping[str, Any]]:
    """The inserted row carried by a realtime change payload."""
    if not isinstance(payload, Mapping):
        return None
    data = payload.get("data")
    if isinstance(data, Mapping) and isinstance(data.get("record"), Mapping):
        return data["record"]
    for key in ("new", "record"):
        if isinstance(payload.get(key), Mapping):
            return payload[key]
    return None


class MealFeed:
    """
    Realtime subscription to new meals of one user.

    Runs its own event loop on a daemon thread. Any failure to subscribe is
    logged and leaves the dashboard without live updates.
    """

    def __init__(
        self,
        user_id: Any,
        on_record: Callable[[Mapping[str, Any]], Any],
        url: str = SUPABASE_URL,
        key: str = SUPABASE_KEY,
        table: str = MEALS_TABLE,
        connect: Callable[..., Any] = acreate_client,
    ) -> None:
        self.user_id = str(user_id)
        self.on_record = on_record
        self.url = url
        self.key = key
        self.table = table
        self._connect = connect
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._thread: Optional[threading.Thread] = None
        self._client: Any = None
        self._channel: Any = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def subscribed(self) -> bool:
        return self._channel is not None

    def start(self) -> Optional[Future]:
        """Start the loop thread and schedule the subscription. Does not block."""
        if self.running:
            return None
        self._loop = asyncio.new_event_loop()
        self._thread = threading.Thread(
            target=self._loop.run_forever,
            name=f"meal-feed-{self.user_id}",
            daemon=True,
        )
        self._thread.start()
        future = asyncio.run_coroutine_threadsafe(self._subscribe(), self._loop)
        future.add_done_callback(self._log_subscribe_result)
        return future

    async def _subscribe(self) -> None:
        self._client = await self._connect(self.url, self.key)
        channel = self._client.channel(f"meals-{self.user_id}")
        channel.on_postgres_changes(
            "INSERT",
            schema="public",
            table=self.table,
            filter=f"{MEAL_FIELDS['user_id'][0]}=eq.{self.user_id}",
            callback=self._handle,
        )
        await channel.subscribe()
        self._channel = channel

    def _log_subscribe_result(self, future: Future) -> None:
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            logger.warning("Realtime subscription for user %s failed: %s", self.user_id, exc)
        else:
            logger.info("Realtime subscription active for user %s", self.user_id)

    def _handle(self, payload: Any) -> None:
        record = extract_record(payload)
        if record is None:
            logger.debug("Ignoring realtime payload without a record: %r", payload)
            return
        try:
            self.on_record(record)
        except Exception:
            logger.exception("Failed to merge realtime meal for user %s", self.user_id)

    def stop(self) -> None:
        """Remove the channel and shut the loop thread down."""
        loop, thread = self._loop, self._thread
        if loop is None or thread is None:
            return

        if self._client is not None and self._channel is not None:
            future = asyncio.run_coroutine_threadsafe(self._client.remove_channel(self._channel), loop)
            try:
                future.result(timeout=STOP_TIMEOUT_SEC)
            except Exception as exc:
                logger.warning("Could not remove realtime channel for user %s: %s", self.user_id, exc)

        loop.call_soon_threadsafe(loop.stop)
        thread.join(timeout=STOP_TIMEOUT_SEC)
        if not thread.is_alive():
            loop.close()

        self._loop = None
        self._thread = None
        self._client = None
        self._channel = None
        logger.info("Realtime subscription stopped for user %s", self.user_id)


class FeedRegistry:
    """
    One shared ledger and one realtime feed per viewed user, across all sessions.

    `attach` hands a freshly loaded meal list to the user's ledger and starts the
    feed on first use. Open pages call `touch` on every live refresh; feeds that
    nobody has touched for `idle_after` seconds are stopped by `prune`, which the
    reaper thread runs periodically.
    """

    def __init__(
        self,
        idle_after: float = FEED_IDLE_SECONDS,
        feed_factory: Callable[..., MealFeed] = MealFeed,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.idle_after = idle_after
        self._feed_factory = feed_factory
        self._clock = clock
        self._slots: Dict[str, Tuple[MealLedger, MealFeed]] = {}
        self._last_seen: Dict[str, float] = {}
        self._lock = threading.Lock()
        self._reaper: Optional[threading.Thread] = None
        self._closed = threading.Event()

    def attach(self, user_id: Any, period: ActivePeriod, entries: Iterable[MealEntry]) -> MealLedger:
        """The user's shared ledger, refilled with `entries`, with its feed running."""
        key = str(user_id)
        with self._lock:
            slot = self._slots.get(key)
            if slot is None:
                ledger = MealLedger(period, entries)
                feed = self._feed_factory(user_id, ledger.merge_record)
                self._slots[key] = (ledger, feed)
            else:
                ledger, feed = slot
                ledger.replace_all(entries, period=period)
            self._last_seen[key] = self._clock()
            if not feed.running:
                feed.start()
        return ledger

    def touch(self, user_id: Any) -> bool:
        """Mark the user as still watched. False when no feed is registered."""
        key = str(user_id)
        with self._lock:
            if key not in self._slots:
                return False
            self._last_seen[key] = self._clock()
            return True

    def prune(self) -> List[str]:
        """Stop and forget every feed idle for longer than `idle_after`."""
        now = self._clock()
        with self._lock:
            stale = [key for key, seen in self._last_seen.items() if now - seen > self.idle_after]
            feeds = []
            for key in stale:
                del self._last_seen[key]
                feeds.append(self._slots.pop(key)[1])
        for feed in feeds:
            feed.stop()
        if stale:
            logger.info("Stopped %d idle meal feed(s): %s", len(stale), ", ".join(stale))
        return stale

    def release(self, user_id: Any) -> None:
        key = str(user_id)
        with self._lock:
            slot = self._slots.pop(key, None)
            self._last_seen.pop(key, None)
        if slot is not None:
            slot[1].stop()

    def start_reaper(self, interval: float = FEED_REAP_SECONDS) -> None:
        if self._reaper is not None and self._reaper.is_alive():
            return
        self._reaper = threading.Thread(
            target=self._reap, args=(interval,), name="meal-feed-reaper", daemon=True
        )
        self._reaper.start()

    def _reap(self, interval: float) -> None:
        while not self._closed.wait(interval):
            try:
                self.prune()
            except Exception:
                logger.exception("Pruning idle meal feeds failed")

    def close(self) -> None:
        """Stop the reaper and every registered feed."""
        self._closed.set()
        with self._lock:
            keys = list(self._slots)
        for key in keys:
            self.release(key)

    def __len__(self) -> int:
        with self._lock:
            return len(self._slots)

    def __contains__(self, user_id: object) -> bool:
        with self._lock:
            return str(user_id) in self._slots
