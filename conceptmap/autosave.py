"""
Autosave - persist edits shortly after they happen.

The pipeline watches the store and compares a content signature of the
open document against a baseline (the signature as of the last confirmed
save or load). When they differ it schedules a save:

- Debounce: bursts of edits coalesce into one save once the document has
  been quiet for `debounce_ms`
- Throttle: saves never start closer together than
  `max(min_throttle_ms, debounce_ms)`; an early attempt is deferred to the
  exact floor boundary
- At most one save runs at a time; when it completes the live signature
  is checked again and another save is scheduled if still dirty
- A failed save leaves the baseline untouched, so the next edit retries
- Creating or loading a document, even one with the same id, adopts its
  signature as baseline and cancels pending timers
- Manual saves go through `save_now`; the store serializes every write
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional, Protocol, TYPE_CHECKING

from .export import export_signature
from .models import ExportMap

if TYPE_CHECKING:
    from .store import DocumentStore


logger = logging.getLogger(__name__)

DEBOUNCE_MS = 800
MIN_THROTTLE_MS = 1200


class TimerHandle(Protocol):
    def cancel(self) -> Any: ...


class Scheduler(Protocol):
    """Clock, cancellable timers and background tasks."""

    def now(self) -> float: ...

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle: ...

    def spawn(self, coro: Awaitable) -> Any: ...


class LoopScheduler:
    """Scheduler backed by the running asyncio event loop."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        return self._loop or asyncio.get_running_loop()

    def now(self) -> float:
        return self.loop.time()

    def call_later(self, delay: float, callback: Callable[[], None]) -> asyncio.TimerHandle:
        return self.loop.call_later(max(delay, 0), callback)

    def spawn(self, coro: Awaitable) -> asyncio.Task:
        return self.loop.create_task(coro)


class AutosavePipeline:
    """
    Debounced, throttled, non-overlapping autosave for one DocumentStore.

    Timer callbacks never capture document state; they read the store when
    they fire.
    """

    def __init__(
        self,
        store: "DocumentStore",
        scheduler: Optional[Scheduler] = None,
        debounce_ms: int = DEBOUNCE_MS,
        min_throttle_ms: int = MIN_THROTTLE_MS,
    ):
        self._store = store
        self._scheduler = scheduler or LoopScheduler()
        self._debounce = debounce_ms / 1000
        self._floor = max(min_throttle_ms, debounce_ms) / 1000

        self._document_id: Optional[str] = None
        self._generation: Optional[int] = None
        self._baseline: Optional[str] = None
        self._running = 0
        self._last_attempt: Optional[float] = None
        self._timer: Optional[TimerHandle] = None
        self._task: Optional[Any] = None

        self._unsubscribe: Optional[Callable[[], None]] = store.on_change(self.notify)
        self.notify()

    # --- Properties ---

    @property
    def document_id(self) -> Optional[str]:
        return self._document_id

    @property
    def baseline(self) -> Optional[str]:
        return self._baseline

    @property
    def in_flight(self) -> bool:
        return self._running > 0

    @property
    def pending(self) -> bool:
        """True if a save attempt is scheduled."""
        return self._timer is not None

    @property
    def throttle_floor(self) -> float:
        """Minimum spacing between save attempts, in seconds."""
        return self._floor

    @property
    def is_dirty(self) -> bool:
        store = self._store
        if not store.is_ready or store.generation != self._generation:
            return False
        return store.signature() != self._baseline

    # --- Change handling ---

    def notify(self):
        """Store change callback."""
        store = self._store
        if not store.is_ready:
            return

        if store.generation != self._generation:
            self._adopt()
            return

        if self.in_flight:
            # Rechecked when the running save completes
            return

        if store.signature() == self._baseline:
            return

        self._schedule(self._debounce)

    def _adopt(self):
        """Take the freshly opened document's content as the baseline."""
        self._cancel_timer()
        document_id = self._store.metadata.id
        self._document_id = document_id
        self._generation = self._store.generation
        self._baseline = self._store.signature()
        self._last_attempt = None
        logger.debug("Autosave tracking document %s", document_id)

    # --- Timers ---

    def _cancel_timer(self):
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _schedule(self, delay: float):
        self._cancel_timer()
        self._timer = self._scheduler.call_later(delay, self._on_timer)

    def _on_timer(self):
        self._timer = None
        self._task = self._scheduler.spawn(self._attempt())

    async def _attempt(self):
        if self.in_flight or not self.is_dirty:
            return

        if self._last_attempt is not None:
            elapsed = self._scheduler.now() - self._last_attempt
            if elapsed < self._floor:
                self._schedule(self._floor - elapsed)
                return

        await self._save()

    async def _save(self, propagate: bool = False) -> Optional[ExportMap]:
        document_id = self._document_id
        generation = self._generation
        self._running += 1
        self._last_attempt = self._scheduler.now()
        try:
            saved = await self._store.save_current_document()
        except Exception:
            if propagate:
                raise
            logger.exception("Autosave failed for document %s", document_id)
            return None
        finally:
            self._running -= 1

        if saved is not None and generation == self._generation:
            self._baseline = export_signature(saved)

        # Edits made while the save was running; the last save to finish checks
        if not self.in_flight and self.is_dirty:
            self._schedule(self._debounce)
        return saved

    # --- Control ---

    async def save_now(self) -> Optional[ExportMap]:
        """
        Save the open document right away, dirty or not.

        Writes are queued behind any save already running. Storage errors
        propagate to the caller.
        """
        self._cancel_timer()
        return await self._save(propagate=True)

    async def flush(self) -> bool:
        """Save right away if the open document is dirty. Returns True if saved."""
        self._cancel_timer()
        await self.wait_idle()
        if not self.is_dirty:
            return False
        return await self._save() is not None

    async def wait_idle(self):
        """Wait for a save started by a timer to finish."""
        task = self._task
        if task is not None and not task.done():
            await asyncio.shield(task)

    def cancel(self):
        """Drop any scheduled save attempt."""
        self._cancel_timer()

    def close(self):
        """Stop observing the store and cancel pending timers."""
        self._cancel_timer()
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
