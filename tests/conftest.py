"""Shared fixtures: in-memory storage, a store, and a virtual-clock scheduler."""

from __future__ import annotations

import asyncio
from typing import Optional

import pytest

from conceptmap.models import Edge, Node, NodeData, Position
from conceptmap.storage import InMemoryStorage, StorageError
from conceptmap.store import DocumentStore


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def make_node(node_id: str, x: float = 0, y: float = 0, collapsed: bool = False, **kwargs) -> Node:
    return Node(
        id=node_id,
        position=Position(x=x, y=y),
        data=NodeData(label=node_id, collapsed=collapsed),
        **kwargs,
    )


def make_edge(edge_id: str, source: str, target: str) -> Edge:
    return Edge(id=edge_id, source=source, target=target)


class ManualTimer:
    def __init__(self, when: float, callback):
        self.when = when
        self.callback = callback
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class ManualScheduler:
    """Scheduler with a virtual clock; time only moves in advance()."""

    def __init__(self):
        self.clock = 0.0
        self.timers: list[ManualTimer] = []
        self.tasks: list[asyncio.Future] = []

    def now(self) -> float:
        return self.clock

    def call_later(self, delay: float, callback) -> ManualTimer:
        timer = ManualTimer(self.clock + delay, callback)
        self.timers.append(timer)
        return timer

    def spawn(self, coro):
        task = asyncio.ensure_future(coro)
        self.tasks.append(task)
        return task

    @property
    def pending(self) -> list[ManualTimer]:
        return [t for t in self.timers if not t.cancelled]

    async def settle(self):
        """Run spawned tasks to completion."""
        while True:
            running = [t for t in self.tasks if not t.done()]
            if not running:
                return
            await asyncio.gather(*running)

    async def advance(self, seconds: float, settle: bool = True):
        """Move the clock forward, firing due timers in order."""
        target = self.clock + seconds
        while True:
            due = [t for t in self.pending if t.when <= target + 1e-9]
            if not due:
                break
            timer = min(due, key=lambda t: t.when)
            self.timers.remove(timer)
            self.clock = max(self.clock, timer.when)
            timer.callback()
            if settle:
                await self.settle()
            else:
                for _ in range(5):
                    await asyncio.sleep(0)
        self.clock = target


class RecordingStorage(InMemoryStorage):
    """In-memory storage that records puts and can fail or block them."""

    def __init__(self):
        super().__init__()
        self.puts: list = []
        self.fail = False
        self.gate: Optional[asyncio.Event] = None

    async def put(self, document):
        self.puts.append(document)
        if self.gate is not None:
            await self.gate.wait()
        if self.fail:
            raise StorageError("quota exceeded")
        await super().put(document)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture()
def storage() -> RecordingStorage:
    return RecordingStorage()


@pytest.fixture()
def store(storage) -> DocumentStore:
    store = DocumentStore(storage)
    store.new_document("Test map")
    return store


@pytest.fixture()
def scheduler() -> ManualScheduler:
    return ManualScheduler()
