# Duet
# Copyright (C) 2026 Duet contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""
Poll-and-diff playback watcher.

Usage:
    watcher = Watcher(player, interval=1.0)
    task = asyncio.create_task(watcher.run())
    async for event in watcher:
        print(event.type, event.current.track)
    ...
    watcher.stop()

Events go through a bounded EventQueue.  When the consumer falls behind
and the queue is full, the NEWEST event is dropped so the poll loop never
blocks.  The queue is closed exactly once when run() returns, which ends
the async iteration.
"""

import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass
from enum import Enum

from .config import cfg
from .errors import DuetError
from .models import PlaybackState

logger = logging.getLogger(__name__)

# Previous progress at or above this fraction of the duration counts as
# a completed track rather than a skip
COMPLETE_THRESHOLD = 0.95
DEFAULT_INTERVAL = 1.0
DEFAULT_QUEUE_SIZE = 16


class EventType(str, Enum):
    TRACK_CHANGE = "track_change"
    TRACK_COMPLETE = "track_complete"
    TRACK_SKIP = "track_skip"
    PAUSE = "pause"
    RESUME = "resume"
    VOLUME_CHANGE = "volume_change"
    DEVICE_CHANGE = "device_change"


@dataclass(frozen=True)
class Event:
    type: EventType
    timestamp: float
    previous: PlaybackState | None
    current: PlaybackState


# ── Diffing ──

def track_changed(prev: PlaybackState, curr: PlaybackState) -> bool:
    if prev.track is None and curr.track is None:
        return False
    if prev.track is None or curr.track is None:
        return True
    return prev.track.uri != curr.track.uri


def was_completed(state: PlaybackState) -> bool:
    if state.track is None or state.track.duration_ms <= 0:
        return False
    return state.progress_ms >= state.track.duration_ms * COMPLETE_THRESHOLD


def device_changed(prev: PlaybackState, curr: PlaybackState) -> bool:
    if prev.device is None and curr.device is None:
        return False
    if prev.device is None or curr.device is None:
        return True
    return prev.device.id != curr.device.id


def diff_states(prev: PlaybackState | None, curr: PlaybackState | None,
                now: float | None = None) -> list[Event]:
    """Events implied by going from *prev* to *curr* (in emission order)."""
    if curr is None:
        return []
    now = time.time() if now is None else now

    if prev is None:
        if curr.has_track:
            return [Event(EventType.TRACK_CHANGE, now, None, curr)]
        return []

    events = []

    def emit(event_type):
        events.append(Event(event_type, now, prev, curr))

    if track_changed(prev, curr):
        if not prev.has_track:
            emit(EventType.TRACK_CHANGE)
        elif was_completed(prev):
            emit(EventType.TRACK_COMPLETE)
        else:
            emit(EventType.TRACK_SKIP)

    if prev.is_playing and not curr.is_playing:
        emit(EventType.PAUSE)
    elif not prev.is_playing and curr.is_playing:
        emit(EventType.RESUME)

    if prev.volume != curr.volume:
        emit(EventType.VOLUME_CHANGE)

    if device_changed(prev, curr):
        emit(EventType.DEVICE_CHANGE)

    return events


# ── Bounded queue ──

class EventQueue:
    """Fixed-capacity FIFO with a non-blocking, drop-newest put."""

    def __init__(self, maxsize: int = DEFAULT_QUEUE_SIZE):
        if maxsize < 1:
            raise ValueError("maxsize must be at least 1")
        self.maxsize = maxsize
        self.dropped = 0
        self._items: deque[Event] = deque()
        self._ready = asyncio.Event()
        self._closed = False

    def __len__(self):
        return len(self._items)

    @property
    def closed(self) -> bool:
        return self._closed

    def put_nowait(self, event: Event) -> bool:
        """Enqueue *event*. Returns False if it was dropped."""
        if self._closed:
            return False
        if len(self._items) >= self.maxsize:
            self.dropped += 1
            logger.warning("Event queue full, dropping %s", event.type.value)
            return False
        self._items.append(event)
        self._ready.set()
        return True

    def close(self):
        if self._closed:
            return
        self._closed = True
        self._ready.set()

    async def get(self) -> Event | None:
        """Next event, or None once the queue is closed and drained."""
        while True:
            if self._items:
                event = self._items.popleft()
                if not self._items and not self._closed:
                    self._ready.clear()
                return event
            if self._closed:
                return None
            await self._ready.wait()

    def __aiter__(self):
        return self

    async def __anext__(self) -> Event:
        event = await self.get()
        if event is None:
            raise StopAsyncIteration
        return event


# ── Poll loop ──

class Watcher:
    def __init__(self, player, interval: float | None = None,
                 maxsize: int = DEFAULT_QUEUE_SIZE):
        """*interval* is in seconds; tail.interval in the config is in ms."""
        if interval is None:
            interval = cfg("tail", "interval", default=DEFAULT_INTERVAL * 1000) / 1000
        if interval <= 0:
            interval = DEFAULT_INTERVAL
        self.player = player
        self.interval = interval
        self.events = EventQueue(maxsize)
        self._stop = asyncio.Event()

    def stop(self):
        self._stop.set()

    async def _poll(self) -> PlaybackState | None:
        try:
            return await self.player.get_state()
        except DuetError as e:
            logger.debug("Poll failed: %s", e)
            return None

    async def run(self):
        """Poll until stop() or cancellation; always closes the queue."""
        try:
            prev = await self._poll()
            while not self._stop.is_set():
                try:
                    await asyncio.wait_for(self._stop.wait(), timeout=self.interval)
                    break
                except asyncio.TimeoutError:
                    pass
                curr = await self._poll()
                if curr is None:
                    continue
                if self._stop.is_set():
                    break
                for event in diff_states(prev, curr):
                    self.events.put_nowait(event)
                prev = curr
        finally:
            self.events.close()
            logger.debug("Watcher stopped (%d event(s) dropped)", self.events.dropped)

    def __aiter__(self):
        return self.events.__aiter__()
