# Duet
# Copyright (C) 2026 Duet contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""
PlayerBase — the capability contract both backends implement.

Callers hold a PlayerBase and never reach for backend-specific fields.
Every method is a coroutine, so a caller bounds it with a timeout or
cancels the task; implementations must tolerate concurrent calls on the
same instance (the watcher polls get_state() while commands run).

Subclass contract:

    class MyPlayer(PlayerBase):
        platform = Platform.SONOS

        async def play(self) -> None: ...
        async def pause(self) -> None: ...
        async def next(self) -> None: ...
        async def prev(self) -> None: ...
        async def seek(self, position_ms: int) -> None: ...
        async def set_volume(self, percent: int) -> None: ...
        async def get_state(self) -> PlaybackState: ...
        async def get_queue(self) -> Queue: ...
        async def get_recently_played(self, limit: int) -> list[HistoryEntry]: ...
        async def add_to_queue(self, uri: str) -> None: ...

Operations a backend cannot perform raise UnsupportedOperationError
instead of silently succeeding.
"""

from abc import ABC, abstractmethod

from .errors import UnsupportedOperationError
from .models import HistoryEntry, PlaybackState, Platform, Queue


def check_volume(percent: int) -> int:
    """Validate a volume percentage, returning it as an int."""
    percent = int(percent)
    if not 0 <= percent <= 100:
        raise ValueError(f"volume must be between 0 and 100, got {percent}")
    return percent


class PlayerBase(ABC):
    """Interface every playback backend must implement."""

    platform: Platform

    # ── Transport ──

    @abstractmethod
    async def play(self) -> None:
        """Start or resume playback."""

    @abstractmethod
    async def pause(self) -> None: ...

    @abstractmethod
    async def next(self) -> None: ...

    @abstractmethod
    async def prev(self) -> None: ...

    @abstractmethod
    async def seek(self, position_ms: int) -> None: ...

    @abstractmethod
    async def set_volume(self, percent: int) -> None:
        """Set volume (0-100). Out-of-range values raise ValueError."""

    # ── Queries ──

    @abstractmethod
    async def get_state(self) -> PlaybackState: ...

    async def get_queue(self) -> Queue:
        raise UnsupportedOperationError(
            f"{self.platform.value} does not support queue introspection")

    async def get_recently_played(self, limit: int = 20) -> list[HistoryEntry]:
        raise UnsupportedOperationError(
            f"{self.platform.value} does not keep a play history")

    # ── Queue ──

    @abstractmethod
    async def add_to_queue(self, uri: str) -> None: ...
