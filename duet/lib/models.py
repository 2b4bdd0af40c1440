# Duet
# Copyright (C) 2026 Duet contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""
Backend-agnostic domain model.

Every value here is a read-only query result: adapters build fresh
instances on each call and nothing in the core mutates them.  Times are
integer milliseconds, matching what both backends report.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class Platform(str, Enum):
    SPOTIFY = "spotify"
    SONOS = "sonos"


class DeviceType(str, Enum):
    SPEAKER = "speaker"
    COMPUTER = "computer"
    PHONE = "phone"
    TV = "tv"
    SOUNDBAR = "soundbar"
    OTHER = "other"


@dataclass(frozen=True)
class Track:
    id: str
    uri: str
    title: str
    artist: str = ""
    artists: tuple[str, ...] = ()
    album: str = ""
    duration_ms: int = 0
    source: Platform = Platform.SPOTIFY

    def __post_init__(self):
        if self.duration_ms < 0:
            raise ValueError("duration_ms must be non-negative")
        # Accept any iterable for artists but always store a tuple
        if not isinstance(self.artists, tuple):
            object.__setattr__(self, "artists", tuple(self.artists))


@dataclass(frozen=True)
class Device:
    id: str
    name: str
    type: DeviceType = DeviceType.OTHER
    platform: Platform = Platform.SPOTIFY
    is_active: bool = False
    account: str | None = None


@dataclass(frozen=True)
class PlaybackState:
    """Point-in-time snapshot of a player.

    ``progress_ms`` may run past ``track.duration_ms`` because of polling
    skew; use :meth:`progress_percent` rather than dividing by hand.
    """

    track: Track | None = None
    device: Device | None = None
    account: str | None = None
    is_playing: bool = False
    progress_ms: int = 0
    volume: int = 0

    @property
    def has_track(self) -> bool:
        return self.track is not None

    def progress_percent(self) -> float:
        """Playback progress as 0-100, clamped."""
        if self.track is None or self.track.duration_ms <= 0:
            return 0.0
        pct = self.progress_ms / self.track.duration_ms * 100
        return max(0.0, min(100.0, pct))


@dataclass(frozen=True)
class Queue:
    tracks: tuple[Track, ...] = field(default_factory=tuple)
    current_index: int = 0

    def __post_init__(self):
        if not isinstance(self.tracks, tuple):
            object.__setattr__(self, "tracks", tuple(self.tracks))

    def __len__(self):
        return len(self.tracks)

    @property
    def is_empty(self) -> bool:
        return not self.tracks

    @property
    def current(self) -> Track | None:
        """The track under the cursor, or None if the cursor is out of range."""
        if 0 <= self.current_index < len(self.tracks):
            return self.tracks[self.current_index]
        return None

    @property
    def upcoming(self) -> tuple[Track, ...]:
        if not 0 <= self.current_index < len(self.tracks) - 1:
            return ()
        return self.tracks[self.current_index + 1:]


@dataclass(frozen=True)
class HistoryEntry:
    track: Track
    played_at: datetime | None = None
