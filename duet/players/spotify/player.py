# Duet
# Copyright (C) 2026 Duet contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""
SpotifyPlayer — PlayerBase over the Spotify Web API.

Two REST statuses carry meaning on playback-control calls:
  404 → NoActiveDeviceError   (nothing to control; see PlaybackFallback)
  403 on resume → already playing, treated as success
"""

import logging
from datetime import datetime

from ...lib.errors import AlreadyInStateError, NoActiveDeviceError, SpotifyAPIError
from ...lib.models import (
    Device,
    DeviceType,
    HistoryEntry,
    PlaybackState,
    Platform,
    Queue,
    Track,
)
from ...lib.player_base import PlayerBase, check_volume
from .client import SpotifyClient

log = logging.getLogger('duet-spotify')

DEVICE_TYPES = {
    "computer": DeviceType.COMPUTER,
    "smartphone": DeviceType.PHONE,
    "speaker": DeviceType.SPEAKER,
    "tv": DeviceType.TV,
    "avr": DeviceType.SOUNDBAR,
    "stb": DeviceType.TV,
    "castaudio": DeviceType.SPEAKER,
    "castvideo": DeviceType.TV,
}

CONTAINER_TYPES = ("album", "playlist", "artist", "show")


# ── JSON → domain mapping ──

def convert_track(item: dict | None) -> Track | None:
    if not item:
        return None
    artists = tuple(a.get("name", "") for a in item.get("artists") or [])
    return Track(
        id=item.get("id") or "",
        uri=item.get("uri") or "",
        title=item.get("name") or "",
        artist=artists[0] if artists else "",
        artists=artists,
        album=(item.get("album") or {}).get("name", ""),
        duration_ms=max(0, int(item.get("duration_ms") or 0)),
        source=Platform.SPOTIFY,
    )


def convert_device_type(value: str | None) -> DeviceType:
    return DEVICE_TYPES.get((value or "").lower(), DeviceType.OTHER)


def convert_device(item: dict | None, account: str | None = None) -> Device | None:
    if not item:
        return None
    return Device(
        id=item.get("id") or "",
        name=item.get("name") or "",
        type=convert_device_type(item.get("type")),
        platform=Platform.SPOTIFY,
        is_active=bool(item.get("is_active")),
        account=account,
    )


def parse_played_at(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def uri_kind(uri: str) -> str:
    """'spotify:album:xyz' → 'album'."""
    parts = uri.split(":")
    return parts[1] if len(parts) >= 3 and parts[0] == "spotify" else ""


class SpotifyPlayer(PlayerBase):
    platform = Platform.SPOTIFY

    def __init__(self, client: SpotifyClient, device_id: str | None = None,
                 account: str | None = None):
        self.client = client
        self.device_id = device_id
        self.account = account

    async def _control(self, method, *args, resume=False, **kwargs):
        try:
            return await method(*args, **kwargs)
        except SpotifyAPIError as e:
            if e.status == 404:
                raise NoActiveDeviceError(e.message or "no active device") from e
            if resume and e.status == 403:
                raise AlreadyInStateError("already playing") from e
            raise

    # ── Transport ──

    async def play(self):
        try:
            await self._control(self.client.play, device_id=self.device_id, resume=True)
        except AlreadyInStateError:
            log.debug("Resume ignored: already playing")

    async def pause(self):
        await self._control(self.client.pause, device_id=self.device_id)

    async def next(self):
        await self._control(self.client.next, device_id=self.device_id)

    async def prev(self):
        await self._control(self.client.previous, device_id=self.device_id)

    async def seek(self, position_ms):
        if position_ms < 0:
            raise ValueError("position_ms must be non-negative")
        await self._control(self.client.seek, int(position_ms), device_id=self.device_id)

    async def set_volume(self, percent):
        percent = check_volume(percent)
        await self._control(self.client.set_volume, percent, device_id=self.device_id)

    async def play_uri(self, uri: str):
        """Play a track (``uris``) or a container (``context_uri``)."""
        if uri_kind(uri) in CONTAINER_TYPES:
            await self._control(self.client.play, device_id=self.device_id, context_uri=uri)
        else:
            await self._control(self.client.play, device_id=self.device_id, uris=[uri])

    async def play_context(self, context_uri: str, offset: int | str | None = None):
        await self._control(self.client.play, device_id=self.device_id,
                            context_uri=context_uri, offset=offset)

    async def transfer_playback(self, device_id: str, play: bool = False):
        await self.client.transfer_playback(device_id, play=play)
        self.device_id = device_id
        log.info("Playback transferred to %s", device_id)

    # ── Queries ──

    async def get_devices(self) -> list[Device]:
        return [convert_device(d, self.account) for d in await self.client.get_devices()]

    async def get_state(self) -> PlaybackState:
        data = await self.client.get_playback_state()
        if not data:
            return PlaybackState(account=self.account)
        device = convert_device(data.get("device"), self.account)
        return PlaybackState(
            track=convert_track(data.get("item")),
            device=device,
            account=self.account,
            is_playing=bool(data.get("is_playing")),
            progress_ms=max(0, int(data.get("progress_ms") or 0)),
            volume=int((data.get("device") or {}).get("volume_percent") or 0),
        )

    async def get_queue(self) -> Queue:
        data = await self._control(self.client.get_queue) or {}
        tracks = []
        current = convert_track(data.get("currently_playing"))
        if current is not None:
            tracks.append(current)
        for item in data.get("queue") or []:
            track = convert_track(item)
            if track is not None:
                tracks.append(track)
        return Queue(tracks=tuple(tracks), current_index=0)

    async def get_recently_played(self, limit=20) -> list[HistoryEntry]:
        data = await self.client.get_recently_played(limit) or {}
        entries = []
        for item in data.get("items") or []:
            track = convert_track(item.get("track"))
            if track is None:
                continue
            entries.append(HistoryEntry(track=track,
                                        played_at=parse_played_at(item.get("played_at"))))
        return entries

    async def add_to_queue(self, uri):
        await self._control(self.client.add_to_queue, uri, device_id=self.device_id)
