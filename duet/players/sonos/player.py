# Duet
# Copyright (C) 2026 Duet contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""
SonosPlayer — PlayerBase over a single ZonePlayer.

Queue introspection and play history are not available over the UPnP
calls we use; those raise UnsupportedOperationError (inherited default).
"""

import asyncio
import logging

from ...lib.errors import DuetError
from ...lib.models import PlaybackState, Platform
from ...lib.player_base import PlayerBase, check_volume
from .client import SonosClient
from .discovery import SonosDevice
from .metadata import (
    format_duration,
    is_container_uri,
    parse_duration,
    parse_track_metadata,
    to_sonos_uri,
)

log = logging.getLogger('duet-sonos')


class SonosPlayer(PlayerBase):
    platform = Platform.SONOS

    def __init__(self, client: SonosClient, device: SonosDevice):
        self.client = client
        self.device = device

    # ── Transport ──

    async def play(self):
        await self.client.play(self.device)

    async def pause(self):
        await self.client.pause(self.device)

    async def next(self):
        await self.client.next(self.device)

    async def prev(self):
        await self.client.previous(self.device)

    async def seek(self, position_ms):
        if position_ms < 0:
            raise ValueError("position_ms must be non-negative")
        await self.client.seek(self.device, format_duration(position_ms))

    async def set_volume(self, percent):
        await self.client.set_volume(self.device, check_volume(percent))

    async def play_uri(self, uri: str):
        """Play a Spotify or native URI.

        Containers (album/playlist/artist) only play through the queue:
        clear, enqueue, then play from queue.
        """
        sonos_uri = to_sonos_uri(uri)
        if not is_container_uri(sonos_uri):
            await self.client.play_uri(self.device, sonos_uri)
            return
        try:
            await self.client.clear_queue(self.device)
        except DuetError as e:
            log.warning("Could not clear queue on %s: %s", self.device.name or self.device.ip, e)
        await self.client.add_uri_to_queue(self.device, sonos_uri)
        await self.client.play_from_queue(self.device)

    # ── Queries ──

    async def get_state(self) -> PlaybackState:
        transport, position, volume = await asyncio.gather(
            self.client.get_transport_info(self.device),
            self.client.get_position_info(self.device),
            self.client.get_volume(self.device),
        )
        track = parse_track_metadata(position.metadata, position.uri,
                                     duration_ms=parse_duration(position.duration))
        return PlaybackState(
            track=track,
            device=self.device.to_device(),
            is_playing=transport.state == "PLAYING",
            progress_ms=parse_duration(position.rel_time),
            volume=volume,
        )

    # ── Queue ──

    async def add_to_queue(self, uri):
        await self.client.add_uri_to_queue(self.device, to_sonos_uri(uri))
