# Duet
# Copyright (C) 2026 Duet contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""
Device resolution across both backends, and the no-active-device fallback.

Resolution order for a free-text identifier:

  Spotify devices:  exact id → case-insensitive name → substring
  Sonos devices:    exact uuid → case-insensitive name → substring
                    (zone-group members, or raw discovery results if the
                     topology fetch fails)

First match wins; ties go to list order.

PlaybackFallback wraps a Spotify command: on NoActiveDeviceError it picks
a target (caller-supplied, configured default, or interactive picker),
transfers playback there and retries the command exactly once.
"""

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Awaitable, Callable, ClassVar

from .config import cfg
from .errors import (
    DeviceNotFoundError,
    DuetError,
    NoActiveDeviceError,
    UnsupportedOperationError,
)
from .models import Device, Platform

if TYPE_CHECKING:
    from ..players.sonos.discovery import SonosDevice

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SpotifyResolved:
    platform: ClassVar[Platform] = Platform.SPOTIFY
    name: str
    device_id: str


@dataclass(frozen=True)
class SonosResolved:
    platform: ClassVar[Platform] = Platform.SONOS
    name: str
    device: "SonosDevice"


ResolvedDevice = SpotifyResolved | SonosResolved


def match_device(identifier: str, candidates, key_id, key_name):
    """Return the first candidate matching *identifier*, or None.

    Three passes: exact id, case-insensitive exact name, case-insensitive
    substring of the name.
    """
    for c in candidates:
        if key_id(c) == identifier:
            return c
    lowered = identifier.lower()
    for c in candidates:
        if key_name(c).lower() == lowered:
            return c
    for c in candidates:
        if lowered in key_name(c).lower():
            return c
    return None


class DeviceResolver:
    def __init__(self, spotify=None, sonos=None):
        """*spotify* is a SpotifyPlayer, *sonos* a SonosClient; either may be None."""
        self.spotify = spotify
        self.sonos = sonos

    async def resolve(self, identifier: str) -> ResolvedDevice:
        if not identifier:
            raise DeviceNotFoundError("empty device identifier")

        if self.spotify is not None:
            try:
                devices = await self.spotify.get_devices()
            except DuetError as e:
                logger.warning("Could not list Spotify devices: %s", e)
                devices = []
            found = match_device(identifier, devices, lambda d: d.id, lambda d: d.name)
            if found is not None:
                return SpotifyResolved(name=found.name, device_id=found.id)

        if self.sonos is not None:
            found = match_device(identifier, await self._sonos_candidates(),
                                 lambda d: d.uuid, lambda d: d.name or d.ip)
            if found is not None:
                return SonosResolved(name=found.name or found.ip, device=found)

        raise DeviceNotFoundError(f"no device matches {identifier!r}")

    async def _sonos_candidates(self):
        try:
            devices = await self.sonos.discover()
        except DuetError as e:
            logger.warning("Sonos discovery failed: %s", e)
            return []
        if not devices:
            return []
        try:
            groups = await self.sonos.list_groups(devices[0])
        except DuetError as e:
            logger.debug("Zone group fetch failed, using raw devices: %s", e)
            return devices
        members = [m for g in groups for m in g.members]
        return members or devices

    async def default_sonos_device(self) -> SonosResolved:
        """Pick a Sonos speaker when the caller named none.

        The coordinator of the configured ``sonos.default_room`` wins, then
        the first group's coordinator, then the first discovered device.
        """
        if self.sonos is None:
            raise DeviceNotFoundError("Sonos is not available")
        devices = await self.sonos.discover()
        if not devices:
            raise DeviceNotFoundError("no Sonos devices found")
        try:
            groups = await self.sonos.list_groups(devices[0])
        except DuetError as e:
            logger.debug("Zone group fetch failed, using first device: %s", e)
            groups = []

        room = cfg("sonos", "default_room")
        if room:
            for g in groups:
                if g.coordinator is not None and g.coordinator.name.lower() == room.lower():
                    return SonosResolved(name=g.coordinator.name, device=g.coordinator)
            logger.warning("Default room %r not found, using first speaker", room)
        for g in groups:
            if g.coordinator is not None:
                return SonosResolved(name=g.coordinator.name or g.coordinator.ip,
                                     device=g.coordinator)
        first = devices[0]
        return SonosResolved(name=first.name or first.ip, device=first)


def open_player(resolved: ResolvedDevice, spotify_client=None, sonos_client=None):
    """Wrap a resolved device in the matching PlayerBase implementation."""
    if isinstance(resolved, SonosResolved):
        from ..players.sonos.player import SonosPlayer
        if sonos_client is None:
            raise ValueError("a SonosClient is required for a Sonos device")
        return SonosPlayer(sonos_client, resolved.device)
    from ..players.spotify.player import SpotifyPlayer
    if spotify_client is None:
        raise ValueError("a SpotifyClient is required for a Spotify device")
    return SpotifyPlayer(spotify_client, device_id=resolved.device_id)


Picker = Callable[[list[Device]], Awaitable[str | None]]


class PlaybackFallback:
    """Retry a Spotify command once on a fallback device."""

    def __init__(self, player, resolver: DeviceResolver,
                 default_device: str | None = None, picker: Picker | None = None):
        self.player = player
        self.resolver = resolver
        self.default_device = default_device or cfg("defaults", "device")
        self.picker = picker

    async def run(self, command: Callable[[], Awaitable], target: str | None = None):
        """Run *command*; on NoActiveDeviceError transfer and retry once."""
        try:
            return await command()
        except NoActiveDeviceError:
            device_id = await self._pick_target(target)
            if device_id is None:
                raise
            logger.info("No active device, transferring playback to %s", device_id)
            await self.player.transfer_playback(device_id, play=False)
        return await command()

    async def _pick_target(self, target: str | None) -> str | None:
        identifier = target or self.default_device
        if identifier:
            resolved = await self.resolver.resolve(identifier)
            if isinstance(resolved, SonosResolved):
                raise UnsupportedOperationError(
                    f"cannot transfer Spotify playback to Sonos device {resolved.name!r}")
            return resolved.device_id
        if self.picker is None:
            return None
        devices = await self.player.get_devices()
        if not devices:
            return None
        return await self.picker(devices)
