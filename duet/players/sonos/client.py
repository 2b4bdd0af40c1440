# Duet
# Copyright (C) 2026 Duet contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""
SonosClient — typed wrappers around the UPnP actions we use.

Owns a Discovery (device cache), a SOAPClient and a GroupCache.  Every
method takes the target SonosDevice explicitly; the client itself holds
no notion of a "current" speaker.
"""

import html
import logging
from dataclasses import dataclass

from ...lib.errors import ProtocolError
from .discovery import Discovery, SonosDevice
from .groups import Group, GroupCache, parse_zone_group_state
from .soap import (
    AV_TRANSPORT,
    DEVICE_PROPERTIES,
    RENDERING_CONTROL,
    ZONE_GROUP_TOPOLOGY,
    SOAPClient,
)

log = logging.getLogger('duet-sonos')


@dataclass(frozen=True)
class TransportInfo:
    state: str = ""
    status: str = ""
    speed: str = ""


@dataclass(frozen=True)
class PositionInfo:
    track: int = 0
    duration: str = ""
    metadata: str = ""
    uri: str = ""
    rel_time: str = ""


@dataclass(frozen=True)
class MediaInfo:
    nr_tracks: int = 0
    duration: str = ""
    uri: str = ""
    metadata: str = ""


def _int(value, default=0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


class SonosClient:
    def __init__(self, discovery: Discovery | None = None, soap: SOAPClient | None = None,
                 group_cache: GroupCache | None = None):
        self.discovery = discovery or Discovery()
        self.soap = soap or SOAPClient()
        self.group_cache = group_cache or GroupCache()

    async def close(self):
        await self.soap.close()

    async def _av(self, device: SonosDevice, action: str, **args):
        return await self.soap.call(device.ip, device.port, AV_TRANSPORT, action,
                                    {"InstanceID": "0", **args})

    # ── Discovery passthrough ──

    async def discover(self, fresh: bool = False) -> list[SonosDevice]:
        return await self.discovery.discover(fresh=fresh)

    def get_device(self, identifier: str) -> SonosDevice | None:
        return self.discovery.get_device(identifier)

    def set_alias(self, alias: str, target: str):
        self.discovery.set_alias(alias, target)

    # ── Queries ──

    async def get_device_info(self, device: SonosDevice) -> str:
        """Return the room (zone) name of *device*."""
        resp = await self.soap.call(device.ip, device.port, DEVICE_PROPERTIES,
                                    "GetZoneAttributes")
        return resp.findtext("CurrentZoneName") or ""

    async def get_transport_info(self, device: SonosDevice) -> TransportInfo:
        resp = await self._av(device, "GetTransportInfo")
        return TransportInfo(
            state=resp.findtext("CurrentTransportState") or "",
            status=resp.findtext("CurrentTransportStatus") or "",
            speed=resp.findtext("CurrentSpeed") or "",
        )

    async def get_position_info(self, device: SonosDevice) -> PositionInfo:
        resp = await self._av(device, "GetPositionInfo")
        return PositionInfo(
            track=_int(resp.findtext("Track")),
            duration=resp.findtext("TrackDuration") or "",
            metadata=resp.findtext("TrackMetaData") or "",
            uri=resp.findtext("TrackURI") or "",
            rel_time=resp.findtext("RelTime") or "",
        )

    async def get_media_info(self, device: SonosDevice) -> MediaInfo:
        resp = await self._av(device, "GetMediaInfo")
        return MediaInfo(
            nr_tracks=_int(resp.findtext("NrTracks")),
            duration=resp.findtext("MediaDuration") or "",
            uri=resp.findtext("CurrentURI") or "",
            metadata=resp.findtext("CurrentURIMetaData") or "",
        )

    async def get_volume(self, device: SonosDevice) -> int:
        resp = await self.soap.call(device.ip, device.port, RENDERING_CONTROL, "GetVolume",
                                    {"InstanceID": "0", "Channel": "Master"})
        value = resp.findtext("CurrentVolume")
        try:
            return int(value)
        except (TypeError, ValueError) as e:
            raise ProtocolError(f"bad CurrentVolume {value!r}") from e

    async def is_playing(self, device: SonosDevice) -> bool:
        return (await self.get_transport_info(device)).state.upper() == "PLAYING"

    # ── Transport ──

    async def set_volume(self, device: SonosDevice, volume: int):
        volume = max(0, min(100, int(volume)))
        await self.soap.call(device.ip, device.port, RENDERING_CONTROL, "SetVolume",
                             {"InstanceID": "0", "Channel": "Master",
                              "DesiredVolume": str(volume)})

    async def play(self, device: SonosDevice):
        await self._av(device, "Play", Speed="1")

    async def pause(self, device: SonosDevice):
        await self._av(device, "Pause")

    async def next(self, device: SonosDevice):
        await self._av(device, "Next")

    async def previous(self, device: SonosDevice):
        await self._av(device, "Previous")

    async def seek(self, device: SonosDevice, target: str):
        """Seek within the current track; *target* is 'H:MM:SS'."""
        await self._av(device, "Seek", Unit="REL_TIME", Target=target)

    # ── Queue ──

    async def add_uri_to_queue(self, device: SonosDevice, uri: str, metadata: str = ""):
        await self._av(device, "AddURIToQueue",
                       EnqueuedURI=uri,
                       EnqueuedURIMetaData=metadata,
                       DesiredFirstTrackNumberEnqueued="0",
                       EnqueueAsNext="0")

    async def play_uri(self, device: SonosDevice, uri: str, metadata: str = ""):
        """Set the transport URI and start playback."""
        await self._av(device, "SetAVTransportURI", CurrentURI=uri, CurrentURIMetaData=metadata)
        await self.play(device)

    async def clear_queue(self, device: SonosDevice):
        await self._av(device, "RemoveAllTracksFromQueue")

    async def play_from_queue(self, device: SonosDevice):
        await self._av(device, "SetAVTransportURI",
                       CurrentURI=f"x-rincon-queue:{device.uuid}#0", CurrentURIMetaData="")
        await self.play(device)

    # ── Groups ──

    async def get_zone_group_state(self, device: SonosDevice) -> list[Group]:
        resp = await self.soap.call(device.ip, device.port, ZONE_GROUP_TOPOLOGY,
                                    "GetZoneGroupState")
        blob = resp.findtext("ZoneGroupState") or ""
        if blob.lstrip().startswith("&lt;"):
            blob = html.unescape(blob)
        if not blob.strip():
            return []
        return parse_zone_group_state(blob)

    async def list_groups(self, device: SonosDevice) -> list[Group]:
        async with self.group_cache.lock:
            groups = self.group_cache.get()
            if groups is not None:
                return groups
            groups = await self.get_zone_group_state(device)
            self.group_cache.set(groups)
            return groups

    def invalidate_group_cache(self):
        self.group_cache.invalidate()

    async def add_to_group(self, device: SonosDevice, coordinator_uuid: str):
        await self._av(device, "SetAVTransportURI",
                       CurrentURI=f"x-rincon:{coordinator_uuid}", CurrentURIMetaData="")
        self.invalidate_group_cache()
        log.info("%s joined group of %s", device.name or device.ip, coordinator_uuid)

    async def remove_from_group(self, device: SonosDevice):
        await self._av(device, "BecomeCoordinatorOfStandaloneGroup")
        self.invalidate_group_cache()
        log.info("%s is now standalone", device.name or device.ip)
