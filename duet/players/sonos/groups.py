# Duet
# Copyright (C) 2026 Duet contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""Zone-group topology parsing and the short-lived group cache."""

import asyncio
import time
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from urllib.parse import urlparse

from ...lib.errors import ProtocolError
from .discovery import DEFAULT_PORT, SonosDevice

GROUP_CACHE_TTL = 3.0  # seconds


@dataclass
class Group:
    id: str
    coordinator: SonosDevice | None = None
    members: list[SonosDevice] = field(default_factory=list)
    name: str = ""


def _member_device(elem, now: float) -> SonosDevice:
    location = elem.get("Location", "")
    ip, port = "", DEFAULT_PORT
    if location:
        try:
            parsed = urlparse(location)
            ip = parsed.hostname or ""
            port = parsed.port or DEFAULT_PORT
        except ValueError:
            pass
    return SonosDevice(
        ip=ip,
        port=port,
        uuid=elem.get("UUID", ""),
        name=elem.get("ZoneName", ""),
        location=location,
        last_seen=now,
    )


def parse_zone_group_state(xml_text: str) -> list[Group]:
    """Parse a ZoneGroupState blob into groups.

    Accepts both ``<ZoneGroups>`` and ``<ZoneGroupState><ZoneGroups>`` roots.
    """
    try:
        root = ET.fromstring(xml_text)
    except ET.ParseError as e:
        raise ProtocolError(f"malformed zone group state: {e}") from e

    now = time.time()
    groups = []
    for zg in root.iter("ZoneGroup"):
        group = Group(id=zg.get("ID", ""))
        coordinator_uuid = zg.get("Coordinator", "")
        for m in zg.findall("ZoneGroupMember"):
            dev = _member_device(m, now)
            if dev.uuid == coordinator_uuid:
                group.coordinator = dev
                group.name = dev.name
            group.members.append(dev)
        groups.append(group)
    return groups


class GroupCache:
    """Holds the last group listing for ``ttl`` seconds."""

    def __init__(self, ttl: float = GROUP_CACHE_TTL):
        self.ttl = ttl
        self.lock = asyncio.Lock()
        self._groups: list[Group] | None = None
        self._fetched_at = 0.0

    def get(self, now: float | None = None) -> list[Group] | None:
        if self._groups is None:
            return None
        now = time.monotonic() if now is None else now
        if now - self._fetched_at >= self.ttl:
            return None
        return self._groups

    def set(self, groups: list[Group], now: float | None = None):
        self._groups = groups
        self._fetched_at = time.monotonic() if now is None else now

    def invalidate(self):
        self._groups = None
        self._fetched_at = 0.0
