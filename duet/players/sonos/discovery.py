# Duet
# Copyright (C) 2026 Duet contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""
SSDP discovery of Sonos ZonePlayers with a two-level cache.

Lookup order for discover():
  1. in-memory cache (entries younger than the TTL)
  2. on-disk JSON cache  (~/.cache/duet/sonos-devices.json, same TTL)
  3. SSDP M-SEARCH on the LAN

discover(fresh=True) skips both caches.  Each Discovery instance owns its
cache; nothing here is module-global.
"""

import asyncio
import json
import logging
import os
import tempfile
import time
from dataclasses import asdict, dataclass
from urllib.parse import urlparse

from ...lib.config import cache_dir, cfg
from ...lib.errors import NetworkError
from ...lib.models import Device, DeviceType, Platform

log = logging.getLogger('duet-sonos-discovery')

SSDP_ADDR = ("239.255.255.250", 1900)
SONOS_URN = "urn:schemas-upnp-org:device:ZonePlayer:1"
DEFAULT_PORT = 1400
DEFAULT_TTL = 5 * 60  # seconds
DEFAULT_TIMEOUT = 3.0

M_SEARCH = (
    "M-SEARCH * HTTP/1.1\r\n"
    f"HOST: {SSDP_ADDR[0]}:{SSDP_ADDR[1]}\r\n"
    'MAN: "ssdp:discover"\r\n'
    "MX: 2\r\n"
    f"ST: {SONOS_URN}\r\n"
    "\r\n"
).encode("utf-8")


@dataclass
class SonosDevice:
    ip: str
    uuid: str
    port: int = DEFAULT_PORT
    model: str = ""
    name: str = ""
    location: str = ""
    last_seen: float = 0.0

    def is_fresh(self, ttl: float = DEFAULT_TTL, now: float | None = None) -> bool:
        now = time.time() if now is None else now
        return now - self.last_seen < ttl

    def to_device(self) -> Device:
        return Device(
            id=self.uuid,
            name=self.name or self.ip,
            type=DeviceType.SPEAKER,
            platform=Platform.SONOS,
            is_active=True,
        )

    @classmethod
    def from_dict(cls, data: dict) -> "SonosDevice":
        return cls(
            ip=data["ip"],
            uuid=data["uuid"],
            port=int(data.get("port") or DEFAULT_PORT),
            model=data.get("model", ""),
            name=data.get("name", ""),
            location=data.get("location", ""),
            last_seen=float(data.get("last_seen") or 0),
        )


def extract_uuid(usn: str) -> str:
    """'uuid:RINCON_xxx::urn:...' → 'RINCON_xxx' ('' if not a uuid USN)."""
    if not usn.startswith("uuid:"):
        return ""
    return usn.split("::", 1)[0][len("uuid:"):]


def parse_ssdp_response(data: bytes, addr) -> SonosDevice | None:
    """Parse one SSDP reply. Returns None for non-Sonos or malformed replies.

    The IP comes from the sender address, not from Location.
    """
    text = data.decode("utf-8", errors="ignore")
    lines = [line.strip() for line in text.split("\r\n") if line.strip()]
    if not lines or not lines[0].upper().startswith("HTTP/"):
        return None
    headers = {}
    for line in lines[1:]:
        if ":" not in line:
            continue
        k, v = line.split(":", 1)
        headers[k.strip().lower()] = v.strip()

    if headers.get("st") != SONOS_URN:
        return None
    uuid = extract_uuid(headers.get("usn", ""))
    if not uuid:
        return None

    location = headers.get("location", "")
    port = DEFAULT_PORT
    if location:
        try:
            port = urlparse(location).port or DEFAULT_PORT
        except ValueError:
            pass

    return SonosDevice(ip=addr[0], port=port, uuid=uuid, location=location)


class _SSDPProtocol(asyncio.DatagramProtocol):
    def __init__(self, on_device):
        self._on_device = on_device

    def datagram_received(self, data, addr):
        device = parse_ssdp_response(data, addr)
        if device is not None:
            self._on_device(device)

    def error_received(self, exc):
        log.debug("SSDP socket error: %s", exc)


def default_cache_path():
    return os.path.join(cache_dir(), "sonos-devices.json")


class Discovery:
    def __init__(self, timeout: float | None = None, ttl: float = DEFAULT_TTL,
                 cache_path: str | None = None):
        if timeout is None:
            timeout = cfg("sonos", "discovery_timeout", default=DEFAULT_TIMEOUT)
        self.timeout = timeout
        self.ttl = ttl
        self.cache_path = cache_path or default_cache_path()
        self._devices: dict[str, SonosDevice] = {}
        self._aliases: dict[str, str] = {}
        self._lock = asyncio.Lock()

    # ── Public API ──

    async def discover(self, fresh: bool = False) -> list[SonosDevice]:
        async with self._lock:
            if not fresh:
                cached = self.cached_devices()
                if cached:
                    return cached
                from_file = self._load_cache()
                if from_file:
                    return from_file
            devices = await self._discover_ssdp()
            self._save_cache(devices)
            return devices

    def set_alias(self, alias: str, target: str):
        """Map *alias* to a device UUID, name or IP."""
        self._aliases[alias.lower()] = target

    def get_device(self, identifier: str) -> SonosDevice | None:
        """Look up a fresh cached device by UUID, name, IP or alias."""
        identifier = self._aliases.get(identifier.lower(), identifier)
        dev = self._devices.get(identifier)
        if dev is not None and dev.is_fresh(self.ttl):
            return dev
        for dev in self._devices.values():
            if not dev.is_fresh(self.ttl):
                continue
            if dev.name.lower() == identifier.lower() or dev.ip == identifier:
                return dev
        return None

    def cached_devices(self) -> list[SonosDevice]:
        now = time.time()
        return [d for d in self._devices.values() if d.is_fresh(self.ttl, now)]

    def remember(self, device: SonosDevice):
        """Insert or refresh a device in the memory cache."""
        self._devices[device.uuid] = device

    # ── SSDP ──

    async def _discover_ssdp(self) -> list[SonosDevice]:
        loop = asyncio.get_running_loop()
        found: dict[str, SonosDevice] = {}

        def on_device(device):
            if device.uuid in found:
                return
            device.last_seen = time.time()
            found[device.uuid] = device

        log.debug("Sending SSDP M-SEARCH (timeout %.1fs)", self.timeout)
        try:
            transport, _ = await loop.create_datagram_endpoint(
                lambda: _SSDPProtocol(on_device), local_addr=("0.0.0.0", 0))
        except OSError as e:
            raise NetworkError(f"cannot open SSDP socket: {e}") from e
        try:
            transport.sendto(M_SEARCH, SSDP_ADDR)
            await asyncio.sleep(self.timeout)
        finally:
            transport.close()

        for device in found.values():
            self._devices[device.uuid] = device
        log.info("SSDP discovery found %d Sonos device(s)", len(found))
        return list(found.values())

    # ── Disk cache ──

    def _load_cache(self) -> list[SonosDevice]:
        try:
            with open(self.cache_path) as f:
                data = json.load(f)
        except FileNotFoundError:
            return []
        except (OSError, ValueError) as e:
            log.warning("Ignoring unreadable device cache %s: %s", self.cache_path, e)
            return []

        try:
            cached_at = float(data.get("cached_at") or 0)
            devices = [SonosDevice.from_dict(d) for d in data.get("devices") or []]
        except (KeyError, TypeError, ValueError) as e:
            log.warning("Ignoring malformed device cache %s: %s", self.cache_path, e)
            return []

        if time.time() - cached_at >= self.ttl:
            return []
        for dev in devices:
            # A fresh file entry counts as seen when the file was written
            dev.last_seen = max(dev.last_seen, cached_at)
            self._devices[dev.uuid] = dev
        log.debug("Loaded %d device(s) from %s", len(devices), self.cache_path)
        return devices

    def _save_cache(self, devices: list[SonosDevice]):
        payload = {"cached_at": time.time(), "devices": [asdict(d) for d in devices]}
        d = os.path.dirname(self.cache_path) or "."
        try:
            os.makedirs(d, exist_ok=True)
            fd, tmp = tempfile.mkstemp(dir=d, suffix=".tmp")
            with os.fdopen(fd, "w") as f:
                json.dump(payload, f, indent=2)
            os.replace(tmp, self.cache_path)
        except OSError as e:
            log.warning("Could not write device cache %s: %s", self.cache_path, e)
