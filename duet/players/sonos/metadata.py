# Duet
# Copyright (C) 2026 Duet contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""
DIDL-Lite parsing and Spotify → Sonos URI translation.

Track metadata arrives as a DIDL-Lite blob, sometimes entity-escaped a
second time.  We try a proper namespace-aware parse first and fall back
to a prefix-agnostic regex scrape for players that omit or vary the
namespace declarations.
"""

import html
import re
import xml.etree.ElementTree as ET

from ...lib.models import Platform, Track

NS = {
    "didl": "urn:schemas-upnp-org:metadata-1-0/DIDL-Lite/",
    "dc": "http://purl.org/dc/elements/1.1/",
    "upnp": "urn:schemas-upnp-org:metadata-1-0/upnp/",
}

ARTIST_SEPARATORS = (" & ", ", ", " feat. ", " ft. ", " featuring ")

SPOTIFY_SUFFIX = "?sid=12&flags=8224&sn=1"
CONTAINER_PREFIXES = {
    "album": "1004206c",
    "playlist": "1006206c",
    "artist": "1006206c",
}


# ── Source detection ──

def is_spotify_source(uri: str) -> bool:
    return "spotify" in (uri or "").lower()


def detect_source(uri: str) -> Platform:
    return Platform.SPOTIFY if is_spotify_source(uri) else Platform.SONOS


def extract_spotify_track_id(uri: str) -> str:
    """Pull the track id out of a Spotify or Sonos-wrapped Spotify URI."""
    uri = html.unescape(uri or "")
    match = re.search(r"spotify(?::|%3a)track(?::|%3a)([A-Za-z0-9]+)", uri, re.IGNORECASE)
    return match.group(1) if match else ""


# ── URI translation ──

def spotify_to_sonos_uri(uri: str) -> str:
    """spotify:<kind>:... → a URI a ZonePlayer can enqueue."""
    if not uri.startswith("spotify:"):
        raise ValueError(f"not a Spotify URI: {uri!r}")
    for kind, prefix in CONTAINER_PREFIXES.items():
        if uri.startswith(f"spotify:{kind}:"):
            return f"x-rincon-cpcontainer:{prefix}{uri}{SPOTIFY_SUFFIX}"
    # Tracks, legacy user playlists and local files play as a single item
    return f"x-sonos-spotify:{uri}{SPOTIFY_SUFFIX}"


def is_container_uri(uri: str) -> bool:
    return uri.startswith("x-rincon-cpcontainer:")


def to_sonos_uri(uri: str) -> str:
    """Translate Spotify URIs; pass anything else through unchanged."""
    return spotify_to_sonos_uri(uri) if uri.startswith("spotify:") else uri


# ── DIDL-Lite ──

def split_artists(creator: str) -> tuple[str, ...]:
    if not creator:
        return ()
    parts = [creator]
    for sep in ARTIST_SEPARATORS:
        parts = [p for chunk in parts for p in chunk.split(sep)]
    return tuple(p.strip() for p in parts if p.strip())


def _extract_element(text: str, local_name: str) -> str:
    match = re.search(
        rf"<(?:\w+:)?{local_name}\b[^>]*>([^<]*)</(?:\w+:)?{local_name}>", text)
    return html.unescape(match.group(1)).strip() if match else ""


def _parse_namespaced(text: str):
    try:
        root = ET.fromstring(text)
    except ET.ParseError:
        return None
    item = root.find("didl:item", NS)
    if item is None:
        return None
    title = item.findtext("dc:title", "", NS)
    if not title:
        return None
    return (title, item.findtext("dc:creator", "", NS),
            item.findtext("upnp:album", "", NS))


def parse_track_metadata(metadata: str, uri: str = "", duration_ms: int = 0) -> Track | None:
    """Build a Track from a DIDL-Lite blob, or None if it has no title."""
    if not metadata or metadata == "NOT_IMPLEMENTED":
        return None
    text = metadata.strip()
    if text.startswith("&lt;"):
        text = html.unescape(text)

    fields = _parse_namespaced(text)
    if fields is None:
        title = _extract_element(text, "title")
        if not title:
            return None
        fields = (title, _extract_element(text, "creator"), _extract_element(text, "album"))

    title, creator, album = fields
    artists = split_artists(creator)
    return Track(
        id=extract_spotify_track_id(uri) or uri,
        uri=uri,
        title=title,
        artist=creator,
        artists=artists,
        album=album,
        duration_ms=duration_ms,
        source=detect_source(uri),
    )


# ── Time strings ──

def parse_duration(value: str) -> int:
    """'H:MM:SS' (optionally with fractional seconds) → milliseconds."""
    if not value or value == "NOT_IMPLEMENTED":
        return 0
    parts = value.split(":")
    if len(parts) != 3:
        return 0
    try:
        hours, minutes = int(parts[0]), int(parts[1])
        seconds = float(parts[2])
    except ValueError:
        return 0
    return int((hours * 3600 + minutes * 60 + seconds) * 1000)


def format_duration(ms: int) -> str:
    """Milliseconds → 'H:MM:SS' as AVTransport Seek expects."""
    total = max(0, int(ms)) // 1000
    return f"{total // 3600}:{total % 3600 // 60:02d}:{total % 60:02d}"
