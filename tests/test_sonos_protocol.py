"""Tests for SSDP parsing, the discovery cache, SOAP envelopes and DIDL-Lite."""

import json
import time
import xml.etree.ElementTree as ET

import pytest

from duet.lib import config
from duet.lib.errors import ProtocolError, SOAPError
from duet.lib.models import Platform
from duet.players.sonos import metadata
from duet.players.sonos.discovery import (
    M_SEARCH,
    Discovery,
    SonosDevice,
    extract_uuid,
    parse_ssdp_response,
)
from duet.players.sonos.soap import (
    AV_TRANSPORT,
    build_envelope,
    parse_response,
    soap_action_header,
)

SSDP_REPLY = (
    "HTTP/1.1 200 OK\r\n"
    "CACHE-CONTROL: max-age = 1800\r\n"
    "LOCATION: http://10.0.0.5:1400/xml/device_description.xml\r\n"
    "ST: urn:schemas-upnp-org:device:ZonePlayer:1\r\n"
    "USN: uuid:RINCON_123::urn:schemas-upnp-org:device:ZonePlayer:1\r\n"
    "\r\n"
).encode()


class TestSSDP:
    def test_parse_response(self):
        device = parse_ssdp_response(SSDP_REPLY, ("10.0.0.5", 1900))
        assert device.uuid == "RINCON_123"
        assert device.ip == "10.0.0.5"
        assert device.port == 1400

    def test_ip_comes_from_sender(self):
        device = parse_ssdp_response(SSDP_REPLY, ("10.0.0.99", 1900))
        assert device.ip == "10.0.0.99"

    def test_non_sonos_ignored(self):
        reply = SSDP_REPLY.replace(b"ZonePlayer:1\r\nUSN", b"MediaServer:1\r\nUSN")
        assert parse_ssdp_response(reply, ("10.0.0.5", 1900)) is None

    def test_extract_uuid(self):
        assert extract_uuid("uuid:RINCON_1::urn:x") == "RINCON_1"
        assert extract_uuid("RINCON_1") == ""

    def test_m_search(self):
        assert b"MX: 2\r\n" in M_SEARCH
        assert b"ST: urn:schemas-upnp-org:device:ZonePlayer:1" in M_SEARCH


class TestDiscoveryCache:
    async def test_disk_cache_used_when_fresh(self, tmp_path):
        path = tmp_path / "sonos-devices.json"
        path.write_text(json.dumps({
            "cached_at": time.time(),
            "devices": [{"ip": "10.0.0.5", "port": 1400, "uuid": "RINCON_123",
                         "name": "Kitchen", "last_seen": time.time()}],
        }))
        discovery = Discovery(cache_path=str(path))

        async def no_network():
            raise AssertionError("SSDP should not run")

        discovery._discover_ssdp = no_network
        devices = await discovery.discover()
        assert [d.uuid for d in devices] == ["RINCON_123"]
        assert discovery.get_device("kitchen").ip == "10.0.0.5"
        assert discovery.get_device("10.0.0.5").uuid == "RINCON_123"

    async def test_stale_disk_cache_ignored(self, tmp_path):
        path = tmp_path / "sonos-devices.json"
        path.write_text(json.dumps({"cached_at": time.time() - 3600, "devices": [
            {"ip": "10.0.0.5", "uuid": "RINCON_OLD"}]}))
        discovery = Discovery(cache_path=str(path))
        fresh = SonosDevice(ip="10.0.0.6", uuid="RINCON_NEW", last_seen=time.time())

        async def fake_ssdp():
            discovery.remember(fresh)
            return [fresh]

        discovery._discover_ssdp = fake_ssdp
        devices = await discovery.discover()
        assert [d.uuid for d in devices] == ["RINCON_NEW"]
        saved = json.loads(path.read_text())
        assert saved["devices"][0]["uuid"] == "RINCON_NEW"

    async def test_fresh_bypasses_memory(self, tmp_path):
        discovery = Discovery(cache_path=str(tmp_path / "c.json"))
        discovery.remember(SonosDevice(ip="1.1.1.1", uuid="A", last_seen=time.time()))
        calls = []

        async def fake_ssdp():
            calls.append(1)
            return []

        discovery._discover_ssdp = fake_ssdp
        assert len(await discovery.discover()) == 1
        assert calls == []
        await discovery.discover(fresh=True)
        assert calls == [1]

    def test_timeout_from_config(self, tmp_path, monkeypatch):
        assert Discovery(cache_path=str(tmp_path / "c.json")).timeout == 3
        monkeypatch.setenv("DUET_SONOS_DISCOVERY_TIMEOUT", "7")
        config.reload_config()
        assert Discovery(cache_path=str(tmp_path / "c.json")).timeout == 7
        assert Discovery(timeout=1, cache_path=str(tmp_path / "c.json")).timeout == 1

    def test_alias_and_expiry(self, tmp_path):
        discovery = Discovery(cache_path=str(tmp_path / "c.json"))
        discovery.remember(SonosDevice(ip="1.1.1.1", uuid="A", name="Den",
                                       last_seen=time.time()))
        discovery.remember(SonosDevice(ip="1.1.1.2", uuid="B", name="Attic",
                                       last_seen=time.time() - 3600))
        discovery.set_alias("tv", "A")
        assert discovery.get_device("TV").uuid == "A"
        assert discovery.get_device("Attic") is None
        assert [d.uuid for d in discovery.cached_devices()] == ["A"]


class TestSOAP:
    def test_envelope_escapes_arguments(self):
        body = build_envelope(AV_TRANSPORT, "SetAVTransportURI",
                              {"InstanceID": "0", "CurrentURI": "a?b=1&c=<2>"})
        assert "a?b=1&amp;c=&lt;2&gt;" in body
        assert '<u:SetAVTransportURI xmlns:u="urn:schemas-upnp-org:service:AVTransport:1">' in body
        ET.fromstring(body)

    def test_action_header(self):
        assert soap_action_header(AV_TRANSPORT, "Play") == \
            '"urn:schemas-upnp-org:service:AVTransport:1#Play"'

    def test_parse_success(self):
        text = (
            '<s:Envelope xmlns:s="http://schemas.xmlsoap.org/soap/envelope/"><s:Body>'
            '<u:GetVolumeResponse xmlns:u="urn:schemas-upnp-org:service:RenderingControl:1">'
            '<CurrentVolume>42</CurrentVolume></u:GetVolumeResponse></s:Body></s:Envelope>'
        )
        resp = parse_response("GetVolume", 200, text)
        assert resp.findtext("CurrentVolume") == "42"

    def test_parse_fault(self):
        text = (
            '<s:Envelope xmlns:s="http://schemas.xmlsoap.org/soap/envelope/"><s:Body>'
            '<s:Fault><faultcode>s:Client</faultcode><faultstring>UPnPError</faultstring>'
            '<detail><UPnPError xmlns="urn:schemas-upnp-org:control-1-0">'
            '<errorCode>701</errorCode></UPnPError></detail></s:Fault>'
            '</s:Body></s:Envelope>'
        )
        with pytest.raises(SOAPError) as exc:
            parse_response("Next", 500, text)
        assert exc.value.fault
        assert exc.value.error_code == "701"

    def test_http_error_without_body(self):
        with pytest.raises(SOAPError) as exc:
            parse_response("Play", 503, "")
        assert not exc.value.fault
        assert exc.value.status == 503

    def test_malformed_xml(self):
        with pytest.raises(ProtocolError):
            parse_response("Play", 200, "<s:Envelope")


DIDL = (
    '<DIDL-Lite xmlns:dc="http://purl.org/dc/elements/1.1/" '
    'xmlns:upnp="urn:schemas-upnp-org:metadata-1-0/upnp/" '
    'xmlns="urn:schemas-upnp-org:metadata-1-0/DIDL-Lite/">'
    '<item id="-1" parentID="-1"><dc:title>One More Time</dc:title>'
    '<dc:creator>Daft Punk feat. Romanthony</dc:creator>'
    '<upnp:album>Discovery</upnp:album></item></DIDL-Lite>'
)


class TestMetadata:
    def test_fallback_parser_and_artist_split(self):
        blob = "<dc:title>Foo</dc:title><dc:creator>Bar &amp; Baz</dc:creator>"
        track = metadata.parse_track_metadata(blob, "x-file-cifs://nas/foo.mp3")
        assert track.title == "Foo"
        assert list(track.artists) == ["Bar", "Baz"]
        assert track.artist == "Bar & Baz"
        assert track.source is Platform.SONOS

    def test_namespaced_parse(self):
        uri = "x-sonos-spotify:spotify%3atrack%3aabc123?sid=12&flags=8224&sn=1"
        track = metadata.parse_track_metadata(DIDL, uri, duration_ms=320000)
        assert track.title == "One More Time"
        assert track.artists == ("Daft Punk", "Romanthony")
        assert track.album == "Discovery"
        assert track.id == "abc123"
        assert track.duration_ms == 320000
        assert track.source is Platform.SPOTIFY

    def test_escaped_blob(self):
        escaped = DIDL.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")
        assert metadata.parse_track_metadata(escaped).title == "One More Time"

    @pytest.mark.parametrize("blob", ["", "NOT_IMPLEMENTED", "<DIDL-Lite></DIDL-Lite>"])
    def test_no_track(self, blob):
        assert metadata.parse_track_metadata(blob) is None

    def test_split_artists(self):
        assert metadata.split_artists("A, B & C ft. D featuring E") == \
            ("A", "B", "C", "D", "E")
        assert metadata.split_artists("") == ()

    def test_uri_translation(self):
        assert metadata.spotify_to_sonos_uri("spotify:track:XYZ") == \
            "x-sonos-spotify:spotify:track:XYZ?sid=12&flags=8224&sn=1"
        assert metadata.spotify_to_sonos_uri("spotify:album:A1") == \
            "x-rincon-cpcontainer:1004206cspotify:album:A1?sid=12&flags=8224&sn=1"
        assert metadata.spotify_to_sonos_uri("spotify:playlist:P1").startswith(
            "x-rincon-cpcontainer:1006206c")
        assert metadata.to_sonos_uri("http://radio/stream.mp3") == "http://radio/stream.mp3"
        with pytest.raises(ValueError):
            metadata.spotify_to_sonos_uri("http://x")

    @pytest.mark.parametrize("uri", [
        "spotify:user:alice:playlist:37i9",
        "spotify:local:Artist:Album:Title:215",
        "spotify:episode:E1",
    ])
    def test_uncommon_spotify_uris_play_as_items(self, uri):
        assert metadata.spotify_to_sonos_uri(uri) == \
            f"x-sonos-spotify:{uri}?sid=12&flags=8224&sn=1"

    def test_durations(self):
        assert metadata.parse_duration("0:03:25") == 205000
        assert metadata.parse_duration("1:00:00.500") == 3600500
        assert metadata.parse_duration("NOT_IMPLEMENTED") == 0
        assert metadata.format_duration(205000) == "0:03:25"
        assert metadata.format_duration(3_725_000) == "1:02:05"

    def test_source_detection(self):
        assert metadata.is_spotify_source("x-sonos-spotify:spotify:track:1")
        assert not metadata.is_spotify_source("x-rincon-mp3radio://stream")
        assert metadata.extract_spotify_track_id("spotify:track:Zz9") == "Zz9"
