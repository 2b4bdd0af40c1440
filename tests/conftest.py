"""Shared fixtures."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from duet.lib import config
from duet.lib.models import Device, DeviceType, PlaybackState, Platform, Track
from duet.players.sonos.discovery import SonosDevice


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Keep every test away from the real ~/.config and ~/.cache."""
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_CACHE_HOME", str(tmp_path / "cache"))
    monkeypatch.delenv("DUET_CONFIG", raising=False)
    for var in config._ENV_OVERRIDES:
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)
    config._config = None
    yield
    config._config = None


@pytest.fixture
def make_track():
    def _make(uri="spotify:track:abc", title="Song", duration_ms=200_000, **kw):
        return Track(id=uri.rsplit(":", 1)[-1], uri=uri, title=title,
                     duration_ms=duration_ms, **kw)
    return _make


@pytest.fixture
def make_state(make_track):
    def _make(uri="spotify:track:abc", progress_ms=0, is_playing=True, volume=50,
              device_id="dev1", duration_ms=200_000, track=True):
        return PlaybackState(
            track=make_track(uri=uri, duration_ms=duration_ms) if track else None,
            device=Device(id=device_id, name=device_id) if device_id else None,
            is_playing=is_playing,
            progress_ms=progress_ms,
            volume=volume,
        )
    return _make


@pytest.fixture
def sonos_device():
    return SonosDevice(ip="10.0.0.5", port=1400, uuid="RINCON_123", name="Living Room")


@pytest.fixture
def mock_spotify_client():
    client = MagicMock()
    for name in ("play", "pause", "next", "previous", "seek", "set_volume",
                 "get_playback_state", "get_devices", "get_queue", "add_to_queue",
                 "get_recently_played", "transfer_playback"):
        setattr(client, name, AsyncMock(return_value=None))
    return client


@pytest.fixture
def spotify_devices():
    return [
        Device(id="a2", name="Kitchen", type=DeviceType.SPEAKER, platform=Platform.SPOTIFY),
        Device(id="b1", name="Kitchen Speaker", type=DeviceType.SPEAKER,
               platform=Platform.SPOTIFY),
    ]
