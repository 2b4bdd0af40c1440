"""Tests for SpotifyPlayer: JSON mapping and status-code semantics."""

from datetime import timezone

import pytest

from duet.lib.errors import NoActiveDeviceError, SpotifyAPIError
from duet.lib.models import DeviceType, Platform
from duet.players.spotify.player import (
    SpotifyPlayer,
    convert_device,
    convert_device_type,
    convert_track,
    parse_played_at,
)

TRACK_JSON = {
    "id": "t1",
    "uri": "spotify:track:t1",
    "name": "Harder Better",
    "duration_ms": 224000,
    "album": {"name": "Discovery"},
    "artists": [{"name": "Daft Punk"}, {"name": "Guest"}],
}

PLAYBACK_JSON = {
    "is_playing": True,
    "progress_ms": 1000,
    "item": TRACK_JSON,
    "device": {"id": "d1", "name": "Laptop", "type": "Computer",
               "is_active": True, "volume_percent": 65},
}


class TestMapping:
    def test_convert_track(self):
        track = convert_track(TRACK_JSON)
        assert track.title == "Harder Better"
        assert track.artist == "Daft Punk"
        assert track.artists == ("Daft Punk", "Guest")
        assert track.album == "Discovery"
        assert track.duration_ms == 224000
        assert track.source is Platform.SPOTIFY

    def test_convert_track_none(self):
        assert convert_track(None) is None

    @pytest.mark.parametrize("raw,expected", [
        ("Computer", DeviceType.COMPUTER),
        ("Smartphone", DeviceType.PHONE),
        ("Speaker", DeviceType.SPEAKER),
        ("TV", DeviceType.TV),
        ("AVR", DeviceType.SOUNDBAR),
        ("Toaster", DeviceType.OTHER),
        (None, DeviceType.OTHER),
    ])
    def test_device_types(self, raw, expected):
        assert convert_device_type(raw) is expected

    def test_convert_device(self):
        device = convert_device(PLAYBACK_JSON["device"], account="me")
        assert (device.id, device.name, device.is_active, device.account) == \
            ("d1", "Laptop", True, "me")

    def test_played_at(self):
        when = parse_played_at("2026-01-01T10:00:00.123Z")
        assert when.tzinfo is not None
        assert when.utcoffset() == timezone.utc.utcoffset(None)
        assert parse_played_at("garbage") is None


class TestPlayer:
    async def test_get_state(self, mock_spotify_client):
        mock_spotify_client.get_playback_state.return_value = PLAYBACK_JSON
        state = await SpotifyPlayer(mock_spotify_client).get_state()
        assert state.is_playing
        assert state.track.uri == "spotify:track:t1"
        assert state.device.id == "d1"
        assert state.volume == 65
        assert state.progress_ms == 1000

    async def test_get_state_nothing_playing(self, mock_spotify_client):
        mock_spotify_client.get_playback_state.return_value = None
        state = await SpotifyPlayer(mock_spotify_client).get_state()
        assert not state.has_track
        assert not state.is_playing

    async def test_404_means_no_active_device(self, mock_spotify_client):
        mock_spotify_client.next.side_effect = SpotifyAPIError(404, "No active device found")
        with pytest.raises(NoActiveDeviceError):
            await SpotifyPlayer(mock_spotify_client).next()

    async def test_403_on_resume_is_success(self, mock_spotify_client):
        mock_spotify_client.play.side_effect = SpotifyAPIError(403, "Restriction violated")
        await SpotifyPlayer(mock_spotify_client).play()

    async def test_403_elsewhere_propagates(self, mock_spotify_client):
        mock_spotify_client.pause.side_effect = SpotifyAPIError(403, "Restriction violated")
        with pytest.raises(SpotifyAPIError):
            await SpotifyPlayer(mock_spotify_client).pause()

    async def test_set_volume_validates(self, mock_spotify_client):
        player = SpotifyPlayer(mock_spotify_client, device_id="d1")
        with pytest.raises(ValueError):
            await player.set_volume(101)
        await player.set_volume(30)
        mock_spotify_client.set_volume.assert_awaited_once_with(30, device_id="d1")

    async def test_play_uri_track_vs_context(self, mock_spotify_client):
        player = SpotifyPlayer(mock_spotify_client)
        await player.play_uri("spotify:track:t1")
        mock_spotify_client.play.assert_awaited_with(device_id=None, uris=["spotify:track:t1"])
        await player.play_uri("spotify:playlist:p1")
        mock_spotify_client.play.assert_awaited_with(device_id=None,
                                                     context_uri="spotify:playlist:p1")

    async def test_get_queue_current_first(self, mock_spotify_client):
        second = dict(TRACK_JSON, id="t2", uri="spotify:track:t2")
        mock_spotify_client.get_queue.return_value = {
            "currently_playing": TRACK_JSON, "queue": [second]}
        queue = await SpotifyPlayer(mock_spotify_client).get_queue()
        assert [t.id for t in queue.tracks] == ["t1", "t2"]
        assert queue.current.id == "t1"

    async def test_recently_played(self, mock_spotify_client):
        mock_spotify_client.get_recently_played.return_value = {"items": [
            {"track": TRACK_JSON, "played_at": "2026-01-01T10:00:00Z"}]}
        history = await SpotifyPlayer(mock_spotify_client).get_recently_played(5)
        assert len(history) == 1
        assert history[0].track.id == "t1"
        assert history[0].played_at.year == 2026
        mock_spotify_client.get_recently_played.assert_awaited_once_with(5)

    async def test_transfer_sets_device(self, mock_spotify_client):
        player = SpotifyPlayer(mock_spotify_client)
        await player.transfer_playback("d9")
        assert player.device_id == "d9"
        mock_spotify_client.transfer_playback.assert_awaited_once_with("d9", play=False)
