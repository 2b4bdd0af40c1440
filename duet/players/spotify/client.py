# Duet
# Copyright (C) 2026 Duet contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""
Thin async client for the Spotify Web API.

Every call goes through request(), which attaches the bearer token,
encodes JSON bodies, classifies the reply and retries transient failures
(5xx, 429, network) with exponential backoff:

    attempt 1 ─fail─ 0.5 s ─ attempt 2 ─fail─ 1 s ─ attempt 3 ─fail─ 2 s ─ attempt 4

After the last attempt the last error is raised unchanged.  Methods
return the decoded JSON (dict) or None for 204 replies; mapping to the
domain model lives in player.py.
"""

import asyncio
import json
import logging

import aiohttp

from ...lib.errors import (
    DuetError,
    NetworkError,
    NotAuthenticatedError,
    ProtocolError,
    SpotifyAPIError,
)

log = logging.getLogger('duet-spotify')

API_BASE = "https://api.spotify.com/v1"
MAX_RETRIES = 3
INITIAL_BACKOFF = 0.5  # seconds, doubled each retry
MAX_RETRY_AFTER = 30.0  # upper bound on a server-requested wait
REQUEST_TIMEOUT = 10

SEARCH_TYPES = ("track", "album", "artist", "playlist", "show", "episode")
REPEAT_STATES = ("off", "track", "context")


def _retryable(err: Exception) -> bool:
    if isinstance(err, NetworkError):
        return True
    return isinstance(err, SpotifyAPIError) and err.retryable


def _parse_retry_after(value) -> float | None:
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        return None


def retry_delay(backoff: float, attempt: int, retry_after: float | None = None,
                cap: float = MAX_RETRY_AFTER) -> float:
    """Exponential backoff, stretched to a longer Retry-After up to *cap*."""
    delay = backoff * (2 ** attempt)
    if retry_after and retry_after > delay:
        delay = max(delay, min(retry_after, cap))
    return delay


def _error_message(body: bytes) -> str:
    """Pull the message out of Spotify's {"error": {...}} envelope."""
    if not body:
        return ""
    try:
        data = json.loads(body)
    except ValueError:
        return body.decode(errors="replace")[:200]
    err = data.get("error") if isinstance(data, dict) else None
    if isinstance(err, dict):
        return err.get("message", "")
    if isinstance(err, str):
        return data.get("error_description") or err
    return ""


class SpotifyClient:
    """Bearer-authenticated REST client with bounded retry."""

    def __init__(self, auth, base_url: str = API_BASE,
                 session: aiohttp.ClientSession | None = None,
                 max_retries: int = MAX_RETRIES, backoff: float = INITIAL_BACKOFF,
                 max_retry_after: float = MAX_RETRY_AFTER):
        self.auth = auth
        self.base_url = base_url.rstrip("/")
        self.max_retries = max_retries
        self.backoff = backoff
        self.max_retry_after = max_retry_after
        self._session = session
        self._owns_session = session is None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=REQUEST_TIMEOUT))
            self._owns_session = True
        return self._session

    async def close(self):
        if self._session is not None and self._owns_session:
            await self._session.close()
        self._session = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        await self.close()

    # ── Core request loop ──

    async def request(self, method: str, path: str, *, params: dict | None = None,
                      body=None):
        """Perform one API call with retry. Returns decoded JSON or None."""
        attempt = 0
        while True:
            try:
                return await self._request_once(method, path, params=params, body=body)
            except DuetError as e:
                if not _retryable(e) or attempt >= self.max_retries:
                    raise
                delay = retry_delay(self.backoff, attempt, getattr(e, "retry_after", None),
                                    self.max_retry_after)
                attempt += 1
                log.warning("%s %s failed (%s), retry %d/%d in %.1fs",
                            method, path, e, attempt, self.max_retries, delay)
                # Cancellation during the wait propagates immediately
                await asyncio.sleep(delay)

    async def _request_once(self, method, path, *, params=None, body=None):
        token = await self.auth.get_token()
        headers = {"Authorization": f"Bearer {token}"}
        kwargs = {}
        if params:
            kwargs["params"] = {k: str(v) for k, v in params.items() if v is not None}
        if body is not None:
            headers["Content-Type"] = "application/json"
            kwargs["data"] = json.dumps(body)

        session = await self._get_session()
        log.debug("%s %s %s", method, path, kwargs.get("params", ""))
        try:
            async with session.request(method, f"{self.base_url}{path}",
                                       headers=headers, **kwargs) as resp:
                status = resp.status
                raw = await resp.read()
                retry_after = _parse_retry_after(resp.headers.get("Retry-After"))
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise NetworkError(f"{method} {path}: {e}") from e

        if status == 204:
            return None
        if status >= 400:
            err = SpotifyAPIError(status, _error_message(raw), retry_after=retry_after)
            if status == 401:
                raise NotAuthenticatedError(str(err)) from err
            raise err
        if not raw:
            return None
        try:
            return json.loads(raw)
        except ValueError as e:
            raise ProtocolError(f"invalid JSON from {method} {path}") from e

    # ── Account / devices ──

    async def get_current_user(self):
        return await self.request("GET", "/me")

    async def get_devices(self) -> list[dict]:
        data = await self.request("GET", "/me/player/devices")
        return (data or {}).get("devices", [])

    async def get_playback_state(self):
        """Current playback, or None when nothing is playing (204)."""
        return await self.request("GET", "/me/player")

    # ── Transport ──

    async def play(self, device_id=None, context_uri=None, uris=None,
                   offset=None, position_ms=None):
        """Start/resume playback. With no arguments, resumes."""
        body = {}
        if context_uri:
            body["context_uri"] = context_uri
        if uris:
            body["uris"] = list(uris)
        if offset is not None:
            body["offset"] = {"position": offset} if isinstance(offset, int) else {"uri": offset}
        if position_ms is not None:
            body["position_ms"] = position_ms
        params = {"device_id": device_id} if device_id else None
        await self.request("PUT", "/me/player/play", params=params, body=body)

    async def pause(self, device_id=None):
        await self.request("PUT", "/me/player/pause", params={"device_id": device_id})

    async def next(self, device_id=None):
        await self.request("POST", "/me/player/next", params={"device_id": device_id})

    async def previous(self, device_id=None):
        await self.request("POST", "/me/player/previous", params={"device_id": device_id})

    async def seek(self, position_ms: int, device_id=None):
        await self.request("PUT", "/me/player/seek",
                           params={"position_ms": position_ms, "device_id": device_id})

    async def set_volume(self, percent: int, device_id=None):
        await self.request("PUT", "/me/player/volume",
                           params={"volume_percent": percent, "device_id": device_id})

    async def set_shuffle(self, state: bool, device_id=None):
        await self.request("PUT", "/me/player/shuffle",
                           params={"state": "true" if state else "false",
                                   "device_id": device_id})

    async def set_repeat(self, state: str, device_id=None):
        if state not in REPEAT_STATES:
            raise ValueError(f"repeat state must be one of {', '.join(REPEAT_STATES)}")
        await self.request("PUT", "/me/player/repeat",
                           params={"state": state, "device_id": device_id})

    async def transfer_playback(self, device_id: str, play: bool = False):
        await self.request("PUT", "/me/player",
                           body={"device_ids": [device_id], "play": play})

    # ── Queue / history / search ──

    async def get_queue(self):
        return await self.request("GET", "/me/player/queue")

    async def add_to_queue(self, uri: str, device_id=None):
        await self.request("POST", "/me/player/queue",
                           params={"uri": uri, "device_id": device_id})

    async def get_recently_played(self, limit: int = 20):
        limit = max(1, min(50, int(limit)))
        return await self.request("GET", "/me/player/recently-played",
                                  params={"limit": limit})

    async def search(self, query: str, types=("track",), limit: int = 20,
                     offset: int = 0, market: str | None = None):
        if not query or not query.strip():
            raise ValueError("search query must not be empty")
        types = list(types) or ["track"]
        for t in types:
            if t not in SEARCH_TYPES:
                raise ValueError(f"unknown search type {t!r}")
        return await self.request("GET", "/search", params={
            "q": query,
            "type": ",".join(types),
            "limit": limit,
            "offset": offset or None,
            "market": market,
        })
