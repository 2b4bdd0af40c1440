# Duet
# Copyright (C) 2026 Duet contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""
Spotify token management — the ONE place for token refresh.

SpotifyAuth keeps the current Token in memory, refreshes it when it is
within 60 s of expiry and persists every new token through a TokenStore.
Refresh is single-flight: concurrent get_token() callers queue on a lock
and reuse whatever the first caller fetched.
"""

import asyncio
import json
import logging
import urllib.error
from typing import Callable

from ...lib.config import cfg
from ...lib.errors import NotAuthenticatedError, ProtocolError, TokenRevokedError
from . import pkce
from .callback import CallbackServer
from .tokens import Token, TokenStore

log = logging.getLogger('duet-spotify')

LOGIN_TIMEOUT = 300  # seconds to wait for the browser redirect


class SpotifyAuth:
    """Manages Spotify access tokens with automatic refresh (async)."""

    def __init__(self, client_id: str | None = None, store: TokenStore | None = None,
                 redirect_uri: str | None = None):
        self.client_id = client_id or cfg("spotify", "client_id", default="")
        self.redirect_uri = redirect_uri or cfg("spotify", "redirect_uri")
        self.store = store or TokenStore()
        self._token: Token | None = None
        self._lock = asyncio.Lock()
        self.revoked = False

    def load(self) -> bool:
        """Load a persisted token. Returns True if one was found."""
        self._token = self.store.load()
        if self._token is None:
            log.warning("No Spotify token found — log in first")
            return False
        log.info("Spotify token loaded from %s", self.store.path)
        return True

    def set_token(self, token: Token):
        self._token = token
        self.revoked = False

    @property
    def token(self) -> Token | None:
        return self._token

    @property
    def is_configured(self):
        return bool(self.client_id and self._token and self._token.refresh_token)

    async def get_token(self) -> str:
        """Get a valid access token, refreshing if needed."""
        token = self._token
        if token is not None and not token.is_expired():
            return token.access_token
        async with self._lock:
            # Another caller may have refreshed while we waited
            token = self._token
            if token is not None and not token.is_expired():
                return token.access_token
            return (await self._refresh()).access_token

    async def _refresh(self) -> Token:
        """Refresh the access token via PKCE. Caller holds the lock."""
        if self._token is None or not self._token.refresh_token:
            raise NotAuthenticatedError("not logged in to Spotify")
        if not self.client_id:
            raise NotAuthenticatedError("no Spotify client_id configured")

        loop = asyncio.get_running_loop()
        old_rt = self._token.refresh_token
        try:
            result = await loop.run_in_executor(
                None, pkce.refresh_access_token, self.client_id, old_rt)
        except urllib.error.HTTPError as e:
            if e.code == 400 and self._is_invalid_grant(e):
                self.revoked = True
                log.error("Spotify refresh token revoked — re-authentication required")
                raise TokenRevokedError("Spotify refresh token was revoked") from e
            raise NotAuthenticatedError(f"token refresh failed (HTTP {e.code})") from e
        except (urllib.error.URLError, OSError) as e:
            raise NotAuthenticatedError(f"token refresh failed: {e}") from e
        except ValueError as e:
            raise ProtocolError(f"token endpoint returned invalid JSON: {e}") from e

        token = self._parse_token(result, previous_refresh_token=old_rt)
        self._token = token
        await loop.run_in_executor(None, self.store.save, token)
        if token.refresh_token != old_rt:
            log.info("Refresh token rotated")
        log.info("Access token refreshed (expires in %ds)", token.expires_in)
        return token

    @staticmethod
    def _parse_token(data, previous_refresh_token: str = "") -> Token:
        try:
            return Token.from_response(data, previous_refresh_token=previous_refresh_token)
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise ProtocolError(f"unexpected token endpoint reply: {e!r}") from e

    @staticmethod
    def _is_invalid_grant(exc) -> bool:
        try:
            body = json.loads(exc.read().decode())
        except (ValueError, OSError, AttributeError):
            return False
        return body.get('error') == 'invalid_grant'

    async def login(self, open_browser: Callable[[str], object] | None = None,
                    timeout: float = LOGIN_TIMEOUT) -> Token:
        """Run the full PKCE authorization flow and persist the result.

        *open_browser* is called with the authorization URL; when omitted the
        URL is only logged.
        """
        if not self.client_id:
            raise NotAuthenticatedError("no Spotify client_id configured")

        verifier = pkce.generate_code_verifier()
        challenge = pkce.generate_code_challenge(verifier)
        state = pkce.generate_state()

        server = CallbackServer(self.redirect_uri)
        await server.start()
        try:
            auth_url = pkce.build_auth_url(self.client_id, self.redirect_uri, challenge, state)
            log.info("OAuth: open %s to authorize", auth_url)
            if open_browser is not None:
                open_browser(auth_url)
            try:
                result = await server.wait(timeout)
            except asyncio.TimeoutError as e:
                raise NotAuthenticatedError("timed out waiting for Spotify authorization") from e
        finally:
            await server.shutdown()

        if result.error:
            raise NotAuthenticatedError(f"Spotify authorization failed: {result.error}")
        if result.state != state:
            raise NotAuthenticatedError("OAuth state mismatch")
        if not result.code:
            raise NotAuthenticatedError("no authorization code received")

        loop = asyncio.get_running_loop()
        log.info("OAuth: exchanging authorization code")
        try:
            data = await loop.run_in_executor(
                None, pkce.exchange_code, result.code, self.client_id, verifier,
                self.redirect_uri)
        except (urllib.error.URLError, OSError) as e:
            raise NotAuthenticatedError(f"code exchange failed: {e}") from e
        except ValueError as e:
            raise ProtocolError(f"token endpoint returned invalid JSON: {e}") from e

        token = self._parse_token(data)
        async with self._lock:
            self.set_token(token)
        await loop.run_in_executor(None, self.store.save, token)
        log.info("OAuth: token saved to %s", self.store.path)
        return token

    def logout(self):
        self._token = None
        self.store.delete()
