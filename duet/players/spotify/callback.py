# Duet
# Copyright (C) 2026 Duet contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""
Short-lived local HTTP listener for the OAuth redirect.

Spotify redirects the browser to ``redirect_uri?code=...&state=...`` (or
``?error=...``).  The first hit resolves :meth:`CallbackServer.wait`; later
hits still get a page but are otherwise ignored.
"""

import asyncio
import html
import logging
from dataclasses import dataclass
from urllib.parse import urlparse

from aiohttp import web

log = logging.getLogger('duet-spotify')

SUCCESS_PAGE = '''<!DOCTYPE html><html><head>
<meta charset="UTF-8"><title>Duet - Authentication Successful</title>
<style>body{font-family:sans-serif;text-align:center;padding:50px}h1{color:#1DB954}</style>
</head><body>
<h1>Authentication Successful</h1>
<p>You can close this window and return to the terminal.</p>
</body></html>'''

FAILURE_PAGE = '''<!DOCTYPE html><html><head>
<meta charset="UTF-8"><title>Duet - Authentication Failed</title>
<style>body{font-family:sans-serif;text-align:center;padding:50px}h1{color:#e22134}</style>
</head><body>
<h1>Authentication Failed</h1>
<p>Error: %s</p>
<p>Please close this window and try again.</p>
</body></html>'''


@dataclass(frozen=True)
class CallbackResult:
    code: str = ""
    state: str = ""
    error: str = ""


class CallbackServer:
    """aiohttp listener bound to the host/port/path of a redirect URI."""

    def __init__(self, redirect_uri: str):
        parsed = urlparse(redirect_uri)
        self.host = parsed.hostname or "127.0.0.1"
        self.port = parsed.port if parsed.port is not None else 8888
        self.path = parsed.path or "/callback"
        self._runner: web.AppRunner | None = None
        self._result: asyncio.Future | None = None

    async def start(self):
        self._result = asyncio.get_running_loop().create_future()
        app = web.Application()
        app.router.add_get(self.path, self._handle_callback)
        self._runner = web.AppRunner(app)
        await self._runner.setup()
        site = web.TCPSite(self._runner, self.host, self.port)
        await site.start()
        # Port 0 means "pick one"; report the real port
        addresses = self._runner.addresses
        if addresses:
            self.port = addresses[0][1]
        log.info("OAuth callback listening on http://%s:%d%s", self.host, self.port, self.path)
        return self

    @property
    def url(self) -> str:
        return f"http://{self.host}:{self.port}{self.path}"

    async def _handle_callback(self, request):
        result = CallbackResult(
            code=request.query.get('code', ''),
            state=request.query.get('state', ''),
            error=request.query.get('error', ''),
        )
        if self._result is not None and not self._result.done():
            self._result.set_result(result)
        else:
            log.debug("Ignoring duplicate OAuth callback")

        if result.error:
            return web.Response(text=FAILURE_PAGE % html.escape(result.error),
                                content_type='text/html', status=400)
        if not result.code:
            return web.Response(text=FAILURE_PAGE % "no authorization code received",
                                content_type='text/html', status=400)
        return web.Response(text=SUCCESS_PAGE, content_type='text/html')

    async def wait(self, timeout: float | None = None) -> CallbackResult:
        """Wait for the first callback. Raises asyncio.TimeoutError on timeout."""
        if self._result is None:
            raise RuntimeError("callback server not started")
        return await asyncio.wait_for(asyncio.shield(self._result), timeout)

    async def shutdown(self):
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None
