# Duet
# Copyright (C) 2026 Duet contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""
Error taxonomy shared by both backends.

Adapters raise the most specific class they can; the fallback layer
(``resolver.PlaybackFallback``) and the Spotify retry loop are the only
places that catch one of these and turn it into a different outcome.
Everything else propagates to the caller unchanged.

    DuetError
     ├─ NotAuthenticatedError
     │   └─ TokenRevokedError
     ├─ NoActiveDeviceError
     ├─ AlreadyInStateError
     ├─ TransientError
     │   └─ NetworkError
     ├─ SpotifyAPIError        (status, message, retry_after)
     ├─ SOAPError              (action, status, fault, error_code)
     ├─ ProtocolError
     ├─ UnsupportedOperationError
     └─ DeviceNotFoundError
"""


class DuetError(Exception):
    """Base class for every error raised by duet."""


class NotAuthenticatedError(DuetError):
    """No usable access token (missing, or refresh failed)."""


class TokenRevokedError(NotAuthenticatedError):
    """The refresh token was rejected; the user must log in again."""


class NoActiveDeviceError(DuetError):
    """A playback command had no device to act on."""


class AlreadyInStateError(DuetError):
    """The player is already in the requested state (e.g. resume while playing)."""


class TransientError(DuetError):
    """A failure that may go away if the call is repeated."""


class NetworkError(TransientError):
    """Transport-level failure: connection refused, reset, timeout."""


class ProtocolError(DuetError):
    """The remote end answered with something we cannot parse."""


class UnsupportedOperationError(DuetError):
    """The backend has no way to perform this operation."""


class DeviceNotFoundError(DuetError):
    """No device matched the given identifier."""


class SpotifyAPIError(DuetError):
    """Non-success reply from the Spotify Web API."""

    def __init__(self, status: int, message: str = "", retry_after: float | None = None):
        self.status = status
        self.message = message
        self.retry_after = retry_after
        super().__init__(f"Spotify API error {status}: {message}" if message
                         else f"Spotify API error {status}")

    @property
    def retryable(self) -> bool:
        return self.status >= 500 or self.status == 429


class SOAPError(DuetError):
    """A UPnP control call failed.

    ``fault`` is True when the device answered with a SOAP Fault envelope
    (``error_code`` then carries the UPnP error number), False for plain
    HTTP failures.
    """

    def __init__(self, action: str, status: int, *, fault: bool = False,
                 error_code: str = "", description: str = ""):
        self.action = action
        self.status = status
        self.fault = fault
        self.error_code = error_code
        self.description = description
        if fault:
            detail = f"UPnP error {error_code or '?'}"
            if description:
                detail += f": {description}"
        else:
            detail = f"HTTP {status}"
            if description:
                detail += f": {description}"
        super().__init__(f"SOAP {action} failed ({detail})")


def suggestion_for(err: BaseException | None) -> str:
    """Return a short hint telling the user how to recover from *err*.

    Returns an empty string when there is nothing useful to say.
    """
    if err is None:
        return ""

    if isinstance(err, NotAuthenticatedError):
        return "Log in to Spotify again to refresh your credentials"
    if isinstance(err, NoActiveDeviceError):
        return "Open Spotify on a device and start playing, or pick a device explicitly"
    if isinstance(err, DeviceNotFoundError):
        return "List the available devices and check the name"
    if isinstance(err, UnsupportedOperationError):
        return "This operation is not available on this player"

    if isinstance(err, SpotifyAPIError):
        text = err.message.lower()
        if err.status == 401:
            return "Log in to Spotify again to refresh your credentials"
        if err.status == 403 and ("premium" in text or "restricted" in text):
            return "This feature requires Spotify Premium"
        if err.status == 429:
            return "Too many requests. Wait a moment and try again"
        if err.status >= 500:
            return "Spotify is having issues. Try again in a moment"
        return ""

    if isinstance(err, SOAPError):
        if err.fault and err.error_code == "701":
            return "The speaker cannot do that right now (nothing queued?)"
        return "Check that the speaker is powered on and reachable"

    if isinstance(err, (NetworkError, TimeoutError)):
        return "Check your network connection and try again"

    return ""
