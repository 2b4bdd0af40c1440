# Duet
# Copyright (C) 2026 Duet contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""
Spotify OAuth token + atomic on-disk storage.

The token file holds the access token, refresh token and an absolute
expiry.  Writes are atomic (temp file + rename) so a crash mid-write never
corrupts the file.

Default location: ~/.config/duet/spotify_token.json
"""

import json
import logging
import os
import tempfile
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta, timezone

from ...lib.config import config_dir

logger = logging.getLogger(__name__)

# A token this close to expiry is treated as already expired
EXPIRY_BUFFER = timedelta(seconds=60)


def _utcnow():
    return datetime.now(timezone.utc)


@dataclass
class Token:
    access_token: str
    refresh_token: str = ""
    token_type: str = "Bearer"
    scope: str = ""
    expires_in: int = 3600
    expires_at: datetime = field(default_factory=_utcnow)

    @classmethod
    def from_response(cls, data: dict, previous_refresh_token: str = "",
                      now: datetime | None = None) -> "Token":
        """Build a Token from a token-endpoint reply.

        Spotify may omit ``refresh_token`` on refresh; the previous one is
        kept in that case.
        """
        now = now or _utcnow()
        expires_in = int(data.get("expires_in", 3600))
        return cls(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token") or previous_refresh_token,
            token_type=data.get("token_type", "Bearer"),
            scope=data.get("scope", ""),
            expires_in=expires_in,
            expires_at=now + timedelta(seconds=expires_in),
        )

    def is_expired(self, now: datetime | None = None) -> bool:
        now = now or _utcnow()
        return now + EXPIRY_BUFFER >= self.expires_at

    def to_dict(self) -> dict:
        data = asdict(self)
        data["expires_at"] = self.expires_at.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "Token":
        expires_at = datetime.fromisoformat(data["expires_at"])
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        return cls(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token", ""),
            token_type=data.get("token_type", "Bearer"),
            scope=data.get("scope", ""),
            expires_in=int(data.get("expires_in", 3600)),
            expires_at=expires_at,
        )


def default_token_path():
    return os.path.join(config_dir(), "spotify_token.json")


class TokenStore:
    """Load/save a Token as JSON at a fixed path."""

    def __init__(self, path: str | None = None):
        self.path = path or default_token_path()

    def load(self) -> Token | None:
        """Load the token from disk. Returns None if missing or unreadable."""
        try:
            with open(self.path) as f:
                return Token.from_dict(json.load(f))
        except FileNotFoundError:
            return None
        except (json.JSONDecodeError, KeyError, ValueError) as e:
            logger.warning("Ignoring unreadable token file %s: %s", self.path, e)
            return None

    def save(self, token: Token) -> str:
        """Atomically save the token to disk (mode 0600)."""
        d = os.path.dirname(self.path) or "."
        os.makedirs(d, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=d, suffix=".tmp")
        try:
            os.chmod(tmp, 0o600)
            with os.fdopen(fd, "w") as f:
                json.dump(token.to_dict(), f, indent=2)
                f.write("\n")
            os.replace(tmp, self.path)
        except Exception:
            # Clean up temp file on failure
            try:
                os.unlink(tmp)
            except OSError:
                pass
            raise
        return self.path

    def delete(self) -> str | None:
        """Delete the token file from disk. Returns the path deleted, or None."""
        if os.path.exists(self.path):
            os.unlink(self.path)
            return self.path
        return None
