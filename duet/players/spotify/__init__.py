"""Spotify Web API backend."""

from .auth import SpotifyAuth
from .client import SpotifyClient
from .player import SpotifyPlayer
from .tokens import Token, TokenStore

__all__ = ["SpotifyAuth", "SpotifyClient", "SpotifyPlayer", "Token", "TokenStore"]
