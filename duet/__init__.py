"""Duet — one playback surface for Spotify and Sonos."""

__version__ = "0.1.0"
