"""Sonos (UPnP/SOAP) backend."""

from .client import SonosClient
from .discovery import Discovery, SonosDevice
from .player import SonosPlayer

__all__ = ["Discovery", "SonosClient", "SonosDevice", "SonosPlayer"]
