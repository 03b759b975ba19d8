from __future__ import annotations

from typing import Dict, Type
from urllib.parse import urlsplit

from .base import Transport
from .websocket import WebSocketTransport
from .errors import TransportError


class TransportDriverRegistry:
    """
    Adapter-only registry that maps URL schemes -> concrete transport classes.

    - NO connection state
    - NO profile loading
    """

    def __init__(self, drivers: Dict[str, Type[Transport]]):
        # normalize keys to be case-insensitive
        self._drivers: Dict[str, Type[Transport]] = {k.lower(): v for k, v in drivers.items()}

    @classmethod
    def default(cls) -> "TransportDriverRegistry":
        return cls(
            drivers={
                "ws": WebSocketTransport,
                "wss": WebSocketTransport,
            }
        )

    def has(self, scheme: str) -> bool:
        return scheme.lower() in self._drivers

    def get_class(self, scheme: str) -> Type[Transport]:
        key = scheme.lower()
        if key not in self._drivers:
            raise TransportError(f"No transport driver registered for scheme '{scheme}'")
        return self._drivers[key]

    def create_for_url(self, url: str, **params) -> Transport:
        """
        Instantiate (but do not open) a transport for `url` based on its scheme.
        """
        scheme = urlsplit(url).scheme
        if not scheme:
            raise TransportError(f"URL has no scheme: {url!r}")
        transport_cls = self.get_class(scheme)
        return transport_cls(url, **params)
