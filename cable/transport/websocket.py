# cable/transport/websocket.py
from __future__ import annotations

from typing import Mapping, Optional

from websockets.exceptions import ConnectionClosed, WebSocketException
from websockets.sync.client import ClientConnection, connect

from .base import Transport
from .errors import TransportClosedError, TransportIOError, TransportOpenError


class WebSocketTransport(Transport):
    """
    WebSocket transport implemented via the `websockets` threading client.

    Keepalive pings are sent every `ping_interval` seconds at the WebSocket layer,
    independently of the cable protocol's own `ping` frames.
    """

    def __init__(
        self,
        url: str,
        headers: Optional[Mapping[str, str]] = None,
        *,
        ping_interval: Optional[float] = 3.0,
        open_timeout: float = 10.0,
    ):
        self.url = url
        self.headers = dict(headers or {})
        self.ping_interval = ping_interval
        self.open_timeout = open_timeout
        self.ws: Optional[ClientConnection] = None

    def open(self) -> None:
        try:
            self.ws = connect(
                self.url,
                additional_headers=self.headers or None,
                open_timeout=self.open_timeout,
                ping_interval=self.ping_interval,
            )
        except (WebSocketException, OSError) as e:
            self.ws = None
            raise TransportOpenError(f"{type(e).__name__}: {e}") from None

    def close(self) -> None:
        if self.ws is not None:
            try:
                self.ws.close()
            finally:
                self.ws = None

    def is_open(self) -> bool:
        return self.ws is not None

    def send(self, text: str) -> None:
        ws = self.ws
        if ws is None:
            raise TransportIOError("send while transport not open")

        try:
            ws.send(text)
        except ConnectionClosed as e:
            raise TransportClosedError(f"WebSocket closed: {e}") from None
        except (WebSocketException, OSError) as e:
            raise TransportIOError(f"WebSocket send failed: {e}") from None

    def recv(self, timeout: Optional[float] = None) -> Optional[str]:
        ws = self.ws
        if ws is None:
            raise TransportIOError("recv while transport not open")

        try:
            data = ws.recv(timeout=timeout)
        except TimeoutError:
            return None
        except ConnectionClosed as e:
            raise TransportClosedError(f"WebSocket closed: {e}") from None
        except (WebSocketException, OSError) as e:
            raise TransportIOError(f"WebSocket recv failed: {e}") from None

        if isinstance(data, bytes):
            # binary frames carry the same JSON text on some servers
            try:
                return data.decode("utf-8")
            except UnicodeDecodeError as e:
                raise TransportIOError(f"WebSocket binary frame is not UTF-8: {e}") from None
        return data
