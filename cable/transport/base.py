from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Optional


class Transport(ABC):
    """
    Abstract text-message transport (WebSocket, in-memory fakes, etc.).

    Contract:
      - open()/close() manage the underlying connection. close() is safe to call twice.
      - send(text) delivers one complete text message.
      - recv(timeout) returns the next complete text message, or None when no message
        arrived within `timeout` seconds. It raises TransportClosedError once the peer
        has closed and TransportIOError on any other I/O failure.
      - send() and recv() may be called from different threads.
    """

    @abstractmethod
    def open(self) -> None: ...

    @abstractmethod
    def close(self) -> None: ...

    @abstractmethod
    def send(self, text: str) -> None: ...

    @abstractmethod
    def recv(self, timeout: Optional[float] = None) -> Optional[str]: ...

    @abstractmethod
    def is_open(self) -> bool: ...

    def __enter__(self) -> "Transport":
        self.open()
        return self

    def __exit__(self, exc_type: type | None, exc_val: BaseException | None, exc_tb: Any) -> None:
        self.close()
