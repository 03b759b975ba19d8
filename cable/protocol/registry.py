# cable/protocol/registry.py
from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

SubscribedCallback = Callable[[], None]
DisconnectedCallback = Callable[[], None]
MessageCallback = Callable[[Any], None]


@dataclass(frozen=True)
class ChannelCallbacks:
    """The three optional per-channel handlers, stored and replaced together."""
    on_subscribed: Optional[SubscribedCallback] = None
    on_disconnected: Optional[DisconnectedCallback] = None
    on_message: Optional[MessageCallback] = None

    @property
    def is_empty(self) -> bool:
        return self.on_subscribed is None and self.on_disconnected is None and self.on_message is None


_EMPTY = ChannelCallbacks()


class SubscriptionRegistry:
    """
    channel identifier -> ChannelCallbacks.

    Cleared entries are dropped, so an unsubscribed channel looks exactly like one
    that was never subscribed.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: Dict[str, ChannelCallbacks] = {}

    def set(self, identifier: str, callbacks: ChannelCallbacks) -> None:
        with self._lock:
            if callbacks.is_empty:
                self._entries.pop(identifier, None)
            else:
                self._entries[identifier] = callbacks

    def clear(self, identifier: str) -> None:
        with self._lock:
            self._entries.pop(identifier, None)

    def get(self, identifier: str) -> ChannelCallbacks:
        with self._lock:
            return self._entries.get(identifier, _EMPTY)

    def identifiers(self) -> List[str]:
        with self._lock:
            return list(self._entries.keys())

    def disconnected_callbacks(self) -> List[DisconnectedCallback]:
        with self._lock:
            return [e.on_disconnected for e in self._entries.values() if e.on_disconnected is not None]

    def __contains__(self, identifier: object) -> bool:
        with self._lock:
            return identifier in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
