# cable/interfaces/frame_sink.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Optional, Protocol


@dataclass(frozen=True, slots=True)
class FrameEvent:
    """
    One protocol frame crossing the client boundary (for tracing/recording/debugging).
    Keep this small + stable; the decoded frame goes into payload.
    """
    direction: str              # "in" | "out"
    kind: str                   # "ping" | "welcome" | "data" | "subscribe" | "message" | ...
    identifier: Optional[str] = None
    payload: Optional[Mapping[str, Any]] = None
    ts_utc: Optional[str] = None


class FrameSink(Protocol):
    def on_frame(self, event: FrameEvent) -> None: ...
    def close(self) -> None: ...
