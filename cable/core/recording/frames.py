# cable/core/recording/frames.py
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from cable.interfaces.frame_sink import FrameEvent, FrameSink
from cable.core.recording.async_writer import AsyncWriter


@dataclass
class FrameTraceLogger(FrameSink):
    """
    FrameSink that appends one JSON object per frame to `file_path` (JSONL)
    and mirrors a one-line summary to `logger` at DEBUG.
    """
    logger: logging.Logger
    file_path: Optional[Path] = None
    flush_interval_s: float = 0.5
    include_pings: bool = True

    def __post_init__(self) -> None:
        self._writer: Optional[AsyncWriter] = None
        if self.file_path is not None:
            self.file_path.parent.mkdir(parents=True, exist_ok=True)
            self._writer = AsyncWriter(
                path=self.file_path,
                flush_interval=self.flush_interval_s,
                logger=self.logger,
            )

    def close(self) -> None:
        if self._writer is not None:
            self._writer.close()
            self._writer = None

    def on_frame(self, event: FrameEvent) -> None:
        if event.kind == "ping" and not self.include_pings:
            return

        self.logger.debug("FRAME dir=%s kind=%s identifier=%s", event.direction, event.kind, event.identifier)

        if self._writer is None:
            return

        ts_utc = event.ts_utc or datetime.now(timezone.utc).isoformat()

        out = {
            "dir": event.direction,
            "kind": event.kind,
            "identifier": event.identifier,
            "payload": event.payload,
            "ts_utc": ts_utc,
        }

        out = {k: v for k, v in out.items() if v is not None}

        self._writer.write(json.dumps(out, ensure_ascii=False, default=str))
