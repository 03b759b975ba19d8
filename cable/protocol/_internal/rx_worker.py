# cable/protocol/_internal/rx_worker.py
from __future__ import annotations

import threading
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from cable.protocol.client import ActionCable


class RxWorker(threading.Thread):
    """Thread that continuously reads from the transport and feeds the client, one frame at a time."""

    def __init__(self, client: "ActionCable"):
        super().__init__(daemon=True, name="cable-rx")
        self.client = client
        self._stop_event = threading.Event()

    def run(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.client._pump_rx()
            except Exception:
                self.client._log.exception("RX_WORKER_EXCEPTION")
                self._stop_event.wait(0.01)

    def stop(self) -> None:
        self._stop_event.set()

    @property
    def stopping(self) -> bool:
        return self._stop_event.is_set()
