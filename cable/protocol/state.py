# cable/protocol/state.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional

CLOSED_DISCONNECTED = "disconnected"
CLOSED_TRANSPORT_ERROR = "transport_error"
CLOSED_CONNECTION_LOST = "connection_lost"


@dataclass(frozen=True)
class CableStatus:
    """
    A snapshot of the client state, safe to share across threads.
    """
    open: bool
    welcomed: bool
    closed_reason: Optional[str] = None
    last_heartbeat_age_s: Optional[float] = None
    subscriptions: List[str] = field(default_factory=list)
