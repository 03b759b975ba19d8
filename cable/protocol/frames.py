# cable/protocol/frames.py
from __future__ import annotations

import json
import math
from typing import Any, Dict, Mapping, Optional

from .errors import FrameDecodeError

# ---------------- Inbound control types ----------------
TYPE_PING = "ping"
TYPE_WELCOME = "welcome"
TYPE_DISCONNECT = "disconnect"
TYPE_CONFIRM = "confirm_subscription"
TYPE_REJECT = "reject_subscription"

CONTROL_TYPES = frozenset({TYPE_PING, TYPE_WELCOME, TYPE_DISCONNECT, TYPE_CONFIRM, TYPE_REJECT})

REASON_UNAUTHORIZED = "unauthorized"

# ---------------- Outbound commands ----------------
CMD_SUBSCRIBE = "subscribe"
CMD_UNSUBSCRIBE = "unsubscribe"
CMD_MESSAGE = "message"

ACTION_KEY = "action"


def subscribe_frame(identifier: str) -> Dict[str, Any]:
    return {"identifier": identifier, "command": CMD_SUBSCRIBE}


def unsubscribe_frame(identifier: str) -> Dict[str, Any]:
    return {"identifier": identifier, "command": CMD_UNSUBSCRIBE}


def action_frame(
    identifier: str,
    action: Optional[str],
    action_params: Optional[Mapping[str, Any]] = None,
) -> Dict[str, Any]:
    """
    Build a `message` command. `data` is a JSON *string* (the server decodes it
    a second time), never a nested object.
    """
    data: Dict[str, Any] = dict(action_params or {})
    data[ACTION_KEY] = action
    return {"identifier": identifier, "command": CMD_MESSAGE, "data": json.dumps(data)}


def encode_frame(frame: Mapping[str, Any]) -> str:
    return json.dumps(frame)


def decode_frame(raw: str) -> Dict[str, Any]:
    """Decode one inbound text message into a frame dict."""
    try:
        frame = json.loads(raw)
    except ValueError as e:
        raise FrameDecodeError(str(e), raw) from None

    if not isinstance(frame, dict):
        raise FrameDecodeError(f"expected JSON object, got {type(frame).__name__}", raw)
    return frame


def is_control_frame(frame: Mapping[str, Any]) -> bool:
    return frame.get("type") is not None


def heartbeat_seconds(frame: Mapping[str, Any]) -> Optional[float]:
    """Server epoch seconds carried by a `ping` frame (None if missing/invalid)."""
    value = frame.get("message")
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if not math.isfinite(value):
        return None
    return float(value)
