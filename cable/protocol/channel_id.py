# cable/protocol/channel_id.py
"""
Channel identifier codec.

A channel is addressed by its name plus a parameter mapping. On the wire both
travel as one JSON string with a ``channel`` key, e.g.::

    encode_channel_id("Chat", {"room": 1}) == '{"channel":"ChatChannel","room":1}'

Keys are sorted and separators are compact so that the same (name, params) always
yields the same string, and identifiers echoed back by the server can be
canonicalized with parse_channel_id() before a registry lookup.

A ``channel`` entry in params wins over the channel name, so
``encode_channel_id("Chat", {"channel": "OtherChannel"}) == encode_channel_id("Other")``.
Servers address channels by that key, so this is kept as is; the codec is only
injective for params without a ``channel`` key.
"""
from __future__ import annotations

import json
from typing import Any, Dict, Mapping, Optional, Tuple

CHANNEL_KEY = "channel"
CHANNEL_SUFFIX = "Channel"


def full_channel_name(channel_name: str) -> str:
    """'Chat' -> 'ChatChannel'; names already ending in 'Channel' are kept."""
    if channel_name.endswith(CHANNEL_SUFFIX):
        return channel_name
    return f"{channel_name}{CHANNEL_SUFFIX}"


def _canonical(obj: Mapping[str, Any]) -> str:
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def encode_channel_id(channel_name: str, params: Optional[Mapping[str, Any]] = None) -> str:
    channel_id: Dict[str, Any] = dict(params or {})
    channel_id.setdefault(CHANNEL_KEY, full_channel_name(channel_name))
    return _canonical(channel_id)


def parse_channel_id(identifier: str) -> str:
    """
    Canonicalize an identifier received from the server.

    Servers may echo the identifier with different key order or whitespace.
    A value that is not a JSON object is taken as a bare channel name.
    """
    try:
        obj = json.loads(identifier)
    except (TypeError, ValueError):
        obj = None

    if isinstance(obj, dict):
        return _canonical(obj)
    if isinstance(obj, str):
        return encode_channel_id(obj)
    return encode_channel_id(str(identifier))


def decode_channel_id(identifier: str) -> Tuple[str, Dict[str, Any]]:
    """Inverse of encode_channel_id: returns (full channel name, params)."""
    obj = json.loads(parse_channel_id(identifier))
    channel_name = obj.pop(CHANNEL_KEY, None)
    if not isinstance(channel_name, str):
        raise ValueError(f"channel identifier has no '{CHANNEL_KEY}' name: {identifier!r}")
    return channel_name, obj
