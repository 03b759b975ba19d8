# cable/protocol/__init__.py

from .channel_id import encode_channel_id, parse_channel_id, decode_channel_id
from .registry import ChannelCallbacks, SubscriptionRegistry
from .dispatcher import FrameDispatcher
from .state import CableStatus
from .client import ActionCable

__all__ = [
    "ActionCable", "CableStatus",
    "ChannelCallbacks", "SubscriptionRegistry", "FrameDispatcher",
    "encode_channel_id", "parse_channel_id", "decode_channel_id"]
