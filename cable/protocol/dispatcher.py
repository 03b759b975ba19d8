# cable/protocol/dispatcher.py
from __future__ import annotations

import logging
from typing import Any, Callable, Mapping, Optional, Protocol as TypingProtocol

from . import frames as F
from .channel_id import parse_channel_id
from .errors import UnknownFrameType
from .registry import SubscriptionRegistry


class ConnectionHooks(TypingProtocol):
    """Connection-level events the dispatcher hands back to the lifecycle owner."""
    def on_heartbeat(self, server_ts_s: float) -> None: ...
    def on_welcome(self) -> None: ...
    def on_unauthorized(self) -> None: ...


def invoke_callback(log: logging.Logger, event: str, cb: Optional[Callable[..., Any]], *args: Any) -> None:
    """Run a user callback; exceptions are logged, never propagated into the workers."""
    if cb is None:
        return
    try:
        cb(*args)
    except Exception:
        log.exception("%s_CALLBACK_ERROR", event)


class FrameDispatcher:
    """
    Classifies decoded frames and routes them.

    Control frames (with `type`) go to ConnectionHooks or to the per-channel
    subscribed/disconnected handlers; data frames go to the channel's on_message.
    Frames for channels with no registered handler are dropped silently.
    """

    def __init__(
        self,
        registry: SubscriptionRegistry,
        hooks: ConnectionHooks,
        *,
        logger: Optional[logging.Logger] = None,
    ):
        self._registry = registry
        self._hooks = hooks
        self._log = logger or logging.getLogger(__name__)

    def dispatch(self, frame: Mapping[str, Any]) -> str:
        """
        Route one frame. Returns the frame kind ('data' or the control type).

        Raises UnknownFrameType for an unrecognized control `type`.
        """
        if F.is_control_frame(frame):
            self._handle_control(frame)
            return str(frame["type"])

        self._handle_data(frame)
        return "data"

    # ---------------- Control ----------------
    def _handle_control(self, frame: Mapping[str, Any]) -> None:
        frame_type = frame["type"]

        if frame_type == F.TYPE_PING:
            ts = F.heartbeat_seconds(frame)
            if ts is None:
                self._log.warning("PING_WITHOUT_TIMESTAMP message=%r", frame.get("message"))
                return
            self._hooks.on_heartbeat(ts)

        elif frame_type == F.TYPE_WELCOME:
            self._hooks.on_welcome()

        elif frame_type == F.TYPE_DISCONNECT:
            identifier = frame.get("identifier")
            if identifier is not None:
                channel_id = parse_channel_id(identifier)
                self._log.info("CHANNEL_DISCONNECTED identifier=%s", channel_id)
                cb = self._registry.get(channel_id).on_disconnected
                invoke_callback(self._log, "ON_DISCONNECTED", cb)
            elif frame.get("reason") == F.REASON_UNAUTHORIZED:
                self._hooks.on_unauthorized()
            else:
                self._log.info("SERVER_DISCONNECT reason=%r", frame.get("reason"))

        elif frame_type == F.TYPE_CONFIRM:
            identifier = frame.get("identifier")
            if identifier is None:
                self._log.warning("CONFIRM_WITHOUT_IDENTIFIER")
                return
            channel_id = parse_channel_id(identifier)
            self._log.info("SUBSCRIPTION_CONFIRMED identifier=%s", channel_id)
            cb = self._registry.get(channel_id).on_subscribed
            invoke_callback(self._log, "ON_SUBSCRIBED", cb)

        elif frame_type == F.TYPE_REJECT:
            # no callback for rejections yet, see DESIGN.md
            self._log.info("SUBSCRIPTION_REJECTED identifier=%s", frame.get("identifier"))

        else:
            raise UnknownFrameType(frame_type, dict(frame))

    # ---------------- Data ----------------
    def _handle_data(self, frame: Mapping[str, Any]) -> None:
        identifier = frame.get("identifier")
        if identifier is None:
            self._log.debug("DATA_WITHOUT_IDENTIFIER keys=%s", sorted(frame.keys()))
            return

        channel_id = parse_channel_id(identifier)
        cb = self._registry.get(channel_id).on_message
        if cb is None:
            self._log.debug("DATA_DROPPED identifier=%s", channel_id)
            return
        invoke_callback(self._log, "ON_MESSAGE", cb, frame.get("message"))
