# cable/protocol/client.py
from __future__ import annotations

import logging
import math
import threading
import time
from datetime import datetime, timezone
from typing import Any, Callable, Mapping, Optional

from cable.core.errors import CableClosedError, CableConfigError
from cable.interfaces.frame_sink import FrameEvent, FrameSink
from cable.transport.base import Transport
from cable.transport.errors import TransportError
from cable.transport.registry import TransportDriverRegistry

from .channel_id import encode_channel_id
from .dispatcher import FrameDispatcher, invoke_callback
from .errors import FrameDecodeError, ProtocolError, UnknownFrameType
from .frames import (
    action_frame,
    decode_frame,
    encode_frame,
    subscribe_frame,
    unsubscribe_frame,
)
from .registry import (
    ChannelCallbacks,
    DisconnectedCallback,
    MessageCallback,
    SubscribedCallback,
    SubscriptionRegistry,
)
from .state import (
    CLOSED_CONNECTION_LOST,
    CLOSED_DISCONNECTED,
    CLOSED_TRANSPORT_ERROR,
    CableStatus,
)
from ._internal.rx_worker import RxWorker
from ._internal.watchdog import HealthWatchdog, HeartbeatCell

ConnectionCallback = Callable[[], None]

DEFAULT_LIVENESS_TIMEOUT_S = 6.0  # two missed 3 s server pings
DEFAULT_PING_INTERVAL_S = 3.0
CAUSE_UNAUTHORIZED = "unauthorized"


def _require_positive(name: str, value: Optional[float]) -> None:
    if value is None:
        return
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not 0 < value < math.inf:
        raise CableConfigError(
            f"{name} must be a number > 0.",
            hint=f"Got {value!r}",
            details={"option": name, "value": value},
        )


class ActionCable:
    """
    Cable protocol client: one socket, many channels.

    Owns the transport, the subscription registry, the RX worker and (optionally)
    the health watchdog. A client is single-shot: once it is closed, whether by
    disconnect(), a transport failure or a liveness timeout, it stays closed and
    a new one must be created.
    """

    def __init__(
        self,
        transport: Transport,
        *,
        health_check_interval_s: Optional[float] = None,
        liveness_timeout_s: Optional[float] = None,
        on_connected: Optional[ConnectionCallback] = None,
        on_connection_lost: Optional[ConnectionCallback] = None,
        on_cannot_connect: Optional[ConnectionCallback] = None,
        frame_sink: Optional[FrameSink] = None,
        logger: Optional[logging.Logger] = None,
        clock: Optional[Callable[[], float]] = None,
        rx_poll_s: float = 0.1,
    ):
        self._transport = transport
        self._log = logger or logging.getLogger(__name__)
        self._clock = clock or time.time
        self._frame_sink = frame_sink
        self._rx_poll_s = float(rx_poll_s)

        if liveness_timeout_s is None:
            liveness_timeout_s = DEFAULT_LIVENESS_TIMEOUT_S
        _require_positive("health_check_interval_s", health_check_interval_s)
        _require_positive("liveness_timeout_s", liveness_timeout_s)

        self.health_check_interval_s = health_check_interval_s
        self.liveness_timeout_s = float(liveness_timeout_s)

        self.on_connected = on_connected
        self.on_connection_lost = on_connection_lost
        self.on_cannot_connect = on_cannot_connect

        self._registry = SubscriptionRegistry()
        self._heartbeat = HeartbeatCell()
        self._dispatcher = FrameDispatcher(self._registry, self, logger=self._log)

        self._state_lock = threading.Lock()
        self._send_lock = threading.Lock()
        self._started = False
        self._closed_reason: Optional[str] = None
        self._cannot_connect_fired: set[str] = set()
        self._welcome_event = threading.Event()
        self._closed_event = threading.Event()

        self._rx_thread: Optional[RxWorker] = None
        self._watchdog: Optional[HealthWatchdog] = None

    # ---------------- Factory ----------------
    @classmethod
    def connect(
        cls,
        url: str,
        headers: Optional[Mapping[str, str]] = None,
        *,
        health_check_interval_s: Optional[float] = None,
        liveness_timeout_s: Optional[float] = None,
        on_connected: Optional[ConnectionCallback] = None,
        on_connection_lost: Optional[ConnectionCallback] = None,
        on_cannot_connect: Optional[ConnectionCallback] = None,
        ping_interval_s: Optional[float] = DEFAULT_PING_INTERVAL_S,
        open_timeout_s: float = 10.0,
        transport: Optional[Transport] = None,
        drivers: Optional[TransportDriverRegistry] = None,
        frame_sink: Optional[FrameSink] = None,
        logger: Optional[logging.Logger] = None,
        clock: Optional[Callable[[], float]] = None,
    ) -> "ActionCable":
        """
        Open a cable connection and return the client.

        Connection failures do not raise: the client is torn down and
        on_cannot_connect is called. Only an unusable URL (no driver for its
        scheme) raises CableConfigError.
        """
        if transport is None:
            drivers = drivers or TransportDriverRegistry.default()
            try:
                transport = drivers.create_for_url(
                    url,
                    headers=dict(headers or {}),
                    ping_interval=ping_interval_s,
                    open_timeout=open_timeout_s,
                )
            except TransportError as e:
                raise CableConfigError(
                    f"Cannot build a transport for '{url}'.",
                    hint=str(e),
                    details={"url": url},
                ) from None

        client = cls(
            transport,
            health_check_interval_s=health_check_interval_s,
            liveness_timeout_s=liveness_timeout_s,
            on_connected=on_connected,
            on_connection_lost=on_connection_lost,
            on_cannot_connect=on_cannot_connect,
            frame_sink=frame_sink,
            logger=logger,
            clock=clock,
        )
        client.start()
        return client

    # ---------------- Lifecycle ----------------
    def start(self) -> None:
        with self._state_lock:
            if self._started:
                return
            self._started = True

        try:
            self._transport.open()
        except TransportError as e:
            self._log.warning("TRANSPORT_OPEN_FAILED driver=%s err=%s", type(self._transport).__name__, e)
            self._on_transport_error(e)
            return

        self._log.info("TRANSPORT_OPENED driver=%s", type(self._transport).__name__)

        self._rx_thread = RxWorker(self)
        self._rx_thread.start()

        if self.health_check_interval_s is not None:
            self._watchdog = HealthWatchdog(
                self._heartbeat,
                interval_s=self.health_check_interval_s,
                timeout_s=self.liveness_timeout_s,
                on_timeout=self._on_liveness_lost,
                clock=self._clock,
                logger=self._log,
            )
            self._watchdog.start()
            self._log.info(
                "WATCHDOG_STARTED interval_s=%s timeout_s=%s",
                self.health_check_interval_s,
                self.liveness_timeout_s,
            )

    def disconnect(self) -> None:
        """Tear the connection down and tell every subscribed channel. Safe to call twice."""
        if self._teardown(CLOSED_DISCONNECTED):
            self._closed_event.set()

    def _teardown(self, reason: str) -> bool:
        with self._state_lock:
            if self._closed_reason is not None:
                return False
            self._closed_reason = reason

        self._log.info("DISCONNECT reason=%s", reason)
        current = threading.current_thread()

        watchdog = self._watchdog
        if watchdog is not None:
            watchdog.stop()

        rx = self._rx_thread
        if rx is not None:
            rx.stop()

        try:
            self._transport.close()
        except Exception:
            self._log.exception("Failed to close transport")

        if rx is not None and rx is not current and rx.is_alive():
            rx.join(timeout=max(1.0, self._rx_poll_s * 5))
        if watchdog is not None and watchdog is not current and watchdog.is_alive():
            watchdog.join(timeout=1.0)

        for cb in self._registry.disconnected_callbacks():
            invoke_callback(self._log, "ON_DISCONNECTED", cb)

        return True

    def _on_transport_error(self, exc: BaseException) -> None:
        if not self._teardown(CLOSED_TRANSPORT_ERROR):
            self._log.debug("TRANSPORT_ERROR_AFTER_CLOSE err=%s", exc)
            return
        self._log.warning("TRANSPORT_FAILED err=%s", exc)
        self._notify_cannot_connect(CLOSED_TRANSPORT_ERROR)
        self._closed_event.set()

    def _on_liveness_lost(self, age_s: float) -> None:
        if not self._teardown(CLOSED_CONNECTION_LOST):
            return
        self._log.warning("CONNECTION_LOST heartbeat_age_s=%.3f", age_s)
        invoke_callback(self._log, "ON_CONNECTION_LOST", self.on_connection_lost)
        self._closed_event.set()

    def _notify_cannot_connect(self, cause: str) -> None:
        """Fire on_cannot_connect at most once per cause (unauthorized, transport_error)."""
        with self._state_lock:
            if cause in self._cannot_connect_fired:
                return
            self._cannot_connect_fired.add(cause)
        invoke_callback(self._log, "ON_CANNOT_CONNECT", self.on_cannot_connect)

    # ---------------- ConnectionHooks (called by the dispatcher) ----------------
    def on_heartbeat(self, server_ts_s: float) -> None:
        self._heartbeat.record(server_ts_s)

    def on_welcome(self) -> None:
        self._log.info("WELCOME")
        self._welcome_event.set()
        invoke_callback(self._log, "ON_CONNECTED", self.on_connected)

    def on_unauthorized(self) -> None:
        self._log.warning("UNAUTHORIZED")
        self._notify_cannot_connect(CAUSE_UNAUTHORIZED)

    # ---------------- Channel API ----------------
    def subscribe(
        self,
        channel_name: str,
        params: Optional[Mapping[str, Any]] = None,
        *,
        on_subscribed: Optional[SubscribedCallback] = None,
        on_disconnected: Optional[DisconnectedCallback] = None,
        on_message: Optional[MessageCallback] = None,
    ) -> str:
        """
        Register handlers for a channel and ask the server to subscribe.

        'Chat' addresses 'ChatChannel'; params become part of the identifier.
        Subscribing again to the same channel replaces the handlers.
        Returns the channel identifier.
        """
        self._require_open()
        channel_id = encode_channel_id(channel_name, params)
        self._registry.set(
            channel_id,
            ChannelCallbacks(
                on_subscribed=on_subscribed,
                on_disconnected=on_disconnected,
                on_message=on_message,
            ),
        )
        self._send(subscribe_frame(channel_id))
        return channel_id

    def unsubscribe(self, channel_name: str, params: Optional[Mapping[str, Any]] = None) -> str:
        self._require_open()
        channel_id = encode_channel_id(channel_name, params)
        self._registry.clear(channel_id)
        self._send(unsubscribe_frame(channel_id))
        return channel_id

    def perform_action(
        self,
        channel_name: str,
        action: Optional[str] = None,
        params: Optional[Mapping[str, Any]] = None,
        action_params: Optional[Mapping[str, Any]] = None,
    ) -> None:
        self._require_open()
        channel_id = encode_channel_id(channel_name, params)
        self._send(action_frame(channel_id, action, action_params))

    # ---------------- State ----------------
    @property
    def is_closed(self) -> bool:
        return self._closed_reason is not None

    @property
    def closed_reason(self) -> Optional[str]:
        return self._closed_reason

    def status(self) -> CableStatus:
        last = self._heartbeat.last()
        return CableStatus(
            open=self._started and self._closed_reason is None,
            welcomed=self._welcome_event.is_set(),
            closed_reason=self._closed_reason,
            last_heartbeat_age_s=(self._clock() - last) if last is not None else None,
            subscriptions=sorted(self._registry.identifiers()),
        )

    def wait_welcome(self, timeout: Optional[float] = None) -> bool:
        """Block until the server's welcome frame arrived (True) or timeout/closure (False)."""
        deadline = None if timeout is None else time.monotonic() + timeout
        while not self._welcome_event.is_set():
            if self._closed_event.is_set():
                return False
            remaining = None if deadline is None else deadline - time.monotonic()
            if remaining is not None and remaining <= 0:
                return False
            self._welcome_event.wait(0.05 if remaining is None else min(0.05, remaining))
        return True

    def wait_closed(self, timeout: Optional[float] = None) -> bool:
        return self._closed_event.wait(timeout)

    # ---------------- RX Pump ----------------
    def _pump_rx(self) -> None:
        try:
            raw = self._transport.recv(timeout=self._rx_poll_s)
        except TransportError as e:
            self._stop_rx()
            self._on_transport_error(e)
            return

        if raw is None:
            return
        self._handle_text(raw)

    def _handle_text(self, raw: str) -> None:
        try:
            frame = decode_frame(raw)
        except FrameDecodeError as e:
            self._log.error("FRAME_DECODE_FAILED reason=%s", e.reason)
            self._stop_rx()
            self._on_transport_error(e)
            return

        try:
            kind = self._dispatcher.dispatch(frame)
        except UnknownFrameType as e:
            self._log.error("UNKNOWN_FRAME_TYPE type=%r", e.frame_type)
            kind = "unknown"
        except ProtocolError:
            self._log.exception("FRAME_DISPATCH_FAILED")
            kind = "invalid"

        self._trace("in", kind, frame)

    def _stop_rx(self) -> None:
        if self._rx_thread is not None:
            self._rx_thread.stop()

    # ---------------- TX ----------------
    def _require_open(self) -> None:
        if self._closed_reason is not None:
            raise CableClosedError(
                "Cable client is closed.",
                hint="Create a new client with ActionCable.connect().",
                details={"reason": self._closed_reason},
            )

    def _send(self, frame: Mapping[str, Any]) -> None:
        text = encode_frame(frame)
        self._log.debug("SENDING_FRAME command=%s identifier=%s", frame.get("command"), frame.get("identifier"))

        try:
            with self._send_lock:
                self._transport.send(text)
        except TransportError as e:
            self._log.warning("SEND_FAILED command=%s err=%s", frame.get("command"), e)
            self._on_transport_error(e)
            return

        self._trace("out", str(frame.get("command")), frame)

    # ---------------- Tracing ----------------
    def _trace(self, direction: str, kind: str, frame: Mapping[str, Any]) -> None:
        sink = self._frame_sink
        if sink is None:
            return
        try:
            sink.on_frame(
                FrameEvent(
                    direction=direction,
                    kind=kind,
                    identifier=frame.get("identifier"),
                    payload=dict(frame),
                    ts_utc=datetime.now(timezone.utc).isoformat(),
                )
            )
        except Exception:
            self._log.exception("FRAME_SINK_ERROR")

    def __enter__(self) -> "ActionCable":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.disconnect()
