from __future__ import annotations

import json
import logging
import queue
from typing import Optional

import pytest

from cable.core.errors import CableClosedError, CableConfigError
from cable.interfaces.frame_sink import FrameEvent
from cable.protocol.channel_id import encode_channel_id
from cable.protocol.client import ActionCable
from cable.protocol.state import CLOSED_CONNECTION_LOST, CLOSED_DISCONNECTED, CLOSED_TRANSPORT_ERROR
from cable.transport.base import Transport
from cable.transport.errors import TransportClosedError, TransportIOError, TransportOpenError
from cable.transport.registry import TransportDriverRegistry


class FakeTransport(Transport):
    """In-memory Transport: `inbox` feeds recv(), `sent` collects decoded outbound frames."""

    def __init__(self, *, fail_open: Optional[Exception] = None):
        self.fail_open = fail_open
        self.raise_on_send: Optional[Exception] = None
        self.opened = False
        self.open_calls = 0
        self.close_calls = 0
        self.sent: list[dict] = []
        self.inbox: "queue.Queue[object]" = queue.Queue()

    def open(self) -> None:
        self.open_calls += 1
        if self.fail_open is not None:
            raise self.fail_open
        self.opened = True

    def close(self) -> None:
        self.close_calls += 1
        self.opened = False

    def is_open(self) -> bool:
        return self.opened

    def send(self, text: str) -> None:
        if self.raise_on_send is not None:
            raise self.raise_on_send
        self.sent.append(json.loads(text))

    def recv(self, timeout: Optional[float] = None) -> Optional[str]:
        if not self.opened:
            raise TransportClosedError("closed")
        try:
            item = self.inbox.get(timeout=timeout)
        except queue.Empty:
            return None
        if isinstance(item, Exception):
            raise item
        return item  # type: ignore[return-value]


class Counter:
    def __init__(self):
        self.n = 0
        self.args: list = []

    def __call__(self, *args):
        self.n += 1
        self.args.append(args)


class FakeClock:
    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class ListSink:
    def __init__(self):
        self.events: list[FrameEvent] = []

    def on_frame(self, event: FrameEvent) -> None:
        self.events.append(event)

    def close(self) -> None:
        return None


def _make_client(**kwargs):
    """Client wired to a FakeTransport, not started: frames are fed with _handle_text()."""
    transport = FakeTransport()
    client = ActionCable(transport, logger=logging.getLogger("test"), **kwargs)
    return client, transport


def _feed(client: ActionCable, frame: dict) -> None:
    client._handle_text(json.dumps(frame))


# -----------------------------
# Tests: channel API
# -----------------------------

def test_subscribe_sends_frame_and_returns_identifier():
    client, transport = _make_client()

    ident = client.subscribe("Chat", {"room": 1})

    assert ident == encode_channel_id("Chat", {"room": 1})
    assert transport.sent == [{"identifier": ident, "command": "subscribe"}]


def test_confirm_invokes_on_subscribed_once_and_nothing_else():
    client, _ = _make_client()
    subscribed, disconnected, message = Counter(), Counter(), Counter()
    client.subscribe("X", {"a": 1}, on_subscribed=subscribed, on_disconnected=disconnected, on_message=message)

    _feed(client, {"type": "confirm_subscription", "identifier": encode_channel_id("X", {"a": 1})})

    assert subscribed.n == 1
    assert disconnected.n == 0
    assert message.n == 0


def test_data_frame_with_bare_identifier_reaches_on_message():
    client, _ = _make_client()
    got = Counter()
    client.subscribe("Chat", on_message=got)

    _feed(client, {"identifier": "ChatChannel", "message": {"body": "hi"}})

    assert got.args == [({"body": "hi"},)]


def test_unsubscribe_sends_frame_and_silences_channel():
    client, transport = _make_client()
    got = Counter()
    ident = client.subscribe("Chat", {"room": 1}, on_message=got)

    client.unsubscribe("Chat", {"room": 1})
    _feed(client, {"identifier": ident, "message": "late"})

    assert transport.sent[-1] == {"identifier": ident, "command": "unsubscribe"}
    assert got.n == 0
    assert client.status().subscriptions == []


def test_unsubscribe_without_prior_subscribe_still_sends():
    client, transport = _make_client()
    client.unsubscribe("Ghost")
    assert transport.sent == [{"identifier": encode_channel_id("Ghost"), "command": "unsubscribe"}]


def test_resubscribe_replaces_pending_callbacks():
    client, _ = _make_client()
    first, second = Counter(), Counter()
    ident = client.subscribe("Chat", on_subscribed=first)
    client.subscribe("Chat", on_subscribed=second)

    _feed(client, {"type": "confirm_subscription", "identifier": ident})

    assert first.n == 0
    assert second.n == 1


def test_perform_action_double_encodes_data():
    client, transport = _make_client()
    action_params = {"text": "hi"}

    client.perform_action("Chat", "speak", {"room": 1}, action_params)

    frame = transport.sent[-1]
    assert frame["identifier"] == encode_channel_id("Chat", {"room": 1})
    assert frame["command"] == "message"
    assert json.loads(frame["data"]) == {"text": "hi", "action": "speak"}
    assert action_params == {"text": "hi"}


# -----------------------------
# Tests: control frames
# -----------------------------

def test_welcome_invokes_on_connected():
    connected = Counter()
    client, _ = _make_client(on_connected=connected)

    _feed(client, {"type": "welcome"})

    assert connected.n == 1
    assert client.status().welcomed is True
    assert client.wait_welcome(timeout=0) is True


def test_ping_records_heartbeat_in_seconds():
    clock = FakeClock(1700000002.5)
    client, _ = _make_client(clock=clock)
    assert client.status().last_heartbeat_age_s is None

    _feed(client, {"type": "ping", "message": 1700000000})

    assert client.status().last_heartbeat_age_s == pytest.approx(2.5)


def test_server_channel_disconnect_keeps_connection_up():
    client, transport = _make_client()
    chan_down = Counter()
    ident = client.subscribe("Chat", on_disconnected=chan_down)

    _feed(client, {"type": "disconnect", "identifier": ident})

    assert chan_down.n == 1
    assert client.is_closed is False
    assert transport.close_calls == 0


def test_unauthorized_calls_on_cannot_connect():
    cannot = Counter()
    client, _ = _make_client(on_cannot_connect=cannot)

    _feed(client, {"type": "disconnect", "reason": "unauthorized"})
    _feed(client, {"type": "disconnect", "reason": "unauthorized"})

    assert cannot.n == 1


def test_reject_subscription_calls_nothing():
    client, _ = _make_client()
    subscribed, message = Counter(), Counter()
    ident = client.subscribe("Chat", on_subscribed=subscribed, on_message=message)

    _feed(client, {"type": "reject_subscription", "identifier": ident})

    assert subscribed.n == 0
    assert message.n == 0
    assert client.is_closed is False


def test_unknown_type_is_dropped_and_processing_continues(caplog):
    client, _ = _make_client()
    got = Counter()
    ident = client.subscribe("Chat", on_message=got)

    with caplog.at_level(logging.ERROR, logger="test"):
        _feed(client, {"type": "bogus", "identifier": ident, "message": 1})
    _feed(client, {"identifier": ident, "message": 2})

    assert "UNKNOWN_FRAME_TYPE" in caplog.text
    assert got.args == [(2,)]
    assert client.is_closed is False


def test_malformed_json_is_a_transport_failure():
    cannot, chan_down = Counter(), Counter()
    client, transport = _make_client(on_cannot_connect=cannot)
    client.subscribe("Chat", on_disconnected=chan_down)

    client._handle_text("{not json")

    assert client.closed_reason == CLOSED_TRANSPORT_ERROR
    assert cannot.n == 1
    assert chan_down.n == 1
    assert transport.close_calls == 1


def test_user_callback_exception_does_not_escape():
    client, _ = _make_client()

    def boom(_msg):
        raise ValueError("boom")

    ident = client.subscribe("Chat", on_message=boom)
    _feed(client, {"identifier": ident, "message": 1})

    assert client.is_closed is False


# -----------------------------
# Tests: teardown
# -----------------------------

def test_disconnect_notifies_every_channel_once_and_is_idempotent():
    client, transport = _make_client()
    a, b = Counter(), Counter()
    client.subscribe("A", on_disconnected=a)
    client.subscribe("B", {"x": 1}, on_disconnected=b)
    client.subscribe("C", on_message=Counter())

    client.disconnect()
    client.disconnect()

    assert a.n == 1
    assert b.n == 1
    assert transport.close_calls == 1
    assert client.closed_reason == CLOSED_DISCONNECTED
    assert client.wait_closed(timeout=0) is True


def test_disconnect_does_not_fire_connection_callbacks():
    lost, cannot = Counter(), Counter()
    client, _ = _make_client(on_connection_lost=lost, on_cannot_connect=cannot)

    client.disconnect()

    assert lost.n == 0
    assert cannot.n == 0


def test_calls_after_disconnect_raise_closed():
    client, transport = _make_client()
    client.disconnect()

    with pytest.raises(CableClosedError):
        client.subscribe("Chat")
    with pytest.raises(CableClosedError):
        client.unsubscribe("Chat")
    with pytest.raises(CableClosedError):
        client.perform_action("Chat", "speak")
    assert transport.sent == []


def test_send_failure_tears_down_and_reports_cannot_connect():
    cannot = Counter()
    client, transport = _make_client(on_cannot_connect=cannot)
    transport.raise_on_send = TransportIOError("broken pipe")

    client.subscribe("Chat")

    assert client.closed_reason == CLOSED_TRANSPORT_ERROR
    assert cannot.n == 1


def test_frame_sink_sees_both_directions():
    sink = ListSink()
    client, _ = _make_client(frame_sink=sink)

    ident = client.subscribe("Chat")
    _feed(client, {"type": "confirm_subscription", "identifier": ident})

    assert [(e.direction, e.kind, e.identifier) for e in sink.events] == [
        ("out", "subscribe", ident),
        ("in", "confirm_subscription", ident),
    ]
    assert sink.events[0].ts_utc is not None


# -----------------------------
# Tests: lifecycle with RX thread
# -----------------------------

def test_connect_open_failure_reports_cannot_connect():
    cannot = Counter()
    transport = FakeTransport(fail_open=TransportOpenError("refused"))

    client = ActionCable.connect("ws://unused", transport=transport, on_cannot_connect=cannot)

    assert transport.open_calls == 1
    assert cannot.n == 1
    assert client.closed_reason == CLOSED_TRANSPORT_ERROR
    assert client.status().open is False


def test_connect_unknown_scheme_raises_config_error():
    with pytest.raises(CableConfigError):
        ActionCable.connect("http://example.com/cable", drivers=TransportDriverRegistry({}))


def test_connect_uses_driver_registry_with_headers():
    created = {}

    class RecordingTransport(FakeTransport):
        def __init__(self, url, headers=None, *, ping_interval=None, open_timeout=None):
            super().__init__()
            created.update(url=url, headers=headers, ping_interval=ping_interval, open_timeout=open_timeout)

    drivers = TransportDriverRegistry({"ws": RecordingTransport})
    client = ActionCable.connect("ws://host/cable", {"Origin": "http://host"}, drivers=drivers)
    try:
        assert created == {
            "url": "ws://host/cable",
            "headers": {"Origin": "http://host"},
            "ping_interval": 3.0,
            "open_timeout": 10.0,
        }
        assert client.status().open is True
    finally:
        client.disconnect()


def test_rx_thread_processes_frames_in_order():
    transport = FakeTransport()
    client = ActionCable.connect("ws://unused", transport=transport, logger=logging.getLogger("test"))
    try:
        seen: list = []
        ident = client.subscribe("Chat", on_message=seen.append)

        transport.inbox.put(json.dumps({"type": "welcome"}))
        for i in range(5):
            transport.inbox.put(json.dumps({"identifier": ident, "message": i}))

        assert client.wait_welcome(timeout=2.0) is True
        transport.inbox.put(json.dumps({"type": "bogus"}))
        transport.inbox.put(TransportClosedError("peer closed"))
        assert client.wait_closed(timeout=2.0) is True

        assert seen == [0, 1, 2, 3, 4]
    finally:
        client.disconnect()


def test_unauthorized_then_peer_close_reports_each_cause_once():
    cannot, lost, chan_down = Counter(), Counter(), Counter()
    transport = FakeTransport()
    client = ActionCable.connect(
        "ws://unused",
        transport=transport,
        on_cannot_connect=cannot,
        on_connection_lost=lost,
    )
    client.subscribe("Chat", on_disconnected=chan_down)

    transport.inbox.put(json.dumps({"type": "disconnect", "reason": "unauthorized"}))
    transport.inbox.put(TransportClosedError("peer closed"))

    assert client.wait_closed(timeout=2.0) is True
    assert client.closed_reason == CLOSED_TRANSPORT_ERROR
    assert cannot.n == 2
    assert lost.n == 0
    assert chan_down.n == 1


def test_caller_disconnect_stops_rx_without_error_callbacks():
    cannot = Counter()
    transport = FakeTransport()
    client = ActionCable.connect("ws://unused", transport=transport, on_cannot_connect=cannot)
    rx = client._rx_thread

    client.disconnect()

    assert rx is not None and not rx.is_alive()
    assert cannot.n == 0
    assert transport.close_calls == 1


# -----------------------------
# Tests: watchdog through the client
# -----------------------------

def test_watchdog_declares_loss_once_after_timeout():
    clock = FakeClock(0.0)
    lost, cannot, chan_down = Counter(), Counter(), Counter()
    transport = FakeTransport()
    client = ActionCable.connect(
        "ws://unused",
        transport=transport,
        health_check_interval_s=60.0,  # ticks are driven by hand below
        liveness_timeout_s=6.0,
        on_connection_lost=lost,
        on_cannot_connect=cannot,
        clock=clock,
    )
    try:
        client.subscribe("Chat", on_disconnected=chan_down)
        watchdog = client._watchdog
        assert watchdog is not None

        _feed(client, {"type": "ping", "message": 0})

        clock.now = 5.0
        assert watchdog.tick() is False
        assert lost.n == 0

        clock.now = 7.0
        assert watchdog.tick() is True
        assert watchdog.tick() is False

        assert lost.n == 1
        assert cannot.n == 0
        assert chan_down.n == 1
        assert watchdog.stopped is True
        assert client.closed_reason == CLOSED_CONNECTION_LOST
    finally:
        client.disconnect()


def test_watchdog_grace_period_before_first_ping():
    clock = FakeClock(1_000_000.0)
    lost = Counter()
    client = ActionCable.connect(
        "ws://unused",
        transport=FakeTransport(),
        health_check_interval_s=60.0,
        on_connection_lost=lost,
        clock=clock,
    )
    try:
        assert client._watchdog.tick() is False
        assert lost.n == 0
        assert client.is_closed is False
    finally:
        client.disconnect()


def test_no_watchdog_without_interval():
    client = ActionCable.connect("ws://unused", transport=FakeTransport())
    try:
        assert client._watchdog is None
    finally:
        client.disconnect()


def test_non_finite_ping_does_not_trip_watchdog():
    clock = FakeClock(100.0)
    lost = Counter()
    client = ActionCable.connect(
        "ws://unused",
        transport=FakeTransport(),
        health_check_interval_s=60.0,
        liveness_timeout_s=6.0,
        on_connection_lost=lost,
        clock=clock,
    )
    try:
        _feed(client, {"type": "ping", "message": float("nan")})
        _feed(client, {"type": "ping", "message": float("inf")})

        assert client._watchdog.tick() is False
        assert client.status().last_heartbeat_age_s is None

        _feed(client, {"type": "ping", "message": 99.0})
        clock.now = 110.0
        assert client._watchdog.tick() is True
        assert lost.n == 1
    finally:
        client.disconnect()


# -----------------------------
# Tests: option validation
# -----------------------------

@pytest.mark.parametrize(
    "kwargs",
    [
        {"health_check_interval_s": 0},
        {"health_check_interval_s": -1.0},
        {"health_check_interval_s": float("inf")},
        {"liveness_timeout_s": 0.0},
        {"liveness_timeout_s": -6},
        {"liveness_timeout_s": float("nan")},
        {"liveness_timeout_s": True},
    ],
)
def test_non_positive_intervals_are_config_errors(kwargs):
    with pytest.raises(CableConfigError):
        ActionCable(FakeTransport(), **kwargs)


def test_connect_rejects_zero_interval_before_opening():
    transport = FakeTransport()
    with pytest.raises(CableConfigError):
        ActionCable.connect("ws://unused", transport=transport, health_check_interval_s=0)
    assert transport.open_calls == 0
