# cable/cli/commands.py
from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Any, Optional

from cable.app.config import CableConfig
from cable.app.profiles import ProfileLoader
from cable.core.errors import CableConfigError, CableConnectError
from cable.core.recording.frames import FrameTraceLogger
from cable.protocol.client import ActionCable
from cable.protocol.state import CLOSED_CONNECTION_LOST, CLOSED_TRANSPORT_ERROR


# ---------------- Logging ----------------

def configure_file_logging(app_log_path: Path) -> None:
    """
    Add a file handler to the root logger (idempotent).
    Kept in CLI (presentation-layer concern).
    """
    root = logging.getLogger()
    app_log_path.parent.mkdir(parents=True, exist_ok=True)
    target = str(app_log_path.resolve())

    for h in root.handlers:
        if isinstance(h, logging.FileHandler) and getattr(h, "baseFilename", None) == target:
            return

    fh = logging.FileHandler(app_log_path, encoding="utf-8", delay=True)
    fh.setLevel(logging.INFO)
    fh.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s"))
    root.addHandler(fh)

    if root.level > logging.INFO:
        root.setLevel(logging.INFO)


# ---------------- Config ----------------

def resolve_config(args) -> CableConfig:
    """Profile (if any) + CLI overrides -> CableConfig."""
    if args.profile:
        base = ProfileLoader(args.config).get(args.profile)
    elif args.url:
        base = CableConfig(url=args.url)
    else:
        raise CableConfigError("No cable URL given.", hint="Use --url or --config/--profile.")

    return base.with_overrides(
        url=args.url,
        headers=args.headers or None,
        health_check_interval_s=args.health_check,
        liveness_timeout_s=args.timeout,
    )


def _format(value: Any) -> str:
    try:
        return json.dumps(value, ensure_ascii=False)
    except (TypeError, ValueError):
        return repr(value)


# ---------------- Run plumbing ----------------

class _Run:
    """One client + its optional trace sink, closed together."""

    def __init__(self, args, cfg: CableConfig):
        self.args = args
        self.cfg = cfg
        self.log = logging.getLogger("cable.cli")
        self.failed = threading.Event()
        self.sink: Optional[FrameTraceLogger] = None
        self.client: Optional[ActionCable] = None

        if args.log_file:
            configure_file_logging(Path(args.log_file))
        if args.trace:
            self.sink = FrameTraceLogger(logger=logging.getLogger("cable.frames"), file_path=Path(args.trace))

    def connect(self) -> ActionCable:
        cfg = self.cfg
        self.client = ActionCable.connect(
            cfg.url,
            cfg.headers,
            health_check_interval_s=cfg.health_check_interval_s,
            liveness_timeout_s=cfg.liveness_timeout_s,
            ping_interval_s=cfg.ping_interval_s,
            open_timeout_s=cfg.open_timeout_s,
            on_connected=lambda: print(f"CONNECTED {cfg.url}"),
            on_connection_lost=self._on_lost,
            on_cannot_connect=self._on_cannot_connect,
            frame_sink=self.sink,
        )
        return self.client

    def _on_lost(self) -> None:
        print("CONNECTION LOST (no heartbeat)")
        self.failed.set()

    def _on_cannot_connect(self) -> None:
        print(f"CANNOT CONNECT {self.cfg.url}")
        self.failed.set()

    def close(self) -> None:
        if self.client is not None:
            self.client.disconnect()
        if self.sink is not None:
            self.sink.close()


# ---------------- Commands ----------------

def cmd_profiles(args) -> int:
    profiles = ProfileLoader(args.config).load_all()
    if not profiles:
        print("Profiles: (none)")
        return 0

    print("Profiles:")
    for name in sorted(profiles):
        p = profiles[name]
        hc = p.health_check_interval_s if p.health_check_interval_s is not None else "off"
        print(f"  - {name}: url={p.url} health_check_s={hc} timeout_s={p.liveness_timeout_s}")
    return 0


def cmd_listen(args) -> int:
    run = _Run(args, resolve_config(args))
    channel = args.channel

    try:
        client = run.connect()
        if client.is_closed:
            return 1

        identifier = client.subscribe(
            channel,
            args.params or None,
            on_subscribed=lambda: print(f"SUBSCRIBED {channel}"),
            on_disconnected=lambda: print(f"DISCONNECTED {channel}"),
            on_message=lambda msg: print(f"MESSAGE {channel} -> {_format(msg)}"),
        )
        run.log.info("LISTEN identifier=%s secs=%s", identifier, args.secs)

        try:
            client.wait_closed(timeout=args.secs)
        except KeyboardInterrupt:
            print("Stopping…")

        return 1 if client.closed_reason in (CLOSED_TRANSPORT_ERROR, CLOSED_CONNECTION_LOST) else 0
    finally:
        run.close()


def cmd_perform(args) -> int:
    run = _Run(args, resolve_config(args))

    try:
        client = run.connect()
        if not client.wait_welcome(timeout=args.welcome_timeout):
            raise CableConnectError(
                f"No welcome from {run.cfg.url} within {args.welcome_timeout}s.",
                hint="Check the URL, the Origin header and the server's authentication.",
                details={"url": run.cfg.url, "closed_reason": client.closed_reason},
            )

        # the server only accepts actions on channels this connection is subscribed to
        confirmed = threading.Event()
        client.subscribe(args.channel, args.params or None, on_subscribed=confirmed.set)
        if not confirmed.wait(timeout=args.welcome_timeout):
            raise CableConnectError(
                f"Subscription to {args.channel} not confirmed within {args.welcome_timeout}s.",
                hint="The channel may not exist or may have rejected the subscription.",
                details={"channel": args.channel, "params": args.params},
            )

        client.perform_action(args.channel, args.action, args.params or None, args.action_params)
        print(f"SENT {args.action} -> {args.channel} {_format(args.action_params)}")
        return 0
    finally:
        run.close()
