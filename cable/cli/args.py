# cable/cli/args.py
from __future__ import annotations

import argparse
import json
import math
from typing import Any, Dict, List, Optional


# ---------------- key=value helpers (CLI-local) ----------------

def parse_value(raw: str) -> Any:
    """
    JSON-ish literal for CLI values: `1` -> 1, `true` -> True, `"x"` -> 'x',
    anything that is not valid JSON stays a plain string.
    """
    try:
        return json.loads(raw)
    except ValueError:
        return raw


def positive_float(raw: str) -> float:
    """argparse type for intervals and timeouts: a finite number > 0."""
    try:
        value = float(raw)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid number: {raw!r}") from None
    if not 0 < value < math.inf:
        raise argparse.ArgumentTypeError(f"must be > 0, got {raw}")
    return value


def parse_kv_pairs(items: Optional[List[str]], *, typed: bool = True, flag: str = "--param") -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for item in items or []:
        key, sep, value = item.partition("=")
        if not sep or not key:
            raise argparse.ArgumentTypeError(f"Invalid {flag} '{item}' (expected key=value)")
        out[key] = parse_value(value) if typed else value
    return out


# ---------------- argparse ----------------

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="cable")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging to stderr.")
    sub = parser.add_subparsers(dest="cmd", required=True)

    p_profiles = sub.add_parser("profiles")
    p_profiles.add_argument("--config", required=True, help="Profiles YAML file.")

    conn = argparse.ArgumentParser(add_help=False)
    conn.add_argument("--url", help="Cable endpoint, e.g. ws://localhost:3000/cable")
    conn.add_argument("--config", help="Profiles YAML file (with --profile).")
    conn.add_argument("--profile", help="Profile name inside --config.")
    conn.add_argument("--header", action="append", metavar="K=V", help="Extra handshake header (repeatable).")
    conn.add_argument("--health-check", type=positive_float, default=None, metavar="SECS",
                      help="Watchdog interval in seconds (default: profile value, else off).")
    conn.add_argument("--timeout", type=positive_float, default=None, metavar="SECS",
                      help="Liveness timeout in seconds (default 6).")
    conn.add_argument("--log-file", default=None, help="Also write INFO logs to this file.")
    conn.add_argument("--trace", default=None, help="Record every frame to this JSONL file.")

    chan = argparse.ArgumentParser(add_help=False)
    chan.add_argument("--channel", required=True, help="Channel name ('Chat' means 'ChatChannel').")
    chan.add_argument("--param", action="append", metavar="K=V", help="Channel param (repeatable).")

    p_listen = sub.add_parser("listen", parents=[conn, chan])
    p_listen.add_argument("--secs", type=float, default=None, help="Stop after N seconds (default: run until closed).")

    p_perform = sub.add_parser("perform", parents=[conn, chan])
    p_perform.add_argument("--action", required=True)
    p_perform.add_argument("--data", action="append", metavar="K=V", help="Action param (repeatable).")
    p_perform.add_argument("--welcome-timeout", type=positive_float, default=5.0,
                           help="Seconds to wait for the server welcome before giving up.")

    return parser


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.cmd in ("listen", "perform"):
        if not args.url and not args.profile:
            parser.error("one of --url or --profile is required")
        if args.profile and not args.config:
            parser.error("--profile requires --config")
        try:
            args.headers = parse_kv_pairs(args.header, typed=False, flag="--header")
            args.params = parse_kv_pairs(args.param)
            args.action_params = parse_kv_pairs(getattr(args, "data", None), flag="--data")
        except argparse.ArgumentTypeError as e:
            parser.error(str(e))

    return args
