# cable/cli/main.py
from __future__ import annotations

import logging
from typing import Optional

from cable.core.errors import CableError

from cable.cli.args import parse_args
from cable.cli.commands import (
    cmd_profiles,
    cmd_listen,
    cmd_perform,
)


def main(argv: Optional[list[str]] = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    try:
        if args.cmd == "profiles":
            return cmd_profiles(args)
        if args.cmd == "listen":
            return cmd_listen(args)
        if args.cmd == "perform":
            return cmd_perform(args)

        return 2
    except CableError as e:
        print(f"ERROR: {e.message}")
        if e.hint:
            print(f"Hint: {e.hint}")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
