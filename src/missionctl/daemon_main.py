from __future__ import annotations

import argparse
import sys
from typing import Optional

from .daemon.server import serve_forever
from .daemon.supervisor import Supervisor, is_server_process
from .errors import MissionctlError
from .paths import default_paths
from .util.obslog import setup_cli_logging


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(prog="missionctld", description="missionctl control server")
    sub = parser.add_subparsers(dest="cmd", required=True)

    sub.add_parser("run", help="Run the server in the foreground")
    sub.add_parser("start", help="Start the server in the background")
    sub.add_parser("stop", help="Stop the server")
    sub.add_parser("status", help="Server status")
    sub.add_parser("restart", help="Stop, then start the server")

    args = parser.parse_args(argv)
    paths = default_paths()

    if args.cmd == "run" or (args.cmd == "start" and is_server_process()):
        return int(serve_forever(paths))

    setup_cli_logging()
    sup = Supervisor(paths)
    try:
        if args.cmd == "start":
            pid = sup.start()
            print(f"missionctld: running pid={pid}")
            return 0

        if args.cmd == "stop":
            outcome = sup.stop()
            print("missionctld: not running" if outcome == "not_running" else f"missionctld: stopped ({outcome})")
            return 0

        if args.cmd == "restart":
            pid = sup.restart()
            print(f"missionctld: restarted pid={pid}")
            return 0

        if args.cmd == "status":
            st = sup.status()
            if st["running"]:
                print(f"missionctld: running pid={st['pid']} version={st.get('version') or '?'}")
                return 0
            print("missionctld: not running")
            return 1
    except MissionctlError as e:
        print(f"error: {e}", file=sys.stderr)
        if e.hint:
            print(f"hint: {e.hint}", file=sys.stderr)
        return 1

    return 2


if __name__ == "__main__":
    raise SystemExit(main())
