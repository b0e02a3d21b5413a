#!/usr/bin/env python3
"""
Operator client for the SentryX agent control socket.

Usage:
    python scripts/agent_client.py --master-key KEY list
    python scripts/agent_client.py --master-key KEY install \
        --repo https://github.com/acme/widget.git --branch main \
        --install-command ./build.sh --run-command ./widget
    python scripts/agent_client.py --master-key KEY start acme/widget
    python scripts/agent_client.py --master-key KEY watch
"""

import argparse
import asyncio
import json
import os
import sys
from typing import Any, Optional

import websockets

AUTH_SUCCESS = "Success"


def build_command(args: argparse.Namespace) -> Optional[dict[str, Any]]:
    """Translate CLI arguments into a command frame (None for `watch`)"""
    if args.action == "watch":
        return None
    if args.action == "install":
        return {"Install": {
            "repo": args.repo,
            "branch": args.branch,
            "install_command": args.install_command,
            "run_command": args.run_command,
            "enabled": not args.disabled,
        }}
    if args.action in ("list", "services"):
        return {args.action.capitalize(): {}}
    if args.action in ("enable", "disable"):
        return {"SetEnabled": {"id": args.id, "enabled": args.action == "enable"}}
    return {args.action.capitalize(): {"id": args.id}}


async def run(url: str, master_key: str, command: Optional[dict[str, Any]]) -> int:
    async with websockets.connect(url) as websocket:
        await websocket.send(master_key)
        reply = await websocket.recv()
        if reply != AUTH_SUCCESS:
            print(f"❌ Handshake rejected: {reply}")
            return 1

        if command is None:
            while True:
                print(await websocket.recv())

        await websocket.send(json.dumps(command))
        while True:
            frame = json.loads(await websocket.recv())
            if frame.get("type") != "response":
                continue  # telemetry
            print(json.dumps(frame, indent=2))
            return 0 if frame.get("ok") else 1


def main() -> None:
    parser = argparse.ArgumentParser(description="Send a command to a SentryX agent")
    parser.add_argument("--url", default=os.getenv("SENTRYX_URL", "ws://127.0.0.1:5273/ws"))
    parser.add_argument("--master-key", default=os.getenv("SENTRYX_MASTER_KEY", "master_key"))
    sub = parser.add_subparsers(dest="action", required=True)

    install = sub.add_parser("install")
    install.add_argument("--repo", required=True)
    install.add_argument("--branch", default="main")
    install.add_argument("--install-command", default="")
    install.add_argument("--run-command", required=True)
    install.add_argument("--disabled", action="store_true")

    for action in ("uninstall", "start", "stop", "restart", "enable", "disable", "get", "status"):
        sub.add_parser(action).add_argument("id")

    sub.add_parser("list")
    sub.add_parser("services")
    sub.add_parser("watch")

    args = parser.parse_args()

    try:
        code = asyncio.run(run(args.url, args.master_key, build_command(args)))
    except KeyboardInterrupt:
        code = 0
    except (OSError, websockets.exceptions.WebSocketException) as e:
        print(f"❌ Connection error: {e}")
        code = 1
    sys.exit(code)


if __name__ == "__main__":
    main()
