from __future__ import annotations

import argparse
import asyncio
import sys

from skaftin.client.cli._common import make_client
from skaftin.client.session import SessionLifecycle

COMMAND = "logout"


def register_parser(subparsers: argparse._SubParsersAction) -> None:
    subparsers.add_parser(COMMAND, help="End the session and remove the stored token")


async def _logout(parsed: argparse.Namespace) -> None:
    async with make_client(parsed) as client:
        lifecycle = SessionLifecycle(client)
        try:
            await lifecycle.logout()
        finally:
            lifecycle.close()


def run(parsed: argparse.Namespace) -> int:
    try:
        asyncio.run(_logout(parsed))
        print("Logged out")
        return 0
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
