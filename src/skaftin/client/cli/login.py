from __future__ import annotations

import argparse
import asyncio
import getpass
import sys

from skaftin.client.cli._common import make_client
from skaftin.client.errors import ApiError
from skaftin.client.session import SessionLifecycle, SessionUser

COMMAND = "login"

LOGIN_METHODS = ["email", "phone", "custom_field_1", "custom_field_2"]


def register_parser(subparsers: argparse._SubParsersAction) -> None:
    login_parser = subparsers.add_parser(
        COMMAND,
        help="Log in and store the session token",
    )
    login_parser.add_argument("--username", required=True, help="Email, phone or custom identifier")
    login_parser.add_argument("--password", help="Password. Prompted for when omitted.")
    login_parser.add_argument(
        "--method",
        choices=LOGIN_METHODS,
        default="email",
        help="What the username is (default: email)",
    )


async def _login(parsed: argparse.Namespace, password: str) -> SessionUser:
    async with make_client(parsed) as client:
        lifecycle = SessionLifecycle(client)
        try:
            return await lifecycle.login(parsed.username, password, parsed.method)
        finally:
            lifecycle.close()


def run(parsed: argparse.Namespace) -> int:
    try:
        password = parsed.password if parsed.password is not None else getpass.getpass("Password: ")
        user = asyncio.run(_login(parsed, password))
        print(f"Logged in as {user.name} ({user.email})")
        return 0
    except (ApiError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except Exception as e:
        print(f"Error logging in: {e}", file=sys.stderr)
        return 1
