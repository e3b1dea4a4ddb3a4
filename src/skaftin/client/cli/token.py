from __future__ import annotations

import argparse
import sys

from skaftin.client.config import resolve_config
from skaftin.client.credential_store import CredentialStore
from skaftin.client.internal.credential_storage import make_storage

COMMAND = "token"


def register_parser(subparsers: argparse._SubParsersAction) -> None:
    token_parser = subparsers.add_parser(
        COMMAND,
        help="Show the status of the stored session token",
    )
    token_parser.add_argument(
        "--clear",
        action="store_true",
        default=False,
        help="Remove the stored token and user profile",
    )


def run(parsed: argparse.Namespace) -> int:
    try:
        config = resolve_config(parsed.env_name, parsed.env_config_file_path)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    store = CredentialStore(
        make_storage(parsed.storage), token_key=config.token_storage_key, user_key=config.user_storage_key
    )

    if parsed.clear:
        store.clear_all()
        print("Cleared stored credentials")
        return 0

    if not store.has_token():
        print("No session token stored")
        return 1

    expiry = store.token_expiry()
    if expiry is None:
        print("Session token stored, expiry unknown")
        return 0

    remaining = store.time_until_expiry() or 0.0
    state = "expired" if store.is_expired() else "valid"
    print(f"Session token {state}, expires at {expiry.isoformat()} ({int(remaining)}s remaining)")
    return 0
