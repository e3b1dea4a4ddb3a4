from __future__ import annotations

import argparse
import json
from typing import Any

from skaftin.client.config import resolve_config
from skaftin.client.httpx.client import AsyncApiClient


def make_client(parsed: argparse.Namespace) -> AsyncApiClient:
    """Build a client from the global CLI options. Raises ValueError on bad configuration."""
    config = resolve_config(parsed.env_name, parsed.env_config_file_path)
    return AsyncApiClient(config, storage=parsed.storage, client_name="skaftin-cli")


def print_json(body: Any, *, output_format: str = "json") -> None:
    if output_format == "jsonl":
        items = body.get("data") if isinstance(body, dict) else body
        if isinstance(items, list):
            for item in items:
                print(json.dumps(item))
            return
    print(json.dumps(body, indent=2))
