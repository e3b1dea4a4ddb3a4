from __future__ import annotations

import argparse
import asyncio
import json
import sys
from typing import Any

from skaftin.client.cli._common import make_client, print_json
from skaftin.client.errors import ApiError

COMMAND = "call"

METHODS = ["get", "post", "put", "patch", "delete"]


def register_parser(subparsers: argparse._SubParsersAction) -> None:
    call_parser = subparsers.add_parser(
        COMMAND,
        help="Make an authenticated request to the Skaftin API",
    )
    call_parser.add_argument("method", metavar="METHOD", choices=METHODS, help=f"HTTP method ({', '.join(METHODS)})")
    call_parser.add_argument("endpoint", metavar="ENDPOINT", help="Endpoint path, e.g. /app-api/auth/auth/verify")
    call_parser.add_argument("-d", "--data", help="Request body (JSON string)")
    call_parser.add_argument(
        "-H",
        "--header",
        action="append",
        dest="headers",
        metavar="HEADER",
        help="Header in 'Key: Value' format (repeatable)",
    )
    call_parser.add_argument(
        "-p",
        "--param",
        action="append",
        dest="params",
        metavar="KEY=VALUE",
        help="Query parameter for GET requests (repeatable)",
    )
    call_parser.add_argument(
        "--format",
        dest="output_format",
        choices=["json", "jsonl"],
        default="json",
        help="Output format: json (default) or jsonl (one item of the data list per line)",
    )


def _parse_headers(raw: list[str] | None) -> dict[str, str]:
    headers: dict[str, str] = {}
    for h in raw or []:
        if ": " not in h:
            raise ValueError(f"Invalid header format '{h}'. Expected 'Key: Value'.")
        key, value = h.split(": ", 1)
        headers[key] = value
    return headers


def _parse_params(raw: list[str] | None) -> dict[str, str]:
    params: dict[str, str] = {}
    for p in raw or []:
        if "=" not in p:
            raise ValueError(f"Invalid parameter format '{p}'. Expected 'key=value'.")
        key, value = p.split("=", 1)
        params[key] = value
    return params


def _parse_body(raw: str | None) -> Any:
    if not raw:
        return None
    try:
        return json.loads(raw)
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON data: {e}") from e


async def _call(parsed: argparse.Namespace) -> Any:
    headers = _parse_headers(parsed.headers)
    async with make_client(parsed) as client:
        if parsed.method == "get":
            resp = await client.get(parsed.endpoint, _parse_params(parsed.params), headers=headers)
        else:
            resp = await client.request(
                parsed.endpoint, parsed.method, headers=headers, body=_parse_body(parsed.data)
            )
    try:
        return resp.json()
    except ValueError:
        return resp.text


def run(parsed: argparse.Namespace) -> int:
    try:
        body = asyncio.run(_call(parsed))
    except ApiError as e:
        print(f"Error: {e} (status={e.status})", file=sys.stderr)
        if e.data:
            print_json(e.data)
        return 1
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if isinstance(body, str):
        print(body)
    else:
        print_json(body, output_format=parsed.output_format)
    return 0
