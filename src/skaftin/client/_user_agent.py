"""User-Agent string handling for HTTP clients."""

import sys
from typing import Optional

from skaftin.client import __version__

_PY_VERSION = f"{sys.version_info.major}.{sys.version_info.minor}.{sys.version_info.micro}"


def get_user_agent(http_lib_version: str, client_name: Optional[str] = None) -> str:
    """Build a User-Agent like "skaftin-client/1.0.0 python/3.12.1 python-httpx/0.27.0 MyClient"."""
    agent = f"skaftin-client/{__version__} python/{_PY_VERSION} {http_lib_version}"
    return f"{agent} {client_name}" if client_name else agent
