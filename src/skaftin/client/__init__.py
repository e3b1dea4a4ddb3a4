import logging
import os
from importlib.metadata import PackageNotFoundError, version
from logging import NullHandler
from pathlib import Path

logging.getLogger(__name__).addHandler(NullHandler())

try:
    __version__ = version("skaftin-client")
except PackageNotFoundError:
    __version__ = "0.0.0"

DEFAULT_API_URL = "http://localhost:4006"
DEFAULT_REFRESH_ENDPOINT = "/app-api/auth/session/refresh"

DEFAULT_TOKEN_STORAGE_KEY = "skaftin_access_token"
DEFAULT_USER_STORAGE_KEY = "skaftin_user"

# Seconds before expiry at which a token is refreshed proactively
DEFAULT_TOKEN_REFRESH_BUFFER = 60.0
DEFAULT_SESSION_CHECK_INTERVAL = 5 * 60.0

DEFAULT_ENV_CONFIG_FILE_PATH = (
    Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config")) / "skaftin" / "environments.json"
)

DEFAULT_CREDENTIALS_PATH = (
    Path(os.environ.get("XDG_CACHE_HOME", Path.home() / ".cache")) / "skaftin-client" / "credentials.json"
)
