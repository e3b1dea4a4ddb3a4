"""Client configuration from environment variables and a named-environments file."""

import json
import os
import re
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Mapping, Optional, Union

from skaftin.client import (
    DEFAULT_API_URL,
    DEFAULT_ENV_CONFIG_FILE_PATH,
    DEFAULT_REFRESH_ENDPOINT,
    DEFAULT_SESSION_CHECK_INTERVAL,
    DEFAULT_TOKEN_REFRESH_BUFFER,
    DEFAULT_TOKEN_STORAGE_KEY,
    DEFAULT_USER_STORAGE_KEY,
)

# Endpoints where a 401 means "bad credentials", never "expired session"
DEFAULT_AUTH_ENDPOINT_PATTERN = (
    r"/auth/(?:auth/)?(?:login|register|logout|verify-otp|forgot-password"
    r"|verify-forgot-password-otp|reset-password|session/refresh)\b"
    r"|/auth/users/[^/]+/resend-otp\b"
)


@dataclass
class AuthEndpoints:
    login: str = "/app-api/auth/auth/login"
    register: str = "/app-api/auth/auth/register"
    verify: str = "/app-api/auth/auth/verify"
    logout: str = "/app-api/auth/auth/logout"
    verify_otp: str = "/app-api/auth/auth/verify-otp"
    resend_otp: str = "/app-api/auth/users/{userId}/resend-otp"
    forgot_password: str = "/app-api/auth/forgot-password"
    verify_forgot_password_otp: str = "/app-api/auth/verify-forgot-password-otp"
    reset_password: str = "/app-api/auth/reset-password"
    session_refresh: str = DEFAULT_REFRESH_ENDPOINT


@dataclass
class ClientConfig:
    api_url: str = DEFAULT_API_URL
    api_key: str = ""
    access_token: str = ""
    project_id: Optional[str] = None
    endpoints: AuthEndpoints = field(default_factory=AuthEndpoints)
    auth_endpoint_pattern: str = DEFAULT_AUTH_ENDPOINT_PATTERN
    token_refresh_buffer: float = DEFAULT_TOKEN_REFRESH_BUFFER
    session_check_interval: float = DEFAULT_SESSION_CHECK_INTERVAL
    token_storage_key: str = DEFAULT_TOKEN_STORAGE_KEY
    user_storage_key: str = DEFAULT_USER_STORAGE_KEY

    @property
    def refresh_endpoint(self) -> str:
        return self.endpoints.session_refresh

    def is_auth_endpoint(self, endpoint: str) -> bool:
        return re.search(self.auth_endpoint_pattern, endpoint) is not None

    def validate(self) -> "ClientConfig":
        if not self.api_key and not self.access_token:
            raise ValueError("Skaftin credentials required. Set SKAFTIN_API_KEY or SKAFTIN_ACCESS_TOKEN")
        return self

    @classmethod
    def from_environ(cls, environ: Optional[Mapping[str, str]] = None) -> "ClientConfig":
        """Read SKAFTIN_API_URL, SKAFTIN_API_KEY (or SKAFTIN_API), SKAFTIN_ACCESS_TOKEN and SKAFTIN_PROJECT_ID."""
        env = os.environ if environ is None else environ
        return cls(
            api_url=env.get("SKAFTIN_API_URL") or DEFAULT_API_URL,
            api_key=env.get("SKAFTIN_API_KEY") or env.get("SKAFTIN_API") or "",
            access_token=env.get("SKAFTIN_ACCESS_TOKEN") or "",
            project_id=env.get("SKAFTIN_PROJECT_ID") or None,
        )


@dataclass
class EnvConfig:
    environments: dict = field(default_factory=dict)
    default_environment: Optional[str] = None


def load_env_config(path: Union[str, os.PathLike] = DEFAULT_ENV_CONFIG_FILE_PATH) -> EnvConfig:
    """Load named environments from a JSON file. Returns an empty EnvConfig if the file doesn't exist."""
    expanded = Path(path).expanduser()
    if not expanded.exists():
        return EnvConfig()

    data = json.loads(expanded.read_text())

    environments = {}
    for name, env_data in data.get("environments", {}).items():
        config = ClientConfig(
            api_url=env_data.get("api_url", DEFAULT_API_URL),
            api_key=env_data.get("api_key", ""),
            access_token=env_data.get("access_token", ""),
            project_id=env_data.get("project_id"),
        )
        if env_data.get("refresh_endpoint"):
            config.endpoints.session_refresh = env_data["refresh_endpoint"]
        environments[name] = config

    return EnvConfig(
        environments=environments,
        default_environment=data.get("default_environment"),
    )


def resolve_config(
    env_name: Optional[str] = None,
    path: Union[str, os.PathLike] = DEFAULT_ENV_CONFIG_FILE_PATH,
    environ: Optional[Mapping[str, str]] = None,
) -> ClientConfig:
    """Resolve which configuration to use.

    Resolution order:
    1. Explicit env_name (--env flag)
    2. default_environment from the environments file
    3. Environment variables only

    Credentials missing from a file entry are taken from the environment variables.
    """
    from_environ = ClientConfig.from_environ(environ)
    env_config = load_env_config(path)

    if env_name:
        if env_name not in env_config.environments:
            raise ValueError(f"Unknown environment: {env_name} not found in config at {path}")
        config = env_config.environments[env_name]
    elif env_config.default_environment and env_config.default_environment in env_config.environments:
        config = env_config.environments[env_config.default_environment]
    else:
        return from_environ

    return replace(
        config,
        api_key=config.api_key or from_environ.api_key,
        access_token=config.access_token or from_environ.access_token,
    )
