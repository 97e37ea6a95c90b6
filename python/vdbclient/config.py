"""
Connection configuration for vdbclient
"""

import math
import os
from typing import Optional

from pydantic import BaseModel, Field

from vdbclient.version import API_VERSION

ENV_PREFIX = "VDB_"

DEFAULT_HOST = "localhost"
DEFAULT_PORT = 19530
DEFAULT_TIMEOUT = 30.0


def _env(name: str) -> Optional[str]:
    value = os.environ.get(ENV_PREFIX + name)
    return value if value else None


def _env_bool(name: str) -> bool:
    return (_env(name) or "").lower() in ("1", "true", "yes", "on")


class ConnectParams(BaseModel):
    """Where and how to reach the vector database server"""
    host: str = Field(default=DEFAULT_HOST, description="Server hostname")
    port: int = Field(default=DEFAULT_PORT, description="Server port")
    user: Optional[str] = Field(default=None, description="User name")
    password: Optional[str] = Field(default=None, description="Password for user")
    token: Optional[str] = Field(default=None, description="API token, overrides user/password")
    db_name: Optional[str] = Field(default=None, description="Database to operate on")
    timeout: float = Field(default=DEFAULT_TIMEOUT, description="Request timeout in seconds")
    secure: bool = Field(default=False, description="Use https")

    @classmethod
    def resolve(
        cls,
        host: Optional[str] = None,
        port: Optional[int] = None,
        user: Optional[str] = None,
        password: Optional[str] = None,
        token: Optional[str] = None,
        db_name: Optional[str] = None,
        timeout: Optional[float] = None,
        secure: Optional[bool] = None,
    ) -> "ConnectParams":
        """
        Build connection parameters

        Explicit arguments win over VDB_* environment variables, which win
        over the defaults.

        Args:
            host: Hostname of the server
            port: Port of the server
            user: User name for authentication
            password: Password for authentication
            token: API token for authentication
            db_name: Database name
            timeout: Request timeout in seconds
            secure: Whether to connect over https

        Returns:
            Resolved connection parameters
        """
        env_port = _env("PORT")
        env_timeout = _env("TIMEOUT")
        return cls(
            host=host or _env("HOST") or DEFAULT_HOST,
            port=port or (int(env_port) if env_port else DEFAULT_PORT),
            user=user or _env("USER"),
            password=password or _env("PASSWORD"),
            token=token or _env("TOKEN"),
            db_name=db_name or _env("DB_NAME"),
            timeout=timeout or (float(env_timeout) if env_timeout else DEFAULT_TIMEOUT),
            secure=_env_bool("SECURE") if secure is None else secure,
        )

    @property
    def base_url(self) -> str:
        scheme = "https" if self.secure else "http"
        return f"{scheme}://{self.host}:{self.port}/{API_VERSION}/vectordb"

    @property
    def auth_token(self) -> Optional[str]:
        if self.token:
            return self.token
        if self.user:
            return f"{self.user}:{self.password or ''}"
        return None

    def headers(self) -> dict:
        headers = {
            "Content-Type": "application/json",
            "Request-Timeout": str(math.ceil(self.timeout)),
        }
        token = self.auth_token
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers
