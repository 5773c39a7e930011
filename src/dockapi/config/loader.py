"""Configuration loader for dockapi.

Loads an optional YAML file, overlays the standard ``DOCKER_*`` environment
variables and validates the result against Pydantic models.
"""

import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml
from pydantic import BaseModel, Field, field_validator

DEFAULT_URL = "unix:///var/run/docker.sock"
DEFAULT_API_VERSION = "1.41"


class LoggingConfig(BaseModel):
    """Logging configuration."""

    log_level: str = Field(default="INFO", pattern=r"^(DEBUG|INFO|WARNING|ERROR)$")
    log_format: str = Field(default="console", pattern=r"^(json|console)$")
    log_file: Optional[Path] = Field(default=None)


class ClientConfig(BaseModel):
    """Connection settings for a container engine."""

    url: str = Field(default=DEFAULT_URL)
    api_version: str = Field(default=DEFAULT_API_VERSION, pattern=r"^\d+\.\d+$")
    timeout: Optional[float] = Field(default=None, gt=0)
    tls_verify: bool = Field(default=False)
    cert_path: Optional[Path] = Field(default=None)
    key_path: Optional[Path] = Field(default=None)
    ca_path: Optional[Path] = Field(default=None)
    user_agent: Optional[str] = Field(default=None)
    casify_keys: bool = Field(default=False)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @field_validator("url")
    @classmethod
    def _check_scheme(cls, value: str) -> str:
        if not value.startswith(("unix://", "tcp://", "http://", "https://")):
            raise ValueError(f"Unsupported engine URL scheme: {value}")
        return value

    @property
    def is_unix_socket(self) -> bool:
        return self.url.startswith("unix://")

    @property
    def socket_path(self) -> Optional[str]:
        if not self.is_unix_socket:
            return None
        return self.url[len("unix://"):]

    @property
    def base_url(self) -> str:
        """HTTP base URL handed to the transport."""
        if self.is_unix_socket:
            return "http://localhost"
        if self.url.startswith("tcp://"):
            scheme = "https" if self.tls_verify or self.cert_path else "http"
            return f"{scheme}://{self.url[len('tcp://'):]}"
        return self.url.rstrip("/")


def load_config(
    path: Optional[Path | str] = None,
    env: Optional[Mapping[str, str]] = None,
) -> ClientConfig:
    """Load client configuration.

    Args:
        path: Optional YAML file. Missing keys fall back to defaults.
        env: Environment mapping; defaults to ``os.environ``.

    Returns:
        Validated ClientConfig object.

    Raises:
        FileNotFoundError: If ``path`` is given but doesn't exist.
        pydantic.ValidationError: If configuration is invalid.
    """
    env = os.environ if env is None else env
    data: Dict[str, Any] = {}

    if path is not None:
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")
        with open(path) as f:
            data = yaml.safe_load(f) or {}

    _apply_env(data, env)
    return ClientConfig(**data)


def _apply_env(data: Dict[str, Any], env: Mapping[str, str]) -> None:
    """Overlay DOCKER_* variables onto ``data``."""
    if env.get("DOCKER_HOST"):
        data["url"] = env["DOCKER_HOST"]
    if env.get("DOCKER_API_VERSION"):
        data["api_version"] = env["DOCKER_API_VERSION"].lstrip("v")
    if env.get("DOCKER_TLS_VERIFY"):
        data["tls_verify"] = env["DOCKER_TLS_VERIFY"] not in ("", "0")
    cert_dir = env.get("DOCKER_CERT_PATH")
    if cert_dir:
        cert_dir_path = Path(cert_dir)
        data.setdefault("cert_path", cert_dir_path / "cert.pem")
        data.setdefault("key_path", cert_dir_path / "key.pem")
        data.setdefault("ca_path", cert_dir_path / "ca.pem")
