"""Cluster API connection settings."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Final

from .env import env_flag, optional_env_var, require_env_vars
from .errors import ConfigurationError
from .http_resilience import RateLimit, ResilienceConfig, RetryPolicy

API_SERVER_ENV: Final[str] = "MESHRECONCILE_API_SERVER"
TOKEN_ENV: Final[str] = "MESHRECONCILE_TOKEN"
TOKEN_FILE_ENV: Final[str] = "MESHRECONCILE_TOKEN_FILE"
CA_FILE_ENV: Final[str] = "MESHRECONCILE_CA_FILE"
VERIFY_TLS_ENV: Final[str] = "MESHRECONCILE_VERIFY_TLS"

SERVICE_ACCOUNT_DIR: Final[Path] = Path("/var/run/secrets/kubernetes.io/serviceaccount")
CLUSTER_TIMEOUT_SECONDS: Final[float] = 30.0

# Creates are never retried.
CLUSTER_RETRY_METHODS: Final[frozenset[str]] = frozenset({"DELETE", "GET", "PUT"})


@dataclass(frozen=True)
class ClusterConfig:
    """Holds the API server endpoint, credentials and HTTP behaviour."""

    api_server: str
    token: str | None
    resilience: ResilienceConfig


def default_cluster_resilience(
    api_server: str,
    *,
    verify: bool | str = True,
) -> ResilienceConfig:
    return ResilienceConfig(
        name="cluster",
        base_url=api_server,
        timeout_seconds=CLUSTER_TIMEOUT_SECONDS,
        retry=RetryPolicy(allowed_methods=CLUSTER_RETRY_METHODS),
        ratelimit=RateLimit(max_calls=5, per_seconds=1.0),
        verify=verify,
    )


def get_cluster_config(*, resilience: ResilienceConfig | None = None) -> ClusterConfig:
    """Load cluster settings from the environment.

    Explicit ``MESHRECONCILE_*`` variables win. Inside a pod without them, the
    in-cluster service account is used.
    """

    if optional_env_var(API_SERVER_ENV) is None and _in_cluster():
        return _in_cluster_config(resilience)

    api_server = require_env_vars((API_SERVER_ENV,))[API_SERVER_ENV].rstrip("/")
    token = optional_env_var(TOKEN_ENV)
    token_file = optional_env_var(TOKEN_FILE_ENV)
    if token is None and token_file is not None:
        token = _read_secret(Path(token_file))

    ca_file = optional_env_var(CA_FILE_ENV)
    verify: bool | str = env_flag(VERIFY_TLS_ENV, default=True)
    if verify and ca_file is not None:
        verify = ca_file

    return ClusterConfig(
        api_server=api_server,
        token=token,
        resilience=resilience or default_cluster_resilience(api_server, verify=verify),
    )


def _in_cluster() -> bool:
    return bool(os.getenv("KUBERNETES_SERVICE_HOST")) and SERVICE_ACCOUNT_DIR.is_dir()


def _in_cluster_config(resilience: ResilienceConfig | None) -> ClusterConfig:
    host = os.environ["KUBERNETES_SERVICE_HOST"]
    port = os.getenv("KUBERNETES_SERVICE_PORT", "443")
    if ":" in host:
        host = f"[{host}]"
    api_server = f"https://{host}:{port}"
    ca_file = SERVICE_ACCOUNT_DIR / "ca.crt"
    verify: bool | str = str(ca_file) if ca_file.is_file() else True
    return ClusterConfig(
        api_server=api_server,
        token=_read_secret(SERVICE_ACCOUNT_DIR / "token"),
        resilience=resilience or default_cluster_resilience(api_server, verify=verify),
    )


def _read_secret(path: Path) -> str:
    try:
        value = path.read_text(encoding="utf-8").strip()
    except OSError as exc:
        raise ConfigurationError(f"Cannot read token file {path}: {exc}") from exc
    if not value:
        raise ConfigurationError(f"Token file {path} is empty")
    return value
