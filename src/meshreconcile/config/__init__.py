"""Application configuration helpers."""

from __future__ import annotations

from .cluster import ClusterConfig, default_cluster_resilience, get_cluster_config
from .env import env_flag, optional_env_var, require_env_vars
from .errors import ConfigurationError, MissingConfigurationError
from .http_resilience import RateLimit, ResilienceConfig, RetryPolicy
from .logging import configure_logging

__all__ = [
    "ClusterConfig",
    "ConfigurationError",
    "MissingConfigurationError",
    "RateLimit",
    "ResilienceConfig",
    "RetryPolicy",
    "configure_logging",
    "default_cluster_resilience",
    "env_flag",
    "get_cluster_config",
    "optional_env_var",
    "require_env_vars",
]
