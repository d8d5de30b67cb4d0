"""Client configuration for pystiga."""

from __future__ import annotations

import dataclasses
import os
from datetime import timedelta
from typing import Any

from pystiga._constants import BASE_URL, DEFAULT_STALE_THRESHOLD, USER_AGENT


@dataclasses.dataclass(frozen=True)
class StigaConfig:
    """Client configuration.

    Parameters
    ----------
    access_token : str or None
        Bearer token sent with every cloud request. Obtaining it is the
        caller's responsibility.
    base_url : str
        Cloud API base URL.
    user_agent : str
        User agent sent with every cloud request.
    request_timeout : float
        Total timeout in seconds for a single HTTP request.
    response_timeout : float
        Seconds a push connector waits for the answer to a request before
        giving up.
    default_stale_threshold : float
        Age in seconds after which an ``ifstale`` read refreshes a key that
        declares no threshold of its own.
    garage_refresh_interval : float
        Minimum age in seconds of the garage data before an entity refresh
        triggers a new bulk reload. ``0`` reloads on every refresh.
    """

    access_token: str | None = None
    base_url: str = BASE_URL
    user_agent: str = USER_AGENT
    request_timeout: float = 10.0
    response_timeout: float = 5.0
    default_stale_threshold: float = DEFAULT_STALE_THRESHOLD.total_seconds()
    garage_refresh_interval: float = 30 * 60

    @property
    def stale_threshold(self) -> timedelta:
        return timedelta(seconds=self.default_stale_threshold)

    @property
    def garage_refresh(self) -> timedelta:
        return timedelta(seconds=self.garage_refresh_interval)

    @classmethod
    def from_env(cls, **overrides: Any) -> StigaConfig:
        """Create configuration from environment variables.

        Reads ``STIGA_ACCESS_TOKEN``, ``STIGA_BASE_URL`` and the optional
        numeric ``STIGA_*`` settings. Explicit keyword arguments override
        environment values.
        """
        env = os.environ

        _ENV_STR_MAP = {
            "STIGA_ACCESS_TOKEN": "access_token",
            "STIGA_BASE_URL": "base_url",
            "STIGA_USER_AGENT": "user_agent",
        }
        _ENV_FLOAT_MAP = {
            "STIGA_REQUEST_TIMEOUT": "request_timeout",
            "STIGA_RESPONSE_TIMEOUT": "response_timeout",
            "STIGA_STALE_THRESHOLD": "default_stale_threshold",
            "STIGA_GARAGE_REFRESH_INTERVAL": "garage_refresh_interval",
        }

        config_kwargs: dict[str, Any] = {}
        for env_key, field_name in _ENV_STR_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val

        for env_key, field_name in _ENV_FLOAT_MAP.items():
            val = env.get(env_key)
            if val is not None and field_name not in overrides:
                config_kwargs[field_name] = float(val)

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
