"""Client configuration for pyreplica."""

from __future__ import annotations

import dataclasses
import os
from typing import Any

from pyreplica._constants import DEFAULT_ORDER_FIELD


@dataclasses.dataclass(frozen=True)
class ReplicaConfig:
    """Remote connection and replica configuration.

    Parameters
    ----------
    base_url : str
        Root URL of the remote JSON tree (e.g.
        ``"https://example-default-rtdb.firebaseio.com"``). Only used by
        :class:`pyreplica.remote.rest.RestRemote`.
    auth_token : str or None
        Static token appended as the ``auth`` query parameter.
    request_timeout : float
        Total timeout in seconds for a single point read/write.
    stream_reconnect_delay : float
        Seconds to wait before reopening a dropped event stream.
    stream_max_retries : int
        Consecutive reconnect attempts before a stream is given up.
        ``0`` disables reconnects.
    order_field : str
        Item field the default ordering sorts on.
    """

    base_url: str = ""
    auth_token: str | None = None
    request_timeout: float = 30.0
    stream_reconnect_delay: float = 2.0
    stream_max_retries: int = 5
    order_field: str = DEFAULT_ORDER_FIELD

    @classmethod
    def from_env(cls, **overrides: Any) -> ReplicaConfig:
        """Create configuration from ``REPLICA_*`` environment variables.

        Explicit keyword arguments override environment values.
        """
        env = os.environ

        _ENV_CONFIG_MAP = {
            "REPLICA_BASE_URL": "base_url",
            "REPLICA_AUTH_TOKEN": "auth_token",
            "REPLICA_ORDER_FIELD": "order_field",
        }
        config_kwargs: dict[str, Any] = {}
        for env_key, field_name in _ENV_CONFIG_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val

        timeout_env = env.get("REPLICA_REQUEST_TIMEOUT")
        if timeout_env is not None and "request_timeout" not in overrides:
            config_kwargs["request_timeout"] = float(timeout_env)

        delay_env = env.get("REPLICA_STREAM_RECONNECT_DELAY")
        if delay_env is not None and "stream_reconnect_delay" not in overrides:
            config_kwargs["stream_reconnect_delay"] = float(delay_env)

        retries_env = env.get("REPLICA_STREAM_MAX_RETRIES")
        if retries_env is not None and "stream_max_retries" not in overrides:
            config_kwargs["stream_max_retries"] = int(retries_env)

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
