"""Custom exception hierarchy for pyreplica."""

from __future__ import annotations


class ReplicaError(Exception):
    """Base exception for all pyreplica errors."""


class ReplicaConfigError(ReplicaError):
    """Invalid or missing configuration (namespace, store)."""


class ReplicaRemoteError(ReplicaError):
    """A read or write against the remote source failed."""

    def __init__(self, message: str, *, path: str = "") -> None:
        self.path = path
        super().__init__(message)


class ReplicaTransportError(ReplicaRemoteError):
    """HTTP-level failure (network, non-2xx, invalid JSON)."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        path: str = "",
    ) -> None:
        self.status_code = status_code
        super().__init__(message, path=path)


class ReplicaConsistencyError(ReplicaError):
    """An incremental event referenced a key the replica does not hold.

    Raised by the pure reconcile functions. Live event handlers catch it,
    log it and skip the event so the pipeline keeps running.
    """

    def __init__(self, message: str, *, key: str | None = None) -> None:
        self.key = key
        super().__init__(message)
