"""Remote sources.

Adapters that read, write and subscribe to the remote collection and emit
normalized child events.
"""

from pyreplica.remote.base import RemoteSource
from pyreplica.remote.memory import InMemoryRemote
from pyreplica.remote.rest import RestRemote

__all__ = ["InMemoryRemote", "RemoteSource", "RestRemote"]
