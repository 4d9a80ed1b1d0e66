"""Base model for pyreplica value types.

Every replica model is immutable: state transitions build new instances
instead of mutating existing ones.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class ReplicaBaseModel(BaseModel):
    """Frozen base for records, actions and action-type tables."""

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        populate_by_name=True,
    )
