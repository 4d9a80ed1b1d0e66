"""Internal constants shared across the library."""

USER_AGENT = "pyreplica/1"

#: Field minted by the default projection; also the identity used by reconciliation.
KEY_FIELD = "_key"

#: Field the default ordering sorts on (ascending).
DEFAULT_ORDER_FIELD = "timestamp"

PATH_SEPARATOR = "/"

# ------------------------------------------------------------------
# Event stream (server-sent events) vocabulary
# ------------------------------------------------------------------

SSE_CONTENT_TYPE = "text/event-stream"
SSE_EVENT_PUT = "put"
SSE_EVENT_PATCH = "patch"
SSE_EVENT_KEEP_ALIVE = "keep-alive"
SSE_EVENT_CANCEL = "cancel"
SSE_EVENT_AUTH_REVOKED = "auth_revoked"
SSE_CLOSING_EVENTS: frozenset[str] = frozenset({SSE_EVENT_CANCEL, SSE_EVENT_AUTH_REVOKED})
