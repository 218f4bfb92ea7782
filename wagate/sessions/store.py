"""In-memory tenant → live connection mapping."""

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from wagate.whatsapp.connection import Connection


class SessionStore:
    """Single source of truth for "is tenant X connected".

    At most one connection per tenant. Callers tear down the previous entry
    before ``put``; a replaced entry that is still present is returned so the
    caller can see it happened.
    """

    def __init__(self):
        self._connections: dict[str, "Connection"] = {}

    def get(self, tenant_id: str) -> "Connection | None":
        return self._connections.get(tenant_id)

    def put(self, tenant_id: str, connection: "Connection") -> "Connection | None":
        previous = self._connections.get(tenant_id)
        self._connections[tenant_id] = connection
        return previous if previous is not connection else None

    def remove(self, tenant_id: str, connection: "Connection | None" = None) -> bool:
        """Drop the tenant entry; with ``connection`` only if it is still the registered one."""
        current = self._connections.get(tenant_id)
        if current is None or (connection is not None and current is not connection):
            return False
        del self._connections[tenant_id]
        return True

    def tenants(self) -> list[str]:
        return list(self._connections)

    def __contains__(self, tenant_id: str) -> bool:
        return tenant_id in self._connections

    def __len__(self) -> int:
        return len(self._connections)
