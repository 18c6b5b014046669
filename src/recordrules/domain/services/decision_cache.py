"""Access decision cache.

Memoizes rule selections per (entity, operation, identity, tenant) so that
repeated checks skip rule lookup and, where possible, domain evaluation.
Thread-safe implementation for concurrent access.

The cache never invalidates itself when rules change. Callers that modify
rules and need the change to take effect immediately must call ``clear``.
"""

import threading
import time
from dataclasses import dataclass
from typing import Any, NamedTuple

from recordrules.domain.entities.identity import Identity

GLOBAL_TENANT = "global"


class DecisionKey(NamedTuple):
    """Cache key. The tenant is part of the key so that identical user IDs in
    different tenants never share an entry."""

    entity_name: str
    operation: str
    identity_id: str
    tenant_id: str


@dataclass
class CacheEntry:
    """Cache entry with optional TTL support.

    Attributes:
        value: The cached value.
        expires_at: Unix timestamp when this entry expires, None for never.
    """

    value: Any
    expires_at: float | None = None

    def expired(self, now: float) -> bool:
        return self.expires_at is not None and now > self.expires_at


class AccessDecisionCache:
    """Thread-safe cache of access decisions."""

    def __init__(self, ttl_seconds: int | None = None):
        """Initialize the cache.

        Args:
            ttl_seconds: Time-to-live for entries in seconds, None to keep
                entries until explicitly cleared.
        """
        self.ttl_seconds = ttl_seconds
        self._cache: dict[DecisionKey, CacheEntry] = {}
        self._lock = threading.RLock()
        self._next_sweep: float | None = None

    @staticmethod
    def make_key(entity_name: str, operation: str, identity: Identity) -> DecisionKey:
        """Create a cache key for an identity's decision.

        Args:
            entity_name: Entity name.
            operation: Operation type (read, write, create, delete).
            identity: The acting identity.

        Returns:
            Cache key.
        """
        tenant_id = identity.tenant_id
        return DecisionKey(
            entity_name=entity_name,
            operation=operation,
            identity_id=str(identity.id),
            tenant_id=GLOBAL_TENANT if tenant_id is None else str(tenant_id),
        )

    def get(self, key: DecisionKey) -> Any | None:
        """Get a cached value.

        Returns:
            Cached value if found and not expired, None otherwise.
        """
        with self._lock:
            entry = self._cache.get(key)
            if entry is None:
                return None

            if entry.expired(time.time()):
                del self._cache[key]
                return None

            return entry.value

    def put(self, key: DecisionKey, value: Any) -> None:
        """Store a value in the cache.

        With a TTL set, expired entries are swept at most once per TTL
        period so that keys which are never read again do not pile up.
        """
        if self.ttl_seconds is None:
            with self._lock:
                self._cache[key] = CacheEntry(value=value)
            return

        now = time.time()
        with self._lock:
            if self._next_sweep is None or now >= self._next_sweep:
                self.cleanup_expired()
                self._next_sweep = now + self.ttl_seconds
            self._cache[key] = CacheEntry(value=value, expires_at=now + self.ttl_seconds)

    def clear(self, entity_name: str | None = None) -> int:
        """Clear entries for one entity, or every entry.

        Args:
            entity_name: Entity to clear, None for everything.

        Returns:
            Number of entries removed.
        """
        with self._lock:
            if entity_name is None:
                removed = len(self._cache)
                self._cache.clear()
                return removed

            keys_to_delete = [k for k in self._cache if k.entity_name == entity_name]
            for key in keys_to_delete:
                del self._cache[key]
            return len(keys_to_delete)

    def invalidate_identity(self, identity_id: Any, tenant_id: Any | None = None) -> int:
        """Invalidate all entries for an identity (e.g. after a group change).

        Args:
            identity_id: Identity ID.
            tenant_id: Tenant to restrict to, None for every tenant.

        Returns:
            Number of entries removed.
        """
        identity_id = str(identity_id)
        with self._lock:
            keys_to_delete = [
                k for k in self._cache
                if k.identity_id == identity_id
                and (tenant_id is None or k.tenant_id == str(tenant_id))
            ]
            for key in keys_to_delete:
                del self._cache[key]
            return len(keys_to_delete)

    def invalidate_all(self) -> None:
        """Clear entire cache."""
        with self._lock:
            self._cache.clear()

    def cleanup_expired(self) -> int:
        """Remove all expired entries from cache.

        Returns:
            Number of entries removed.
        """
        with self._lock:
            current_time = time.time()
            keys_to_delete = [
                key for key, entry in self._cache.items()
                if entry.expired(current_time)
            ]

            for key in keys_to_delete:
                del self._cache[key]

            return len(keys_to_delete)

    def size(self) -> int:
        """Get current cache size."""
        with self._lock:
            return len(self._cache)
