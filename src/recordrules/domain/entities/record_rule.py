"""Record rule entity for row-level security.

A record rule grants access to the records of one entity type that match its
domain, for the operations whose permission flag is set, to the identities it
applies to (everyone for global rules, members of its groups otherwise).
"""

import dataclasses
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterable

from recordrules.core.rules.ast import Predicate

OPERATIONS = ("read", "write", "create", "delete")

GLOBAL_SCOPE = "global"
GROUP_SCOPE = "group"


@dataclass(frozen=True)
class RecordRule:
    """Record rule entity.

    Attributes:
        id: Unique identifier.
        entity_name: Entity type this rule governs.
        name: Human-readable label.
        domain: AND-combined predicates. Empty means "always matches".
        groups: Group names the rule applies to.
        is_global: Whether the rule applies to every identity.
        perm_read: Participates in read decisions.
        perm_write: Participates in write decisions.
        perm_create: Participates in create decisions.
        perm_delete: Participates in delete decisions.
        plugin_id: Owning plugin, None for core rules.
        is_active: Inactive rules never participate in decisions.
        created_at: Timestamp when the rule was defined.
    """

    id: str
    entity_name: str
    name: str
    domain: tuple[Predicate, ...] = ()
    groups: frozenset[str] = field(default_factory=frozenset)
    is_global: bool = False
    perm_read: bool = True
    perm_write: bool = False
    perm_create: bool = False
    perm_delete: bool = False
    plugin_id: str | None = None
    is_active: bool = True
    created_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc), compare=False
    )

    def __post_init__(self) -> None:
        """Validate rule after initialization."""
        if not self.id:
            raise ValueError("Record rule ID is required")
        if not self.entity_name:
            raise ValueError("Entity name is required")
        object.__setattr__(self, "domain", tuple(self.domain))
        object.__setattr__(self, "groups", frozenset(self.groups))

    def allows(self, operation: str) -> bool:
        """Check whether the permission flag for an operation is set.

        Raises:
            ValueError: If the operation is unknown.
        """
        if operation not in OPERATIONS:
            raise ValueError(f"Unknown operation: {operation}")
        return bool(getattr(self, f"perm_{operation}"))

    def scope_for(self, groups: Iterable[str]) -> str | None:
        """Return the partition this rule falls into for a set of groups.

        Returns:
            GLOBAL_SCOPE, GROUP_SCOPE, or None when the rule does not apply.
        """
        if self.is_global:
            return GLOBAL_SCOPE
        if self.groups and not self.groups.isdisjoint(groups):
            return GROUP_SCOPE
        return None

    def applies_to(self, groups: Iterable[str]) -> bool:
        return self.scope_for(groups) is not None

    @property
    def is_inert(self) -> bool:
        """A non-global rule without groups applies to nobody."""
        return not self.is_global and not self.groups

    def replace(self, **changes: Any) -> "RecordRule":
        return dataclasses.replace(self, **changes)

    def to_definition(self) -> dict[str, Any]:
        """Return the rule in its raw definition form."""
        return {
            "name": self.name,
            "domain": [list(p.as_tuple()) for p in self.domain],
            "groups": sorted(self.groups),
            "is_global": self.is_global,
            "perm_read": self.perm_read,
            "perm_write": self.perm_write,
            "perm_create": self.perm_create,
            "perm_delete": self.perm_delete,
            "is_active": self.is_active,
        }
