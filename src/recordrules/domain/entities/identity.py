"""Identity entity for the acting principal.

The engine never authenticates. Callers hand it an ``Identity`` describing who
is acting, and the engine reads ids, groups and named attributes from it.
"""

from dataclasses import dataclass, field
from typing import Any

SUPERUSER_ROLES = ("superuser", "admin")


class Identity:
    """Read-only view over the acting principal.

    Subclasses must provide ``id`` and ``groups``. The capability methods
    ``is_superuser`` and ``has_role`` are optional: returning ``None`` means
    the capability is not provided, and the engine falls through to the next
    check in its lookup order.
    """

    @property
    def id(self) -> Any:
        raise NotImplementedError

    @property
    def groups(self) -> frozenset[str]:
        raise NotImplementedError

    @property
    def tenant_id(self) -> Any:
        return self.get_attribute("tenant_id")

    def get_attribute(self, name: str) -> Any:
        """Get a named attribute, or None when absent."""
        if name == "id":
            return self.id
        if name == "groups":
            return self.groups
        return None

    def is_superuser(self) -> bool | None:
        return None

    def has_role(self, role: str) -> bool | None:
        return None

    def check_superuser(self) -> bool:
        """Resolve the superuser capability.

        Lookup order:
        1. ``is_superuser()`` when provided.
        2. ``has_role("superuser")`` / ``has_role("admin")`` when provided.
        3. The ``is_admin`` attribute.
        """
        explicit = self.is_superuser()
        if explicit is not None:
            return bool(explicit)

        provided = False
        for role in SUPERUSER_ROLES:
            answer = self.has_role(role)
            if answer is None:
                continue
            provided = True
            if answer:
                return True
        if provided:
            return False

        return bool(self.get_attribute("is_admin"))


@dataclass(frozen=True)
class UserIdentity(Identity):
    """Concrete identity built from plain values.

    Attributes:
        user_id: Identity ID.
        user_groups: Group/role names the identity belongs to.
        attributes: Arbitrary named attributes (team_ids, tenant_id, is_admin...).
        superuser: Explicit superuser capability, or None when not provided.
        roles: Role names answering ``has_role``, or None when not provided.
    """

    user_id: Any
    user_groups: frozenset[str] = field(default_factory=frozenset)
    attributes: dict[str, Any] = field(default_factory=dict, hash=False, compare=False)
    superuser: bool | None = None
    roles: frozenset[str] | None = None

    def __post_init__(self) -> None:
        if self.user_id is None:
            raise ValueError("Identity ID is required")
        object.__setattr__(self, "user_groups", frozenset(self.user_groups))
        if self.roles is not None:
            object.__setattr__(self, "roles", frozenset(self.roles))

    @property
    def id(self) -> Any:
        return self.user_id

    @property
    def groups(self) -> frozenset[str]:
        return self.user_groups

    def get_attribute(self, name: str) -> Any:
        if name in ("id", "groups"):
            return super().get_attribute(name)
        return self.attributes.get(name)

    def is_superuser(self) -> bool | None:
        return self.superuser

    def has_role(self, role: str) -> bool | None:
        if self.roles is None:
            return None
        return role in self.roles

    @classmethod
    def from_mapping(cls, data: dict[str, Any]) -> "UserIdentity":
        """Build an identity from a plain mapping.

        ``id``, ``groups``, ``roles`` and ``superuser`` are lifted out; every
        other key becomes an attribute. ``roles`` answers ``has_role`` and
        doubles as the group list when ``groups`` is absent.
        """
        data = dict(data)
        user_id = data.pop("id", None)
        roles = data.pop("roles", None)
        groups = data.pop("groups", None)
        if groups is None:
            groups = roles or []
        superuser = data.pop("superuser", None)
        return cls(
            user_id=user_id,
            user_groups=frozenset(groups),
            attributes=data,
            superuser=superuser,
            roles=None if roles is None else frozenset(roles),
        )
