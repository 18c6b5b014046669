"""Tests for Identity entities."""

from typing import Any

import pytest

from recordrules.domain.entities import Identity, UserIdentity


class MinimalIdentity(Identity):
    """Identity exposing only id, groups and a few attributes."""

    def __init__(self, identity_id: Any, groups=(), **attributes: Any):
        self._id = identity_id
        self._groups = frozenset(groups)
        self._attributes = attributes

    @property
    def id(self) -> Any:
        return self._id

    @property
    def groups(self) -> frozenset[str]:
        return self._groups

    def get_attribute(self, name: str) -> Any:
        if name in self._attributes:
            return self._attributes[name]
        return super().get_attribute(name)


class TestUserIdentity:
    """Test the concrete identity."""

    def test_id_and_groups(self):
        identity = UserIdentity(user_id=5, user_groups=["sales", "sales"])
        assert identity.id == 5
        assert identity.groups == frozenset({"sales"})

    def test_id_required(self):
        with pytest.raises(ValueError, match="Identity ID is required"):
            UserIdentity(user_id=None)

    def test_attributes(self):
        identity = UserIdentity(user_id=5, attributes={"team_ids": [1]})
        assert identity.get_attribute("team_ids") == [1]
        assert identity.get_attribute("id") == 5
        assert identity.get_attribute("missing") is None

    def test_tenant_id(self):
        assert UserIdentity(user_id=5, attributes={"tenant_id": "acme"}).tenant_id == "acme"
        assert UserIdentity(user_id=5).tenant_id is None

    def test_from_mapping(self):
        identity = UserIdentity.from_mapping(
            {"id": 5, "groups": ["sales"], "team_ids": [1], "superuser": False}
        )
        assert identity.id == 5
        assert identity.groups == frozenset({"sales"})
        assert identity.get_attribute("team_ids") == [1]
        assert identity.is_superuser() is False

    def test_from_mapping_roles_as_groups(self):
        identity = UserIdentity.from_mapping({"id": 5, "roles": ["manager"]})
        assert identity.groups == frozenset({"manager"})

    def test_from_mapping_keeps_roles(self):
        identity = UserIdentity.from_mapping({"id": 5, "roles": ["admin"]})
        assert identity.has_role("admin") is True
        assert identity.check_superuser() is True
        assert identity.groups == frozenset({"admin"})

    def test_from_mapping_without_roles(self):
        identity = UserIdentity.from_mapping({"id": 5, "groups": ["admin"]})
        assert identity.has_role("admin") is None
        assert identity.check_superuser() is False


class TestSuperuserLookup:
    """Test the superuser capability lookup order."""

    def test_explicit_superuser(self):
        assert UserIdentity(user_id=1, superuser=True).check_superuser()

    def test_explicit_false_wins_over_is_admin(self):
        identity = UserIdentity(user_id=1, superuser=False, attributes={"is_admin": True})
        assert not identity.check_superuser()

    def test_superuser_role(self):
        assert UserIdentity(user_id=1, roles={"superuser"}).check_superuser()

    def test_admin_role(self):
        assert UserIdentity(user_id=1, roles={"admin"}).check_superuser()

    def test_roles_without_admin_win_over_is_admin(self):
        identity = UserIdentity(user_id=1, roles={"editor"}, attributes={"is_admin": True})
        assert not identity.check_superuser()

    def test_is_admin_attribute(self):
        assert UserIdentity(user_id=1, attributes={"is_admin": True}).check_superuser()

    def test_regular_user(self):
        assert not UserIdentity(user_id=1, user_groups={"admin"}).check_superuser()

    def test_minimal_identity_uses_is_admin(self):
        assert MinimalIdentity(1, is_admin=True).check_superuser()
        assert not MinimalIdentity(1).check_superuser()

    def test_base_identity_requires_id(self):
        with pytest.raises(NotImplementedError):
            Identity().id
