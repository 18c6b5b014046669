"""Pytest configuration for all tests."""

from typing import Any, Callable

import pytest

from recordrules.core.config import Settings
from recordrules.domain.entities import EntityRecord, UserIdentity
from recordrules.domain.services import RecordRuleEngine


@pytest.fixture
def settings() -> Settings:
    """Settings isolated from the environment."""
    return Settings(
        _env_file=None,
        environment="testing",
        default_deny=False,
        cache_enabled=True,
        log_format="console",
    )


@pytest.fixture
def engine(settings: Settings) -> RecordRuleEngine:
    """Engine with a private store and cache, allowing ungoverned entities."""
    return RecordRuleEngine(settings=settings)


@pytest.fixture
def strict_engine(settings: Settings) -> RecordRuleEngine:
    """Engine denying access to ungoverned entity/operation pairs."""
    return RecordRuleEngine(settings=settings, default_deny=True)


@pytest.fixture
def alice() -> UserIdentity:
    return UserIdentity(user_id=1, user_groups={"salesperson"}, attributes={"team_ids": [10, 20]})


@pytest.fixture
def bob() -> UserIdentity:
    return UserIdentity(user_id=2, user_groups={"salesperson"}, attributes={"team_ids": [30]})


@pytest.fixture
def manager() -> UserIdentity:
    return UserIdentity(user_id=3, user_groups={"manager"})


@pytest.fixture
def admin() -> UserIdentity:
    return UserIdentity(user_id=99, user_groups={"staff"}, superuser=True)


@pytest.fixture
def make_record() -> Callable[..., EntityRecord]:
    """Factory for entity records: make_record("invoice", id=1, ...)."""

    def _make(entity_name: str = "invoice", **attributes: Any) -> EntityRecord:
        return EntityRecord(entity_name=entity_name, attributes=attributes)

    return _make
