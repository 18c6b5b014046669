"""Repositories for database access."""

from recordrules.infrastructure.persistence.repositories.record_rule_repository import (
    RecordRuleRepository,
)

__all__ = ["RecordRuleRepository"]
