"""Repository for record rule operations.

Provides CRUD operations for the record_rules table and conversion between
database models and ``RecordRule`` entities.
"""

from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from recordrules.core.logging import get_logger
from recordrules.core.rules.operators import OperatorRegistry
from recordrules.core.rules.rule_validator import RuleValidator
from recordrules.domain.entities.record_rule import RecordRule
from recordrules.domain.services.rule_store import RuleStore
from recordrules.infrastructure.persistence.models import RecordRuleModel

logger = get_logger(__name__)


class RecordRuleRepository:
    """Repository for record rule database operations."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize the repository with a database session.

        Args:
            session: SQLAlchemy async session.
        """
        self.session = session

    async def create(self, rule: RecordRuleModel) -> RecordRuleModel:
        """Create a new record rule.

        Args:
            rule: The record rule model to create.

        Returns:
            The created record rule model.
        """
        self.session.add(rule)
        await self.session.flush()
        return rule

    async def get_by_id(self, rule_id: str) -> RecordRuleModel | None:
        """Get a record rule by ID."""
        result = await self.session.execute(
            select(RecordRuleModel).where(RecordRuleModel.id == rule_id)
        )
        return result.scalar_one_or_none()

    async def get_by_key(
        self, entity_name: str, name: str, plugin_id: str | None = None
    ) -> RecordRuleModel | None:
        """Get a record rule by its natural key (entity, name, plugin).

        Args:
            entity_name: Entity the rule governs.
            name: Rule name.
            plugin_id: Owning plugin, None for core rules.

        Returns:
            The record rule model if found, None otherwise.
        """
        query = select(RecordRuleModel).where(
            RecordRuleModel.entity_name == entity_name,
            RecordRuleModel.name == name,
        )
        if plugin_id is None:
            query = query.where(RecordRuleModel.plugin_id.is_(None))
        else:
            query = query.where(RecordRuleModel.plugin_id == plugin_id)

        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def list_all(self, entity_name: str | None = None) -> list[RecordRuleModel]:
        """List record rules, optionally for one entity, in creation order."""
        query = select(RecordRuleModel)
        if entity_name is not None:
            query = query.where(RecordRuleModel.entity_name == entity_name)
        result = await self.session.execute(query.order_by(RecordRuleModel.created_at, RecordRuleModel.id))
        return list(result.scalars().all())

    async def list_active(self, entity_name: str | None = None) -> list[RecordRuleModel]:
        """List active record rules, optionally for one entity."""
        query = select(RecordRuleModel).where(RecordRuleModel.is_active.is_(True))
        if entity_name is not None:
            query = query.where(RecordRuleModel.entity_name == entity_name)
        result = await self.session.execute(query.order_by(RecordRuleModel.created_at, RecordRuleModel.id))
        return list(result.scalars().all())

    async def upsert(self, rule: RecordRule) -> RecordRuleModel:
        """Insert or update a rule, matching on (entity, name, plugin).

        Args:
            rule: The rule entity to persist.

        Returns:
            The persisted record rule model.
        """
        model = await self.get_by_key(rule.entity_name, rule.name, rule.plugin_id)
        if model is None:
            model = self.from_entity(rule)
            return await self.create(model)

        self._apply(model, rule)
        await self.session.flush()
        return model

    async def delete(self, rule: RecordRuleModel) -> None:
        """Delete a record rule."""
        await self.session.delete(rule)
        await self.session.flush()

    async def delete_by_plugin(self, plugin_id: str) -> int:
        """Delete every rule owned by a plugin.

        Returns:
            Number of rules deleted.
        """
        result = await self.session.execute(
            delete(RecordRuleModel).where(RecordRuleModel.plugin_id == plugin_id)
        )
        await self.session.flush()
        logger.info("Plugin record rules deleted", plugin_id=plugin_id, count=result.rowcount)
        return result.rowcount

    async def load_into(self, store: RuleStore) -> int:
        """Load every persisted rule into a rule store.

        Args:
            store: Store to fill. Its operator registry validates the domains.

        Returns:
            Number of rules loaded.

        Raises:
            RuleDefinitionError: If a persisted rule is malformed.
        """
        models = await self.list_all()
        count = store.load(self.to_entity(m, store.operators) for m in models)
        logger.info("Record rules loaded", count=count)
        return count

    @staticmethod
    def to_entity(model: RecordRuleModel, operators: OperatorRegistry | None = None) -> RecordRule:
        """Convert a database model to a rule entity.

        Raises:
            RuleDefinitionError: If the stored definition is malformed.
        """
        definition: dict[str, Any] = {
            "name": model.name,
            "domain": model.domain or [],
            "groups": model.groups or [],
            "is_global": bool(model.is_global),
            "perm_read": bool(model.perm_read),
            "perm_write": bool(model.perm_write),
            "perm_create": bool(model.perm_create),
            "perm_delete": bool(model.perm_delete),
            "is_active": bool(model.is_active),
        }
        fields = RuleValidator(operators or OperatorRegistry()).validate(model.entity_name, definition)
        extra: dict[str, Any] = {}
        if model.created_at is not None:
            extra["created_at"] = model.created_at
        return RecordRule(
            id=model.id,
            entity_name=model.entity_name,
            plugin_id=model.plugin_id,
            **fields,
            **extra,
        )

    @classmethod
    def from_entity(cls, rule: RecordRule) -> RecordRuleModel:
        """Convert a rule entity to a new database model."""
        model = RecordRuleModel(
            id=rule.id,
            entity_name=rule.entity_name,
            plugin_id=rule.plugin_id,
            created_at=rule.created_at,
        )
        cls._apply(model, rule)
        return model

    @staticmethod
    def _apply(model: RecordRuleModel, rule: RecordRule) -> None:
        for key, value in rule.to_definition().items():
            setattr(model, key, value)
