"""Rule store service.

In-memory store of record rules keyed by entity name. The store is an
explicit object handed to the engine, so engines only share rules when they
share a store.
"""

import threading
import uuid
from contextlib import contextmanager
from typing import Any, Iterable, Iterator, Mapping

from recordrules.core.logging import get_logger
from recordrules.core.rules.operators import OperatorRegistry
from recordrules.core.rules.rule_validator import RuleValidator
from recordrules.domain.entities.record_rule import OPERATIONS, RecordRule

logger = get_logger(__name__)


class ReadWriteLock:
    """Lock allowing many concurrent readers or one writer.

    Writers are preferred: once a writer is waiting, new readers queue
    behind it so rule updates are not starved by a steady read load.
    """

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    @contextmanager
    def read(self) -> Iterator[None]:
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if not self._readers:
                    self._cond.notify_all()

    @contextmanager
    def write(self) -> Iterator[None]:
        with self._cond:
            self._writers_waiting += 1
            while self._writer or self._readers:
                self._cond.wait()
            self._writers_waiting -= 1
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


class RuleStore:
    """Thread-safe store of record rules.

    Rules are kept in definition order per entity. ``define_rule`` upserts on
    ``(entity_name, name, plugin_id)``: redefining a rule replaces it in place
    and keeps its ID.
    """

    def __init__(self, operators: OperatorRegistry | None = None):
        """Initialize the store.

        Args:
            operators: Registry of operators rule domains may use.
        """
        self.operators = operators or OperatorRegistry()
        self._rules: dict[str, RecordRule] = {}
        self._by_entity: dict[str, dict[str, RecordRule]] = {}
        self._lock = ReadWriteLock()

    def define_rule(
        self, entity_name: str, definition: Mapping[str, Any], plugin_id: str | None = None
    ) -> RecordRule:
        """Define (create or replace) a record rule.

        Args:
            entity_name: Entity the rule governs.
            definition: Raw definition (name, domain, groups, is_global, perm_* flags, is_active).
            plugin_id: Owning plugin, None for core rules.

        Returns:
            The stored rule.

        Raises:
            RuleDefinitionError: If the definition is invalid.
        """
        fields = RuleValidator(self.operators).validate(entity_name, definition)
        entity_name = entity_name.strip()

        with self._lock.write():
            existing = self._find(entity_name, fields["name"], plugin_id)
            if existing is not None:
                rule = RecordRule(
                    id=existing.id,
                    entity_name=entity_name,
                    plugin_id=plugin_id,
                    created_at=existing.created_at,
                    **fields,
                )
            else:
                rule = RecordRule(
                    id=str(uuid.uuid4()), entity_name=entity_name, plugin_id=plugin_id, **fields
                )
            self._put(rule)

        logger.info(
            "Record rule defined",
            rule_id=rule.id,
            entity_name=entity_name,
            rule_name=rule.name,
            plugin_id=plugin_id,
            replaced=existing is not None,
        )
        return rule

    def add(self, rule: RecordRule) -> RecordRule:
        """Store an already-built rule (e.g. loaded from the database)."""
        with self._lock.write():
            self._put(rule)
        return rule

    def load(self, rules: Iterable[RecordRule]) -> int:
        """Store many rules at once.

        Returns:
            Number of rules loaded.
        """
        count = 0
        with self._lock.write():
            for rule in rules:
                self._put(rule)
                count += 1
        return count

    def rules_for(self, entity_name: str, operation: str) -> list[RecordRule]:
        """Get active rules for an entity whose flag for the operation is set.

        Raises:
            ValueError: If the operation is unknown.
        """
        if operation not in OPERATIONS:
            raise ValueError(f"Unknown operation: {operation}")
        with self._lock.read():
            rules = list(self._by_entity.get(entity_name, {}).values())
        return [r for r in rules if r.is_active and r.allows(operation)]

    def has_rules(self, entity_name: str) -> bool:
        """Check whether any active rule governs an entity."""
        return bool(self.get_rules_for_entity(entity_name))

    def get_rules_for_entity(self, entity_name: str) -> list[RecordRule]:
        """Get all active rules for an entity."""
        with self._lock.read():
            rules = list(self._by_entity.get(entity_name, {}).values())
        return [r for r in rules if r.is_active]

    def get(self, rule_id: str) -> RecordRule | None:
        with self._lock.read():
            return self._rules.get(rule_id)

    def all(self) -> list[RecordRule]:
        with self._lock.read():
            return list(self._rules.values())

    def count(self) -> int:
        with self._lock.read():
            return len(self._rules)

    def delete_rule(self, rule_id: str) -> bool:
        """Delete a single rule.

        Returns:
            True if the rule existed.
        """
        with self._lock.write():
            rule = self._rules.pop(rule_id, None)
            if rule is None:
                return False
            self._by_entity.get(rule.entity_name, {}).pop(rule_id, None)
        return True

    def delete_plugin_rules(self, plugin_id: str) -> int:
        """Delete every rule owned by a plugin.

        Rules owned by other plugins, and core rules, are left untouched.

        Returns:
            Number of rules deleted.
        """
        with self._lock.write():
            doomed = [r for r in self._rules.values() if plugin_id is not None and r.plugin_id == plugin_id]
            for rule in doomed:
                del self._rules[rule.id]
                self._by_entity.get(rule.entity_name, {}).pop(rule.id, None)

        logger.info("Plugin record rules deleted", plugin_id=plugin_id, count=len(doomed))
        return len(doomed)

    def clear(self) -> None:
        """Remove every rule."""
        with self._lock.write():
            self._rules.clear()
            self._by_entity.clear()

    def _find(self, entity_name: str, name: str, plugin_id: str | None) -> RecordRule | None:
        for rule in self._by_entity.get(entity_name, {}).values():
            if rule.name == name and rule.plugin_id == plugin_id:
                return rule
        return None

    def _put(self, rule: RecordRule) -> None:
        previous = self._rules.get(rule.id)
        if previous is not None and previous.entity_name != rule.entity_name:
            self._by_entity.get(previous.entity_name, {}).pop(rule.id, None)
        self._rules[rule.id] = rule
        self._by_entity.setdefault(rule.entity_name, {})[rule.id] = rule
