"""Record rule engine.

Row-level security for entity records: decides whether an identity may read,
write, create or delete a record, and rewrites queries so that bulk reads
return only the rows the identity could access one by one.

Decision order:
1. A bypass scope (``without_rules``) grants everything.
2. No identity denies everything.
3. A superuser is granted everything.
4. No active rule for the entity/operation: the default policy decides.
5. Applicable rules are split into the global partition (``is_global``) and
   the group partition (rule groups intersect the identity's groups). Rules
   within a partition are OR-ed, and the two partitions are AND-ed when both
   hold rules. If neither does, nothing grants access.

Example:
    engine = RecordRuleEngine(default_deny=False)
    engine.define_rule("invoice", {
        "name": "Salesperson sees own invoices",
        "domain": [["salesperson_id", "=", "{user.id}"]],
        "groups": ["salesperson"],
        "perm_read": True,
        "perm_write": True,
    })
    engine.can_access(invoice, "read", identity)
"""

from contextlib import contextmanager
from typing import Any, Callable, Iterator, Mapping, TypeVar

from sqlalchemy import false
from sqlalchemy.sql import Select

from recordrules.core.config import Settings, get_settings
from recordrules.core.context import BypassScope, get_current_identity
from recordrules.core.logging import get_logger
from recordrules.core.rules.matcher import DomainMatcher
from recordrules.core.rules.operators import MatchHandler, Operator, OperatorRegistry, SQLHandler
from recordrules.core.rules.placeholders import ContextResolver, DomainFunction, PlaceholderResolver
from recordrules.core.rules.sql_compiler import SQLCompiler, column_resolver
from recordrules.domain.entities.decision import (
    REASON_BYPASS,
    REASON_NO_IDENTITY,
    REASON_SUPERUSER,
    AccessExplanation,
    RuleEvaluation,
    RuleSelection,
)
from recordrules.domain.entities.identity import Identity
from recordrules.domain.entities.record import Record
from recordrules.domain.entities.record_rule import (
    GLOBAL_SCOPE,
    GROUP_SCOPE,
    OPERATIONS,
    RecordRule,
)
from recordrules.domain.services.decision_cache import AccessDecisionCache
from recordrules.domain.services.rule_store import RuleStore

logger = get_logger(__name__)

T = TypeVar("T")


class RecordRuleEngine:
    """Evaluates record rules for identities, records and queries."""

    def __init__(
        self,
        store: RuleStore | None = None,
        cache: AccessDecisionCache | None = None,
        settings: Settings | None = None,
        default_deny: bool | None = None,
        resolver: PlaceholderResolver | None = None,
    ):
        """Initialize the engine.

        Args:
            store: Rule store. A private store is created when omitted.
            cache: Decision cache. Created from settings when omitted.
            settings: Settings instance, loaded from the environment when omitted.
            default_deny: Overrides ``settings.default_deny``.
            resolver: Placeholder resolver. A private one is created when omitted.
        """
        self.settings = settings or get_settings()
        self.default_deny = self.settings.default_deny if default_deny is None else default_deny
        self.cache_enabled = self.settings.cache_enabled

        self.store = store or RuleStore()
        self.operators: OperatorRegistry = self.store.operators
        self.cache = cache or AccessDecisionCache(ttl_seconds=self.settings.decision_cache_ttl_seconds)
        self.resolver = resolver or PlaceholderResolver()
        self.matcher = DomainMatcher(self.operators, self.resolver)
        self.compiler = SQLCompiler(self.operators, self.resolver)
        self._bypass = BypassScope()

    # ------------------------------------------------------------------
    # Rule lifecycle
    # ------------------------------------------------------------------

    def define_rule(
        self, entity_name: str, definition: Mapping[str, Any], plugin_id: str | None = None
    ) -> RecordRule:
        """Define (create or replace) a record rule.

        Cached decisions are not invalidated; call ``clear_cache`` when the
        change must take effect immediately.

        Raises:
            RuleDefinitionError: If the definition is invalid.
        """
        return self.store.define_rule(entity_name, definition, plugin_id)

    def get_rules_for_entity(self, entity_name: str) -> list[RecordRule]:
        return self.store.get_rules_for_entity(entity_name)

    def delete_rule(self, rule_id: str) -> bool:
        return self.store.delete_rule(rule_id)

    def delete_plugin_rules(self, plugin_id: str) -> int:
        """Delete all rules owned by a plugin.

        Returns:
            Number of rules deleted.
        """
        return self.store.delete_plugin_rules(plugin_id)

    def clear_cache(self, entity_name: str | None = None) -> None:
        """Clear cached decisions for one entity, or all of them."""
        removed = self.cache.clear(entity_name)
        logger.info("Record rule cache cleared", entity_name=entity_name, removed=removed)

    # ------------------------------------------------------------------
    # Extension points
    # ------------------------------------------------------------------

    def register_operator(self, name: str, match: MatchHandler, sql: SQLHandler | None = None) -> Operator:
        """Register a custom domain operator.

        Args:
            name: Operator name as written in domains.
            match: In-memory matcher ``match(record, field, value)``.
            sql: Query compiler ``sql(column, value, resolve_column)``. Without
                one, the operator restricts queries to zero rows.
        """
        return self.operators.register(name, match, sql)

    def register_function(self, name: str, handler: DomainFunction) -> None:
        """Register a domain function usable as ``{name(args)}``."""
        self.resolver.register_function(name, handler)

    def set_context_resolver(self, resolver: ContextResolver | None) -> None:
        """Set the resolver for non-user placeholders such as ``{company.id}``."""
        self.resolver.set_context_resolver(resolver)

    # ------------------------------------------------------------------
    # Bypass scope
    # ------------------------------------------------------------------

    @property
    def bypassed(self) -> bool:
        return self._bypass.active

    @contextmanager
    def bypass(self) -> Iterator[None]:
        """Grant everything for the duration of a block."""
        with self._bypass.enter():
            yield

    def without_rules(self, callback: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """Run a callback with rules bypassed.

        The previous bypass state is restored when the callback returns or
        raises.
        """
        with self._bypass.enter():
            return callback(*args, **kwargs)

    # ------------------------------------------------------------------
    # Decisions
    # ------------------------------------------------------------------

    def can_access(self, record: Record, operation: str = "read", identity: Identity | None = None) -> bool:
        """Check whether an identity may perform an operation on a record.

        Args:
            record: The record.
            operation: read, write, create or delete.
            identity: Acting identity, defaults to the current identity.

        Returns:
            True if access is granted.
        """
        return self._check(record.entity_name, operation, record, identity)

    def can_read(self, record: Record, identity: Identity | None = None) -> bool:
        return self.can_access(record, "read", identity)

    def can_write(self, record: Record, identity: Identity | None = None) -> bool:
        return self.can_access(record, "write", identity)

    def can_delete(self, record: Record, identity: Identity | None = None) -> bool:
        return self.can_access(record, "delete", identity)

    def can_create(self, entity_name: str, identity: Identity | None = None) -> bool:
        """Check whether an identity may create records of an entity.

        There is no record yet, so only rules with an empty domain can grant
        creation.
        """
        return self._check(entity_name, "create", None, identity)

    def explain(
        self, record: Record | str, operation: str = "read", identity: Identity | None = None
    ) -> AccessExplanation:
        """Explain a decision without touching the cache.

        Args:
            record: The record, or an entity name for create checks.
            operation: read, write, create or delete.
            identity: Acting identity, defaults to the current identity.
        """
        self._validate_operation(operation)
        if isinstance(record, str):
            entity_name, target = record, None
        else:
            entity_name, target = record.entity_name, record

        def result(allowed: bool, reason: str, rules: list[RuleEvaluation] | None = None) -> AccessExplanation:
            return AccessExplanation(
                allowed=allowed,
                reason=reason,
                entity_name=entity_name,
                operation=operation,
                rules=rules or [],
            )

        if self._bypass.active:
            return result(True, REASON_BYPASS)

        identity = self._resolve_identity(identity)
        if identity is None:
            return result(False, REASON_NO_IDENTITY)
        if identity.check_superuser():
            return result(True, REASON_SUPERUSER)

        selection = self._build_selection(entity_name, operation, identity)
        evaluations: list[RuleEvaluation] = []
        allowed = self._evaluate(selection, target, identity, evaluations)
        return result(allowed, selection.reason, evaluations)

    def _check(self, entity_name: str, operation: str, record: Record | None, identity: Identity | None) -> bool:
        self._validate_operation(operation)
        if self._bypass.active:
            return True

        identity = self._resolve_identity(identity)
        if identity is None:
            return False
        if identity.check_superuser():
            return True

        selection = self._select(entity_name, operation, identity)
        if selection.fixed is not None:
            return selection.fixed
        return self._evaluate(selection, record, identity)

    # ------------------------------------------------------------------
    # Query rewriting
    # ------------------------------------------------------------------

    def apply_rules(
        self,
        query: Select,
        entity_name: str,
        operation: str = "read",
        identity: Identity | None = None,
    ) -> Select:
        """Restrict a query to the rows an identity may access.

        Without an identity the query is restricted to zero rows.

        Args:
            query: SQLAlchemy select over the entity's rows.
            entity_name: Entity the rows belong to.
            operation: read, write or delete.
            identity: Acting identity, defaults to the current identity.

        Returns:
            The rewritten query.
        """
        self._validate_operation(operation)
        if self._bypass.active:
            return query

        identity = self._resolve_identity(identity)
        if identity is None:
            return query.where(false())
        if identity.check_superuser():
            return query

        selection = self._select(entity_name, operation, identity)
        if selection.fixed is True:
            return query
        if selection.fixed is False:
            return query.where(false())

        clause = self.compiler.compile_selection(
            selection.global_rules, selection.group_rules, identity, column_resolver(query)
        )
        return query.where(clause)

    def apply_read_rules(self, query: Select, entity_name: str, identity: Identity | None = None) -> Select:
        return self.apply_rules(query, entity_name, "read", identity)

    def apply_write_rules(self, query: Select, entity_name: str, identity: Identity | None = None) -> Select:
        return self.apply_rules(query, entity_name, "write", identity)

    def apply_delete_rules(self, query: Select, entity_name: str, identity: Identity | None = None) -> Select:
        return self.apply_rules(query, entity_name, "delete", identity)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _validate_operation(operation: str) -> None:
        if operation not in OPERATIONS:
            raise ValueError(f"Unknown operation: {operation}")

    @staticmethod
    def _resolve_identity(identity: Identity | None) -> Identity | None:
        if identity is not None:
            return identity
        return get_current_identity()

    @staticmethod
    def _groups_of(identity: Identity) -> frozenset[str]:
        try:
            groups = identity.groups
        except NotImplementedError:
            return frozenset()
        return frozenset(groups or ())

    def _select(self, entity_name: str, operation: str, identity: Identity) -> RuleSelection:
        """Get the identity's rule selection, from the cache when possible."""
        if not self.cache_enabled:
            return self._build_selection(entity_name, operation, identity)

        key = self.cache.make_key(entity_name, operation, identity)
        selection = self.cache.get(key)
        if selection is not None:
            logger.debug("Record rule cache hit", entity_name=entity_name, operation=operation)
            return selection

        selection = self._build_selection(entity_name, operation, identity)
        self.cache.put(key, selection)
        return selection

    def _build_selection(self, entity_name: str, operation: str, identity: Identity) -> RuleSelection:
        rules = self.store.rules_for(entity_name, operation)
        if not rules:
            allowed = not self.default_deny
            logger.debug(
                "No record rules apply, using default policy",
                entity_name=entity_name,
                operation=operation,
                allowed=allowed,
            )
            return RuleSelection.default_policy(allowed)

        groups = self._groups_of(identity)
        global_rules = tuple(r for r in rules if r.scope_for(groups) == GLOBAL_SCOPE)
        group_rules = tuple(r for r in rules if r.scope_for(groups) == GROUP_SCOPE)
        return RuleSelection.from_partitions(global_rules, group_rules)

    def _evaluate(
        self,
        selection: RuleSelection,
        record: Record | None,
        identity: Identity,
        evaluations: list[RuleEvaluation] | None = None,
    ) -> bool:
        """Match the selection's partitions against a record.

        When ``evaluations`` is given every rule is evaluated and recorded;
        otherwise each partition stops at its first matching rule.
        """
        if selection.fixed is not None and evaluations is None:
            return selection.fixed

        results = []
        for scope, rules in ((GLOBAL_SCOPE, selection.global_rules), (GROUP_SCOPE, selection.group_rules)):
            if not rules:
                continue
            granted = False
            for rule in rules:
                matched = self.matcher.matches_domain(rule.domain, record, identity)
                if evaluations is not None:
                    evaluations.append(RuleEvaluation(rule.id, rule.name, scope, matched))
                if matched:
                    logger.debug("Record rule matched", rule_id=rule.id, rule_name=rule.name, scope=scope)
                    granted = True
                    if evaluations is None:
                        break
            results.append(granted)

        if selection.fixed is not None:
            return selection.fixed
        return bool(results) and all(results)
