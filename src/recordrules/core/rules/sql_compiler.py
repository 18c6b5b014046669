"""SQL compiler for rule domains.

Compiles rule domains to SQLAlchemy boolean clauses so that a query can be
filtered down to the rows an identity could access one by one. Placeholder
values become bound parameters.
"""

from typing import TYPE_CHECKING, Iterable

from sqlalchemy import and_, column, false, or_, true
from sqlalchemy.sql import Select
from sqlalchemy.sql.elements import ColumnElement

from recordrules.core.logging import get_logger
from recordrules.domain.entities.identity import Identity

from .ast import Predicate
from .exceptions import RuleEvaluationError
from .operators import ColumnResolver, OperatorRegistry
from .placeholders import UNRESOLVED, PlaceholderResolver

if TYPE_CHECKING:
    from recordrules.domain.entities.record_rule import RecordRule

logger = get_logger(__name__)


def column_resolver(query: Select) -> ColumnResolver:
    """Build a field -> column resolver for a query.

    Fields are looked up on the query's FROM clauses first, then on its
    selected columns, and finally fall back to a bare ``column(name)``.
    """

    def resolve(name: str) -> ColumnElement:
        if not name.replace("_", "").isalnum():
            raise RuleEvaluationError(f"Invalid field name: {name}")

        for from_clause in query.get_final_froms():
            if name in from_clause.c:
                return from_clause.c[name]
        if name in query.selected_columns:
            return query.selected_columns[name]
        return column(name)

    return resolve


class SQLCompiler:
    """Compiles rule domains to SQLAlchemy WHERE clauses."""

    def __init__(self, operators: OperatorRegistry, resolver: PlaceholderResolver):
        self.operators = operators
        self.resolver = resolver

    def compile_selection(
        self,
        global_rules: Iterable["RecordRule"],
        group_rules: Iterable["RecordRule"],
        identity: Identity | None,
        resolve_column: ColumnResolver,
    ) -> ColumnElement:
        """Compile partitioned rules to a single clause.

        Rules within a partition are OR-ed. When both partitions hold rules the
        two results are AND-ed. With no rules at all nothing is granted.

        Args:
            global_rules: Rules applying to every identity.
            group_rules: Rules applying through group membership.
            identity: Identity used to resolve placeholders.
            resolve_column: Field -> column resolver.

        Returns:
            Boolean clause for a WHERE filter.
        """
        partitions = []
        for rules in (list(global_rules), list(group_rules)):
            if rules:
                partitions.append(
                    or_(*(self.compile_domain(r.domain, identity, resolve_column) for r in rules))
                )

        if not partitions:
            return false()
        if len(partitions) == 1:
            return partitions[0]
        return and_(*partitions)

    def compile_domain(
        self, domain: Iterable[Predicate], identity: Identity | None, resolve_column: ColumnResolver
    ) -> ColumnElement:
        """Compile a domain (AND of predicates). An empty domain is always true."""
        clauses = [self._compile_predicate(p, identity, resolve_column) for p in domain]
        if not clauses:
            return true()
        if len(clauses) == 1:
            return clauses[0]
        return and_(*clauses)

    def _compile_predicate(
        self, predicate: Predicate, identity: Identity | None, resolve_column: ColumnResolver
    ) -> ColumnElement:
        """Compile one predicate. Anything that cannot be compiled is false."""
        value = self.resolver.resolve(predicate.value, identity)
        if value is UNRESOLVED:
            return false()

        try:
            target = resolve_column(predicate.field)
            return self.operators.compile(predicate.operator, target, value, resolve_column)
        except Exception as e:
            logger.debug(
                "Predicate cannot be compiled, fails closed",
                field=predicate.field,
                operator=predicate.operator,
                error=str(e),
            )
            return false()
