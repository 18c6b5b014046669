"""In-memory domain matcher."""

from typing import Iterable

from recordrules.core.logging import get_logger
from recordrules.domain.entities.identity import Identity
from recordrules.domain.entities.record import Record

from .ast import Predicate
from .operators import OperatorRegistry
from .placeholders import UNRESOLVED, PlaceholderResolver

logger = get_logger(__name__)


class DomainMatcher:
    """Evaluates rule domains against records.

    Every evaluation-time gap (unknown operator, unresolved placeholder,
    operator failure) makes the predicate non-matching. Nothing raises.
    """

    def __init__(self, operators: OperatorRegistry, resolver: PlaceholderResolver):
        """Initialize the matcher.

        Args:
            operators: Registry used to look up operators.
            resolver: Resolver for placeholder values.
        """
        self.operators = operators
        self.resolver = resolver

    def matches(self, predicate: Predicate, record: Record | None, identity: Identity | None) -> bool:
        """Evaluate a single predicate.

        A ``None`` record (pre-creation check) has no fields to compare, so
        every predicate is non-matching.
        """
        if record is None:
            return False

        operator = self.operators.get(predicate.operator)
        if operator is None:
            logger.debug("Unknown operator, predicate fails closed", operator=predicate.operator)
            return False

        value = self.resolver.resolve(predicate.value, identity)
        if value is UNRESOLVED:
            return False

        try:
            return bool(operator.match(record, predicate.field, value))
        except Exception as e:
            logger.debug(
                "Operator failed, predicate fails closed",
                operator=predicate.operator,
                field=predicate.field,
                error=str(e),
            )
            return False

    def matches_domain(
        self, domain: Iterable[Predicate], record: Record | None, identity: Identity | None
    ) -> bool:
        """Evaluate a domain (AND of predicates). An empty domain matches."""
        for predicate in domain:
            if not self.matches(predicate, record, identity):
                return False
        return True
