"""Domain operators.

Each operator knows how to match a record in memory and, optionally, how to
compile itself to a SQLAlchemy boolean clause for query rewriting.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any, Callable

from sqlalchemy import String, cast, false, func, literal, or_
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.sql.elements import ColumnElement
from sqlalchemy.sql.functions import FunctionElement
from sqlalchemy.types import Integer

from recordrules.domain.entities.record import Record

from .exceptions import RuleEvaluationError

ColumnResolver = Callable[[str], ColumnElement]
MatchHandler = Callable[[Record, str, Any], bool]
SQLHandler = Callable[[ColumnElement, Any, ColumnResolver], ColumnElement]

PARENT_PATH_FIELD = "parent_path"


@dataclass(frozen=True)
class Operator:
    """A named domain operator.

    Attributes:
        name: Operator as written in domains (e.g. "in").
        match: In-memory matcher ``match(record, field, value)``.
        sql: Query compiler ``sql(column, value, resolve_column)``, or None
            when the operator cannot be expressed in SQL.
    """

    name: str
    match: MatchHandler
    sql: SQLHandler | None = None


def as_collection(value: Any) -> list[Any]:
    """Coerce a right-hand side to a list (scalar -> one-element list)."""
    if value is None:
        return []
    if isinstance(value, (str, bytes)) or not isinstance(value, Iterable):
        return [value]
    return list(value)


def _strip_wildcards(value: Any) -> str:
    return str(value).replace("%", "")


def is_collection(value: Any) -> bool:
    """Check whether a right-hand side is a non-string collection."""
    return isinstance(value, Iterable) and not isinstance(value, (str, bytes))


class substring_position(FunctionElement):
    """1-based position of a substring, 0 when absent. Case-sensitive."""

    type = Integer()
    inherit_cache = True


@compiles(substring_position)
def _compile_substring_position(element, compiler, **kw):
    haystack, needle = list(element.clauses)
    return f"instr({compiler.process(haystack, **kw)}, {compiler.process(needle, **kw)})"


@compiles(substring_position, "postgresql")
def _compile_substring_position_pg(element, compiler, **kw):
    haystack, needle = list(element.clauses)
    return f"strpos({compiler.process(haystack, **kw)}, {compiler.process(needle, **kw)})"


def _compare(compare: Callable[[Any, Any], bool]) -> MatchHandler:
    def match(record: Record, field: str, value: Any) -> bool:
        if is_collection(value):
            # A scalar comparison against a collection never matches
            return False
        try:
            return bool(compare(record.get(field), value))
        except TypeError:
            # Incompatible types (e.g. None < 5)
            return False

    return match


def _match_in(record: Record, field: str, value: Any) -> bool:
    return record.get(field) in as_collection(value)


def _match_not_in(record: Record, field: str, value: Any) -> bool:
    return record.get(field) not in as_collection(value)


def _match_like(record: Record, field: str, value: Any) -> bool:
    record_value = record.get(field)
    if record_value is None:
        return False
    return _strip_wildcards(value) in str(record_value)


def _match_ilike(record: Record, field: str, value: Any) -> bool:
    record_value = record.get(field)
    if record_value is None:
        return False
    return _strip_wildcards(value).lower() in str(record_value).lower()


def _match_child_of(record: Record, field: str, value: Any) -> bool:
    if record.get(field) == value:
        return True
    parent_path = record.get(PARENT_PATH_FIELD)
    return parent_path is not None and f"/{value}/" in str(parent_path)


def _match_parent_of(record: Record, field: str, value: Any) -> bool:
    record_value = record.get(field)
    if record_value is None:
        return False
    return f"/{record_value}/" in str(value)


def _scalar_sql(build: Callable[[ColumnElement, Any], ColumnElement]) -> SQLHandler:
    def sql(column: ColumnElement, value: Any, resolve: ColumnResolver) -> ColumnElement:
        if is_collection(value):
            return false()
        return build(column, value)

    return sql


def _sql_not_equal(column: ColumnElement, value: Any) -> ColumnElement:
    if value is None:
        return column.is_not(None)
    return or_(column != value, column.is_(None))


def _sql_not_in(column: ColumnElement, value: Any, resolve: ColumnResolver) -> ColumnElement:
    return or_(column.not_in(as_collection(value)), column.is_(None))


def _sql_child_of(column: ColumnElement, value: Any, resolve: ColumnResolver) -> ColumnElement:
    return or_(column == value, resolve(PARENT_PATH_FIELD).like(f"%/{value}/%"))


def _sql_like(column: ColumnElement, value: Any, resolve: ColumnResolver) -> ColumnElement:
    return substring_position(cast(column, String), _strip_wildcards(value)) > 0


def _sql_ilike(column: ColumnElement, value: Any, resolve: ColumnResolver) -> ColumnElement:
    needle = _strip_wildcards(value).lower()
    return substring_position(func.lower(cast(column, String)), needle) > 0


def _sql_parent_of(column: ColumnElement, value: Any, resolve: ColumnResolver) -> ColumnElement:
    pattern = literal("%/", String) + cast(column, String) + literal("/%", String)
    return literal(str(value), String).like(pattern)


BUILTIN_OPERATORS: tuple[Operator, ...] = (
    Operator("=", _compare(lambda a, b: a == b), _scalar_sql(lambda c, v: c == v)),
    Operator("!=", _compare(lambda a, b: a != b), _scalar_sql(_sql_not_equal)),
    Operator(">", _compare(lambda a, b: a > b), _scalar_sql(lambda c, v: c > v)),
    Operator("<", _compare(lambda a, b: a < b), _scalar_sql(lambda c, v: c < v)),
    Operator(">=", _compare(lambda a, b: a >= b), _scalar_sql(lambda c, v: c >= v)),
    Operator("<=", _compare(lambda a, b: a <= b), _scalar_sql(lambda c, v: c <= v)),
    Operator("in", _match_in, lambda c, v, r: c.in_(as_collection(v))),
    Operator("not in", _match_not_in, _sql_not_in),
    Operator("like", _match_like, _sql_like),
    Operator("ilike", _match_ilike, _sql_ilike),
    Operator("is null", lambda rec, f, v: rec.get(f) is None, lambda c, v, r: c.is_(None)),
    Operator("is not null", lambda rec, f, v: rec.get(f) is not None, lambda c, v, r: c.is_not(None)),
    Operator("child_of", _match_child_of, _sql_child_of),
    Operator("parent_of", _match_parent_of, _sql_parent_of),
)


class OperatorRegistry:
    """Registry of domain operators, seeded with the built-ins."""

    def __init__(self) -> None:
        self._operators: dict[str, Operator] = {op.name: op for op in BUILTIN_OPERATORS}

    def register(self, name: str, match: MatchHandler, sql: SQLHandler | None = None) -> Operator:
        """Register (or replace) an operator.

        Args:
            name: Operator name as written in domains.
            match: In-memory matcher ``match(record, field, value)``.
            sql: Optional query compiler ``sql(column, value, resolve_column)``.

        Returns:
            The registered operator.
        """
        if not name or not isinstance(name, str):
            raise ValueError("Operator name must be a non-empty string")
        operator = Operator(name=name.strip().lower(), match=match, sql=sql)
        self._operators[operator.name] = operator
        return operator

    def get(self, name: str) -> Operator | None:
        if not isinstance(name, str):
            return None
        return self._operators.get(name.strip().lower())

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.get(name) is not None

    def names(self) -> list[str]:
        return sorted(self._operators)

    def compile(self, name: str, column: ColumnElement, value: Any, resolve: ColumnResolver) -> ColumnElement:
        """Compile one condition to SQL.

        Raises:
            RuleEvaluationError: If the operator is unknown.
        """
        operator = self.get(name)
        if operator is None:
            raise RuleEvaluationError(f"Unknown operator: {name}")
        if operator.sql is None:
            return false()
        return operator.sql(column, value, resolve)
