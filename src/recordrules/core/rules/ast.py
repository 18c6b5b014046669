"""Value nodes for rule domains.

Domain values are parsed once, when the rule is defined, into one of these
nodes. They are resolved against the acting identity at evaluation time.
"""

from dataclasses import dataclass
from typing import Any

@dataclass(frozen=True)
class ValueNode:
    """Base class for all domain value nodes."""
    pass

@dataclass(frozen=True)
class Literal(ValueNode):
    """Represents a literal value (string, number, boolean, list, null)."""
    value: Any

@dataclass(frozen=True)
class UserAttribute(ValueNode):
    """Represents an identity attribute reference (e.g. {user.team_ids})."""
    path: str

@dataclass(frozen=True)
class ContextValue(ValueNode):
    """Represents a non-user placeholder handled by a custom context resolver."""
    path: str

@dataclass(frozen=True)
class FunctionCall(ValueNode):
    """Represents a domain function call (e.g. {today()})."""
    name: str
    arguments: tuple[str, ...]

@dataclass(frozen=True)
class Predicate:
    """A single domain condition: (field, operator, value)."""
    field: str
    operator: str
    value: ValueNode

    def as_tuple(self) -> tuple[str, str, Any]:
        """Return the predicate in its raw (field, operator, value) form."""
        from .placeholders import render_value

        return (self.field, self.operator, render_value(self.value))
