"""Placeholder parsing and resolution for rule domains.

A domain value that is entirely a ``{...}`` token is a placeholder:

- ``{user.id}``, ``{user.team_ids}``: an attribute of the acting identity
- ``{name(arg1, arg2)}``: a registered domain function
- ``{anything.else}``: handed to the custom context resolver, if any

Any other value is a literal.
"""

import re
from typing import Any, Callable

from recordrules.core.logging import get_logger
from recordrules.domain.entities.identity import Identity

from .ast import ContextValue, FunctionCall, Literal, UserAttribute, ValueNode

logger = get_logger(__name__)

PLACEHOLDER_PATTERN = re.compile(r"^\{([^}]+)\}$")
FUNCTION_PATTERN = re.compile(r"^(\w+)\(([^)]*)\)$")
USER_PREFIX = "user."


class _Unresolved:
    """Sentinel for a placeholder that could not be resolved."""

    _instance: "_Unresolved | None" = None

    def __new__(cls) -> "_Unresolved":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNRESOLVED"

    def __bool__(self) -> bool:
        return False


UNRESOLVED = _Unresolved()

ContextResolver = Callable[[str, Identity], Any]
DomainFunction = Callable[..., Any]


def parse_value(raw: Any) -> ValueNode:
    """Parse a raw domain value into a value node.

    Args:
        raw: The value as written in the rule definition.

    Returns:
        The parsed value node.
    """
    if isinstance(raw, ValueNode):
        return raw
    if not isinstance(raw, str):
        if isinstance(raw, (list, set, frozenset)):
            return Literal(tuple(raw))
        return Literal(raw)

    match = PLACEHOLDER_PATTERN.match(raw)
    if not match:
        return Literal(raw)

    path = match.group(1).strip()
    if path.startswith(USER_PREFIX):
        return UserAttribute(path[len(USER_PREFIX) :])

    call = FUNCTION_PATTERN.match(path)
    if call:
        args = tuple(a.strip() for a in call.group(2).split(",") if a.strip())
        return FunctionCall(call.group(1), args)

    return ContextValue(path)


def render_value(node: ValueNode) -> Any:
    """Render a value node back to its raw definition form."""
    if isinstance(node, Literal):
        if isinstance(node.value, tuple):
            return list(node.value)
        return node.value
    if isinstance(node, UserAttribute):
        return f"{{{USER_PREFIX}{node.path}}}"
    if isinstance(node, FunctionCall):
        return f"{{{node.name}({', '.join(node.arguments)})}}"
    if isinstance(node, ContextValue):
        return f"{{{node.path}}}"
    raise TypeError(f"Unknown value node: {type(node).__name__}")


class PlaceholderResolver:
    """Resolves value nodes against an identity.

    Resolution never raises. A missing attribute, an unknown function or a
    failing resolver all produce ``UNRESOLVED``, which matches nothing.
    """

    def __init__(self) -> None:
        self.functions: dict[str, DomainFunction] = {}
        self.context_resolver: ContextResolver | None = None

    def register_function(self, name: str, handler: DomainFunction) -> None:
        """Register a domain function usable as ``{name(args)}``.

        Args:
            name: Function name.
            handler: Callable invoked as ``handler(identity, *args)``.
        """
        self.functions[name] = handler

    def set_context_resolver(self, resolver: ContextResolver | None) -> None:
        """Set the resolver for non-user placeholders."""
        self.context_resolver = resolver

    def resolve(self, node: ValueNode, identity: Identity | None) -> Any:
        """Resolve a value node to a concrete value or ``UNRESOLVED``."""
        if isinstance(node, Literal):
            return node.value

        if identity is None:
            return UNRESOLVED

        try:
            if isinstance(node, UserAttribute):
                value = self._resolve_user_attribute(node.path, identity)
            elif isinstance(node, FunctionCall):
                value = self._call_function(node, identity)
            elif isinstance(node, ContextValue):
                value = self._resolve_context(node.path, identity)
            else:
                value = None
        except Exception as e:
            logger.debug("Placeholder resolution failed", node=repr(node), error=str(e))
            return UNRESOLVED

        if value is None:
            logger.debug("Placeholder resolved to nothing", node=repr(node))
            return UNRESOLVED
        return value

    def _resolve_user_attribute(self, path: str, identity: Identity) -> Any:
        """Resolve ``user.<path>``, walking nested values for dotted paths."""
        first, _, rest = path.partition(".")
        value = identity.get_attribute(first)

        for part in rest.split(".") if rest else []:
            if value is None:
                return None
            if isinstance(value, dict):
                value = value.get(part)
            else:
                value = getattr(value, part, None)
        return value

    def _call_function(self, node: FunctionCall, identity: Identity) -> Any:
        handler = self.functions.get(node.name)
        if handler is None:
            return self._resolve_context(f"{node.name}({', '.join(node.arguments)})", identity)
        return handler(identity, *node.arguments)

    def _resolve_context(self, path: str, identity: Identity) -> Any:
        if self.context_resolver is None:
            return None
        return self.context_resolver(path, identity)
