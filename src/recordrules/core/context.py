"""Context-local state using ContextVars.

Holds the identity acting in the current request and the rule bypass scope.
ContextVars are independent per thread and per asyncio task, so a bypass or
identity set while handling one request never leaks into another.
"""

import itertools
from contextlib import contextmanager
from contextvars import ContextVar, Token
from typing import Iterator, Optional

from recordrules.domain.entities.identity import Identity

# Identity acting in the current context (set by request middleware)
_current_identity: ContextVar[Optional[Identity]] = ContextVar(
    "current_identity", default=None
)

_scope_counter = itertools.count()


def get_current_identity() -> Optional[Identity]:
    """Get the identity acting in the current context.

    Returns:
        The current Identity or None if not set.
    """
    return _current_identity.get()


def set_current_identity(identity: Optional[Identity]) -> Token:
    """Set the identity acting in the current context.

    Args:
        identity: The Identity to set, or None.

    Returns:
        Token that restores the previous identity via ``reset_current_identity``.
    """
    return _current_identity.set(identity)


def reset_current_identity(token: Token) -> None:
    """Restore the identity that was current before ``set_current_identity``."""
    _current_identity.reset(token)


@contextmanager
def identity_scope(identity: Optional[Identity]) -> Iterator[Optional[Identity]]:
    """Make an identity current for the duration of a block."""
    token = _current_identity.set(identity)
    try:
        yield identity
    finally:
        _current_identity.reset(token)


class BypassScope:
    """Context-local rule bypass flag.

    Each engine owns its own scope, so bypassing one engine's rules leaves
    other engines untouched. Scopes nest: leaving a scope restores exactly
    the state that was active on entry, including on exceptions.
    """

    def __init__(self, name: str | None = None) -> None:
        self._active: ContextVar[bool] = ContextVar(
            name or f"rule_bypass_{next(_scope_counter)}", default=False
        )

    @property
    def active(self) -> bool:
        return self._active.get()

    @contextmanager
    def enter(self) -> Iterator[None]:
        token = self._active.set(True)
        try:
            yield
        finally:
            self._active.reset(token)
