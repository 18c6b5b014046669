"""recordrules - Row-level record rules.

Decides whether an identity may read, write, create or delete entity records,
and rewrites SQLAlchemy queries to return only accessible rows.
"""

__version__ = "0.1.0"

from recordrules.core.context import identity_scope, set_current_identity
from recordrules.core.rules.exceptions import RuleDefinitionError, RuleError
from recordrules.domain.entities import (
    AccessExplanation,
    EntityRecord,
    Identity,
    RecordRule,
    UserIdentity,
)
from recordrules.domain.services import AccessDecisionCache, RecordRuleEngine, RuleStore

__all__ = [
    "AccessDecisionCache",
    "AccessExplanation",
    "EntityRecord",
    "Identity",
    "RecordRule",
    "RecordRuleEngine",
    "RuleDefinitionError",
    "RuleError",
    "RuleStore",
    "UserIdentity",
    "__version__",
    "identity_scope",
    "set_current_identity",
]
