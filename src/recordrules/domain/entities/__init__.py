"""Domain entities.

Entities are plain Python dataclasses that represent the engine's concepts.
They have no dependencies on infrastructure.
"""

from recordrules.domain.entities.identity import Identity, UserIdentity
from recordrules.domain.entities.record import EntityRecord, Record
from recordrules.domain.entities.record_rule import OPERATIONS, RecordRule
from recordrules.domain.entities.decision import AccessExplanation, RuleEvaluation, RuleSelection

__all__ = [
    "AccessExplanation",
    "EntityRecord",
    "Identity",
    "OPERATIONS",
    "Record",
    "RecordRule",
    "RuleEvaluation",
    "RuleSelection",
    "UserIdentity",
]
