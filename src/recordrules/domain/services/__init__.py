"""Domain services.

Services contain the decision logic that doesn't naturally fit within a
single entity. They have no dependencies on persistence.
"""

from recordrules.domain.services.decision_cache import AccessDecisionCache, DecisionKey
from recordrules.domain.services.record_rule_engine import RecordRuleEngine
from recordrules.domain.services.rule_store import ReadWriteLock, RuleStore

__all__ = [
    "AccessDecisionCache",
    "DecisionKey",
    "ReadWriteLock",
    "RecordRuleEngine",
    "RuleStore",
]
