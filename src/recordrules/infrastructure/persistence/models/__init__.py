"""SQLAlchemy models.

All models inherit from the Base class defined in database.py.
"""

from recordrules.infrastructure.persistence.models.record_rule import RecordRuleModel

__all__ = ["RecordRuleModel"]
