"""Exceptions for rule definition and evaluation."""

class RuleError(Exception):
    """Base class for all rule-related errors."""
    pass

class RuleDefinitionError(RuleError):
    """Raised when a rule definition is malformed."""
    def __init__(self, message: str, errors: list[str] | None = None):
        self.errors = errors or [message]
        super().__init__(message)

class RuleEvaluationError(RuleError):
    """Raised when an operator cannot be evaluated."""
    pass
