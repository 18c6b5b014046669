"""Rule domain API: value parsing, operators, matching and SQL compilation."""

from .ast import ContextValue, FunctionCall, Literal, Predicate, UserAttribute, ValueNode
from .exceptions import RuleDefinitionError, RuleError, RuleEvaluationError
from .matcher import DomainMatcher
from .operators import Operator, OperatorRegistry
from .placeholders import UNRESOLVED, PlaceholderResolver, parse_value
from .rule_validator import RuleValidator, validate_rule_definition
from .sql_compiler import SQLCompiler, column_resolver

__all__ = [
    "ContextValue",
    "DomainMatcher",
    "FunctionCall",
    "Literal",
    "Operator",
    "OperatorRegistry",
    "PlaceholderResolver",
    "Predicate",
    "RuleDefinitionError",
    "RuleError",
    "RuleEvaluationError",
    "RuleValidator",
    "SQLCompiler",
    "UNRESOLVED",
    "UserAttribute",
    "ValueNode",
    "column_resolver",
    "parse_value",
    "validate_rule_definition",
]
