"""Rule definition validator.

Validates and normalizes rule definitions before they enter the rule store.
Authoring errors are reported loudly here, at definition time, so that the
evaluation path never has to guess what a malformed rule meant.
"""

from collections.abc import Mapping, Sequence
from typing import Any

from .ast import ContextValue, Predicate, UserAttribute
from .exceptions import RuleDefinitionError
from .operators import OperatorRegistry
from .placeholders import parse_value

PERMISSION_FLAGS = ("perm_read", "perm_write", "perm_create", "perm_delete")
BOOLEAN_FIELDS = PERMISSION_FLAGS + ("is_global", "is_active")
ALLOWED_KEYS = {"name", "domain", "groups"} | set(BOOLEAN_FIELDS)


class RuleValidator:
    """Validates rule definitions."""

    def __init__(self, operators: OperatorRegistry):
        """Initialize validator.

        Args:
            operators: Registry of operators a domain may use.
        """
        self.operators = operators
        self.errors: list[str] = []

    def validate(self, entity_name: str, definition: Mapping[str, Any]) -> dict[str, Any]:
        """Validate a rule definition.

        Args:
            entity_name: Entity the rule governs.
            definition: Raw definition (name, domain, groups, flags).

        Returns:
            Normalized keyword arguments for ``RecordRule``.

        Raises:
            RuleDefinitionError: If the definition is invalid.
        """
        self.errors = []

        if not isinstance(entity_name, str) or not entity_name.strip():
            self.errors.append("Entity name is required")

        if not isinstance(definition, Mapping):
            self.errors.append("Rule definition must be a mapping")
            self._raise()

        unknown_keys = set(definition) - ALLOWED_KEYS
        if unknown_keys:
            self.errors.append(f"Unknown rule keys: {', '.join(sorted(unknown_keys))}")

        name = definition.get("name")
        if not isinstance(name, str) or not name.strip():
            self.errors.append("Rule name is required")

        result: dict[str, Any] = {
            "name": name.strip() if isinstance(name, str) else name,
            "domain": self._validate_domain(definition.get("domain") or []),
            "groups": self._validate_groups(definition.get("groups") or []),
        }

        for key in BOOLEAN_FIELDS:
            if key in definition:
                value = definition[key]
                if not isinstance(value, bool):
                    self.errors.append(f"'{key}' must be a boolean")
                result[key] = value

        if self.errors:
            self._raise()
        return result

    def _raise(self) -> None:
        raise RuleDefinitionError("; ".join(self.errors), list(self.errors))

    def _validate_groups(self, groups: Any) -> frozenset[str]:
        if isinstance(groups, str) or not isinstance(groups, (Sequence, set, frozenset)):
            self.errors.append("'groups' must be a list of group names")
            return frozenset()
        for group in groups:
            if not isinstance(group, str) or not group:
                self.errors.append(f"Invalid group name: {group!r}")
        return frozenset(g for g in groups if isinstance(g, str) and g)

    def _validate_domain(self, domain: Any) -> tuple[Predicate, ...]:
        if isinstance(domain, str) or not isinstance(domain, Sequence):
            self.errors.append("'domain' must be a list of [field, operator, value] conditions")
            return ()

        predicates = []
        for index, condition in enumerate(domain):
            predicate = self._validate_condition(index, condition)
            if predicate is not None:
                predicates.append(predicate)
        return tuple(predicates)

    def _validate_condition(self, index: int, condition: Any) -> Predicate | None:
        if isinstance(condition, Predicate):
            field, operator, value = condition.field, condition.operator, condition.value
        elif isinstance(condition, Mapping):
            field = condition.get("field")
            operator = condition.get("operator")
            value = condition.get("value")
        elif isinstance(condition, Sequence) and not isinstance(condition, str) and len(condition) == 3:
            field, operator, value = condition
        else:
            self.errors.append(f"Condition {index} must be a [field, operator, value] triple")
            return None

        valid = True
        if not isinstance(field, str) or not field:
            self.errors.append(f"Condition {index}: field must be a non-empty string")
            valid = False
        if operator not in self.operators:
            self.errors.append(
                f"Condition {index}: unknown operator {operator!r}. "
                f"Valid: {', '.join(self.operators.names())}"
            )
            valid = False

        node = parse_value(value)
        if isinstance(node, (UserAttribute, ContextValue)) and not node.path.strip(". "):
            self.errors.append(f"Condition {index}: empty placeholder {value!r}")
            valid = False

        if not valid:
            return None
        return Predicate(field=field, operator=self.operators.get(operator).name, value=node)


def validate_rule_definition(
    entity_name: str, definition: Mapping[str, Any], operators: OperatorRegistry | None = None
) -> dict[str, Any]:
    """Validate a rule definition.

    Args:
        entity_name: Entity the rule governs.
        definition: Raw rule definition.
        operators: Operator registry, defaults to the built-ins.

    Returns:
        Normalized keyword arguments for ``RecordRule``.

    Raises:
        RuleDefinitionError: If the definition is invalid.

    Examples:
        >>> validate_rule_definition("invoice", {"name": "Own", "domain": [["user_id", "=", "{user.id}"]]})
        # OK

        >>> validate_rule_definition("invoice", {"name": "Bad", "domain": [["user_id", "~~", 1]]})
        # Raises: RuleDefinitionError: Condition 0: unknown operator '~~'
    """
    validator = RuleValidator(operators or OperatorRegistry())
    return validator.validate(entity_name, definition)
