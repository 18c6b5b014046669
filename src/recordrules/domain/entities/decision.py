"""Access decision entities: rule selections and decision explanations."""

from dataclasses import dataclass, field

from recordrules.domain.entities.record_rule import RecordRule

REASON_BYPASS = "bypass"
REASON_NO_IDENTITY = "no_identity"
REASON_SUPERUSER = "superuser"
REASON_DEFAULT_POLICY = "default_policy"
REASON_RULES = "rules"


@dataclass(frozen=True)
class RuleSelection:
    """The record-independent part of an access decision.

    Selected once per (entity, operation, identity, tenant) and cached.
    When the outcome cannot depend on the record, ``fixed`` holds it and no
    domain needs evaluating; otherwise the partitions are matched per record.

    Attributes:
        global_rules: Applicable rules with ``is_global`` set.
        group_rules: Applicable rules reached through group membership.
        fixed: The outcome when it does not depend on the record, else None.
        reason: REASON_DEFAULT_POLICY or REASON_RULES.
    """

    global_rules: tuple[RecordRule, ...] = ()
    group_rules: tuple[RecordRule, ...] = ()
    fixed: bool | None = None
    reason: str = REASON_RULES

    @classmethod
    def default_policy(cls, allowed: bool) -> "RuleSelection":
        return cls(fixed=allowed, reason=REASON_DEFAULT_POLICY)

    @classmethod
    def from_partitions(
        cls, global_rules: tuple[RecordRule, ...], group_rules: tuple[RecordRule, ...]
    ) -> "RuleSelection":
        """Build a selection, fixing the outcome where the record is irrelevant."""
        partitions = [p for p in (global_rules, group_rules) if p]
        if not partitions:
            fixed: bool | None = False
        elif all(any(not r.domain for r in p) for p in partitions):
            fixed = True
        else:
            fixed = None
        return cls(global_rules=global_rules, group_rules=group_rules, fixed=fixed)


@dataclass
class RuleEvaluation:
    """Outcome of one applicable rule.

    Attributes:
        rule_id: The rule ID.
        rule_name: The rule name.
        scope: "global" or "group".
        matched: Whether the rule's domain matched.
    """

    rule_id: str
    rule_name: str
    scope: str
    matched: bool


@dataclass
class AccessExplanation:
    """Result of ``RecordRuleEngine.explain``.

    Attributes:
        allowed: The final decision.
        reason: Which step of the decision produced it.
        entity_name: Entity the decision is about.
        operation: Operation checked.
        rules: Per-rule outcomes when the reason is "rules".
    """

    allowed: bool
    reason: str
    entity_name: str
    operation: str
    rules: list[RuleEvaluation] = field(default_factory=list)

    @property
    def matched_rules(self) -> list[RuleEvaluation]:
        return [r for r in self.rules if r.matched]
