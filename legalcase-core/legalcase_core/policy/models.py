"""
Policy Models
=============
Actors, rules and the closed set of condition types a rule can hold.

Rules are usually declared in the compact mapping form:

    {
        "resource": "Contract",
        "action": "approve",
        "conditions": {
            "role": ["PARTNER"],
            "context.contractValue": {"<": 100000},
        },
    }

which Rule.from_mapping() turns into typed conditions.
"""

import operator
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, FrozenSet, Iterable, List, Mapping, Optional, Tuple, Union

import structlog

logger = structlog.get_logger(__name__)

CONTEXT_PREFIX = "context."


class PolicyDefinitionError(ValueError):
    """A declarative rule could not be parsed."""


class Role(str, Enum):
    """Roles of the legal-practice user model."""
    ADMIN = "ADMIN"
    PARTNER = "PARTNER"
    ASSOCIATE = "ASSOCIATE"
    PARALEGAL = "PARALEGAL"
    CLIENT = "CLIENT"


class Comparator(str, Enum):
    """Operators allowed in contextual conditions."""
    LT = "<"
    LTE = "<="
    GT = ">"
    GTE = ">="
    EQ = "=="
    NE = "!="
    IN = "in"


_COMPARATOR_FUNCS: Dict[Comparator, Callable[[Any, Any], bool]] = {
    Comparator.LT: operator.lt,
    Comparator.LTE: operator.le,
    Comparator.GT: operator.gt,
    Comparator.GTE: operator.ge,
    Comparator.EQ: operator.eq,
    Comparator.NE: operator.ne,
    Comparator.IN: lambda actual, expected: actual in expected,
}


@dataclass(frozen=True)
class Actor:
    """The user a command is executed on behalf of."""
    id: str
    role: str
    permissions: FrozenSet[str] = frozenset()

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "Actor":
        role = data.get("role", "")
        return cls(
            id=str(data.get("id", "")),
            role=role.value if isinstance(role, Role) else str(role),
            permissions=frozenset(data.get("permissions") or ()),
        )

    def fingerprint(self) -> str:
        return f"{self.role}|{','.join(sorted(self.permissions))}"


@dataclass(frozen=True)
class RoleIn:
    """Actor's role is one of the listed roles."""
    roles: FrozenSet[str]

    def evaluate(self, actor: Actor, context: Optional[Mapping[str, Any]]) -> bool:
        return actor.role in self.roles


@dataclass(frozen=True)
class PermissionIn:
    """Actor holds at least one of the listed permissions."""
    permissions: FrozenSet[str]

    def evaluate(self, actor: Actor, context: Optional[Mapping[str, Any]]) -> bool:
        return not self.permissions.isdisjoint(actor.permissions)


@dataclass(frozen=True)
class ContextFieldCompare:
    """
    Compare a field of the call context against a constant.

    A missing field, a missing context or incomparable types all evaluate
    to False.
    """
    field: str
    op: Comparator
    value: Any

    def evaluate(self, actor: Actor, context: Optional[Mapping[str, Any]]) -> bool:
        if context is None:
            return False

        current: Any = context
        for part in self.field.split("."):
            if not isinstance(current, Mapping) or part not in current:
                return False
            current = current[part]

        if current is None:
            return False

        try:
            return bool(_COMPARATOR_FUNCS[self.op](current, self.value))
        except TypeError:
            return False


Condition = Union[RoleIn, PermissionIn, ContextFieldCompare]


def _as_string_set(key: str, value: Any) -> FrozenSet[str]:
    if isinstance(value, str) or not isinstance(value, Iterable):
        raise PolicyDefinitionError(f"condition '{key}' must be a list of values")
    return frozenset(v.value if isinstance(v, Enum) else str(v) for v in value)


def parse_condition(key: str, spec: Any) -> List[Condition]:
    """
    Turn one declarative condition entry into typed conditions.

    A comparator mapping with several operators ({">=": 0, "<": 10})
    yields one condition per operator.
    """
    if key in ("role", "roles"):
        return [RoleIn(_as_string_set(key, spec))]

    if key in ("permission", "permissions"):
        return [PermissionIn(_as_string_set(key, spec))]

    if key.startswith(CONTEXT_PREFIX) and len(key) > len(CONTEXT_PREFIX):
        field_path = key[len(CONTEXT_PREFIX):]
        if not isinstance(spec, Mapping):
            return [ContextFieldCompare(field_path, Comparator.EQ, spec)]
        if not spec:
            raise PolicyDefinitionError(f"condition '{key}' has no operator")

        conditions: List[Condition] = []
        for raw_op, expected in spec.items():
            try:
                op = Comparator(raw_op)
            except ValueError:
                raise PolicyDefinitionError(f"unknown operator '{raw_op}' in '{key}'") from None
            conditions.append(ContextFieldCompare(field_path, op, expected))
        return conditions

    raise PolicyDefinitionError(f"unknown condition key '{key}'")


@dataclass(frozen=True)
class Rule:
    """A rule authorizes when every one of its conditions holds."""
    resource: str
    action: str
    conditions: Tuple[Condition, ...] = ()

    def matches(self, resource: str, action: str) -> bool:
        return self.resource == resource and self.action == action

    def evaluate(self, actor: Actor, context: Optional[Mapping[str, Any]]) -> bool:
        return all(condition.evaluate(actor, context) for condition in self.conditions)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "Rule":
        resource = data.get("resource")
        action = data.get("action")
        if not resource or not action:
            raise PolicyDefinitionError("rule requires both 'resource' and 'action'")

        raw_conditions = data.get("conditions") or {}
        if not isinstance(raw_conditions, Mapping):
            raise PolicyDefinitionError("rule 'conditions' must be a mapping")

        conditions: List[Condition] = []
        for key, spec in raw_conditions.items():
            conditions.extend(parse_condition(key, spec))

        return cls(resource=str(resource), action=str(action), conditions=tuple(conditions))


@dataclass(frozen=True)
class Policy:
    """A named set of rules; re-registering a name replaces its rules."""
    name: str
    rules: Tuple[Rule, ...] = field(default_factory=tuple)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "Policy":
        """
        Build a policy from its declarative form.

        Malformed rules are skipped with a warning rather than failing the
        whole policy; a skipped rule can only ever deny.
        """
        name = data.get("name")
        if not name:
            raise PolicyDefinitionError("policy requires a 'name'")

        rules: List[Rule] = []
        for index, raw_rule in enumerate(data.get("rules") or ()):
            if isinstance(raw_rule, Rule):
                rules.append(raw_rule)
                continue
            try:
                rules.append(Rule.from_mapping(raw_rule))
            except (PolicyDefinitionError, AttributeError) as e:
                logger.warning(
                    "policy_rule_skipped",
                    policy=name,
                    rule_index=index,
                    reason=str(e),
                )

        return cls(name=str(name), rules=tuple(rules))
