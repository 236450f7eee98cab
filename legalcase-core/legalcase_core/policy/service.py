"""
Policy Service
==============
Evaluates declarative authorization rules for an actor and a command.

Decisions fail closed: no actor, no matching rule, an unparseable command
name or a missing context field all deny.
"""

import re
from typing import Any, Dict, Hashable, List, Mapping, Optional, Tuple, Union

import structlog

from ..errors import AuthorizationError
from ..metrics import record_policy_decision
from .models import Actor, Policy, PolicyDefinitionError, Rule

logger = structlog.get_logger(__name__)

_COMMAND_SUFFIX = "Command"
_DEFAULT_ACTION = "create"
_UNKNOWN_LABEL = "unknown"
_WORD_RE = re.compile(r"[A-Z]+(?![a-z])|[A-Z]?[a-z0-9]+")

CacheKey = Tuple[str, str, str, Hashable]


def derive_resource_action(command_name: str) -> Optional[Tuple[str, str]]:
    """
    Map a command name onto the (resource, action) pair it implies.

    ApproveContractCommand -> ("Contract", "approve")
    AssignClientToLawyerCommand -> ("ClientToLawyer", "assign")
    TestCommand -> ("Test", "create")

    Returns:
        The pair, or None when the name carries no usable stem
    """
    stem = command_name
    if stem.endswith(_COMMAND_SUFFIX):
        stem = stem[: -len(_COMMAND_SUFFIX)]

    words = _WORD_RE.findall(stem)
    if not words:
        return None
    if len(words) == 1:
        return words[0], _DEFAULT_ACTION
    return "".join(words[1:]), words[0].lower()


def _freeze(value: Any) -> Hashable:
    """Type-preserving hashable form of a context value."""
    if isinstance(value, Mapping):
        items = [(_freeze(k), _freeze(v)) for k, v in value.items()]
        return ("mapping", tuple(sorted(items, key=repr)))
    if isinstance(value, (list, tuple)):
        return (type(value).__qualname__, tuple(_freeze(v) for v in value))
    if isinstance(value, (set, frozenset)):
        return (type(value).__qualname__, tuple(sorted((_freeze(v) for v in value), key=repr)))
    hash(value)
    return (type(value).__qualname__, value)


def _context_fingerprint(context: Optional[Mapping[str, Any]]) -> Optional[Hashable]:
    """
    Cache fingerprint of the call context, or None when it has none.

    "50000" and Decimal("50000") fingerprint differently because the type
    name is part of every leaf.
    """
    if context is None:
        return ()
    try:
        return _freeze(context)
    except TypeError:
        return None


class PolicyService:
    """
    Rule registry plus a decision cache.

    Example:
        policies = PolicyService()
        policies.register_policy({
            "name": "client-management",
            "rules": [
                {"resource": "Client", "action": "create",
                 "conditions": {"role": ["ADMIN", "PARTNER"]}},
            ],
        })
        allowed = await policies.can_execute(user.id, "CreateClientCommand", user)
    """

    def __init__(self, cache_enabled: bool = True):
        self.cache_enabled = cache_enabled
        self._policies: Dict[str, Policy] = {}
        self._index: Dict[Tuple[str, str], List[Rule]] = {}
        self._cache: Dict[CacheKey, bool] = {}
        self._cache_hits = 0
        self._evaluation_count = 0

    def register_policy(self, policy: Union[Policy, Mapping[str, Any], None]) -> Optional[Policy]:
        """
        Register a policy, replacing any earlier policy with the same name.

        Cached decisions are dropped because they may no longer hold. A
        definition that cannot be parsed at all is logged and ignored.

        Returns:
            The registered policy, or None when it was rejected
        """
        if not isinstance(policy, Policy):
            try:
                policy = Policy.from_mapping(policy)
            except (PolicyDefinitionError, AttributeError, TypeError) as e:
                logger.warning("policy_rejected", reason=str(e))
                return None

        replaced = policy.name in self._policies
        self._policies[policy.name] = policy
        self._rebuild_index()
        self._cache.clear()

        logger.info(
            "policy_registered",
            policy=policy.name,
            rules=len(policy.rules),
            replaced=replaced,
        )
        return policy

    def get_rules(self, resource: str, action: str) -> List[Rule]:
        return list(self._index.get((resource, action), ()))

    async def can_execute(
        self,
        actor_id: str,
        command_name: str,
        actor: Optional[Union[Actor, Mapping[str, Any]]],
        context: Optional[Mapping[str, Any]] = None,
    ) -> bool:
        """
        Decide whether the actor may execute the named command.

        Args:
            actor_id: ID of the acting user
            command_name: Command name, e.g. "CreateClientCommand"
            actor: The acting user, or None
            context: Optional call context for contextual conditions

        Returns:
            True iff at least one matching rule has all conditions satisfied
        """
        label = self._decision_label(command_name)

        if actor is None:
            logger.debug("policy_denied_no_actor", actor_id=actor_id, command=command_name)
            record_policy_decision(label, False)
            return False

        if not isinstance(actor, Actor):
            try:
                actor = Actor.from_mapping(actor)
            except (AttributeError, TypeError) as e:
                logger.warning("policy_denied_bad_actor", actor_id=actor_id, command=command_name, reason=str(e))
                record_policy_decision(label, False)
                return False

        context_key = _context_fingerprint(context)
        cacheable = self.cache_enabled and context_key is not None
        key: CacheKey = (actor_id, command_name, actor.fingerprint(), context_key)

        if cacheable and key in self._cache:
            self._cache_hits += 1
            allowed = self._cache[key]
            record_policy_decision(label, allowed)
            return allowed

        allowed = self._evaluate(command_name, actor, context)
        self._evaluation_count += 1
        if cacheable:
            self._cache[key] = allowed

        record_policy_decision(label, allowed)
        logger.debug(
            "policy_evaluated",
            actor_id=actor_id,
            command=command_name,
            role=actor.role,
            allowed=allowed,
            cached=cacheable,
        )
        return allowed

    async def authorize(
        self,
        actor: Optional[Actor],
        command_name: str,
        context: Optional[Mapping[str, Any]] = None,
    ) -> None:
        """
        Raise AuthorizationError unless the actor may execute the command.
        """
        actor_id = actor.id if actor is not None else ""
        if await self.can_execute(actor_id, command_name, actor, context):
            return

        logger.warning("policy_denied", actor_id=actor_id, command=command_name)
        raise AuthorizationError(
            f"Not authorized to execute {command_name}",
            details={"actor_id": actor_id, "command": command_name},
        )

    def get_stats(self) -> Dict[str, int]:
        """Monitoring counters; no side effects."""
        return {
            "policies_count": len(self._policies),
            "rules_count": sum(len(p.rules) for p in self._policies.values()),
            "evaluation_count": self._evaluation_count,
            "cache_hits": self._cache_hits,
            "cache_size": len(self._cache),
        }

    def clear_cache(self) -> None:
        """Drop cached decisions and reset counters. Policies are kept."""
        self._cache.clear()
        self._cache_hits = 0
        self._evaluation_count = 0

    def _evaluate(
        self,
        command_name: str,
        actor: Actor,
        context: Optional[Mapping[str, Any]],
    ) -> bool:
        pair = derive_resource_action(command_name)
        if pair is None:
            return False

        for rule in self._index.get(pair, ()):
            if rule.evaluate(actor, context):
                return True
        return False

    def _rebuild_index(self) -> None:
        index: Dict[Tuple[str, str], List[Rule]] = {}
        for policy in self._policies.values():
            for rule in policy.rules:
                index.setdefault((rule.resource, rule.action), []).append(rule)
        self._index = index

    def _decision_label(self, command_name: str) -> str:
        """Metric label for a decision, bounded to registered resource/action pairs."""
        pair = derive_resource_action(command_name)
        if pair is None or pair not in self._index:
            return _UNKNOWN_LABEL
        return f"{pair[0]}.{pair[1]}"
