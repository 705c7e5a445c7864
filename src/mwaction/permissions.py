"""Declarative permission rules checked against the caller's rights.

A rule is either ``ALL`` (every listed right is needed) or ``ANY`` (one
listed right is enough). Calls collect rules as they are built; all of a
call's ``ALL`` rules collapse into one implicit rule while ``ANY`` rules
stay separate alternatives. The check runs once, before the first round
trip, and never touches the network when a call has no rules.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from enum import Enum

from mwaction.exceptions import InsufficientPermissions
from mwaction.logging import get_logger

LOG = get_logger(__name__)


class RuleKind(str, Enum):
    """How a rule's rights combine."""

    ALL = "all"
    ANY = "any"


def natural_join(items: Sequence[str], conjunction: str = "and") -> str:
    """Join items as prose: ``"a"``, ``"a and b"``, ``"a, b and c"``."""
    if not items:
        return ""
    if len(items) == 1:
        return items[0]
    return f"{', '.join(items[:-1])} {conjunction} {items[-1]}"


@dataclass(frozen=True)
class PermissionRule:
    """A set of rights combined with ALL or ANY semantics."""

    kind: RuleKind
    capabilities: frozenset[str] = field(default_factory=frozenset)

    def __post_init__(self) -> None:
        if not isinstance(self.kind, RuleKind):
            raise ValueError(f"PermissionRule.kind must be a RuleKind, got {self.kind!r}")
        # Accept any iterable of rights; store as frozenset so rules stay hashable.
        object.__setattr__(self, "capabilities", frozenset(self.capabilities))
        if self.kind is RuleKind.ANY and not self.capabilities:
            raise ValueError("An ANY rule needs at least one capability")

    @classmethod
    def all_of(cls, *capabilities: str) -> PermissionRule:
        """Create a rule satisfied only by holding every right."""
        return cls(RuleKind.ALL, frozenset(capabilities))

    @classmethod
    def any_of(cls, *capabilities: str) -> PermissionRule:
        """Create a rule satisfied by holding at least one right."""
        return cls(RuleKind.ANY, frozenset(capabilities))

    def is_empty(self) -> bool:
        return not self.capabilities

    def describe(self) -> str:
        """Render the rule for error messages."""
        names = sorted(self.capabilities)
        if self.kind is RuleKind.ALL or len(names) == 1:
            return natural_join(names)
        return f"any one of {natural_join(names, 'or')}"


def describe_rules(rules: Iterable[PermissionRule]) -> str:
    """Render several missing rules as a single sentence fragment."""
    return natural_join(sorted(rule.describe() for rule in rules if not rule.is_empty()))


def evaluate(capabilities: Iterable[str], rules: Iterable[PermissionRule]) -> frozenset[PermissionRule]:
    """Return the subset of *rules* the caller does not satisfy.

    Missing rights from every ALL rule are gathered into a single
    synthesized ALL rule. An ANY rule is reported as-is when the caller
    holds none of its rights. ALL and ANY rules are judged independently,
    so a right that satisfies an ANY rule still counts for ALL rules.

    Args:
        capabilities: Rights held by the caller.
        rules: Rules to check.

    Returns:
        The missing rules; empty when everything is satisfied.
    """
    held = frozenset(capabilities)
    missing: set[PermissionRule] = set()
    missing_all: set[str] = set()

    for rule in rules:
        if rule.kind is RuleKind.ALL:
            missing_all.update(rule.capabilities - held)
        elif rule.capabilities.isdisjoint(held):
            missing.add(rule)

    if missing_all:
        missing.add(PermissionRule(RuleKind.ALL, frozenset(missing_all)))
    return frozenset(missing)


def pass_or_fail(
    capabilities: Iterable[str],
    rules: Iterable[PermissionRule],
    action: str | None = None,
) -> None:
    """Raise ``InsufficientPermissions`` unless every rule is satisfied."""
    missing = evaluate(capabilities, rules)
    if missing:
        raise InsufficientPermissions(action, missing)


class Requirements:
    """The rules a single call must satisfy before it is sent.

    ALL requirements merge into one implicit rule, so rights can be added
    one at a time. ANY rules are kept as distinct alternatives.
    """

    def __init__(self) -> None:
        self._all: set[str] = set()
        self._any: set[PermissionRule] = set()

    def require(self, *capabilities: str) -> None:
        """Require every one of *capabilities*."""
        self._all.update(capabilities)

    def add(self, rule: PermissionRule) -> None:
        """Add a rule, folding ALL rules into the implicit one."""
        if rule.kind is RuleKind.ALL:
            self._all.update(rule.capabilities)
        else:
            self._any.add(rule)

    @property
    def rules(self) -> frozenset[PermissionRule]:
        """The normalized rule set: at most one ALL rule plus every ANY rule."""
        rules = set(self._any)
        if self._all:
            rules.add(PermissionRule(RuleKind.ALL, frozenset(self._all)))
        return frozenset(rules)

    def __bool__(self) -> bool:
        return bool(self._all or self._any)

    def check(self, fetch_capabilities: Callable[[], Iterable[str]], action: str | None = None) -> None:
        """Verify the caller's rights, fetching them only if there are rules.

        Args:
            fetch_capabilities: Returns the caller's current rights. Not
                called when no rules are registered.
            action: Description used in the error message.

        Raises:
            InsufficientPermissions: If any rule is unsatisfied.
        """
        if not self:
            return
        rules = self.rules
        missing = evaluate(fetch_capabilities(), rules)
        if missing:
            LOG.info("permission_check_failed", action=action, missing=describe_rules(missing))
            raise InsufficientPermissions(action, missing)
