"""Tests for permission rules and their evaluation."""

from unittest.mock import MagicMock

import pytest

from mwaction.exceptions import InsufficientPermissions
from mwaction.permissions import (
    PermissionRule,
    Requirements,
    RuleKind,
    describe_rules,
    evaluate,
    natural_join,
    pass_or_fail,
)


class TestNaturalJoin:
    def test_empty(self) -> None:
        assert natural_join([]) == ""

    def test_single(self) -> None:
        assert natural_join(["block"]) == "block"

    def test_two(self) -> None:
        assert natural_join(["block", "edit"]) == "block and edit"

    def test_many_with_custom_conjunction(self) -> None:
        assert natural_join(["a", "b", "c"], "or") == "a, b or c"


class TestPermissionRule:
    def test_any_rule_must_not_be_empty(self) -> None:
        with pytest.raises(ValueError, match="at least one capability"):
            PermissionRule.any_of()

    def test_empty_all_rule_is_allowed(self) -> None:
        rule = PermissionRule.all_of()
        assert rule.is_empty()

    def test_capabilities_are_frozen(self) -> None:
        rule = PermissionRule(RuleKind.ALL, ["edit", "edit", "block"])  # type: ignore[arg-type]
        assert rule.capabilities == frozenset({"edit", "block"})
        assert hash(rule) == hash(PermissionRule.all_of("block", "edit"))

    def test_invalid_kind(self) -> None:
        with pytest.raises(ValueError, match="RuleKind"):
            PermissionRule("all", frozenset({"edit"}))  # type: ignore[arg-type]

    def test_describe_all(self) -> None:
        assert PermissionRule.all_of("edit", "block").describe() == "block and edit"

    def test_describe_any(self) -> None:
        assert PermissionRule.any_of("patrolmarks", "patrol").describe() == "any one of patrol or patrolmarks"

    def test_describe_single_any_reads_like_all(self) -> None:
        assert PermissionRule.any_of("patrol").describe() == "patrol"


class TestEvaluate:
    def test_everything_satisfied(self) -> None:
        rules = [PermissionRule.all_of("edit"), PermissionRule.any_of("patrol", "patrolmarks")]
        assert evaluate({"edit", "patrolmarks"}, rules) == frozenset()

    def test_missing_all_rights_are_synthesized_into_one_rule(self) -> None:
        rules = [PermissionRule.all_of("block"), PermissionRule.all_of("edit", "read")]
        missing = evaluate({"read"}, rules)
        assert missing == frozenset({PermissionRule.all_of("block", "edit")})

    def test_unsatisfied_any_rule_is_reported_as_is(self) -> None:
        any_rule = PermissionRule.any_of("patrol", "patrolmarks")
        assert evaluate({"edit"}, [any_rule]) == frozenset({any_rule})

    def test_any_and_all_are_judged_independently(self) -> None:
        rules = [PermissionRule.all_of("patrol"), PermissionRule.any_of("patrol", "autopatrol")]
        assert evaluate({"patrol"}, rules) == frozenset()

    def test_no_rules(self) -> None:
        assert evaluate(set(), []) == frozenset()

    def test_empty_all_rule_never_fails(self) -> None:
        assert evaluate(set(), [PermissionRule.all_of()]) == frozenset()


class TestPassOrFail:
    def test_block_and_edit_example(self) -> None:
        """Caller holds only ``read`` and needs ``block`` and ``edit``."""
        with pytest.raises(InsufficientPermissions) as exc_info:
            pass_or_fail({"read"}, [PermissionRule.all_of("block", "edit")], "block user")

        assert exc_info.value.missing == frozenset({PermissionRule.all_of("block", "edit")})
        assert str(exc_info.value) == (
            "Insufficient permissions to block user. Missing permissions: block and edit."
        )

    def test_passes(self) -> None:
        pass_or_fail({"block", "edit"}, [PermissionRule.all_of("block", "edit")])

    def test_describe_rules_mixes_kinds(self) -> None:
        text = describe_rules([PermissionRule.all_of("block"), PermissionRule.any_of("a", "b")])
        assert text == "any one of a or b and block"


class TestRequirements:
    def test_all_requirements_merge(self) -> None:
        req = Requirements()
        req.require("edit")
        req.add(PermissionRule.all_of("block"))
        req.add(PermissionRule.any_of("patrol", "patrolmarks"))

        assert req.rules == frozenset(
            {PermissionRule.all_of("block", "edit"), PermissionRule.any_of("patrol", "patrolmarks")}
        )

    def test_no_rules_never_fetches_capabilities(self) -> None:
        fetch = MagicMock()
        Requirements().check(fetch, "read page")
        fetch.assert_not_called()

    def test_check_fetches_once_and_raises(self) -> None:
        req = Requirements()
        req.require("block")
        fetch = MagicMock(return_value=["read"])

        with pytest.raises(InsufficientPermissions, match="Missing permissions: block"):
            req.check(fetch, "block user")
        fetch.assert_called_once_with()

    def test_check_passes(self) -> None:
        req = Requirements()
        req.require("block")
        req.check(lambda: {"block"}, "block user")

    def test_bool(self) -> None:
        req = Requirements()
        assert not req
        req.add(PermissionRule.any_of("x"))
        assert req
