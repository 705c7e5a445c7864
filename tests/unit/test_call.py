"""Tests for parameter formatting and the call builder."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

from mwaction import actions
from mwaction.actions import HttpMethod
from mwaction.call import Call, format_param
from mwaction.exceptions import AuthenticationRequired, CallFrozenError
from mwaction.permissions import PermissionRule
from mwaction.tokens import TokenKind, TokenStore


def _store(**tokens: str) -> TokenStore:
    store = TokenStore(MagicMock(), lambda: True)
    store._tokens = {TokenKind(kind): value for kind, value in tokens.items()}
    return store


class TestFormatParam:
    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            (None, None),
            (False, None),
            (True, "true"),
            ("x", "x"),
            (5, "5"),
            (["a", "b"], "a|b"),
            ((0, 2), "0|2"),
            (TokenKind.CSRF, "csrf"),
        ],
    )
    def test_conversions(self, value: object, expected: str | None) -> None:
        assert format_param(value) == expected

    def test_naive_datetime_is_utc(self) -> None:
        assert format_param(datetime(2024, 5, 1, 12, 0, 0)) == "2024-05-01T12:00:00Z"

    def test_aware_datetime_is_converted(self) -> None:
        when = datetime(2024, 5, 1, 14, 0, 0, tzinfo=timezone(timedelta(hours=2)))
        assert format_param(when) == "2024-05-01T12:00:00Z"

    def test_unsupported(self) -> None:
        with pytest.raises(TypeError):
            format_param(object())


class TestCall:
    def test_starts_with_format_and_base_params(self) -> None:
        call = Call(actions.BLOCK, "block user")
        assert dict(call.query_params) == {"format": "json", "action": "block"}
        assert call.description == "block user"

    def test_description_defaults_to_action_name(self) -> None:
        assert Call(actions.EDIT).description == "edit"

    def test_none_and_false_are_skipped(self) -> None:
        call = Call(actions.EDIT).update_form({"title": "A", "minor": False, "summary": None})
        assert dict(call.form_params) == {"title": "A"}

    def test_post_injects_token_into_form(self) -> None:
        call = Call(actions.BLOCK).set_form("user", "Vandal")
        prepared = call.build(_store(csrf="tok+\\"))

        assert prepared.method is HttpMethod.POST
        assert prepared.form == {"user": "Vandal", "token": "tok+\\"}
        assert "token" not in prepared.query

    def test_caller_supplied_token_wins(self) -> None:
        call = Call(actions.LOGIN).set_form("lgtoken", "explicit")
        prepared = call.build(_store())
        assert prepared.form["lgtoken"] == "explicit"
        assert prepared.token_generation is None

    def test_missing_token_raises_authentication_required(self) -> None:
        with pytest.raises(AuthenticationRequired) as exc_info:
            Call(actions.BLOCK, "block user").build(_store())
        assert exc_info.value.kind == "csrf"
        assert "block user" in str(exc_info.value)

    def test_missing_store_raises_authentication_required(self) -> None:
        with pytest.raises(AuthenticationRequired):
            Call(actions.EDIT).build(None)

    def test_get_merges_form_into_query(self) -> None:
        call = Call(actions.QUERY).set_form("titles", ["A", "B"])
        prepared = call.build()

        assert prepared.method is HttpMethod.GET
        assert prepared.form is None
        assert prepared.query["titles"] == "A|B"

    def test_extra_query_layers_over_call_params(self) -> None:
        call = Call(actions.QUERY).set_query("list", "allpages")
        prepared = call.build(extra_query={"apcontinue": "B", "continue": "-||"})

        assert prepared.query["apcontinue"] == "B"
        assert "apcontinue" not in call.query_params

    def test_build_records_token_generation(self) -> None:
        store = _store(csrf="t")
        store._generation = 3
        assert Call(actions.EDIT).build(store).token_generation == 3

    def test_frozen_call_rejects_mutation(self) -> None:
        call = Call(actions.EDIT)
        call.freeze()

        assert call.frozen
        with pytest.raises(CallFrozenError):
            call.set_form("text", "x")
        with pytest.raises(CallFrozenError):
            call.set_query("x", "y")
        with pytest.raises(CallFrozenError):
            call.require("edit")
        with pytest.raises(CallFrozenError):
            call.require_rule(PermissionRule.any_of("edit"))

    def test_require_collects_rules(self) -> None:
        call = Call(actions.BLOCK).require("block").require("edit")
        assert call.requirements.rules == frozenset({PermissionRule.all_of("block", "edit")})

    def test_exposed_params_are_read_only(self) -> None:
        call = Call(actions.EDIT)
        with pytest.raises(TypeError):
            call.query_params["x"] = "y"  # type: ignore[index]
