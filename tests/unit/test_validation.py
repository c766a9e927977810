"""Tests for actor and capability input checks shared by the CLI and API."""

from __future__ import annotations

import pytest

from statusflow.validation import MAX_ACTOR_LENGTH, parse_capability_list, sanitize_actor
from statusflow.workflows import Capability


class TestSanitizeActor:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("bob", "bob"),
            ("  finance-bot  ", "finance-bot"),
            ("dana@ops.example", "dana@ops.example"),
            ("Zoë Martin", "Zoë Martin"),
            ("s" * MAX_ACTOR_LENGTH, "s" * MAX_ACTOR_LENGTH),
        ],
    )
    def test_accepted(self, raw: str, expected: str) -> None:
        assert sanitize_actor(raw) == (expected, None)

    def test_too_long(self) -> None:
        actor, err = sanitize_actor("approver" * 20)
        assert actor == ""
        assert err == f"actor must be at most {MAX_ACTOR_LENGTH} characters"

    @pytest.mark.parametrize("raw", ["", "   ", "　"])
    def test_blank(self, raw: str) -> None:
        assert sanitize_actor(raw) == ("", "actor must not be empty")

    @pytest.mark.parametrize("raw", [None, 42, ["bob"]])
    def test_wrong_type(self, raw: object) -> None:
        assert sanitize_actor(raw) == ("", "actor must be a string")

    @pytest.mark.parametrize(
        ("raw", "codepoint"),
        [("bob\n", "U+000A"), ("\tbob", "U+0009"), ("b​ob", "U+200B")],
    )
    def test_unprintable_characters(self, raw: str, codepoint: str) -> None:
        actor, err = sanitize_actor(raw)
        assert actor == ""
        assert err is not None and codepoint in err

    @pytest.mark.parametrize("raw", ["system", "SYSTEM", " System "])
    def test_engine_actor_is_reserved(self, raw: str) -> None:
        actor, err = sanitize_actor(raw)
        assert actor == ""
        assert err is not None and "reserved" in err


class TestParseCapabilityList:
    def test_none_is_empty(self) -> None:
        assert parse_capability_list(None) == (frozenset(), None)

    def test_list_of_names(self) -> None:
        caps, err = parse_capability_list(["manage_budget", "admin_config"])
        assert err is None
        assert caps == frozenset({Capability.MANAGE_BUDGET, Capability.ADMIN_CONFIG})

    def test_comma_separated(self) -> None:
        caps, err = parse_capability_list(" view_time_entries, ,comment ")
        assert err is None
        assert caps == frozenset({Capability.VIEW_TIME_ENTRIES, Capability.COMMENT})

    def test_unknown_names_reported(self) -> None:
        caps, err = parse_capability_list(["manage_budget", "sign_cheques", "fly"])
        assert caps == frozenset()
        assert err == "Unknown capabilities: sign_cheques, fly"

    def test_non_string_entry(self) -> None:
        caps, err = parse_capability_list(["manage_budget", 7])
        assert caps == frozenset()
        assert err == "capabilities must be strings"
