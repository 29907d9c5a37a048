"""Tests for core/patterns.py: Phase/Step/numbered title hints."""

import pytest

from todo_mcp.core.patterns import detect_pattern, extract_prefix, find_similar
from todo_mcp.models.todo import Todo


@pytest.mark.parametrize(
    "title, pattern, suggested, number",
    [
        ("Phase 1: Planning", "phase", "phase", "1"),
        ("phase 2.5 rollout", "phase", "phase", "2.5"),
        ("Part 2 of 3: Docs", "part", "phase", "2"),
        ("Step 4 - wire it", "step", "subtask", "4"),
        ("[3] Cleanup", "numbered", "subtask", "3"),
        ("1. Write tests", "numbered", "subtask", "1"),
        ("2) Ship", "numbered", "subtask", "2"),
    ],
)
def test_detect_pattern(title, pattern, suggested, number):
    hint = detect_pattern(title)
    assert hint is not None
    assert hint.pattern == pattern
    assert hint.suggested_type == suggested
    assert hint.number == number
    assert "parent_id" in hint.message


@pytest.mark.parametrize("title", ["Implement authentication", "Phases of the moon", "2024 roadmap"])
def test_plain_titles_have_no_hint(title):
    assert detect_pattern(title) is None


def test_hint_to_dict():
    d = detect_pattern("Step 2: deploy").to_dict()
    assert d == {
        "pattern": "step",
        "suggested_type": "subtask",
        "message": "This looks like a step. Consider using type 'subtask' with a parent_id.",
        "number": "2",
    }


class TestPrefix:
    def test_pattern_prefix(self):
        assert extract_prefix("Phase 3: Launch") == "Phase"
        assert extract_prefix("1. first") == "Numbered"

    def test_separator_prefix(self):
        assert extract_prefix("Auth: login flow") == "Auth"
        assert extract_prefix("Billing - invoices") == "Billing"
        assert extract_prefix("Search \u2014 ranking") == "Search"

    def test_long_prefix_ignored(self):
        assert extract_prefix("This prefix is far too long to count: x") == ""

    def test_no_prefix(self):
        assert extract_prefix("Just a title") == ""


def test_find_similar():
    todos = [
        Todo(id="phase-1", task="Phase 1: Plan"),
        Todo(id="phase-2", task="Phase 2: Build"),
        Todo(id="auth", task="Auth: tokens"),
        Todo(id="plain", task="Plain"),
    ]
    assert find_similar("Phase 3: Ship", todos) == ["phase-1", "phase-2"]
    assert find_similar("Auth: sessions", todos) == ["auth"]
    assert find_similar("Unrelated", todos) == []
