"""Tests for standardization helpers."""

from lotsawa.core.standardization import (
    build_standardization_pairs,
    count_inconsistencies,
    default_selections,
    format_inconsistencies_for_display,
    most_frequent_translation,
    normalize_inconsistent_terms,
)


def test_scenario_c_default_selection_is_first_candidate():
    terms = normalize_inconsistent_terms({"consciousness": ["awareness", "consciousness"]})
    assert default_selections(terms) == {"consciousness": "awareness"}


def test_default_selection_ignores_frequency():
    terms = {"sems": ["mind", "awareness", "awareness"]}
    assert default_selections(terms)["sems"] == "mind"
    assert most_frequent_translation(terms["sems"]) == "awareness"


def test_most_frequent_ties_go_to_first_seen():
    assert most_frequent_translation(["b", "a", "a", "b"]) == "b"
    assert most_frequent_translation([]) == ""


def test_normalize_accepts_suggestions_form():
    raw = {
        "sems": {"suggestions": ["mind", "awareness"]},
        "rig pa": ["awareness"],
        "empty": [],
        "single": "insight",
    }
    assert normalize_inconsistent_terms(raw) == {
        "sems": ["mind", "awareness"],
        "rig pa": ["awareness"],
        "single": ["insight"],
    }


def test_normalize_rejects_non_mapping():
    assert normalize_inconsistent_terms(None) == {}
    assert normalize_inconsistent_terms(["sems"]) == {}


def test_count_inconsistencies():
    assert count_inconsistencies({"a": ["x", "y"], "b": ["z", "w"]}) == 2
    assert count_inconsistencies({}) == 0


def test_display_rows():
    rows = format_inconsistencies_for_display({"sems": ["mind", "awareness", "awareness"]})
    assert len(rows) == 1
    assert rows[0].source_term == "sems"
    assert rows[0].suggested_translation == "awareness"
    assert rows[0].inconsistency_count == 3


def test_pairs_prefer_user_selection():
    terms = {"sems": ["mind", "awareness"], "rig pa": ["awareness", "intelligence"]}
    pairs = build_standardization_pairs(terms, {"sems": "awareness"})
    assert [(p.source_word, p.standardized_translation) for p in pairs] == [
        ("sems", "awareness"),
        ("rig pa", "awareness"),
    ]


def test_pairs_without_selections_use_first_candidate():
    pairs = build_standardization_pairs({"sems": ["mind", "awareness"]})
    assert pairs[0].standardized_translation == "mind"
