"""Tests for core data models."""

import pytest

from lotsawa.core.models import (
    ApplyRequest,
    GlossaryItem,
    GlossaryRequest,
    GlossaryTerm,
    LineRange,
    PipelineResult,
    StageProgress,
    StageState,
    StageStatus,
    StandardizationItem,
    StandardizationPair,
    TranslationRequest,
    Stage,
    percent,
)


@pytest.mark.parametrize(
    "current,total,expected",
    [
        (0, 0, 0),
        (1, 0, 0),
        (1, 8, 13),  # 12.5 rounds up
        (1, 3, 33),
        (2, 3, 67),
        (3, 3, 100),
    ],
)
def test_percent_rounds_half_up(current, total, expected):
    assert percent(current, total) == expected


def test_progress_advance_keeps_current_within_total():
    progress = StageProgress.started(2)
    for _ in range(3):
        progress = progress.advance()
    assert progress.current == 3
    assert progress.total == 3
    assert progress.percentage == 100


def test_progress_advance_uses_hint_without_total():
    progress = StageProgress().advance(total_hint=4)
    assert (progress.current, progress.total, progress.percentage) == (1, 4, 25)


def test_progress_finished_keeps_counts():
    progress = StageProgress.started(4).advance().finished()
    assert progress.current == 1
    assert progress.percentage == 100


def test_stage_status_flags():
    assert StageStatus.STREAMING.is_active
    assert not StageStatus.IDLE.is_active
    assert StageStatus.ABORTED.is_terminal
    assert not StageStatus.REQUESTING.is_terminal


def test_stage_state_defaults():
    state = StageState(stage=Stage.TRANSLATE)
    assert state.status is StageStatus.IDLE
    assert state.current_processing_index == -1
    assert state.results == ()


def test_line_range_round_trip_keys():
    line_range = LineRange.from_dict({"from": 0, "to": 12})
    assert line_range == LineRange(start=0, end=12)
    assert line_range.to_dict() == {"from": 0, "to": 12}


def test_superseded_result_keeps_line_numbers():
    lines = {"3": LineRange(10, 20)}
    result = PipelineResult(original_text="sems", translated_text="mind", line_numbers=lines)
    updated = result.superseded_by("sems", "awareness")
    assert updated.translated_text == "awareness"
    assert updated.previous_translated_text == "mind"
    assert updated.is_updated
    assert updated.line_numbers is lines
    # The original is left untouched
    assert result.translated_text == "mind"
    assert not result.is_updated


def test_translation_payload_drops_unset_fields():
    payload = TranslationRequest(texts=["a"], target_language="english").to_payload()
    assert payload == {"texts": ["a"], "target_language": "english"}


def test_translation_payload_drops_empty_rules():
    request = TranslationRequest(texts=["a"], target_language="english", batch_size=2, user_rules="")
    payload = request.to_payload()
    assert payload["batch_size"] == 2
    assert "user_rules" not in payload


def test_glossary_payload():
    request = GlossaryRequest(
        items=[GlossaryItem("a", "b", metadata={"pair_index": 0}), GlossaryItem("c", "d")],
        model_name="claude",
    )
    payload = request.to_payload()
    assert payload["items"][0]["metadata"] == {"pair_index": 0}
    assert "metadata" not in payload["items"][1]
    assert "batch_size" not in payload


def test_apply_payload():
    request = ApplyRequest(
        items=[StandardizationItem("a", "b", glossary=[GlossaryTerm("sems", "mind", frequency=3)])],
        standardization_pairs=[StandardizationPair("sems", "mind")],
        model_name="claude",
        user_rules="Be consistent",
    )
    payload = request.to_payload()
    assert payload["items"][0]["glossary"] == [{"source_term": "sems", "translated_term": "mind"}]
    assert payload["standardization_pairs"] == [
        {"source_word": "sems", "standardized_translation": "mind"}
    ]
    assert payload["user_rules"] == "Be consistent"
