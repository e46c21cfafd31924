from datetime import date, datetime, timezone

import pytest

from edufunds.domain import DEFAULT_FILTER_STATE, FilterState, MatchResult
from edufunds.filters import (
    apply_filters,
    default_view,
    delete_preset,
    has_active_filters,
    list_presets,
    save_preset,
    scores_by_program,
    visible_programs,
)
from edufunds.storage import MemoryStore

REFERENCE = date(2026, 1, 20)


def _programs(program_factory):  # type: ignore[no-untyped-def]
    return [
        program_factory("p1", budget="50.000 €", deadline="15.03.2026", region=("DE-BY",), focus="Kultur"),
        program_factory("p2", budget="1,5 Mio €", deadline="Laufend", region=("DE",), focus="Chancen"),
        program_factory("p3", budget="100.000 €", deadline="01.02.2026", region=("DE-BW",), focus="MINT"),
    ]


def _ids(programs) -> list[str]:  # type: ignore[no-untyped-def]
    return [program.id for program in programs]


def test_sort_by_budget_descending(program_factory) -> None:
    programs = _programs(program_factory)
    result = apply_filters(programs, FilterState(sort_by="budget"), {}, REFERENCE)
    assert _ids(result) == ["p2", "p3", "p1"]


def test_sort_by_deadline_puts_ongoing_last(program_factory) -> None:
    programs = _programs(program_factory)
    result = apply_filters(programs, FilterState(sort_by="deadline"), {}, REFERENCE)
    assert _ids(result) == ["p3", "p1", "p2"]


def test_sort_by_relevance_breaks_ties_by_input_order(program_factory) -> None:
    programs = _programs(program_factory)
    scores = {"p1": 80, "p2": 90, "p3": 80}
    first = apply_filters(programs, DEFAULT_FILTER_STATE, scores, REFERENCE)
    second = apply_filters(programs, DEFAULT_FILTER_STATE, scores, REFERENCE)
    assert _ids(first) == ["p2", "p1", "p3"]
    assert _ids(first) == _ids(second)


def test_missing_score_counts_as_zero(program_factory) -> None:
    programs = _programs(program_factory)
    result = apply_filters(programs, DEFAULT_FILTER_STATE, {"p3": 10}, REFERENCE)
    assert _ids(result) == ["p3", "p1", "p2"]


def test_region_filter_keeps_nationwide_programs(program_factory) -> None:
    programs = _programs(program_factory)
    result = apply_filters(programs, FilterState(regions=("DE-BY",)), {}, REFERENCE)
    assert _ids(result) == ["p1", "p2"]
    result = apply_filters(programs, FilterState(regions=("DE-NW", "DE-BW")), {}, REFERENCE)
    assert _ids(result) == ["p2", "p3"]


def test_deadline_bucket_filter(program_factory) -> None:
    programs = _programs(program_factory)
    assert _ids(apply_filters(programs, FilterState(deadline_range="urgent"), {}, REFERENCE)) == ["p3"]
    assert _ids(apply_filters(programs, FilterState(deadline_range="this_quarter"), {}, REFERENCE)) == ["p1", "p3"]
    past_reference = date(2026, 2, 10)
    assert _ids(apply_filters(programs, FilterState(deadline_range="urgent"), {}, past_reference)) == []


def test_budget_and_query_filters_combine(program_factory) -> None:
    programs = [*_programs(program_factory), program_factory("p4", budget="Ausstattung", focus="MINT")]
    result = apply_filters(programs, FilterState(min_budget="60.000"), {}, REFERENCE)
    assert _ids(result) == ["p2", "p3"]
    result = apply_filters(programs, FilterState(search_query="mint"), {}, REFERENCE)
    assert _ids(result) == ["p3", "p4"]
    result = apply_filters(programs, FilterState(search_query="mint", min_budget="1"), {}, REFERENCE)
    assert _ids(result) == ["p3"]


def test_apply_filters_accepts_aware_reference(program_factory) -> None:
    programs = _programs(program_factory)
    reference = datetime(2026, 1, 20, 9, 30, tzinfo=timezone.utc)
    assert _ids(apply_filters(programs, FilterState(deadline_range="urgent"), {}, reference)) == ["p3"]


def test_has_active_filters() -> None:
    assert has_active_filters(DEFAULT_FILTER_STATE) is False
    assert has_active_filters(FilterState()) is False
    assert has_active_filters(FilterState(search_query="Bildung")) is True
    assert has_active_filters(FilterState(regions=("DE-BY",))) is True
    assert has_active_filters(FilterState(min_budget="1000")) is True
    assert has_active_filters(FilterState(max_budget="1000")) is True
    assert has_active_filters(FilterState(deadline_range="urgent")) is True
    assert has_active_filters(FilterState(sort_by="deadline")) is True


def test_filter_state_rejects_unknown_values() -> None:
    with pytest.raises(ValueError):
        FilterState(sort_by="popularity")
    with pytest.raises(ValueError):
        FilterState(deadline_range="next_week")


def test_default_view_hides_low_scores(program_factory) -> None:
    programs = _programs(program_factory)
    matches = [
        MatchResult(program_id="p1", score=15, reasoning=""),
        MatchResult(program_id="p2", score=50, reasoning=""),
        MatchResult(program_id="p3", score=50, reasoning=""),
        MatchResult(program_id="unknown", score=99, reasoning=""),
    ]
    assert _ids(default_view(programs, matches)) == ["p2", "p3"]


def test_visible_programs_switches_on_active_filters(program_factory) -> None:
    programs = _programs(program_factory)
    matches = [
        MatchResult(program_id="p1", score=10, reasoning=""),
        MatchResult(program_id="p3", score=60, reasoning=""),
    ]
    assert _ids(visible_programs(programs, DEFAULT_FILTER_STATE, matches, REFERENCE)) == ["p3"]
    result = visible_programs(programs, FilterState(sort_by="budget"), matches, REFERENCE)
    assert _ids(result) == ["p2", "p3", "p1"]
    assert scores_by_program(matches) == {"p1": 10, "p3": 60}


def test_presets_save_list_delete() -> None:
    store = MemoryStore()
    now = datetime(2024, 1, 25, tzinfo=timezone.utc)
    filters = FilterState(search_query="Bildung", regions=("DE-BY", "DE-BW"), deadline_range="urgent")
    first = save_preset(store, "Dringende Bildungsförderung", filters, now=now)
    second = save_preset(store, "Zweites", DEFAULT_FILTER_STATE, now=now)

    assert first.id != second.id
    presets = list_presets(store)
    assert [preset.name for preset in presets] == ["Dringende Bildungsförderung", "Zweites"]
    assert presets[0].filters == filters

    assert delete_preset(store, first.id) is True
    assert delete_preset(store, first.id) is False
    assert [preset.id for preset in list_presets(store)] == [second.id]


def test_save_preset_requires_name() -> None:
    with pytest.raises(ValueError):
        save_preset(MemoryStore(), "  ", DEFAULT_FILTER_STATE)
