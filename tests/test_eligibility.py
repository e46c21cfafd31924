import pytest

from edufunds.domain import SchoolProfile
from edufunds.eligibility import (
    GERMAN_STATES,
    filter_programs_by_query,
    get_state_label,
    is_program_available_in_state,
    matches_budget_range,
    matches_deadline_bucket,
    matches_query,
    validate_school_profile,
)


def _profile(**overrides) -> SchoolProfile:  # type: ignore[no-untyped-def]
    values = {
        "name": "Gesamtschule Nord",
        "location": "Köln",
        "state": "DE-NW",
        "student_count": 800,
        "social_index": 4,
        "needs_description": "Tablets und WLAN",
    }
    values.update(overrides)
    return SchoolProfile(**values)


def test_nationwide_program_is_available_everywhere(program_factory) -> None:
    program = program_factory("p1", region=("DE",))
    for code, _ in GERMAN_STATES:
        assert is_program_available_in_state(program, code) is True
    assert is_program_available_in_state(program, "XX") is True


def test_state_program_requires_exact_region_code(program_factory) -> None:
    program = program_factory("p1", region=("DE-BY", "DE-BW"))
    assert is_program_available_in_state(program, "DE-BY") is True
    assert is_program_available_in_state(program, "DE-NW") is False
    assert is_program_available_in_state(program, "DE-B") is False
    assert is_program_available_in_state(program, "DE") is False


def test_matches_query_any_field_case_insensitive(program_factory) -> None:
    program = program_factory(
        "p1",
        title="DigitalPakt Schule",
        provider="BMBF",
        description="Endgeräte für Schüler",
        focus="Digitalisierung",
    )
    assert matches_query(program, "digitalpakt") is True
    assert matches_query(program, "bmbf") is True
    assert matches_query(program, "ENDGERÄTE") is True
    assert matches_query(program, "digitalisierung") is True
    assert matches_query(program, "Musik") is False
    assert matches_query(program, "   ") is True


def test_filter_programs_by_query(program_factory) -> None:
    programs = [
        program_factory("p1", title="Musik für alle"),
        program_factory("p2", title="MINT Labor"),
    ]
    assert filter_programs_by_query([], "musik") == []
    assert filter_programs_by_query(programs, "") is programs
    assert filter_programs_by_query(programs, "  ") == programs
    assert [program.id for program in filter_programs_by_query(programs, "mint")] == ["p2"]


def test_matches_budget_range(program_factory) -> None:
    program = program_factory("p1", budget="50.000 €")
    assert matches_budget_range(program, "", "") is True
    assert matches_budget_range(program, "10.000", "") is True
    assert matches_budget_range(program, "60000", "") is False
    assert matches_budget_range(program, "", "40.000") is False
    assert matches_budget_range(program, "50.000", "50.000") is True


def test_non_numeric_budget_fails_lower_bound(program_factory) -> None:
    program = program_factory("p1", budget="Ausstattung")
    assert matches_budget_range(program, "1", "") is False
    assert matches_budget_range(program, "", "100.000") is True
    assert matches_budget_range(program, "", "") is True


def test_matches_deadline_bucket_thresholds_are_cumulative() -> None:
    for bucket in ("urgent", "this_month", "this_quarter", "this_year"):
        assert matches_deadline_bucket(10, bucket) is True
    assert matches_deadline_bucket(0, "urgent") is True
    assert matches_deadline_bucket(15, "urgent") is False
    assert matches_deadline_bucket(30, "this_month") is True
    assert matches_deadline_bucket(91, "this_quarter") is False
    assert matches_deadline_bucket(366, "this_year") is False


def test_past_and_ongoing_deadlines_only_match_all() -> None:
    for bucket in ("urgent", "this_month", "this_quarter", "this_year"):
        assert matches_deadline_bucket(-1, bucket) is False
        assert matches_deadline_bucket(None, bucket) is False
    assert matches_deadline_bucket(-1, "all") is True
    assert matches_deadline_bucket(None, "all") is True


def test_matches_deadline_bucket_rejects_unknown_bucket() -> None:
    with pytest.raises(ValueError):
        matches_deadline_bucket(5, "next_week")


def test_get_state_label() -> None:
    assert len(GERMAN_STATES) == 17
    assert get_state_label("DE-BY") == "Bayern"
    assert get_state_label("DE") == "Bundesweit"
    assert get_state_label("XX") == "XX"


def test_validate_school_profile() -> None:
    assert validate_school_profile(_profile()) == []
    errors = validate_school_profile(_profile(name=" ", location="", student_count=0))
    assert "School name is required" in errors
    assert "Location (city) is required" in errors
    assert "Student count must be greater than 0" in errors
    assert "Social index must be between 1 and 5" in validate_school_profile(_profile(social_index=6))
    assert validate_school_profile(_profile(social_index=None)) == []
    assert "Invalid email format" in validate_school_profile(_profile(email="no@domain"))
    assert validate_school_profile(_profile(email="sekretariat@schule.de")) == []
