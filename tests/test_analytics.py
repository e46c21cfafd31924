from datetime import date

from edufunds.analytics import summarize
from edufunds.domain import MatchResult


def test_summarize_programs_and_matches(program_factory) -> None:
    programs = [
        program_factory("p1", provider="BMBF", budget="25.000 €", deadline="10.02.2026", focus="Digitalisierung"),
        program_factory("p2", provider="Land Bayern", budget="1,5 Mio €", deadline="Laufend", focus="Kultur"),
        program_factory("p3", provider="BMBF", budget="Sachmittel", deadline="01.01.2026", focus="Digitalisierung"),
        program_factory("p4", provider="Stiftung", budget="50 Tsd €", deadline="30.06.2026", focus="MINT"),
    ]
    matches = [
        MatchResult(program_id="p1", score=90, reasoning=""),
        MatchResult(program_id="p2", score=40, reasoning=""),
        MatchResult(program_id="p4", score=71, reasoning=""),
        MatchResult(program_id="unknown", score=100, reasoning=""),
    ]

    summary = summarize(programs, matches, now=date(2026, 1, 20))

    assert summary.total_programs == 4
    assert summary.matched_programs == 3
    assert summary.high_match_count == 2
    assert summary.average_score == 67
    assert summary.total_funding == 1_575_000
    assert summary.upcoming_deadlines == 1
    assert summary.top_providers == (("BMBF", 2), ("Land Bayern", 1), ("Stiftung", 1))
    assert summary.focus_distribution == (("Digitalisierung", 2), ("Kultur", 1), ("MINT", 1))


def test_summarize_without_matches(program_factory) -> None:
    summary = summarize([program_factory("p1")], [], now=date(2026, 1, 20))
    assert summary.matched_programs == 0
    assert summary.average_score == 0
    assert summary.high_match_count == 0
