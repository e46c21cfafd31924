from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from datetime import date, datetime

from edufunds.domain import FundingProgram, MatchResult
from edufunds.normalize import get_days_until_deadline, parse_budget

HIGH_MATCH_SCORE = 70
UPCOMING_DEADLINE_DAYS = 30
TOP_N = 5


@dataclass(frozen=True)
class AnalyticsSummary:
    total_programs: int
    matched_programs: int
    high_match_count: int
    average_score: int
    total_funding: float
    upcoming_deadlines: int
    top_providers: tuple[tuple[str, int], ...]
    focus_distribution: tuple[tuple[str, int], ...]


def _ranked_counts(values: list[str], limit: int | None) -> tuple[tuple[str, int], ...]:
    counts = Counter(value for value in values if value)
    # Counter keeps first-seen order, so equal counts stay in input order.
    ranked = sorted(counts.items(), key=lambda entry: -entry[1])
    if limit is not None:
        ranked = ranked[:limit]
    return tuple(ranked)


def summarize(
    programs: list[FundingProgram],
    matches: list[MatchResult],
    now: datetime | date | None = None,
) -> AnalyticsSummary:
    known_ids = {program.id for program in programs}
    matched = [match for match in matches if match.program_id in known_ids]
    average = round(sum(match.score for match in matched) / len(matched)) if matched else 0

    upcoming = 0
    for program in programs:
        days_until = get_days_until_deadline(program.deadline, now)
        if days_until is not None and 0 <= days_until <= UPCOMING_DEADLINE_DAYS:
            upcoming += 1

    return AnalyticsSummary(
        total_programs=len(programs),
        matched_programs=len(matched),
        high_match_count=sum(1 for match in matched if match.score >= HIGH_MATCH_SCORE),
        average_score=average,
        total_funding=sum(parse_budget(program.budget) for program in programs),
        upcoming_deadlines=upcoming,
        top_providers=_ranked_counts([program.provider for program in programs], TOP_N),
        focus_distribution=_ranked_counts([program.focus for program in programs], None),
    )
