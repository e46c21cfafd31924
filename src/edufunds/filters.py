from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import date, datetime, timezone

from edufunds.domain import (
    DEFAULT_FILTER_STATE,
    SORT_BUDGET,
    SORT_DEADLINE,
    SORT_RELEVANCE,
    FilterPreset,
    FilterState,
    FundingProgram,
    MatchResult,
)
from edufunds.eligibility import (
    is_program_available_in_state,
    matches_budget_range,
    matches_deadline_bucket,
    matches_query,
)
from edufunds.normalize import get_days_until_deadline, parse_budget
from edufunds.storage import PRESETS_KEY, DocumentStore
from edufunds.subscribers import presets_from_json, presets_to_json

MIN_VISIBLE_SCORE = 20


def has_active_filters(filter_state: FilterState) -> bool:
    return filter_state != DEFAULT_FILTER_STATE


def scores_by_program(matches: Iterable[MatchResult]) -> dict[str, float]:
    scores: dict[str, float] = {}
    for match in matches:
        scores[match.program_id] = match.score
    return scores


def _matches_regions(program: FundingProgram, regions: tuple[str, ...]) -> bool:
    if not regions:
        return True
    return any(is_program_available_in_state(program, region) for region in regions)


def apply_filters(
    programs: list[FundingProgram],
    filter_state: FilterState,
    match_scores: Mapping[str, float] | None = None,
    reference: datetime | date | None = None,
) -> list[FundingProgram]:
    """Filter ``programs`` by every active predicate and order by ``filter_state.sort_by``.

    Ties always fall back to the position in ``programs``.
    """
    scores = match_scores or {}
    effective_reference = reference or datetime.now(timezone.utc)

    retained: list[tuple[int, FundingProgram, int | None]] = []
    for index, program in enumerate(programs):
        if not _matches_regions(program, filter_state.regions):
            continue
        if not matches_query(program, filter_state.search_query):
            continue
        if not matches_budget_range(program, filter_state.min_budget, filter_state.max_budget):
            continue
        days_until = get_days_until_deadline(program.deadline, effective_reference)
        if not matches_deadline_bucket(days_until, filter_state.deadline_range):
            continue
        retained.append((index, program, days_until))

    if filter_state.sort_by == SORT_RELEVANCE:
        retained.sort(key=lambda entry: (-float(scores.get(entry[1].id, 0)), entry[0]))
    elif filter_state.sort_by == SORT_DEADLINE:
        # Ongoing and unparsable deadlines go last.
        retained.sort(
            key=lambda entry: (entry[2] is None, entry[2] if entry[2] is not None else 0, entry[0])
        )
    elif filter_state.sort_by == SORT_BUDGET:
        retained.sort(key=lambda entry: (-parse_budget(entry[1].budget), entry[0]))
    else:
        raise ValueError(f"invalid sort key: {filter_state.sort_by}")
    return [program for _, program, _ in retained]


def default_view(
    programs: list[FundingProgram],
    matches: list[MatchResult],
    min_score: int = MIN_VISIBLE_SCORE,
) -> list[FundingProgram]:
    programs_by_id: dict[str, FundingProgram] = {}
    for program in programs:
        programs_by_id.setdefault(program.id, program)

    ranked = sorted(enumerate(matches), key=lambda entry: (-entry[1].score, entry[0]))
    visible: list[FundingProgram] = []
    seen_ids: set[str] = set()
    for _, match in ranked:
        program = programs_by_id.get(match.program_id)
        if program is None or match.program_id in seen_ids:
            continue
        if match.score < min_score:
            continue
        seen_ids.add(match.program_id)
        visible.append(program)
    return visible


def visible_programs(
    programs: list[FundingProgram],
    filter_state: FilterState,
    matches: list[MatchResult],
    reference: datetime | date | None = None,
) -> list[FundingProgram]:
    if has_active_filters(filter_state):
        return apply_filters(
            programs=programs,
            filter_state=filter_state,
            match_scores=scores_by_program(matches),
            reference=reference,
        )
    return default_view(programs=programs, matches=matches)


def list_presets(store: DocumentStore) -> list[FilterPreset]:
    return presets_from_json(store.get_document(PRESETS_KEY))


def save_preset(
    store: DocumentStore,
    name: str,
    filters: FilterState,
    now: datetime | None = None,
) -> FilterPreset:
    cleaned_name = (name or "").strip()
    if not cleaned_name:
        raise ValueError("preset name must be non-empty")
    current = now or datetime.now(timezone.utc)
    presets = list_presets(store)
    existing_ids = {preset.id for preset in presets}
    millis = int(current.timestamp() * 1000)
    while str(millis) in existing_ids:
        millis += 1
    preset = FilterPreset(id=str(millis), name=cleaned_name, filters=filters)
    presets.append(preset)
    store.put_document(PRESETS_KEY, presets_to_json(presets))
    return preset


def delete_preset(store: DocumentStore, preset_id: str) -> bool:
    presets = list_presets(store)
    remaining = [preset for preset in presets if preset.id != preset_id]
    if len(remaining) == len(presets):
        return False
    store.put_document(PRESETS_KEY, presets_to_json(remaining))
    return True
