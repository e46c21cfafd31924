from __future__ import annotations

from edufunds.domain import DEADLINE_ALL, FundingProgram, SchoolProfile
from edufunds.normalize import DEADLINE_THRESHOLDS, normalize_text, parse_budget
from edufunds.subscribers import is_valid_email

NATIONWIDE_CODE = "DE"

GERMAN_STATES: tuple[tuple[str, str], ...] = (
    (NATIONWIDE_CODE, "Bundesweit"),
    ("DE-BW", "Baden-Württemberg"),
    ("DE-BY", "Bayern"),
    ("DE-BE", "Berlin"),
    ("DE-BB", "Brandenburg"),
    ("DE-HB", "Bremen"),
    ("DE-HH", "Hamburg"),
    ("DE-HE", "Hessen"),
    ("DE-MV", "Mecklenburg-Vorpommern"),
    ("DE-NI", "Niedersachsen"),
    ("DE-NW", "Nordrhein-Westfalen"),
    ("DE-RP", "Rheinland-Pfalz"),
    ("DE-SL", "Saarland"),
    ("DE-SN", "Sachsen"),
    ("DE-ST", "Sachsen-Anhalt"),
    ("DE-SH", "Schleswig-Holstein"),
    ("DE-TH", "Thüringen"),
)
_STATE_LABELS = dict(GERMAN_STATES)

_BUCKET_THRESHOLDS = dict(DEADLINE_THRESHOLDS)


def get_state_label(code: str) -> str:
    return _STATE_LABELS.get(code, code)


def is_program_available_in_state(program: FundingProgram, region_code: str) -> bool:
    if NATIONWIDE_CODE in program.region:
        return True
    return region_code in program.region


def matches_query(program: FundingProgram, query: str) -> bool:
    normalized_query = normalize_text(query)
    if not normalized_query:
        return True
    return any(
        normalized_query in normalize_text(field)
        for field in (program.title, program.provider, program.description, program.focus)
    )


def filter_programs_by_query(programs: list[FundingProgram], query: str) -> list[FundingProgram]:
    if not (query or "").strip():
        return programs
    return [program for program in programs if matches_query(program, query)]


def _parse_bound(raw: str | None) -> float | None:
    if not (raw or "").strip():
        return None
    return parse_budget(raw)


def matches_budget_range(program: FundingProgram, min_raw: str | None, max_raw: str | None) -> bool:
    minimum = _parse_bound(min_raw)
    maximum = _parse_bound(max_raw)
    if minimum is None and maximum is None:
        return True
    value = parse_budget(program.budget)
    if minimum is not None and minimum > 0 and value <= 0:
        return False
    if minimum is not None and value < minimum:
        return False
    if maximum is not None and value > maximum:
        return False
    return True


def matches_deadline_bucket(days_until: int | None, bucket: str) -> bool:
    if bucket == DEADLINE_ALL:
        return True
    if bucket not in _BUCKET_THRESHOLDS:
        raise ValueError(f"invalid deadline range: {bucket}")
    if days_until is None or days_until < 0:
        return False
    return days_until <= _BUCKET_THRESHOLDS[bucket]


def validate_school_profile(profile: SchoolProfile) -> list[str]:
    """Return the human-readable problems with ``profile``; empty when complete."""
    errors: list[str] = []
    if not (profile.name or "").strip():
        errors.append("School name is required")
    if not (profile.location or "").strip():
        errors.append("Location (city) is required")
    if not (profile.state or "").strip():
        errors.append("State is required")
    if profile.student_count is None or profile.student_count <= 0:
        errors.append("Student count must be greater than 0")
    if profile.social_index is not None and not 1 <= profile.social_index <= 5:
        errors.append("Social index must be between 1 and 5")
    if not (profile.needs_description or "").strip():
        errors.append("Needs description is required")
    if profile.email and not is_valid_email(profile.email):
        errors.append("Invalid email format")
    return errors
