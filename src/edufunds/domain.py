from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

REMINDER_SEVEN_DAYS = "seven_days"
REMINDER_ONE_DAY = "one_day"
REMINDER_KINDS = (REMINDER_SEVEN_DAYS, REMINDER_ONE_DAY)

DEADLINE_ALL = "all"
DEADLINE_URGENT = "urgent"
DEADLINE_THIS_MONTH = "this_month"
DEADLINE_THIS_QUARTER = "this_quarter"
DEADLINE_THIS_YEAR = "this_year"
DEADLINE_BUCKETS = (
    DEADLINE_ALL,
    DEADLINE_URGENT,
    DEADLINE_THIS_MONTH,
    DEADLINE_THIS_QUARTER,
    DEADLINE_THIS_YEAR,
)

SORT_RELEVANCE = "relevance"
SORT_DEADLINE = "deadline"
SORT_BUDGET = "budget"
SORT_KEYS = (SORT_RELEVANCE, SORT_DEADLINE, SORT_BUDGET)


@dataclass(frozen=True)
class FundingProgram:
    id: str
    title: str
    provider: str
    budget: str
    deadline: str
    focus: str
    description: str
    requirements: str
    region: tuple[str, ...]
    target_group: str = ""
    funding_quota: str = ""
    detailed_criteria: tuple[str, ...] = ()
    submission_method: str = ""
    required_documents: tuple[str, ...] = ()
    funding_period: str = ""
    official_link: str | None = None
    address: str | None = None


@dataclass(frozen=True)
class SchoolProfile:
    name: str
    location: str
    state: str
    student_count: int
    social_index: int | None
    needs_description: str
    focus_areas: tuple[str, ...] = ()
    website: str | None = None
    mission_statement: str | None = None
    address: str | None = None
    email: str | None = None
    teacher_count: int | None = None
    awards: tuple[str, ...] = ()
    partners: tuple[str, ...] = ()


@dataclass(frozen=True)
class MatchResult:
    program_id: str
    score: int
    reasoning: str
    tags: tuple[str, ...] = ()


@dataclass(frozen=True)
class FilterState:
    """User-controlled query over the program list.

    ``DEFAULT_FILTER_STATE`` is the single place where the inactive value of
    every field is defined; ``has_active_filters`` compares against it.
    """

    search_query: str = ""
    regions: tuple[str, ...] = ()
    min_budget: str = ""
    max_budget: str = ""
    deadline_range: str = DEADLINE_ALL
    sort_by: str = SORT_RELEVANCE

    def __post_init__(self) -> None:
        if self.deadline_range not in DEADLINE_BUCKETS:
            raise ValueError(f"invalid deadline range: {self.deadline_range}")
        if self.sort_by not in SORT_KEYS:
            raise ValueError(f"invalid sort key: {self.sort_by}")


DEFAULT_FILTER_STATE = FilterState()


@dataclass(frozen=True)
class FilterPreset:
    id: str
    name: str
    filters: FilterState


@dataclass(frozen=True)
class ReminderToggles:
    seven_days: bool = True
    one_day: bool = True

    def is_enabled(self, kind: str) -> bool:
        if kind == REMINDER_SEVEN_DAYS:
            return self.seven_days
        if kind == REMINDER_ONE_DAY:
            return self.one_day
        raise ValueError(f"invalid reminder kind: {kind}")


@dataclass(frozen=True)
class NotificationPreferences:
    email: str = ""
    enabled: bool = False
    reminders: ReminderToggles = field(default_factory=ReminderToggles)
    subscribed_programs: tuple[str, ...] = ()


@dataclass(frozen=True)
class ScheduledReminder:
    program_id: str
    program_title: str
    deadline: str
    reminder_type: str
    scheduled_date: datetime
    sent: bool = False

    def __post_init__(self) -> None:
        if self.reminder_type not in REMINDER_KINDS:
            raise ValueError(f"invalid reminder kind: {self.reminder_type}")

    @property
    def key(self) -> tuple[str, str]:
        return (self.program_id, self.reminder_type)
