from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone

from edufunds.domain import (
    REMINDER_KINDS,
    REMINDER_ONE_DAY,
    REMINDER_SEVEN_DAYS,
    FundingProgram,
    NotificationPreferences,
    ReminderToggles,
    ScheduledReminder,
)
from edufunds.normalize import BERLIN, deadline_start, format_deadline, parse_deadline
from edufunds.storage import PREFERENCES_KEY, REMINDERS_KEY, DocumentStore
from edufunds.subscribers import (
    preferences_from_json,
    preferences_to_json,
    reminders_from_json,
    reminders_to_json,
    validate_email,
)

LOGGER = logging.getLogger(__name__)

REMINDER_LEAD_DAYS = {
    REMINDER_SEVEN_DAYS: 7,
    REMINDER_ONE_DAY: 1,
}
REMINDER_LEAD_LABELS = {
    REMINDER_SEVEN_DAYS: "7 Tage",
    REMINDER_ONE_DAY: "1 Tag",
}


@dataclass(frozen=True)
class ReminderInstants:
    seven_days_before: datetime
    one_day_before: datetime

    def for_kind(self, kind: str) -> datetime:
        if kind == REMINDER_SEVEN_DAYS:
            return self.seven_days_before
        if kind == REMINDER_ONE_DAY:
            return self.one_day_before
        raise ValueError(f"invalid reminder kind: {kind}")


def calculate_reminder_instants(deadline: str) -> ReminderInstants | None:
    """Local-midnight instants 7 and 1 calendar days before ``deadline``.

    ``None`` for ongoing or unparsable deadlines, which are never scheduled.
    """
    parsed = parse_deadline(deadline)
    if parsed is None:
        return None
    return ReminderInstants(
        seven_days_before=deadline_start(parsed - timedelta(days=REMINDER_LEAD_DAYS[REMINDER_SEVEN_DAYS])),
        one_day_before=deadline_start(parsed - timedelta(days=REMINDER_LEAD_DAYS[REMINDER_ONE_DAY])),
    )


def format_reminder_message(reminder: ScheduledReminder) -> str:
    lead = REMINDER_LEAD_LABELS[reminder.reminder_type]
    parsed = parse_deadline(reminder.deadline)
    deadline_text = format_deadline(parsed) if parsed is not None else reminder.deadline
    return f'Erinnerung: Die Frist für "{reminder.program_title}" endet in {lead} ({deadline_text}).'


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=BERLIN)
    return value


class ReminderScheduler:
    """Owns the ``notification_preferences`` and ``scheduled_reminders`` documents.

    Every mutating call re-reads the documents it changes and writes them back
    before returning, under one lock, so two calls never interleave a
    read-modify-write on the same document.
    """

    def __init__(self, store: DocumentStore, clock: Callable[[], datetime] = _utc_now) -> None:
        self.store = store
        self.clock = clock
        self._lock = threading.RLock()

    def _now(self, now: datetime | None) -> datetime:
        return _aware(now or self.clock())

    def get_preferences(self) -> NotificationPreferences:
        return preferences_from_json(self.store.get_document(PREFERENCES_KEY))

    def save_preferences(self, preferences: NotificationPreferences) -> None:
        self.store.put_document(PREFERENCES_KEY, preferences_to_json(preferences))

    def get_scheduled_reminders(self) -> list[ScheduledReminder]:
        return reminders_from_json(self.store.get_document(REMINDERS_KEY))

    def save_scheduled_reminders(self, reminders: list[ScheduledReminder]) -> None:
        self.store.put_document(REMINDERS_KEY, reminders_to_json(reminders))

    def update_settings(
        self,
        *,
        email: str | None = None,
        enabled: bool | None = None,
        seven_days: bool | None = None,
        one_day: bool | None = None,
    ) -> NotificationPreferences:
        with self._lock:
            preferences = self.get_preferences()
            if email is not None:
                preferences = replace(preferences, email=validate_email(email) if email.strip() else "")
            if enabled is not None:
                preferences = replace(preferences, enabled=enabled)
            toggles = preferences.reminders
            preferences = replace(
                preferences,
                reminders=ReminderToggles(
                    seven_days=toggles.seven_days if seven_days is None else seven_days,
                    one_day=toggles.one_day if one_day is None else one_day,
                ),
            )
            self.save_preferences(preferences)
            return preferences

    def schedule_reminders(
        self,
        program: FundingProgram,
        now: datetime | None = None,
    ) -> list[ScheduledReminder]:
        current = self._now(now)
        instants = calculate_reminder_instants(program.deadline)
        if instants is None:
            LOGGER.debug("No fixed deadline for program_id=%s, nothing scheduled", program.id)
            return []

        with self._lock:
            preferences = self.get_preferences()
            existing = self.get_scheduled_reminders()
            existing_keys = {reminder.key for reminder in existing}
            created: list[ScheduledReminder] = []
            for kind in REMINDER_KINDS:
                if not preferences.reminders.is_enabled(kind):
                    continue
                scheduled_date = instants.for_kind(kind)
                if scheduled_date <= current:
                    continue
                if (program.id, kind) in existing_keys:
                    continue
                created.append(
                    ScheduledReminder(
                        program_id=program.id,
                        program_title=program.title,
                        deadline=program.deadline,
                        reminder_type=kind,
                        scheduled_date=scheduled_date,
                        sent=False,
                    )
                )
            if created:
                self.save_scheduled_reminders([*existing, *created])
                LOGGER.info(
                    "scheduled reminders: program_id=%s kinds=%s",
                    program.id,
                    ",".join(reminder.reminder_type for reminder in created),
                )
            return created

    def subscribe_to_program(
        self,
        program: FundingProgram,
        now: datetime | None = None,
    ) -> list[ScheduledReminder]:
        with self._lock:
            preferences = self.get_preferences()
            if program.id not in preferences.subscribed_programs:
                preferences = replace(
                    preferences,
                    subscribed_programs=(*preferences.subscribed_programs, program.id),
                )
                self.save_preferences(preferences)
            return self.schedule_reminders(program, now=now)

    def unsubscribe_from_program(self, program_id: str) -> int:
        """Drop the subscription and purge every reminder of ``program_id``.

        Returns the number of purged reminder records.
        """
        with self._lock:
            preferences = self.get_preferences()
            preferences = replace(
                preferences,
                subscribed_programs=tuple(
                    subscribed for subscribed in preferences.subscribed_programs if subscribed != program_id
                ),
            )
            self.save_preferences(preferences)

            reminders = self.get_scheduled_reminders()
            remaining = [reminder for reminder in reminders if reminder.program_id != program_id]
            self.save_scheduled_reminders(remaining)
            return len(reminders) - len(remaining)

    def get_due_reminders(self, now: datetime | None = None) -> list[ScheduledReminder]:
        """Unsent reminders whose instant has passed, without consuming them."""
        current = self._now(now)
        return [
            reminder
            for reminder in self.get_scheduled_reminders()
            if not reminder.sent and reminder.scheduled_date <= current
        ]

    def check_due_reminders(self, now: datetime | None = None) -> list[ScheduledReminder]:
        """Mark every due reminder as sent and return them as they were before.

        A reminder is returned at most once. Nothing is returned while
        notifications are disabled or no email address is configured.
        """
        current = self._now(now)
        with self._lock:
            preferences = self.get_preferences()
            if not preferences.enabled or not preferences.email:
                return []

            reminders = self.get_scheduled_reminders()
            due = [reminder for reminder in reminders if not reminder.sent and reminder.scheduled_date <= current]
            if not due:
                return []

            due_keys = {reminder.key for reminder in due}
            self.save_scheduled_reminders(
                [replace(reminder, sent=True) if reminder.key in due_keys else reminder for reminder in reminders]
            )
            return due

    def get_upcoming_reminders(self, now: datetime | None = None) -> list[ScheduledReminder]:
        current = self._now(now)
        reminders = self.get_scheduled_reminders()
        upcoming = [reminder for reminder in reminders if not reminder.sent and reminder.scheduled_date > current]
        upcoming.sort(key=lambda reminder: reminder.scheduled_date)
        return upcoming

    def clear_all(self) -> None:
        with self._lock:
            self.store.delete_document(PREFERENCES_KEY)
            self.store.delete_document(REMINDERS_KEY)
