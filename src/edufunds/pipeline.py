from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from edufunds.domain import ScheduledReminder
from edufunds.mailer import SmtpConfig, build_reminder_body, build_reminder_subject, send_text_email
from edufunds.reminders import ReminderScheduler

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReminderRunResult:
    due: tuple[ScheduledReminder, ...]
    delivered: tuple[ScheduledReminder, ...]
    failures: tuple[str, ...]
    recipient: str | None
    dry_run: bool


def run_reminder_check(
    scheduler: ReminderScheduler,
    smtp_config: SmtpConfig | None,
    now: datetime | None = None,
    dry_run: bool = False,
) -> ReminderRunResult:
    """Consume due reminders and mail each one to the configured address.

    Due reminders are flipped to sent before delivery is attempted; a failed
    delivery is reported in ``failures`` and is not retried on the next run.
    """
    current = now or datetime.now(timezone.utc)
    if not dry_run and smtp_config is None:
        raise RuntimeError("SMTP config is required when dry_run is false")

    preferences = scheduler.get_preferences()
    recipient = preferences.email or None
    if dry_run:
        # Dry runs report what is due without consuming it.
        due = scheduler.get_due_reminders(now=current)
    else:
        due = scheduler.check_due_reminders(now=current)
    if not due or dry_run or recipient is None:
        return ReminderRunResult(
            due=tuple(due),
            delivered=(),
            failures=(),
            recipient=recipient,
            dry_run=dry_run,
        )

    delivered: list[ScheduledReminder] = []
    failures: list[str] = []
    for reminder in due:
        try:
            send_text_email(
                smtp_config=smtp_config,
                to_address=recipient,
                subject=build_reminder_subject(reminder),
                body=build_reminder_body(reminder, now=current),
            )
            delivered.append(reminder)
        except Exception as exc:  # noqa: BLE001
            LOGGER.error(
                "reminder delivery failed: program_id=%s kind=%s error=%s",
                reminder.program_id,
                reminder.reminder_type,
                exc,
            )
            failures.append(f"{reminder.program_id}/{reminder.reminder_type}: {exc}")
    return ReminderRunResult(
        due=tuple(due),
        delivered=tuple(delivered),
        failures=tuple(failures),
        recipient=recipient,
        dry_run=dry_run,
    )
