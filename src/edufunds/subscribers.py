from __future__ import annotations

import json
import logging
import re
from datetime import datetime, timezone
from typing import Any

from edufunds.domain import (
    FilterPreset,
    FilterState,
    NotificationPreferences,
    ReminderToggles,
    ScheduledReminder,
)

LOGGER = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def is_valid_email(email: str) -> bool:
    return bool(EMAIL_PATTERN.match(email or ""))


def validate_email(email: str) -> str:
    normalized = normalize_email(email)
    if not normalized or not EMAIL_PATTERN.match(normalized):
        raise ValueError(f"invalid email: {email}")
    return normalized


def _load_json(raw: str | None, document: str) -> Any:
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except ValueError as exc:
        LOGGER.warning("Ignoring corrupt %s document: %s", document, exc)
        return None


def _str_tuple(value: Any) -> tuple[str, ...]:
    if not isinstance(value, list):
        return ()
    # Keep deterministic order and remove duplicates.
    return tuple(dict.fromkeys(item.strip() for item in value if isinstance(item, str) and item.strip()))


def preferences_to_json(preferences: NotificationPreferences) -> str:
    return json.dumps(
        {
            "email": preferences.email,
            "enabled": preferences.enabled,
            "reminders": {
                "seven_days": preferences.reminders.seven_days,
                "one_day": preferences.reminders.one_day,
            },
            "subscribed_programs": list(preferences.subscribed_programs),
        },
        ensure_ascii=False,
    )


def preferences_from_json(raw: str | None) -> NotificationPreferences:
    payload = _load_json(raw, "notification_preferences")
    if not isinstance(payload, dict):
        if payload is not None:
            LOGGER.warning("Ignoring notification_preferences document: root must be an object")
        return NotificationPreferences()
    reminders = payload.get("reminders")
    if not isinstance(reminders, dict):
        reminders = {}
    email = payload.get("email")
    return NotificationPreferences(
        email=email.strip() if isinstance(email, str) else "",
        enabled=payload.get("enabled") is True,
        reminders=ReminderToggles(
            seven_days=reminders.get("seven_days", True) is not False,
            one_day=reminders.get("one_day", True) is not False,
        ),
        subscribed_programs=_str_tuple(payload.get("subscribed_programs")),
    )


def reminder_to_dict(reminder: ScheduledReminder) -> dict[str, Any]:
    return {
        "program_id": reminder.program_id,
        "program_title": reminder.program_title,
        "deadline": reminder.deadline,
        "reminder_type": reminder.reminder_type,
        "scheduled_date": reminder.scheduled_date.isoformat(),
        "sent": reminder.sent,
    }


def reminder_from_dict(raw: dict[str, Any]) -> ScheduledReminder:
    scheduled = datetime.fromisoformat(str(raw["scheduled_date"]))
    if scheduled.tzinfo is None:
        scheduled = scheduled.replace(tzinfo=timezone.utc)
    return ScheduledReminder(
        program_id=str(raw["program_id"]),
        program_title=str(raw.get("program_title") or ""),
        deadline=str(raw.get("deadline") or ""),
        reminder_type=str(raw["reminder_type"]),
        scheduled_date=scheduled,
        sent=raw.get("sent") is True,
    )


def reminders_to_json(reminders: list[ScheduledReminder]) -> str:
    return json.dumps([reminder_to_dict(reminder) for reminder in reminders], ensure_ascii=False)


def reminders_from_json(raw: str | None) -> list[ScheduledReminder]:
    payload = _load_json(raw, "scheduled_reminders")
    if not isinstance(payload, list):
        if payload is not None:
            LOGGER.warning("Ignoring scheduled_reminders document: root must be a list")
        return []
    reminders: list[ScheduledReminder] = []
    for index, item in enumerate(payload):
        if not isinstance(item, dict):
            LOGGER.warning("Skipping scheduled_reminders[%s]: not an object", index)
            continue
        try:
            reminders.append(reminder_from_dict(item))
        except (KeyError, TypeError, ValueError) as exc:
            LOGGER.warning("Skipping scheduled_reminders[%s]: %s", index, exc)
    return reminders


def filter_state_to_dict(state: FilterState) -> dict[str, Any]:
    return {
        "search_query": state.search_query,
        "regions": list(state.regions),
        "min_budget": state.min_budget,
        "max_budget": state.max_budget,
        "deadline_range": state.deadline_range,
        "sort_by": state.sort_by,
    }


def filter_state_from_dict(raw: dict[str, Any]) -> FilterState:
    defaults = FilterState()
    return FilterState(
        search_query=str(raw.get("search_query") or ""),
        regions=_str_tuple(raw.get("regions")),
        min_budget=str(raw.get("min_budget") or ""),
        max_budget=str(raw.get("max_budget") or ""),
        deadline_range=str(raw.get("deadline_range") or defaults.deadline_range),
        sort_by=str(raw.get("sort_by") or defaults.sort_by),
    )


def presets_to_json(presets: list[FilterPreset]) -> str:
    return json.dumps(
        [
            {"id": preset.id, "name": preset.name, "filters": filter_state_to_dict(preset.filters)}
            for preset in presets
        ],
        ensure_ascii=False,
    )


def presets_from_json(raw: str | None) -> list[FilterPreset]:
    payload = _load_json(raw, "filter_presets")
    if not isinstance(payload, list):
        return []
    presets: list[FilterPreset] = []
    for index, item in enumerate(payload):
        if not isinstance(item, dict) or not isinstance(item.get("filters"), dict):
            LOGGER.warning("Skipping filter_presets[%s]: malformed entry", index)
            continue
        try:
            presets.append(
                FilterPreset(
                    id=str(item["id"]),
                    name=str(item["name"]),
                    filters=filter_state_from_dict(item["filters"]),
                )
            )
        except (KeyError, ValueError) as exc:
            LOGGER.warning("Skipping filter_presets[%s]: %s", index, exc)
    return presets
