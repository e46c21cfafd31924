from __future__ import annotations

import argparse
import json
import logging
import os
import sys
import traceback
from dataclasses import dataclass
from datetime import datetime, timezone

import requests

from edufunds.analytics import summarize
from edufunds.config import ConfigError, load_matches_config, load_profile_config, load_programs_config
from edufunds.domain import DEADLINE_BUCKETS, SORT_KEYS, FilterState, FundingProgram
from edufunds.eligibility import validate_school_profile
from edufunds.fetcher import fetch_match_results, merge_programs, search_programs
from edufunds.filters import (
    delete_preset,
    has_active_filters,
    list_presets,
    save_preset,
    scores_by_program,
    visible_programs,
)
from edufunds.mailer import SmtpConfig, build_failure_body, build_failure_subject, send_text_email
from edufunds.normalize import format_budget, get_days_until_deadline, parse_budget
from edufunds.pipeline import run_reminder_check
from edufunds.reminders import ReminderScheduler
from edufunds.storage import SQLiteStore
from edufunds.subscribers import filter_state_to_dict, reminder_to_dict

LOGGER = logging.getLogger("edufunds")


@dataclass(frozen=True)
class RuntimeSettings:
    admin_email: str | None
    db_path: str
    smtp_config: SmtpConfig | None
    matching_api_url: str | None
    matching_timeout_sec: int


def _parse_bool_env(key: str, default: bool) -> bool:
    raw = os.getenv(key)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _parse_positive_int_env(key: str, default: int) -> int:
    raw = os.getenv(key)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw.strip())
    except ValueError as exc:
        raise ConfigError(f"{key} must be positive integer") from exc
    if value <= 0:
        raise ConfigError(f"{key} must be positive integer")
    return value


def load_runtime_settings(db_path_override: str | None, require_smtp: bool) -> RuntimeSettings:
    admin_email = (os.getenv("ADMIN_EMAIL") or "").strip()
    db_path = (db_path_override or os.getenv("DB_PATH") or "data/edufunds.db").strip()
    smtp_host = (os.getenv("SMTP_HOST") or "").strip()
    smtp_port_raw = (os.getenv("SMTP_PORT") or "").strip()
    smtp_user = (os.getenv("SMTP_USER") or "").strip()
    smtp_pass = (os.getenv("SMTP_PASS") or "").strip()
    smtp_from = (os.getenv("SMTP_FROM") or "").strip()

    smtp_config: SmtpConfig | None = None
    has_any_smtp = any([smtp_host, smtp_port_raw, smtp_user, smtp_pass, smtp_from])
    if has_any_smtp or require_smtp:
        missing = [key for key, value in {
            "SMTP_HOST": smtp_host,
            "SMTP_PORT": smtp_port_raw,
            "SMTP_FROM": smtp_from,
        }.items() if not value]
        if missing:
            raise ConfigError(f"Missing SMTP env: {', '.join(missing)}")
        try:
            smtp_port = int(smtp_port_raw)
        except ValueError as exc:
            raise ConfigError("SMTP_PORT must be integer") from exc
        smtp_config = SmtpConfig(
            host=smtp_host,
            port=smtp_port,
            user=smtp_user,
            password=smtp_pass,
            from_address=smtp_from,
            starttls=_parse_bool_env("SMTP_STARTTLS", True),
            use_ssl=_parse_bool_env("SMTP_USE_SSL", smtp_port == 465),
        )

    return RuntimeSettings(
        admin_email=admin_email or None,
        db_path=db_path,
        smtp_config=smtp_config,
        matching_api_url=(os.getenv("MATCHING_API_URL") or "").strip() or None,
        matching_timeout_sec=_parse_positive_int_env("MATCHING_TIMEOUT_SEC", 60),
    )


def configure_logging(log_level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


def _open_store(db_path_override: str | None) -> SQLiteStore:
    settings = load_runtime_settings(db_path_override=db_path_override, require_smtp=False)
    store = SQLiteStore(settings.db_path)
    store.initialize()
    return store


def _filter_state_from_args(args: argparse.Namespace) -> FilterState:
    return FilterState(
        search_query=args.query or "",
        regions=tuple(dict.fromkeys(args.region or [])),
        min_budget=args.min_budget or "",
        max_budget=args.max_budget or "",
        deadline_range=args.deadline_range,
        sort_by=args.sort_by,
    )


def _find_program(programs: list[FundingProgram], program_id: str) -> FundingProgram:
    for program in programs:
        if program.id == program_id:
            return program
    raise ConfigError(f"program not found: {program_id}")


def run_self_test(args: argparse.Namespace) -> int:
    load_programs_config(args.programs)
    settings = load_runtime_settings(db_path_override=args.db_path, require_smtp=not args.skip_smtp)
    store = SQLiteStore(settings.db_path)
    try:
        store.initialize()
    finally:
        store.close()
    print("self-test: ok")
    return 0


def run_filter_command(args: argparse.Namespace) -> int:
    programs = load_programs_config(args.programs)
    matches = load_matches_config(args.matches) if args.matches else []
    if args.preset:
        store = _open_store(args.db_path)
        try:
            presets = {preset.id: preset for preset in list_presets(store)}
        finally:
            store.close()
        if args.preset not in presets:
            raise ConfigError(f"preset not found: {args.preset}")
        filter_state = presets[args.preset].filters
    else:
        filter_state = _filter_state_from_args(args)

    now = datetime.now(timezone.utc)
    result = visible_programs(programs=programs, filter_state=filter_state, matches=matches, reference=now)
    scores = scores_by_program(matches)
    LOGGER.info(
        "filter complete: total=%s visible=%s active_filters=%s sort_by=%s",
        len(programs),
        len(result),
        has_active_filters(filter_state),
        filter_state.sort_by,
    )

    if args.json:
        payload = [
            {
                "id": program.id,
                "title": program.title,
                "provider": program.provider,
                "budget": program.budget,
                "budget_value": parse_budget(program.budget),
                "deadline": program.deadline,
                "days_until_deadline": get_days_until_deadline(program.deadline, now),
                "score": scores.get(program.id),
            }
            for program in result
        ]
        print(json.dumps(payload, ensure_ascii=False, indent=2))
        return 0

    print("id\ttitle\tbudget\tdeadline\tscore")
    for program in result:
        score = scores.get(program.id)
        print(
            f"{program.id}\t{program.title}\t{program.budget}\t"
            f"{program.deadline}\t{'-' if score is None else score}"
        )
    print(f"count={len(result)}")
    return 0


def run_analytics_command(args: argparse.Namespace) -> int:
    programs = load_programs_config(args.programs)
    matches = load_matches_config(args.matches) if args.matches else []
    summary = summarize(programs=programs, matches=matches, now=datetime.now(timezone.utc))
    if args.json:
        payload = {
            "total_programs": summary.total_programs,
            "matched_programs": summary.matched_programs,
            "high_match_count": summary.high_match_count,
            "average_score": summary.average_score,
            "total_funding": summary.total_funding,
            "upcoming_deadlines": summary.upcoming_deadlines,
            "top_providers": [list(entry) for entry in summary.top_providers],
            "focus_distribution": [list(entry) for entry in summary.focus_distribution],
        }
        print(json.dumps(payload, ensure_ascii=False, indent=2))
        return 0

    print(f"Programme gesamt: {summary.total_programs}")
    print(f"Hohe Übereinstimmungen (>=70%): {summary.high_match_count}")
    print(f"Durchschnittlicher Match-Score: {summary.average_score}%")
    print(f"Geschätztes Gesamtpotenzial: {format_budget(summary.total_funding)}")
    print(f"Fällige Fristen (30 Tage): {summary.upcoming_deadlines}")
    for provider, count in summary.top_providers:
        print(f"- {provider}: {count}")
    return 0


def run_match_command(args: argparse.Namespace) -> int:
    settings = load_runtime_settings(db_path_override=None, require_smtp=False)
    if not settings.matching_api_url:
        raise ConfigError("MATCHING_API_URL is required for match")
    profile = load_profile_config(args.profile)
    problems = validate_school_profile(profile)
    if problems:
        raise ConfigError("invalid school profile: " + "; ".join(problems))
    programs = load_programs_config(args.programs)

    with requests.Session() as session:
        if args.search:
            found = search_programs(
                session=session,
                base_url=settings.matching_api_url,
                profile=profile,
                timeout_sec=settings.matching_timeout_sec,
            )
            programs = merge_programs(programs, found)
            LOGGER.info("live search returned %s programs", len(found))
        matches = fetch_match_results(
            session=session,
            base_url=settings.matching_api_url,
            profile=profile,
            programs=programs,
            timeout_sec=settings.matching_timeout_sec,
        )

    payload = {
        "matches": [
            {
                "program_id": match.program_id,
                "score": match.score,
                "reasoning": match.reasoning,
                "tags": list(match.tags),
            }
            for match in matches
        ]
    }
    print(json.dumps(payload, ensure_ascii=False, indent=2))
    return 0


def run_subscribe_command(args: argparse.Namespace) -> int:
    program = _find_program(load_programs_config(args.programs), args.program_id)
    store = _open_store(args.db_path)
    try:
        created = ReminderScheduler(store).subscribe_to_program(program)
    finally:
        store.close()
    print(f"subscribed: {program.id} new_reminders={len(created)}")
    return 0


def run_unsubscribe_command(args: argparse.Namespace) -> int:
    store = _open_store(args.db_path)
    try:
        purged = ReminderScheduler(store).unsubscribe_from_program(args.program_id)
    finally:
        store.close()
    print(f"unsubscribed: {args.program_id} purged_reminders={purged}")
    return 0


def run_settings_command(args: argparse.Namespace) -> int:
    store = _open_store(args.db_path)
    try:
        preferences = ReminderScheduler(store).update_settings(
            email=args.email,
            enabled=args.enabled,
            seven_days=None if args.seven_days is None else args.seven_days == "on",
            one_day=None if args.one_day is None else args.one_day == "on",
        )
    finally:
        store.close()
    print(
        f"email={preferences.email or '-'} enabled={preferences.enabled} "
        f"seven_days={preferences.reminders.seven_days} one_day={preferences.reminders.one_day} "
        f"subscriptions={len(preferences.subscribed_programs)}"
    )
    return 0


def run_clear_command(args: argparse.Namespace) -> int:
    store = _open_store(args.db_path)
    try:
        ReminderScheduler(store).clear_all()
    finally:
        store.close()
    print("notification data cleared")
    return 0


def run_reminders_upcoming_command(args: argparse.Namespace) -> int:
    store = _open_store(args.db_path)
    try:
        upcoming = ReminderScheduler(store).get_upcoming_reminders()
    finally:
        store.close()

    if args.json:
        print(json.dumps([reminder_to_dict(reminder) for reminder in upcoming], ensure_ascii=False, indent=2))
        return 0
    print("scheduled_date\treminder_type\tprogram_id\tprogram_title")
    for reminder in upcoming:
        print(
            f"{reminder.scheduled_date.isoformat()}\t{reminder.reminder_type}\t"
            f"{reminder.program_id}\t{reminder.program_title}"
        )
    print(f"count={len(upcoming)}")
    return 0


def run_reminders_check_command(args: argparse.Namespace) -> int:
    settings = load_runtime_settings(db_path_override=args.db_path, require_smtp=not args.dry_run)
    store = SQLiteStore(settings.db_path)
    try:
        store.initialize()
        result = run_reminder_check(
            scheduler=ReminderScheduler(store),
            smtp_config=settings.smtp_config,
            dry_run=args.dry_run,
        )
    finally:
        store.close()

    LOGGER.info(
        "reminder check complete: due=%s delivered=%s failures=%s recipient=%s dry_run=%s",
        len(result.due),
        len(result.delivered),
        len(result.failures),
        result.recipient,
        result.dry_run,
    )
    if result.failures:
        raise RuntimeError("reminder mail failed: " + "; ".join(result.failures))
    return 0


def run_preset_save_command(args: argparse.Namespace) -> int:
    filter_state = _filter_state_from_args(args)
    store = _open_store(args.db_path)
    try:
        preset = save_preset(store, name=args.name, filters=filter_state)
    finally:
        store.close()
    print(f"preset saved: id={preset.id} name={preset.name}")
    return 0


def run_preset_list_command(args: argparse.Namespace) -> int:
    store = _open_store(args.db_path)
    try:
        presets = list_presets(store)
    finally:
        store.close()
    if args.json:
        payload = [
            {"id": preset.id, "name": preset.name, "filters": filter_state_to_dict(preset.filters)}
            for preset in presets
        ]
        print(json.dumps(payload, ensure_ascii=False, indent=2))
        return 0
    print("id\tname")
    for preset in presets:
        print(f"{preset.id}\t{preset.name}")
    print(f"count={len(presets)}")
    return 0


def run_preset_delete_command(args: argparse.Namespace) -> int:
    store = _open_store(args.db_path)
    try:
        deleted = delete_preset(store, args.id)
    finally:
        store.close()
    if not deleted:
        raise ConfigError(f"preset not found: {args.id}")
    print(f"preset deleted: {args.id}")
    return 0


def _notify_failure(settings: RuntimeSettings, message: str) -> None:
    if not settings.admin_email:
        LOGGER.error("Cannot send failure notification: ADMIN_EMAIL is missing")
        return
    if settings.smtp_config is None:
        LOGGER.error("Cannot send failure notification: SMTP config is missing")
        return
    now = datetime.now(timezone.utc)
    send_text_email(
        smtp_config=settings.smtp_config,
        to_address=settings.admin_email,
        subject=build_failure_subject(now),
        body=build_failure_body(now, message),
    )


def _add_filter_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--query", default="")
    parser.add_argument("--region", action="append", default=[], help="Region code, repeatable (e.g. DE-BY).")
    parser.add_argument("--min-budget", default="")
    parser.add_argument("--max-budget", default="")
    parser.add_argument("--deadline-range", choices=DEADLINE_BUCKETS, default="all")
    parser.add_argument("--sort-by", choices=SORT_KEYS, default="relevance")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Find school funding programs and manage deadline reminders.")
    parser.add_argument("--log-level", default="INFO", help="DEBUG/INFO/WARNING/ERROR")
    subparsers = parser.add_subparsers(dest="command", required=True)

    self_test_parser = subparsers.add_parser("self-test", help="Validate catalog/env and DB init.")
    self_test_parser.add_argument("--programs", default="data/programs.yaml")
    self_test_parser.add_argument("--db-path", default=None)
    self_test_parser.add_argument("--skip-smtp", action="store_true")
    self_test_parser.set_defaults(handler=run_self_test)

    filter_parser = subparsers.add_parser("filter", help="Filter and rank programs.")
    filter_parser.add_argument("--programs", default="data/programs.yaml")
    filter_parser.add_argument("--matches", default=None)
    filter_parser.add_argument("--preset", default=None, help="Use a saved preset instead of filter flags.")
    filter_parser.add_argument("--db-path", default=None)
    filter_parser.add_argument("--json", action="store_true")
    _add_filter_arguments(filter_parser)
    filter_parser.set_defaults(handler=run_filter_command)

    analytics_parser = subparsers.add_parser("analytics", help="Summarize programs and match scores.")
    analytics_parser.add_argument("--programs", default="data/programs.yaml")
    analytics_parser.add_argument("--matches", default=None)
    analytics_parser.add_argument("--json", action="store_true")
    analytics_parser.set_defaults(handler=run_analytics_command)

    match_parser = subparsers.add_parser("match", help="Score programs for a school via the matching service.")
    match_parser.add_argument("--programs", default="data/programs.yaml")
    match_parser.add_argument("--profile", required=True)
    match_parser.add_argument("--search", action="store_true", help="Merge live search results first.")
    match_parser.set_defaults(handler=run_match_command)

    subscribe_parser = subparsers.add_parser("subscribe", help="Subscribe to deadline reminders for a program.")
    subscribe_parser.add_argument("--programs", default="data/programs.yaml")
    subscribe_parser.add_argument("--program-id", required=True)
    subscribe_parser.add_argument("--db-path", default=None)
    subscribe_parser.set_defaults(handler=run_subscribe_command)

    unsubscribe_parser = subparsers.add_parser("unsubscribe", help="Unsubscribe and purge reminders of a program.")
    unsubscribe_parser.add_argument("--program-id", required=True)
    unsubscribe_parser.add_argument("--db-path", default=None)
    unsubscribe_parser.set_defaults(handler=run_unsubscribe_command)

    settings_parser = subparsers.add_parser("settings", help="Update notification preferences.")
    settings_parser.add_argument("--db-path", default=None)
    settings_parser.add_argument("--email", default=None)
    enabled_group = settings_parser.add_mutually_exclusive_group()
    enabled_group.add_argument("--enable", dest="enabled", action="store_const", const=True, default=None)
    enabled_group.add_argument("--disable", dest="enabled", action="store_const", const=False)
    settings_parser.add_argument("--seven-days", choices=("on", "off"), default=None)
    settings_parser.add_argument("--one-day", choices=("on", "off"), default=None)
    settings_parser.set_defaults(handler=run_settings_command)

    clear_parser = subparsers.add_parser("clear", help="Delete notification preferences and reminders.")
    clear_parser.add_argument("--db-path", default=None)
    clear_parser.set_defaults(handler=run_clear_command)

    upcoming_parser = subparsers.add_parser("reminders-upcoming", help="List pending reminders.")
    upcoming_parser.add_argument("--db-path", default=None)
    upcoming_parser.add_argument("--json", action="store_true")
    upcoming_parser.set_defaults(handler=run_reminders_upcoming_command)

    check_parser = subparsers.add_parser("reminders-check", help="Send due reminders by email.")
    check_parser.add_argument("--db-path", default=None)
    check_parser.add_argument("--dry-run", action="store_true")
    check_parser.set_defaults(handler=run_reminders_check_command)

    preset_save_parser = subparsers.add_parser("preset-save", help="Save filter flags as a named preset.")
    preset_save_parser.add_argument("--db-path", default=None)
    preset_save_parser.add_argument("--name", required=True)
    _add_filter_arguments(preset_save_parser)
    preset_save_parser.set_defaults(handler=run_preset_save_command)

    preset_list_parser = subparsers.add_parser("preset-list", help="List saved filter presets.")
    preset_list_parser.add_argument("--db-path", default=None)
    preset_list_parser.add_argument("--json", action="store_true")
    preset_list_parser.set_defaults(handler=run_preset_list_command)

    preset_delete_parser = subparsers.add_parser("preset-delete", help="Delete a saved filter preset.")
    preset_delete_parser.add_argument("--db-path", default=None)
    preset_delete_parser.add_argument("--id", required=True)
    preset_delete_parser.set_defaults(handler=run_preset_delete_command)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.log_level)

    try:
        return args.handler(args)
    except Exception as exc:  # noqa: BLE001
        LOGGER.exception("Unhandled error: %s", exc)
        try:
            settings = load_runtime_settings(
                db_path_override=getattr(args, "db_path", None),
                require_smtp=False,
            )
            _notify_failure(settings, traceback.format_exc())
        except Exception:  # noqa: BLE001
            LOGGER.exception("Failed to send failure notification")
        return 1


if __name__ == "__main__":
    sys.exit(main())
