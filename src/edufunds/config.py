from __future__ import annotations

import math
from pathlib import Path
from typing import Any

import yaml

from edufunds.domain import FundingProgram, MatchResult, SchoolProfile


class ConfigError(ValueError):
    """Raised when a catalog file or runtime setting is invalid."""


def _get(data: dict[str, Any], key: str, alias: str | None) -> Any:
    # Catalogs exported by the web client use camelCase keys.
    if key in data or alias is None:
        return data.get(key)
    return data.get(alias)


def _require_str(data: dict[str, Any], key: str, path: str) -> str:
    value = data.get(key)
    if isinstance(value, int) and not isinstance(value, bool):
        value = str(value)
    if not isinstance(value, str) or not value.strip():
        raise ConfigError(f"{path}.{key} must be a non-empty string")
    return value.strip()


def _optional_str(data: dict[str, Any], key: str, path: str, alias: str | None = None) -> str:
    value = _get(data, key, alias)
    if value is None:
        return ""
    if isinstance(value, bool) or not isinstance(value, (str, int, float)):
        raise ConfigError(f"{path}.{key} must be a string")
    return str(value).strip()


def _optional_str_list(data: dict[str, Any], key: str, path: str, alias: str | None = None) -> tuple[str, ...]:
    value = _get(data, key, alias)
    if value is None:
        return ()
    if not isinstance(value, list):
        raise ConfigError(f"{path}.{key} must be a list of strings")
    normalized: list[str] = []
    for idx, item in enumerate(value):
        if not isinstance(item, str) or not item.strip():
            raise ConfigError(f"{path}.{key}[{idx}] must be a non-empty string")
        normalized.append(item.strip())
    return tuple(normalized)


def _require_str_list(data: dict[str, Any], key: str, path: str) -> tuple[str, ...]:
    values = _optional_str_list(data, key, path)
    if not values:
        raise ConfigError(f"{path}.{key} must be a non-empty list of strings")
    return values


def _optional_int(data: dict[str, Any], key: str, path: str, alias: str | None = None) -> int | None:
    value = _get(data, key, alias)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigError(f"{path}.{key} must be int")
    return value


def _read_yaml(path: str | Path) -> dict[str, Any]:
    resolved = Path(path)
    if not resolved.exists():
        raise ConfigError(f"Config file does not exist: {resolved}")
    with resolved.open("r", encoding="utf-8") as handle:
        try:
            payload = yaml.safe_load(handle) or {}
        except yaml.YAMLError as exc:
            raise ConfigError(f"Invalid YAML in {resolved}: {exc}") from exc
    if not isinstance(payload, dict):
        raise ConfigError(f"Config root must be a mapping: {resolved}")
    return payload


def program_from_dict(raw: Any, path: str) -> FundingProgram:
    if not isinstance(raw, dict):
        raise ConfigError(f"{path} must be a mapping")
    return FundingProgram(
        id=_require_str(raw, "id", path),
        title=_require_str(raw, "title", path),
        provider=_optional_str(raw, "provider", path),
        budget=_optional_str(raw, "budget", path),
        deadline=_optional_str(raw, "deadline", path),
        focus=_optional_str(raw, "focus", path),
        description=_optional_str(raw, "description", path),
        requirements=_optional_str(raw, "requirements", path),
        region=_require_str_list(raw, "region", path),
        target_group=_optional_str(raw, "target_group", path, "targetGroup"),
        funding_quota=_optional_str(raw, "funding_quota", path, "fundingQuota"),
        detailed_criteria=_optional_str_list(raw, "detailed_criteria", path, "detailedCriteria"),
        submission_method=_optional_str(raw, "submission_method", path, "submissionMethod"),
        required_documents=_optional_str_list(raw, "required_documents", path, "requiredDocuments"),
        funding_period=_optional_str(raw, "funding_period", path, "fundingPeriod"),
        official_link=_optional_str(raw, "official_link", path, "officialLink") or None,
        address=_optional_str(raw, "address", path) or None,
    )


def match_from_dict(raw: Any, path: str) -> MatchResult:
    if not isinstance(raw, dict):
        raise ConfigError(f"{path} must be a mapping")
    program_id = _optional_str(raw, "program_id", path, "programId")
    if not program_id:
        raise ConfigError(f"{path}.program_id must be a non-empty string")
    score = raw.get("score")
    if isinstance(score, bool) or not isinstance(score, (int, float)) or not math.isfinite(score):
        raise ConfigError(f"{path}.score must be a finite number")
    return MatchResult(
        program_id=program_id,
        score=max(0, min(100, round(score))),
        reasoning=_optional_str(raw, "reasoning", path),
        tags=_optional_str_list(raw, "tags", path),
    )


def profile_from_dict(raw: Any, path: str) -> SchoolProfile:
    if not isinstance(raw, dict):
        raise ConfigError(f"{path} must be a mapping")
    return SchoolProfile(
        name=_optional_str(raw, "name", path),
        location=_optional_str(raw, "location", path),
        state=_optional_str(raw, "state", path),
        student_count=_optional_int(raw, "student_count", path, "studentCount") or 0,
        social_index=_optional_int(raw, "social_index", path, "socialIndex"),
        needs_description=_optional_str(raw, "needs_description", path, "needsDescription"),
        focus_areas=_optional_str_list(raw, "focus_areas", path, "focusAreas"),
        website=_optional_str(raw, "website", path) or None,
        mission_statement=_optional_str(raw, "mission_statement", path, "missionStatement") or None,
        address=_optional_str(raw, "address", path) or None,
        email=_optional_str(raw, "email", path) or None,
        teacher_count=_optional_int(raw, "teacher_count", path, "teacherCount"),
        awards=_optional_str_list(raw, "awards", path),
        partners=_optional_str_list(raw, "partners", path),
    )


def load_programs_config(path: str | Path) -> list[FundingProgram]:
    payload = _read_yaml(path)
    programs = payload.get("programs")
    if not isinstance(programs, list):
        raise ConfigError("programs must be a list")

    seen_ids: set[str] = set()
    parsed: list[FundingProgram] = []
    for index, raw in enumerate(programs):
        program = program_from_dict(raw, f"programs[{index}]")
        if program.id in seen_ids:
            raise ConfigError(f"Duplicate program id: {program.id}")
        seen_ids.add(program.id)
        parsed.append(program)
    return parsed


def load_matches_config(path: str | Path) -> list[MatchResult]:
    payload = _read_yaml(path)
    matches = payload.get("matches", [])
    if not isinstance(matches, list):
        raise ConfigError("matches must be a list")
    return [match_from_dict(raw, f"matches[{index}]") for index, raw in enumerate(matches)]


def load_profile_config(path: str | Path) -> SchoolProfile:
    payload = _read_yaml(path)
    return profile_from_dict(payload.get("profile", payload), "profile")
