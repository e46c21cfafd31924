from __future__ import annotations

import logging
from dataclasses import asdict
from typing import Any

import requests

from edufunds.config import ConfigError, match_from_dict, program_from_dict
from edufunds.domain import FundingProgram, MatchResult, SchoolProfile

LOGGER = logging.getLogger(__name__)

USER_AGENT = "edufunds/0.1"
MATCH_PATH = "/api/match"
SEARCH_PATH = "/api/search"


def _as_payload(record: FundingProgram | SchoolProfile) -> dict[str, Any]:
    payload = asdict(record)
    for key, value in payload.items():
        if isinstance(value, tuple):
            payload[key] = list(value)
    return payload


def _post_json(
    session: requests.Session,
    base_url: str,
    path: str,
    payload: dict[str, Any],
    timeout_sec: int,
) -> Any:
    response = session.post(
        f"{base_url.rstrip('/')}{path}",
        json=payload,
        timeout=timeout_sec,
        headers={"User-Agent": USER_AGENT},
    )
    response.raise_for_status()
    return response.json()


def fetch_match_results(
    session: requests.Session,
    base_url: str,
    profile: SchoolProfile,
    programs: list[FundingProgram],
    timeout_sec: int = 60,
) -> list[MatchResult]:
    """Ask the matching service to score ``programs`` for ``profile``.

    Any transport or payload error yields an empty list.
    """
    if not programs:
        return []
    try:
        payload = _post_json(
            session=session,
            base_url=base_url,
            path=MATCH_PATH,
            payload={
                "profile": _as_payload(profile),
                "programs": [_as_payload(program) for program in programs],
            },
            timeout_sec=timeout_sec,
        )
        if not isinstance(payload, list):
            raise ValueError("match response must be a list")
        known_ids = {program.id for program in programs}
        matches = [match_from_dict(raw, f"matches[{index}]") for index, raw in enumerate(payload)]
    except (requests.RequestException, ValueError) as exc:
        LOGGER.error("Matching error: %s", exc)
        return []
    unknown = [match.program_id for match in matches if match.program_id not in known_ids]
    if unknown:
        LOGGER.warning("Matching service returned unknown program ids: %s", ",".join(unknown))
    return [match for match in matches if match.program_id in known_ids]


def search_programs(
    session: requests.Session,
    base_url: str,
    profile: SchoolProfile,
    timeout_sec: int = 60,
) -> list[FundingProgram]:
    """Ask the search service for live programs matching ``profile``; empty list on error."""
    try:
        payload = _post_json(
            session=session,
            base_url=base_url,
            path=SEARCH_PATH,
            payload={"profile": _as_payload(profile)},
            timeout_sec=timeout_sec,
        )
        if not isinstance(payload, list):
            raise ValueError("search response must be a list")
    except (requests.RequestException, ValueError) as exc:
        LOGGER.error("Program search error: %s", exc)
        return []

    programs: list[FundingProgram] = []
    for index, raw in enumerate(payload):
        try:
            programs.append(program_from_dict(raw, f"programs[{index}]"))
        except ConfigError as exc:
            LOGGER.warning("Skipping malformed program from search: %s", exc)
    return programs


def merge_programs(existing: list[FundingProgram], incoming: list[FundingProgram]) -> list[FundingProgram]:
    """Append ``incoming`` programs whose id is not yet known, keeping order."""
    known_ids = {program.id for program in existing}
    merged = list(existing)
    for program in incoming:
        if program.id in known_ids:
            continue
        known_ids.add(program.id)
        merged.append(program)
    return merged
