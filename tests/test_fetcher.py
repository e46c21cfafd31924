import json

import requests

from edufunds.domain import SchoolProfile
from edufunds.fetcher import fetch_match_results, merge_programs, search_programs


class DummyResponse:
    def __init__(self, payload, status_code: int = 200) -> None:  # type: ignore[no-untyped-def]
        self.payload = payload
        self.status_code = status_code

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"HTTP {self.status_code}")

    def json(self):  # type: ignore[no-untyped-def]
        return self.payload


class DummySession:
    def __init__(self, response: DummyResponse | None = None, error: Exception | None = None) -> None:
        self.response = response
        self.error = error
        self.calls: list[dict] = []

    def post(self, url: str, json, timeout: int, headers: dict):  # type: ignore[no-untyped-def]
        self.calls.append({"url": url, "json": json, "timeout": timeout, "headers": headers})
        if self.error is not None:
            raise self.error
        return self.response


PROFILE = SchoolProfile(
    name="Grundschule am See",
    location="Regensburg",
    state="DE-BY",
    student_count=240,
    social_index=3,
    needs_description="Tablets für den Unterricht",
)


def test_fetch_match_results_posts_profile_and_programs(program_factory) -> None:
    programs = [program_factory("p1"), program_factory("p2", region=("DE-BY",))]
    session = DummySession(
        DummyResponse(
            [
                {"programId": "p2", "score": 91, "reasoning": "passt", "tags": ["Digital"]},
                {"programId": "ghost", "score": 50},
                {"program_id": "p1", "score": 12},
            ]
        )
    )
    matches = fetch_match_results(session, "https://match.example/", PROFILE, programs, timeout_sec=5)  # type: ignore[arg-type]

    assert [(match.program_id, match.score) for match in matches] == [("p2", 91), ("p1", 12)]
    call = session.calls[0]
    assert call["url"] == "https://match.example/api/match"
    assert call["timeout"] == 5
    assert call["json"]["profile"]["state"] == "DE-BY"
    assert call["json"]["programs"][1]["region"] == ["DE-BY"]


def test_fetch_match_results_returns_empty_on_errors(program_factory) -> None:
    programs = [program_factory("p1")]
    failing = DummySession(error=requests.ConnectionError("down"))
    assert fetch_match_results(failing, "https://match.example", PROFILE, programs) == []  # type: ignore[arg-type]

    server_error = DummySession(DummyResponse({}, status_code=500))
    assert fetch_match_results(server_error, "https://match.example", PROFILE, programs) == []  # type: ignore[arg-type]

    wrong_shape = DummySession(DummyResponse({"matches": []}))
    assert fetch_match_results(wrong_shape, "https://match.example", PROFILE, programs) == []  # type: ignore[arg-type]

    non_finite = DummySession(
        DummyResponse(json.loads('[{"programId": "p1", "score": Infinity}, {"programId": "p1", "score": NaN}]'))
    )
    assert fetch_match_results(non_finite, "https://match.example", PROFILE, programs) == []  # type: ignore[arg-type]

    idle = DummySession(DummyResponse([]))
    assert fetch_match_results(idle, "https://match.example", PROFILE, []) == []  # type: ignore[arg-type]
    assert idle.calls == []


def test_search_programs_skips_malformed_entries() -> None:
    session = DummySession(
        DummyResponse(
            [
                {"id": "live-1", "title": "Neues Programm", "deadline": "01.09.2026", "region": ["DE"]},
                {"id": "live-2", "title": "Ohne Region"},
            ]
        )
    )
    programs = search_programs(session, "https://match.example", PROFILE)  # type: ignore[arg-type]
    assert [program.id for program in programs] == ["live-1"]
    assert session.calls[0]["url"] == "https://match.example/api/search"


def test_merge_programs_keeps_existing_entries(program_factory) -> None:
    existing = [program_factory("p1", title="Alt")]
    incoming = [program_factory("p1", title="Neu"), program_factory("p2"), program_factory("p2")]
    merged = merge_programs(existing, incoming)
    assert [(program.id, program.title) for program in merged] == [("p1", "Alt"), ("p2", "Programm")]
