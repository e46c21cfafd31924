from __future__ import annotations

import pytest

from edufunds.domain import FundingProgram


def make_program(
    program_id: str,
    *,
    title: str = "Programm",
    provider: str = "Stiftung",
    budget: str = "10.000 €",
    deadline: str = "31.12.2026",
    focus: str = "Bildung",
    description: str = "",
    region: tuple[str, ...] = ("DE",),
) -> FundingProgram:
    return FundingProgram(
        id=program_id,
        title=title,
        provider=provider,
        budget=budget,
        deadline=deadline,
        focus=focus,
        description=description,
        requirements="",
        region=region,
    )


@pytest.fixture
def program_factory():  # type: ignore[no-untyped-def]
    return make_program
