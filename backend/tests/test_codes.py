"""Unit tests for room code and invite token generation."""

from __future__ import annotations

import pytest

from app.core.codes import (
    ROOM_CODE_ALPHABET,
    generate_room_code,
    generate_unique_code,
    generate_unique_token,
)
from app.core.errors import ExhaustedRetriesError
from app.monitoring.metrics import code_generation_exhausted_total


@pytest.fixture(autouse=True)
def reset_exhaustion_metric() -> None:
    code_generation_exhausted_total.clear()
    yield
    code_generation_exhausted_total.clear()


def test_room_code_uses_unambiguous_alphabet() -> None:
    code = generate_room_code(8)

    assert len(code) == 8
    assert set(code) <= set(ROOM_CODE_ALPHABET)
    assert not set("0O1I") & set(ROOM_CODE_ALPHABET)


def test_unique_code_skips_taken_candidates() -> None:
    candidates = iter(["AAAAAA", "BBBBBB", "CCCCCC"])
    taken = {"AAAAAA", "BBBBBB"}

    code = generate_unique_code(taken.__contains__, generator=lambda: next(candidates))

    assert code == "CCCCCC"
    assert code_generation_exhausted_total.value(kind="room") == 0


def test_unique_code_gives_up_after_bounded_attempts() -> None:
    calls: list[str] = []

    def always_taken(candidate: str) -> bool:
        calls.append(candidate)
        return True

    with pytest.raises(ExhaustedRetriesError) as excinfo:
        generate_unique_code(always_taken, attempts=10)

    assert len(calls) == 10
    assert excinfo.value.status_code == 503
    assert excinfo.value.to_payload()["error"] == "ExhaustedRetries"
    assert code_generation_exhausted_total.value(kind="room") == 1


def test_unique_token_is_url_safe() -> None:
    token = generate_unique_token(lambda candidate: False)

    assert token
    assert all(char.isalnum() or char in "-_" for char in token)


def test_unique_token_reports_invite_link_kind() -> None:
    with pytest.raises(ExhaustedRetriesError):
        generate_unique_token(lambda candidate: True, attempts=2)

    assert code_generation_exhausted_total.value(kind="invite_link") == 1
