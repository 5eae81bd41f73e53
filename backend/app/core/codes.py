"""Generation of short unique room codes and invite link tokens."""

from __future__ import annotations

import logging
import secrets
from typing import Callable

from app.core.errors import ExhaustedRetriesError
from app.monitoring.metrics import code_generation_exhausted_total

logger = logging.getLogger(__name__)

# Uppercase alphanumerics without the easily confused 0/O and 1/I.
ROOM_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
DEFAULT_ATTEMPTS = 10


def generate_room_code(length: int = 6) -> str:
    """Return a random room code candidate."""

    return "".join(secrets.choice(ROOM_CODE_ALPHABET) for _ in range(length))


def generate_link_token() -> str:
    """Return a random URL-safe invite link token candidate."""

    return secrets.token_urlsafe(8)


def generate_unique_code(
    exists: Callable[[str], bool],
    *,
    generator: Callable[[], str] = generate_room_code,
    attempts: int = DEFAULT_ATTEMPTS,
    kind: str = "room",
) -> str:
    """Generate a code that ``exists`` reports as unused.

    Repeated collisions point at a generator or store problem, so the search
    gives up after ``attempts`` probes instead of retrying indefinitely.
    """

    for attempt in range(1, attempts + 1):
        candidate = generator()
        if not exists(candidate):
            return candidate
        logger.debug("Code collision for %s code on attempt %d", kind, attempt)

    code_generation_exhausted_total.inc(kind=kind)
    logger.error("Unable to generate a unique %s code after %d attempts", kind, attempts)
    raise ExhaustedRetriesError("Unable to generate unique code", kind=kind)


def generate_unique_token(exists: Callable[[str], bool], *, attempts: int = DEFAULT_ATTEMPTS) -> str:
    """Generate an unused URL-safe invite link token."""

    return generate_unique_code(exists, generator=generate_link_token, attempts=attempts, kind="invite_link")
