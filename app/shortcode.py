"""Random short-code generation with a bounded uniqueness retry."""

import secrets
import string
from dataclasses import dataclass
from typing import Callable

ALPHABET = string.ascii_letters + string.digits
DEFAULT_LENGTH = 6
MAX_ATTEMPTS = 10


@dataclass(frozen=True)
class Generated:
    code: str


@dataclass(frozen=True)
class Exhausted:
    attempts: int


GenerationResult = Generated | Exhausted


def random_code(length: int = DEFAULT_LENGTH) -> str:
    return "".join(secrets.choice(ALPHABET) for _ in range(length))


def generate_short_code(
    exists: Callable[[str], bool],
    length: int = DEFAULT_LENGTH,
    max_attempts: int = MAX_ATTEMPTS,
) -> GenerationResult:
    """Draw candidates until one is not taken.

    Args:
        exists: returns True when a candidate is already in use
        length: number of characters in the code
        max_attempts: how many candidates to try before giving up

    Returns:
        Generated(code) for the first free candidate, or Exhausted when every
        attempt collided.
    """
    for _ in range(max_attempts):
        candidate = random_code(length)
        if not exists(candidate):
            return Generated(candidate)
    return Exhausted(max_attempts)
