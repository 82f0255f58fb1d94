"""Username normalization for hiscores lookups."""

import re
from dataclasses import dataclass
from typing import Any

from app.errors import INVALID_USERNAME, InvalidFormat

MIN_USERNAME_LENGTH = 1
MAX_USERNAME_LENGTH = 12

# Letters, digits, spaces and hyphens (underscores are folded into spaces)
USERNAME_PATTERN = re.compile(r"^[A-Za-z0-9 \-]+$")


@dataclass(frozen=True)
class NormalizedUsername:
    """Canonical forms of a player name.

    ``key`` is the lowercase lookup form used for storage uniqueness;
    ``display`` is derived from it, so re-tracking never changes identity.
    """

    display: str
    key: str


def username_key(raw: str) -> str:
    """Collapse separators and lowercase, without any bound checks."""
    collapsed = re.sub(r"[\s_]+", " ", raw)
    return collapsed.strip().lower()


def display_name(key: str) -> str:
    """Capitalize each word of a lookup key ("iron mammal" -> "Iron Mammal")."""
    return " ".join(word.capitalize() for word in key.split(" "))


def normalize_username(raw: Any) -> NormalizedUsername:
    """Validate raw input and return its canonical forms.

    Args:
        raw: Untrusted username from a request body or query string

    Returns:
        NormalizedUsername with display and key forms

    Raises:
        InvalidFormat: If the input is missing, empty, out of the 1-12
            character bound, or contains unsupported characters
    """
    if not isinstance(raw, str):
        raise InvalidFormat(INVALID_USERNAME)

    key = username_key(raw)
    if not key:
        raise InvalidFormat(INVALID_USERNAME)

    if not MIN_USERNAME_LENGTH <= len(key) <= MAX_USERNAME_LENGTH:
        raise InvalidFormat(
            f"{INVALID_USERNAME} Usernames must be between "
            f"{MIN_USERNAME_LENGTH} and {MAX_USERNAME_LENGTH} characters."
        )

    if not USERNAME_PATTERN.match(key):
        raise InvalidFormat(
            f"{INVALID_USERNAME} Only letters, numbers, spaces and hyphens are allowed."
        )

    return NormalizedUsername(display=display_name(key), key=key)
