"""Classification of npm diagnostics into OTP challenges and auth failures.

The rules are plain data: an ordered table of ``(pattern, Classification)``
pairs matched case-insensitively as substrings. OTP phrases come first, so a
diagnostic that mentions both is reported as an OTP challenge.
"""

from __future__ import annotations

from enum import Enum
from typing import Iterable, Set, Tuple


class Classification(str, Enum):
    OTP = "otp"
    AUTH = "auth"
    NONE = "none"


OTP_PATTERNS: Tuple[str, ...] = (
    "EOTP",
    "one-time password",
    "This operation requires a one-time password",
    "--otp=<code>",
)

AUTH_PATTERNS: Tuple[str, ...] = (
    "ENEEDAUTH",
    "You must be logged in",
    "authentication error",
    "Unable to authenticate",
    "code E401",
    "code E403",
    "401 Unauthorized",
    "403 Forbidden",
    "not logged in",
    "npm login",
    "npm adduser",
)

ERROR_PATTERNS: Tuple[Tuple[str, Classification], ...] = tuple(
    [(p, Classification.OTP) for p in OTP_PATTERNS]
    + [(p, Classification.AUTH) for p in AUTH_PATTERNS]
)

OTP_MESSAGE = "This operation requires a one-time password (OTP)."
AUTH_MESSAGE = (
    'Authentication failed. Please run "npm login" and restart the connector.'
)

NOISE_PREFIXES: Tuple[str, ...] = ("npm warn",)


def matches(
    text: str,
    patterns: Iterable[Tuple[str, Classification]] = ERROR_PATTERNS,
) -> Set[Classification]:
    """Return every classification with at least one pattern found in ``text``."""
    lowered = (text or "").lower()
    return {kind for pattern, kind in patterns if pattern.lower() in lowered}


def classify(
    text: str,
    patterns: Iterable[Tuple[str, Classification]] = ERROR_PATTERNS,
) -> Classification:
    """Return the classification of the first pattern found in ``text``."""
    lowered = (text or "").lower()
    for pattern, kind in patterns:
        if pattern.lower() in lowered:
            return kind
    return Classification.NONE


def filter_noise(text: str) -> str:
    """Drop informational warning lines, keeping the decision-relevant ones."""
    lines = (text or "").split("\n")
    kept = [
        line
        for line in lines
        if not line.lower().startswith(NOISE_PREFIXES)
    ]
    return "\n".join(kept).strip()


def display_message(text: str) -> str:
    """Normalise a failed command's diagnostic for the caller."""
    kind = classify(text)
    if kind is Classification.OTP:
        return OTP_MESSAGE
    if kind is Classification.AUTH:
        return AUTH_MESSAGE
    return filter_noise(text)


__all__ = [
    "AUTH_MESSAGE",
    "AUTH_PATTERNS",
    "Classification",
    "ERROR_PATTERNS",
    "OTP_MESSAGE",
    "OTP_PATTERNS",
    "classify",
    "display_message",
    "filter_noise",
    "matches",
]
