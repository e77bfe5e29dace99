"""
medcircle.engine.moderation — Denylist scan & offense state machine
====================================================================

Pure logic, no DB I/O.  The service layer loads an :class:`OffenseState`,
asks this module what the next state is, and persists it.

States::

    CLEAR (count == 0) → WARNED (1 <= count <= max) → BANNED (count > max)

Counts only move forward.  :meth:`OffenseState.cleared` is the single
way back to ``CLEAR``.

Content is lower-cased and stripped of everything outside ``a-z`` and
whitespace before the containment test, so denylist terms carrying
non-ASCII letters (``cabrón``, ``scheiße``) never match.
"""

from __future__ import annotations

import enum
import re
from dataclasses import dataclass, replace
from datetime import datetime

__all__ = [
    "DEFAULT_MAX_OFFENSES",
    "DENYLIST",
    "OffenseState",
    "OffenseStatus",
    "contains_profanity",
    "find_denylisted_term",
    "normalize_content",
    "register_offense",
    "warnings_remaining",
]

DEFAULT_MAX_OFFENSES = 3

# ---------------------------------------------------------------------------
# Multi-language denylist
# ---------------------------------------------------------------------------
DENYLIST: tuple[str, ...] = (
    # English
    "fuck", "shit", "damn", "bitch", "asshole", "bastard", "crap", "piss",
    # Spanish
    "mierda", "joder", "puta", "cabrón", "pendejo", "coño",
    # French
    "merde", "putain", "connard", "salope",
    # German
    "scheiße", "arschloch", "verdammt",
    # Italian / Portuguese
    "merda", "cazzo", "stronzo", "caralho", "porra",
    # Russian (transliterated)
    "blyad", "suka", "pizdec",
    # Hindi (transliterated)
    "madarchod", "bhenchod", "chutiya",
    # Arabic (transliterated)
    "khawal", "sharmouta",
)

_STRIP_RE = re.compile(r"[^a-z\s]")


def normalize_content(text: str) -> str:
    """Lower-case *text* and drop every character outside ``a-z``/whitespace."""
    return _STRIP_RE.sub("", text.lower())


def find_denylisted_term(text: str, denylist: tuple[str, ...] = DENYLIST) -> str | None:
    """Return the first denylisted term contained in *text*, if any."""
    clean = normalize_content(text)
    for term in denylist:
        if term in clean:
            return term
    return None


def contains_profanity(text: str, denylist: tuple[str, ...] = DENYLIST) -> bool:
    return find_denylisted_term(text, denylist) is not None


# ---------------------------------------------------------------------------
# Offense state
# ---------------------------------------------------------------------------
class OffenseStatus(enum.StrEnum):
    CLEAR = "clear"
    WARNED = "warned"
    BANNED = "banned"


@dataclass(frozen=True, slots=True)
class OffenseState:
    """Snapshot of a user's moderation standing."""

    count: int = 0
    last_offense_at: datetime | None = None
    is_banned: bool = False

    @property
    def status(self) -> OffenseStatus:
        if self.is_banned:
            return OffenseStatus.BANNED
        if self.count == 0:
            return OffenseStatus.CLEAR
        return OffenseStatus.WARNED

    @classmethod
    def cleared(cls) -> OffenseState:
        return cls()

    def to_dict(self) -> dict:
        return {
            "count": self.count,
            "last_offense_at": (
                self.last_offense_at.isoformat() if self.last_offense_at else None
            ),
            "is_banned": self.is_banned,
            "status": self.status.value,
        }


def register_offense(
    state: OffenseState,
    now: datetime,
    max_offenses: int = DEFAULT_MAX_OFFENSES,
) -> OffenseState:
    """Advance *state* by one offense.

    The ban flag is sticky: once set it stays set until a reset.
    """
    new_count = state.count + 1
    return replace(
        state,
        count=new_count,
        last_offense_at=now,
        is_banned=state.is_banned or new_count > max_offenses,
    )


def warnings_remaining(state: OffenseState, max_offenses: int = DEFAULT_MAX_OFFENSES) -> int:
    return max(max_offenses - state.count, 0)
