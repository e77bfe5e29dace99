"""
medcircle.constants — Shared Constants & Helpers
=================================================

Single source of truth for presentation constants.  Import from here
instead of duplicating in routes and services.
"""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Rank presentation (non-functional; used by API payloads)
# ---------------------------------------------------------------------------
RANK_COLORS: dict[str, str] = {
    "Probation": "text-slate-500",
    "Intern": "text-gray-500",
    "Resident": "text-blue-500",
    "Fellow": "text-green-500",
    "Attending": "text-purple-500",
    "Senior Doctor": "text-orange-500",
    "Chief of Medicine": "text-red-500",
}

DEFAULT_RANK_COLOR = "text-gray-500"

LEADERBOARD_BADGES: list[str] = ["\U0001f947", "\U0001f948", "\U0001f949"]  # 🥇🥈🥉


def rank_color(label: str) -> str:
    """Display colour class for a rank label."""
    return RANK_COLORS.get(label, DEFAULT_RANK_COLOR)


def leaderboard_badge(position: int) -> str | None:
    """Medal for 1-based leaderboard *position*, or ``None`` past third."""
    if 1 <= position <= len(LEADERBOARD_BADGES):
        return LEADERBOARD_BADGES[position - 1]
    return None
