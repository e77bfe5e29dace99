"""
medcircle.engine.activities — Karma point table and categories
===============================================================

Every ledger entry carries the fixed point value of its activity type.
The breakdown shown on a member's karma card groups entries into post,
comment and vote categories.
"""

from __future__ import annotations

from dataclasses import dataclass

from medcircle.database.models import KarmaActivityType
from medcircle.errors import ValidationFailure

__all__ = [
    "COMMENT_TYPES",
    "CONTENT_ACTIVITY_TYPES",
    "KARMA_POINTS",
    "SELF_REPORTED_TYPES",
    "KarmaBreakdown",
    "breakdown_from_totals",
    "category_for",
    "parse_activity_type",
    "parse_self_reported",
    "points_for",
]

# ---------------------------------------------------------------------------
# Point value per activity type
# ---------------------------------------------------------------------------
KARMA_POINTS: dict[KarmaActivityType, int] = {
    KarmaActivityType.CREATE_POST: 10,
    KarmaActivityType.CREATE_COMMENT: 2,
    KarmaActivityType.RECEIVE_COMMENT: 2,
    KarmaActivityType.RECEIVE_UPVOTE: 5,
    KarmaActivityType.GIVE_UPVOTE: 1,
    KarmaActivityType.RECEIVE_DOWNVOTE: -2,
    KarmaActivityType.JOIN_COMMUNITY: 1,
    KarmaActivityType.CREATE_COMMUNITY: 15,
    KarmaActivityType.MODERATION_PENALTY: -2,
}

# "COMMENT" is a legacy stored value; it has no enum member but still
# belongs to the comment category.
COMMENT_TYPES: frozenset[str] = frozenset({
    KarmaActivityType.CREATE_COMMENT.value,
    KarmaActivityType.RECEIVE_COMMENT.value,
    "COMMENT",
})

# Actions a member performs themselves and may report through the API.
# Received-side events and penalties are booked on the server.
SELF_REPORTED_TYPES: frozenset[KarmaActivityType] = frozenset({
    KarmaActivityType.CREATE_POST,
    KarmaActivityType.CREATE_COMMENT,
    KarmaActivityType.GIVE_UPVOTE,
    KarmaActivityType.JOIN_COMMUNITY,
    KarmaActivityType.CREATE_COMMUNITY,
})

# Actions that publish content; refused while the member is banned.
CONTENT_ACTIVITY_TYPES: frozenset[KarmaActivityType] = frozenset({
    KarmaActivityType.CREATE_POST,
    KarmaActivityType.CREATE_COMMENT,
    KarmaActivityType.CREATE_COMMUNITY,
})


@dataclass(frozen=True, slots=True)
class KarmaBreakdown:
    """Per-category karma sums."""

    post_points: int = 0
    comment_points: int = 0
    vote_points: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "post_points": self.post_points,
            "comment_points": self.comment_points,
            "vote_points": self.vote_points,
        }


def parse_activity_type(value: str | KarmaActivityType) -> KarmaActivityType:
    """Coerce *value* to a :class:`KarmaActivityType`.

    Raises :class:`ValidationFailure` for unknown names.
    """
    if isinstance(value, KarmaActivityType):
        return value
    try:
        return KarmaActivityType(str(value).strip().upper())
    except ValueError:
        raise ValidationFailure(f"Unknown activity type: {value!r}") from None


def parse_self_reported(value: str | KarmaActivityType) -> KarmaActivityType:
    """Like :func:`parse_activity_type`, limited to :data:`SELF_REPORTED_TYPES`."""
    kind = parse_activity_type(value)
    if kind not in SELF_REPORTED_TYPES:
        raise ValidationFailure(f"{kind.value} cannot be reported by members")
    return kind


def points_for(activity_type: KarmaActivityType) -> int:
    return KARMA_POINTS[activity_type]


def category_for(activity_type: str) -> str | None:
    """Return ``"post"``, ``"comment"``, ``"vote"`` or ``None``."""
    if activity_type == KarmaActivityType.CREATE_POST.value:
        return "post"
    if activity_type in COMMENT_TYPES:
        return "comment"
    if "VOTE" in activity_type:
        return "vote"
    return None


def breakdown_from_totals(totals: dict[str, int]) -> KarmaBreakdown:
    """Fold ``activity_type → summed points`` into a :class:`KarmaBreakdown`."""
    sums = {"post": 0, "comment": 0, "vote": 0}
    for activity_type, points in totals.items():
        category = category_for(activity_type)
        if category is not None:
            sums[category] += points
    return KarmaBreakdown(
        post_points=sums["post"],
        comment_points=sums["comment"],
        vote_points=sums["vote"],
    )
