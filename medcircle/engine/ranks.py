"""
medcircle.engine.ranks — Rank bands and classifier
===================================================

Maps a karma total to a named rank via ordered, half-open bands
``[min, max)``.  ``None`` stands for an unbounded end, so the table
partitions every integer and :func:`classify` is total.

Scheme (medical titles)::

    (-inf,    0)  Probation
    [   0,   50)  Intern
    [  50,  150)  Resident
    [ 150,  300)  Fellow
    [ 300,  500)  Attending
    [ 500, 1000)  Senior Doctor
    [1000, +inf)  Chief of Medicine
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from medcircle.constants import rank_color

__all__ = [
    "DEFAULT_RANK",
    "RANK_BANDS",
    "RankBand",
    "RankProgress",
    "classify",
    "rank_for",
    "rank_progress",
    "validate_bands",
]


@dataclass(frozen=True, slots=True)
class RankBand:
    """One rank interval.  ``min`` is inclusive, ``max`` exclusive."""

    label: str
    min: int | None
    max: int | None

    def contains(self, total: int) -> bool:
        if self.min is not None and total < self.min:
            return False
        if self.max is not None and total >= self.max:
            return False
        return True

    @property
    def color(self) -> str:
        return rank_color(self.label)

    def to_dict(self) -> dict:
        return {
            "label": self.label,
            "min": self.min,
            "max": self.max,
            "color": self.color,
        }


@dataclass(frozen=True, slots=True)
class RankProgress:
    """Where a total sits within its band, for progress bars."""

    current: str
    next_label: str | None
    next_threshold: int | None
    percent: float

    def to_dict(self) -> dict:
        return {
            "current": self.current,
            "next": self.next_label,
            "next_threshold": self.next_threshold,
            "percent": self.percent,
        }


def validate_bands(bands: Sequence[RankBand]) -> None:
    """Raise ``ValueError`` unless *bands* partition the integers.

    The first band must be unbounded below, the last unbounded above,
    and each band's ``max`` must equal the next band's ``min``.
    """
    if not bands:
        raise ValueError("rank table is empty")
    if bands[0].min is not None:
        raise ValueError(f"lowest band {bands[0].label!r} must be unbounded below")
    if bands[-1].max is not None:
        raise ValueError(f"highest band {bands[-1].label!r} must be unbounded above")
    for lower, upper in zip(bands, bands[1:]):
        if lower.max is None or upper.min is None:
            raise ValueError(
                f"interior band boundary between {lower.label!r} and "
                f"{upper.label!r} is unbounded"
            )
        if lower.max != upper.min:
            kind = "gap" if lower.max < upper.min else "overlap"
            raise ValueError(
                f"{kind} between {lower.label!r} and {upper.label!r} "
                f"({lower.max} vs {upper.min})"
            )
        if upper.max is not None and upper.max <= upper.min:
            raise ValueError(f"band {upper.label!r} is empty")


RANK_BANDS: tuple[RankBand, ...] = (
    RankBand("Probation", None, 0),
    RankBand("Intern", 0, 50),
    RankBand("Resident", 50, 150),
    RankBand("Fellow", 150, 300),
    RankBand("Attending", 300, 500),
    RankBand("Senior Doctor", 500, 1000),
    RankBand("Chief of Medicine", 1000, None),
)
validate_bands(RANK_BANDS)

DEFAULT_RANK = RANK_BANDS[0]


def rank_for(total: int, bands: Sequence[RankBand] = RANK_BANDS) -> RankBand:
    """Return the band containing *total* (the lowest band if none does)."""
    for band in bands:
        if band.contains(total):
            return band
    return bands[0] if bands else DEFAULT_RANK


def classify(total: int, bands: Sequence[RankBand] = RANK_BANDS) -> str:
    """Rank label for a karma *total*."""
    return rank_for(total, bands).label


def rank_progress(total: int, bands: Sequence[RankBand] = RANK_BANDS) -> RankProgress:
    """Progress from the current band's floor toward the next band."""
    bands = tuple(bands) or RANK_BANDS
    band = rank_for(total, bands)
    index = bands.index(band)
    if index + 1 >= len(bands):
        return RankProgress(band.label, None, None, 100.0)

    nxt = bands[index + 1]
    threshold = nxt.min
    if band.min is None:
        # Below zero there is no floor to measure from.
        return RankProgress(band.label, nxt.label, threshold, 0.0)

    span = threshold - band.min
    percent = (total - band.min) / span * 100
    return RankProgress(band.label, nxt.label, threshold, round(min(max(percent, 0.0), 100.0), 1))
