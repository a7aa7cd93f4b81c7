"""
Simplified FSRS-style scheduler primitives.

A card's memory is modelled by two numbers: stability (days until recall
probability decays to the desired retention) and difficulty (1..10, how hard
the card is to strengthen). `next_state` maps the current state plus a review
rating to the next state; `next_due_date` turns stability into a timestamp.

Everything here is pure: no I/O, no clock reads unless `now` is omitted, no
shared mutable state. Callers load the prior state, call `next_state`, and
persist the result.
"""

from __future__ import annotations

import datetime as dt
import math
from dataclasses import dataclass, field, replace
from enum import IntEnum
from typing import Any

DIFFICULTY_MIN = 1.0
DIFFICULTY_MAX = 10.0
# Stability is raised to this value before the power term of the growth
# formula; sub-day stabilities would otherwise inflate S^-c.
GROWTH_STABILITY_MIN = 1.0
SECONDS_PER_DAY = 86400


class SchedulerError(ValueError):
    """Base class for scheduler contract violations."""


class InvalidRatingError(SchedulerError):
    pass


class InvalidParametersError(SchedulerError):
    pass


class InvalidMemoryStateError(SchedulerError):
    pass


class Rating(IntEnum):
    """Learner's self-reported recall quality, ordered by recall success."""

    AGAIN = 1
    HARD = 2
    GOOD = 3
    EASY = 4

    @classmethod
    def parse(cls, value: Any) -> "Rating":
        """Convert a caller-supplied rating (enum, 1..4, digit string or name) or raise InvalidRatingError."""
        if isinstance(value, cls):
            return value
        if isinstance(value, bool):
            raise InvalidRatingError(f"Invalid rating: {value!r}")
        if isinstance(value, int):
            try:
                return cls(value)
            except ValueError:
                raise InvalidRatingError(f"Invalid rating: {value!r}") from None
        if isinstance(value, str):
            text = value.strip()
            if text.isdecimal():
                return cls.parse(int(text))
            try:
                return cls[text.upper()]
            except KeyError:
                raise InvalidRatingError(f"Invalid rating: {value!r}") from None
        raise InvalidRatingError(f"Invalid rating: {value!r}")


def _utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def _is_finite_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


@dataclass(frozen=True)
class MemoryState:
    stability: float = 0.0  # 0 means never reviewed
    difficulty: float = 0.0
    last_reviewed: dt.datetime | None = None
    due_at: dt.datetime | None = None

    def __post_init__(self) -> None:
        if not _is_finite_number(self.stability) or self.stability < 0:
            raise InvalidMemoryStateError(f"stability must be a finite number >= 0, got {self.stability!r}")
        if not _is_finite_number(self.difficulty):
            raise InvalidMemoryStateError(f"difficulty must be a finite number, got {self.difficulty!r}")

    @classmethod
    def new(cls) -> "MemoryState":
        return cls()

    @property
    def is_new(self) -> bool:
        return self.stability == 0


@dataclass(frozen=True)
class SchedulerParameters:
    """Weighting constants for the memory model. Validated once, read-only afterwards."""

    base_stability_by_rating: tuple[float, ...] = (0.4072, 1.1829, 3.1262, 15.4722)
    base_difficulty: float = 5.0
    difficulty_rating_weight: float = 1.0
    difficulty_decay_weight: float = 0.5
    again_decay_factor: float = 0.2
    stability_floor: float = 0.1
    growth_scale_exponent: float = 1.5
    difficulty_power_exponent: float = 0.5
    stability_power_exponent: float = 0.2
    retention_scale: float = 4.0
    hard_damping: float = 0.5
    easy_boost: float = 1.5
    desired_retention: float = 0.9
    maximum_stability: float = 36500.0
    _retention_factor: float = field(init=False, repr=False, compare=False, default=0.0)

    def __post_init__(self) -> None:
        base = tuple(self.base_stability_by_rating)
        if len(base) != len(Rating):
            raise InvalidParametersError(f"base_stability_by_rating needs {len(Rating)} values, got {len(base)}")
        if not all(_is_finite_number(value) and value > 0 for value in base):
            raise InvalidParametersError(f"base_stability_by_rating must be positive, got {base!r}")
        object.__setattr__(self, "base_stability_by_rating", tuple(float(value) for value in base))

        for name in (
            "base_difficulty",
            "difficulty_rating_weight",
            "difficulty_decay_weight",
            "again_decay_factor",
            "stability_floor",
            "growth_scale_exponent",
            "difficulty_power_exponent",
            "stability_power_exponent",
            "retention_scale",
            "hard_damping",
            "easy_boost",
            "desired_retention",
            "maximum_stability",
        ):
            value = getattr(self, name)
            if not _is_finite_number(value) or value < 0:
                raise InvalidParametersError(f"{name} must be a finite number >= 0, got {value!r}")

        if not 0 < self.desired_retention < 1:
            raise InvalidParametersError(f"desired_retention must be in (0, 1), got {self.desired_retention!r}")
        if not 0 < self.again_decay_factor < 1:
            raise InvalidParametersError(f"again_decay_factor must be in (0, 1), got {self.again_decay_factor!r}")
        if self.stability_floor <= 0:
            raise InvalidParametersError(f"stability_floor must be > 0, got {self.stability_floor!r}")
        if not 0 < self.hard_damping < 1:
            raise InvalidParametersError(f"hard_damping must be in (0, 1), got {self.hard_damping!r}")
        if self.easy_boost <= 1:
            raise InvalidParametersError(f"easy_boost must be > 1, got {self.easy_boost!r}")
        if self.maximum_stability < max(base) or self.maximum_stability <= self.stability_floor:
            raise InvalidParametersError(f"maximum_stability must cover the base stabilities and the floor, got {self.maximum_stability!r}")

        # Lower desired retention -> larger factor -> faster growth.
        retention_factor = math.exp(self.retention_scale * (1 - self.desired_retention)) - 1
        object.__setattr__(self, "_retention_factor", retention_factor)

    def base_stability(self, rating: Rating) -> float:
        return self.base_stability_by_rating[rating.value - 1]

    def with_overrides(self, **overrides: Any) -> "SchedulerParameters":
        """Return a validated copy with selected constants replaced."""
        return replace(self, **overrides)


DEFAULT_PARAMETERS = SchedulerParameters()


def clamp_difficulty(value: float) -> float:
    return float(min(max(value, DIFFICULTY_MIN), DIFFICULTY_MAX))


def next_due_date(stability: float, now: dt.datetime) -> dt.datetime:
    """Schedule the next review `stability` days after `now`, without rounding to whole days."""
    if not _is_finite_number(stability) or stability < 0:
        raise InvalidMemoryStateError(f"stability must be a finite number >= 0, got {stability!r}")
    return now + dt.timedelta(seconds=stability * SECONDS_PER_DAY)


def _initial_state(rating: Rating, params: SchedulerParameters) -> tuple[float, float]:
    stability = params.base_stability(rating)
    difficulty = clamp_difficulty(params.base_difficulty - params.difficulty_rating_weight * (rating - Rating.GOOD))
    return stability, difficulty


def _growth(stability: float, difficulty: float, rating: Rating, params: SchedulerParameters) -> float:
    growth = (
        math.exp(params.growth_scale_exponent)
        * math.pow(difficulty, -params.difficulty_power_exponent)
        * math.pow(max(stability, GROWTH_STABILITY_MIN), -params.stability_power_exponent)
        * params._retention_factor
    )
    if rating == Rating.HARD:
        growth *= params.hard_damping
    elif rating == Rating.EASY:
        growth *= params.easy_boost
    return growth


def _review_state(current: MemoryState, rating: Rating, params: SchedulerParameters) -> tuple[float, float]:
    difficulty = clamp_difficulty(current.difficulty - params.difficulty_decay_weight * (rating - Rating.GOOD))
    if rating == Rating.AGAIN:
        stability = max(params.stability_floor, current.stability * params.again_decay_factor)
    else:
        stability = current.stability * (1 + _growth(current.stability, difficulty, rating, params))
    # Caps the due date well inside datetime's range.
    return min(stability, params.maximum_stability), difficulty


def next_state(
    current: MemoryState,
    rating: Rating,
    params: SchedulerParameters = DEFAULT_PARAMETERS,
    now: dt.datetime | None = None,
) -> MemoryState:
    """
    Compute the memory state after reviewing a card.

    A card with zero stability takes the first-review branch: its stability
    comes straight from `params.base_stability_by_rating` and its difficulty
    from `params.base_difficulty` adjusted by the rating. Reviewed cards
    collapse towards `params.stability_floor` on AGAIN and grow otherwise.
    The review time never precedes `current.last_reviewed`, so a skewed
    clock cannot move a card backwards.
    """
    if not isinstance(rating, Rating):
        raise InvalidRatingError(f"rating must be a Rating, got {rating!r}")

    reviewed_at = now if now is not None else _utcnow()
    if current.last_reviewed is not None and reviewed_at < current.last_reviewed:
        reviewed_at = current.last_reviewed

    if current.is_new:
        stability, difficulty = _initial_state(rating, params)
    else:
        stability, difficulty = _review_state(current, rating, params)

    return MemoryState(
        stability=stability,
        difficulty=difficulty,
        last_reviewed=reviewed_at,
        due_at=next_due_date(stability, reviewed_at),
    )


def preview_intervals(
    current: MemoryState,
    params: SchedulerParameters = DEFAULT_PARAMETERS,
    now: dt.datetime | None = None,
) -> dict[Rating, MemoryState]:
    """Outcome of each possible rating, e.g. to label review buttons."""
    reviewed_at = now if now is not None else _utcnow()
    return {rating: next_state(current, rating, params, reviewed_at) for rating in Rating}


__all__ = [
    "DEFAULT_PARAMETERS",
    "DIFFICULTY_MAX",
    "DIFFICULTY_MIN",
    "GROWTH_STABILITY_MIN",
    "InvalidMemoryStateError",
    "InvalidParametersError",
    "InvalidRatingError",
    "MemoryState",
    "Rating",
    "SchedulerError",
    "SchedulerParameters",
    "clamp_difficulty",
    "next_due_date",
    "next_state",
    "preview_intervals",
]
