"""Reward arithmetic for single and joined chores.

Amounts are integer minor currency units. Joined chores pool their reward and
split it by effort percentage; non-joined chores pay the full amount to every
participant. A quality coefficient is applied on top, so two excellent ratings
on a joined chore can together exceed the pool.
"""

from __future__ import annotations

from typing import Dict, Mapping, Optional, Sequence, Union

from .exceptions import InvalidQualityError
from .models import EffortMap, QualityRating
from .money import round_half_up

QualityLike = Union[QualityRating, str]

QUALITY_COEFFICIENTS: Dict[QualityRating, float] = {
    QualityRating.FAILED: 0.0,
    QualityRating.BAD: 0.5,
    QualityRating.GOOD: 1.0,
    QualityRating.EXCELLENT: 1.25,
}

DEFAULT_EFFORT_TOLERANCE = 0.1


def to_quality(quality: QualityLike) -> QualityRating:
    try:
        return QualityRating(quality)
    except ValueError as exc:
        raise InvalidQualityError(quality) from exc


def quality_coefficient(quality: QualityLike) -> float:
    return QUALITY_COEFFICIENTS[to_quality(quality)]


def base_reward(
    total_reward: int,
    participant_count: int,
    is_joined: bool,
    custom_effort_percent: Optional[float] = None,
) -> float:
    """Reward a participant would get before the quality coefficient is applied.

    Joined chores default to an equal share of the pool. A custom effort above
    100% is allowed and pays more than the equal share.
    """

    if not is_joined:
        return float(total_reward)
    if custom_effort_percent is None:
        if participant_count <= 0:
            raise ValueError("A joined chore needs at least one participant.")
        effort = 100 / participant_count
    else:
        effort = custom_effort_percent
    return total_reward * (effort / 100)


def displayed_reward(base: float, quality: QualityLike) -> int:
    """Amount shown on a rating button for ``quality``."""

    return round_half_up(base * quality_coefficient(quality))


def earned_reward(total_reward: int, effort_percent: float, quality: QualityLike, is_joined: bool) -> int:
    """Final reward credited to a participant, rounded once."""

    coefficient = quality_coefficient(quality)
    if is_joined:
        return round_half_up(total_reward * (effort_percent / 100) * coefficient)
    return round_half_up(total_reward * coefficient)


def preview_rewards(
    total_reward: int,
    participant_count: int,
    is_joined: bool,
    custom_effort_percent: Optional[float] = None,
) -> Dict[QualityRating, int]:
    base = base_reward(total_reward, participant_count, is_joined, custom_effort_percent)
    return {quality: displayed_reward(base, quality) for quality in QualityRating}


def effort_total(efforts: Mapping[str, float]) -> float:
    return sum(efforts.values(), 0.0)


def validate_effort_total(efforts: Mapping[str, float], tolerance: float = DEFAULT_EFFORT_TOLERANCE) -> bool:
    """``True`` when ``efforts`` add up to 100 within ``tolerance``. Empty maps are invalid."""

    if not efforts:
        return False
    return abs(effort_total(efforts) - 100) <= tolerance


def redistribute_efforts(efforts: Mapping[str, float], changed_id: str, new_value: float) -> EffortMap:
    """Set ``changed_id`` to ``new_value`` and rescale everyone else so the total stays 100.

    Others keep their relative ratios. When they currently total zero the
    remainder is split equally between them.
    """

    other_ids = [child_id for child_id in efforts if child_id != changed_id]
    result: EffortMap = {changed_id: new_value}
    if not other_ids:
        return result

    remaining = 100 - new_value
    others_total = sum((efforts.get(child_id) or 0.0 for child_id in other_ids), 0.0)
    if others_total > 0:
        for child_id in other_ids:
            result[child_id] = ((efforts.get(child_id) or 0.0) / others_total) * remaining
    else:
        share = remaining / len(other_ids)
        for child_id in other_ids:
            result[child_id] = share
    return result


def initialize_equal_efforts(participant_ids: Sequence[str]) -> EffortMap:
    """Equal effort for every participant, summing to exactly 100."""

    ids = list(dict.fromkeys(participant_ids))
    if not ids:
        return {}
    share = 100 / len(ids)
    efforts: EffortMap = {child_id: share for child_id in ids[:-1]}
    # The last entry absorbs float error so the sum is exactly 100.
    efforts[ids[-1]] = 100 - sum(efforts.values())
    return efforts


__all__ = [
    "DEFAULT_EFFORT_TOLERANCE",
    "QUALITY_COEFFICIENTS",
    "base_reward",
    "displayed_reward",
    "earned_reward",
    "effort_total",
    "initialize_equal_efforts",
    "preview_rewards",
    "quality_coefficient",
    "redistribute_efforts",
    "to_quality",
    "validate_effort_total",
]
