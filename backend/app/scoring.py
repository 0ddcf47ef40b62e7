"""Pure scoring, leveling and badge rules used by the ledger.

Nothing here touches the database; the ledger feeds in the record state
before and after a submission and persists whatever comes back.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Iterable, List, Sequence

from .errors import InvalidScore

# largest value an INTEGER column round-trips on every supported backend
MAX_SCORE_VALUE = 2**31 - 1


@dataclass(frozen=True)
class ProgressState:
    """The counters badge rules look at."""
    activities_completed: int = 0
    points: int = 0
    current_level: int = 1


@dataclass(frozen=True)
class BadgeRule:
    badge_id: str
    title: str
    condition: Callable[[ProgressState, ProgressState], bool]


def validate_score(score: int, max_score: int) -> None:
    """Raise `InvalidScore` unless `0 <= score <= max_score <= MAX_SCORE_VALUE` and `max_score > 0`."""
    for name, value in (("score", score), ("max_score", max_score)):
        if isinstance(value, bool) or not isinstance(value, int):
            raise InvalidScore(f"{name} must be an integer")
        if value < 0:
            raise InvalidScore(f"{name} must be >= 0")
        if value > MAX_SCORE_VALUE:
            raise InvalidScore(f"{name} must be <= {MAX_SCORE_VALUE}")
    if max_score == 0:
        raise InvalidScore("max_score must be > 0")
    if score > max_score:
        raise InvalidScore(f"score {score} exceeds max_score {max_score}")


def points_for(points_reward: int, score: int, max_score: int) -> int:
    """Partial credit proportional to `score / max_score`, rounded half up.

    Integer arithmetic keeps the rounding exact; the result is clamped to
    `[0, points_reward]`.
    """
    validate_score(score, max_score)
    if points_reward <= 0:
        return 0
    earned = (2 * points_reward * score + max_score) // (2 * max_score)
    return max(0, min(points_reward, earned))


def level_for(points: int, threshold: int, previous_level: int = 1) -> int:
    """Level derived from points; never lower than `previous_level`."""
    return max(previous_level, points // threshold + 1)


def default_badge_rules(activity_milestone: int = 10, points_milestone: int = 100,
                        level_milestone: int = 5) -> List[BadgeRule]:
    """The badge table, in evaluation order.

    Milestone badges fire when a submission crosses the milestone, not only
    when it lands on it: a reward larger than the level threshold can move a
    record from level 4 straight to 7, which still awards `level_up_5`.
    """
    return [
        BadgeRule(
            'first_activity', 'First Activity',
            lambda before, after: after.activities_completed == 1,
        ),
        BadgeRule(
            'ten_activities', 'Ten Activities',
            lambda before, after: before.activities_completed < activity_milestone <= after.activities_completed,
        ),
        BadgeRule(
            'hundred_points', 'Hundred Points',
            lambda before, after: before.points < points_milestone <= after.points,
        ),
        BadgeRule(
            'level_up_5', 'Level Five',
            lambda before, after: before.current_level < level_milestone <= after.current_level,
        ),
    ]


def newly_unlocked(rules: Sequence[BadgeRule], before: ProgressState, after: ProgressState,
                   held: Iterable[str]) -> List[BadgeRule]:
    """Rules that fire for this transition and are not already held.

    All qualifying rules fire, in table order.
    """
    held = set(held)
    unlocked = []
    for rule in rules:
        if rule.badge_id in held:
            continue
        if rule.condition(before, after):
            unlocked.append(rule)
            held.add(rule.badge_id)
    return unlocked


def achievement_name(badge_id: str, subject: str) -> str:
    """Subject-qualified achievement name, unique per user."""
    return f"{badge_id}:{subject}"
