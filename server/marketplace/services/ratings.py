"""Running and weekly rating aggregates with Bayesian shrinkage."""

from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Optional

PRIOR_AVERAGE = 4.5
PRIOR_WEIGHT = 10


@dataclass(frozen=True)
class RatingAggregate:
    """Rating fields shared by listings and provider accounts."""

    rating_avg: float = 0.0
    rating_count: int = 0
    weighted_score: float = 0.0
    week_key: Optional[str] = None
    week_rating_avg: float = 0.0
    week_rating_count: int = 0
    week_weighted_score: float = 0.0

    @classmethod
    def from_row(cls, row) -> "RatingAggregate":
        return cls(
            rating_avg=row.rating_avg or 0.0,
            rating_count=row.rating_count or 0,
            weighted_score=row.weighted_score or 0.0,
            week_key=row.week_key,
            week_rating_avg=row.week_rating_avg or 0.0,
            week_rating_count=row.week_rating_count or 0,
            week_weighted_score=row.week_weighted_score or 0.0,
        )

    def write_to(self, row) -> None:
        row.rating_avg = self.rating_avg
        row.rating_count = self.rating_count
        row.weighted_score = self.weighted_score
        row.week_key = self.week_key
        row.week_rating_avg = self.week_rating_avg
        row.week_rating_count = self.week_rating_count
        row.week_weighted_score = self.week_weighted_score


def next_average(avg: float, count: int, rating: int) -> tuple[float, int]:
    """Fold one rating into a running average."""
    next_count = count + 1
    return (avg * count + rating) / next_count, next_count


def bayesian_score(
    avg: float,
    count: int,
    prior_average: float = PRIOR_AVERAGE,
    prior_weight: int = PRIOR_WEIGHT,
) -> float:
    """Average shrunk toward the prior in proportion to how few ratings back it."""
    total = count + prior_weight
    return (count / total) * avg + (prior_weight / total) * prior_average


def iso_week_key(moment: datetime) -> str:
    """ISO 8601 year-week key such as ``2025-W07``, computed in UTC."""
    if moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc)
    iso_year, iso_week, _ = moment.isocalendar()
    return f"{iso_year}-W{iso_week:02d}"


def apply_rating(current: RatingAggregate, rating: int, now: datetime) -> RatingAggregate:
    """
    Return the aggregate after one new rating.

    The weekly window restarts whenever ``now`` falls in a different ISO
    week than the stored key.
    """
    avg, count = next_average(current.rating_avg, current.rating_count, rating)

    week_key = iso_week_key(now)
    if current.week_key == week_key:
        week_avg, week_count = next_average(current.week_rating_avg, current.week_rating_count, rating)
    else:
        week_avg, week_count = float(rating), 1

    return replace(
        current,
        rating_avg=avg,
        rating_count=count,
        weighted_score=bayesian_score(avg, count),
        week_key=week_key,
        week_rating_avg=week_avg,
        week_rating_count=week_count,
        week_weighted_score=bayesian_score(week_avg, week_count),
    )
