from enum import Enum
from numbers import Real

INITIAL_RATING = 1200
POINT_FACTOR = 10
WIN_BONUS = 25
MAX_RATING_CHANGE = 100
MIN_RATING = 800

SINGLES_WEIGHT = 0.6
DOUBLES_WEIGHT = 0.4


class InvalidRatingInput(ValueError):
    """Raised when a rating calculation receives malformed point totals."""


class RatingCategory(str, Enum):
    NOVICE = "Novice"
    BEGINNER = "Beginner"
    INTERMEDIATE = "Intermediate"
    ADVANCED = "Advanced"
    EXPERT = "Expert"
    MASTER = "Master"


# Lower bound of each category, highest first.
CATEGORY_THRESHOLDS: tuple[tuple[int, RatingCategory], ...] = (
    (1800, RatingCategory.MASTER),
    (1600, RatingCategory.EXPERT),
    (1400, RatingCategory.ADVANCED),
    (1200, RatingCategory.INTERMEDIATE),
    (1000, RatingCategory.BEGINNER),
)

CATEGORY_COLORS: dict[RatingCategory, str] = {
    RatingCategory.MASTER: "#FF6B00",
    RatingCategory.EXPERT: "#9C27B0",
    RatingCategory.ADVANCED: "#2196F3",
    RatingCategory.INTERMEDIATE: "#4CAF50",
    RatingCategory.BEGINNER: "#607D8B",
    RatingCategory.NOVICE: "#9E9E9E",
}


def _check_points(value: object, name: str) -> Real:
    # bool is a subclass of int; a True/False score is always a caller bug.
    if isinstance(value, bool) or not isinstance(value, Real):
        raise InvalidRatingInput(f"{name} must be a number")
    if value < 0:
        raise InvalidRatingInput(f"{name} must be >= 0")
    return value


def rating_delta(points_scored: Real, points_conceded: Real, is_winner: bool) -> int:
    """Return the rating change earned by one side of a match.

    The change is ``(scored - conceded) * POINT_FACTOR`` plus ``WIN_BONUS`` for
    the winner, clamped to ``[-MAX_RATING_CHANGE, MAX_RATING_CHANGE]``.

    Doubles callers pass half of each team score, so the totals may be
    half-integers; the resulting delta is still a whole number.

    Raises:
        InvalidRatingInput: If either total is negative or not numeric.
    """
    scored = _check_points(points_scored, "points_scored")
    conceded = _check_points(points_conceded, "points_conceded")

    delta = (scored - conceded) * POINT_FACTOR
    if is_winner:
        delta += WIN_BONUS
    delta = int(round(delta))
    return max(-MAX_RATING_CHANGE, min(MAX_RATING_CHANGE, delta))


def apply_delta(rating: int, delta: int) -> int:
    """Return ``rating + delta`` without dropping below ``MIN_RATING``."""
    return max(MIN_RATING, rating + delta)


def rating_category(rating: Real) -> RatingCategory:
    for threshold, category in CATEGORY_THRESHOLDS:
        if rating >= threshold:
            return category
    return RatingCategory.NOVICE


def rating_color(rating: Real) -> str:
    return CATEGORY_COLORS[rating_category(rating)]


def overall_rating(singles_rating: Real, doubles_rating: Real) -> int:
    """Blend singles and doubles ratings 60/40 into one number."""
    return int(round(singles_rating * SINGLES_WEIGHT + doubles_rating * DOUBLES_WEIGHT))
