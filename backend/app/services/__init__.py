"""Rating and statistics engine.

Only the storage-free helpers are re-exported here; the store-driven modules
(``ledger``, ``submission``) are imported directly by the routers.
"""

from .validation import ValidationError, validate_match_record
from .rating import (
    InvalidRatingInput,
    RatingCategory,
    overall_rating,
    rating_category,
    rating_color,
    rating_delta,
)

__all__ = [
    "ValidationError",
    "validate_match_record",
    "InvalidRatingInput",
    "RatingCategory",
    "overall_rating",
    "rating_category",
    "rating_color",
    "rating_delta",
]
