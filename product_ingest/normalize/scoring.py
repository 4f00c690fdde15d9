"""Relevance scoring for catalog products."""

import logging
import math

from product_ingest.ingest.base import RawRecord
from product_ingest.normalize.coercion import as_dict, as_float

logger = logging.getLogger(__name__)

BASE_SCORE = 50.0
MAX_SCORE = 100.0

# Boosts
STOCK_WEIGHT = 0.1
MAX_STOCK_BOOST = 5.0
RATING_WEIGHT = 2.0
ACTIVE_BOOST = 5.0
SUPER_EXPRESS_BOOST = 10.0
FREE_SHIPPING_BOOST = 5.0


def round_half_up(value: float, digits: int = 2) -> float:
    factor = 10 ** digits
    return math.floor(value * factor + 0.5) / factor


def calculate_relevance_score(raw: RawRecord) -> float:
    """
    Deterministic relevance score in [0, 100] with two decimals.

    Starts from 50 and adds boosts for stock (capped at 5), average rating,
    active status, super express delivery and free shipping. Anything that
    goes wrong while scoring yields the base score.
    """
    try:
        score = BASE_SCORE

        stock = as_float(raw.get("stock"), 0.0)
        if stock > 0:
            score += min(stock * STOCK_WEIGHT, MAX_STOCK_BOOST)

        avg_rating = as_float(as_dict(raw.get("rating")).get("average_score"), 0.0)
        if avg_rating > 0:
            score += avg_rating * RATING_WEIGHT

        if raw.get("is_active"):
            score += ACTIVE_BOOST
        if as_dict(raw.get("features")).get("super_express"):
            score += SUPER_EXPRESS_BOOST
        if as_dict(raw.get("shipping")).get("is_free"):
            score += FREE_SHIPPING_BOOST

        return max(0.0, min(round_half_up(score), MAX_SCORE))
    except Exception as e:
        logger.debug(f"Relevance scoring fell back to base score: {e}")
        return BASE_SCORE
