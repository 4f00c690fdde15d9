"""Project raw catalog records into search index documents."""

import re
import time
from datetime import datetime, timezone
from typing import Any, Optional

from product_ingest.errors import TransformError
from product_ingest.ingest.base import RawRecord
from product_ingest.normalize.categories import category_payload, flatten_categories
from product_ingest.normalize.coercion import (
    as_dict,
    as_float,
    as_int,
    as_list,
    as_str,
    coalesce,
    truncate,
)
from product_ingest.normalize.scoring import calculate_relevance_score

MAX_TITLE = 500
MAX_SHORT_DESCRIPTION = 1000
MAX_SLUG = 100
DEFAULT_SLUG = "producto"

_NON_SLUG_CHARS = re.compile(r"[^a-z0-9\s]")
_WHITESPACE = re.compile(r"\s+")


def slugify(title: Optional[str]) -> str:
    """
    SEO slug for a title.

    >>> slugify("Super Phone X!! 2024")
    'super-phone-x-2024'
    """
    if not title:
        return DEFAULT_SLUG
    slug = _NON_SLUG_CHARS.sub("", title.lower())
    slug = _WHITESPACE.sub("-", slug)
    return slug[:MAX_SLUG]


class DocumentProjector:
    """Build full search documents from raw records."""

    def __init__(self, clock=time.time):
        self._clock = clock

    def project(self, raw: RawRecord) -> dict[str, Any]:
        """
        Project one raw record.

        Raises:
            TransformError: If the record cannot produce the required fields
        """
        if not isinstance(raw, dict):
            raise TransformError(None, f"expected an object, got {type(raw).__name__}")

        record_id = raw.get("id")
        try:
            return self._build(raw)
        except TransformError:
            raise
        except Exception as e:
            raise TransformError(record_id, str(e)) from e

    def _build(self, raw: RawRecord) -> dict[str, Any]:
        product_id = as_int(coalesce(raw.get("id"), raw.get("external_id")), None)
        if product_id is None:
            raise TransformError(raw.get("id"), "missing integer id")

        external_id = as_str(coalesce(raw.get("external_id"), raw.get("id")))
        title = as_str(raw.get("title"))

        pricing = as_dict(raw.get("pricing"))
        shipping = as_dict(raw.get("shipping"))
        rating = as_dict(raw.get("rating"))
        features = as_dict(raw.get("features"))
        seller = as_dict(raw.get("seller"))
        pictures = as_list(raw.get("pictures"))

        now = self._clock()
        now_iso = datetime.fromtimestamp(now, tz=timezone.utc).isoformat()
        categories = category_payload(flatten_categories(raw.get("categories")))

        store_only = bool(raw.get("is_store_only") or features.get("is_store_only"))
        store_pickup = bool(raw.get("is_store_pickup") or features.get("is_store_pickup"))

        document = {
            # Required
            "objectID": external_id,
            "product_id": product_id,
            "external_id": external_id,
            "title": (title or "")[:MAX_TITLE],
            "title_seo": as_str(raw.get("title_seo")) or slugify(title),
            "stock": max(0, as_int(raw.get("stock"), 0)),
            "is_active": bool(raw.get("is_active")),
            "sale_price": as_float(coalesce(pricing.get("sales_price"), pricing.get("sale_price")), 0.0),
            "indexing_date": int(now),
            "relevance_score": calculate_relevance_score(raw),
            # Text
            "ean": as_str(raw.get("ean")),
            "sku": as_str(raw.get("sku")),
            "division": as_int(raw.get("division"), 1),
            "brand": as_str(raw.get("brand")),
            "description": as_str(raw.get("description")),
            "short_description": truncate(as_str(raw.get("short_description")), MAX_SHORT_DESCRIPTION),
            "updated_at": as_str(raw.get("updated_at")) or now_iso,
            "created_at": as_str(raw.get("created_at")) or now_iso,
            "relevance_sales": as_int(raw.get("relevance_sales"), 0),
            "relevance_amount": as_int(raw.get("relevance_amount"), 0),
            "wallet": bool(raw.get("wallet")),
            "home": bool(raw.get("home")),
            "cs_months": as_list(raw.get("cs_months")),
            # Objects
            "seller": seller,
            "pricing": pricing,
            "shipping": shipping,
            "rating": rating,
            "features": features,
            # Arrays
            "pictures": pictures,
            "photos": pictures,
            "attributes": as_list(raw.get("attributes")),
            "categories": as_list(raw.get("categories")),
            "videos": as_list(raw.get("videos")),
            "volumetries": as_list(raw.get("volumetries")),
            # Flags
            "is_store_only": store_only,
            "is_store_pickup": store_pickup,
            "is_backorder": bool(features.get("is_backorder")),
            "is_big_ticket": bool(features.get("is_big_ticket")),
            "super_express": bool(features.get("super_express")),
            "digital": bool(features.get("digital")),
            "presale_date": as_str(raw.get("presale_date")),
            "fulfillment_id": as_str(features.get("fulfillment_id")),
            "extended_catalogue_days": as_int(raw.get("extended_catalogue_days"), None),
            "warranties": as_dict(raw.get("warranties")),
            # Derived
            "price": as_float(pricing.get("list_price"), 0.0),
            "percent_off": as_float(pricing.get("percentage_discount"), 0.0),
            "fulfillment": bool(features.get("super_express") or features.get("fulfillment_id")),
            "has_free_shipping": bool(shipping.get("is_free") or shipping.get("free_shipping")),
            "store_only": store_only,
            "store_pickup": store_pickup,
            # Category hierarchy, nested and flat
            "hierarchical_category": categories,
            "hierarchical_category.lvl0": categories["lvl0"],
            "hierarchical_category.lvl1": categories["lvl1"],
            "hierarchical_category.lvl2": categories["lvl2"],
            "sellers": [seller] if seller else [],
            # Reviews
            "review_rating": as_float(coalesce(rating.get("average_score"), rating.get("average")), 0.0),
            "total_reviews": as_int(coalesce(rating.get("total_reviews"), rating.get("count")), 0),
            "store_rating": as_float(seller.get("store_rating"), 0.0),
            # Extra catalog fields
            "ccs_months": as_list(raw.get("ccs_months")),
            "fecha_alta_cms": as_int(raw.get("fecha_alta_cms"), None) or int(now),
            "temporada": as_int(raw.get("temporada"), 0),
            "variations": as_dict(raw.get("variations")),
        }
        return document
