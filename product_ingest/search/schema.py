"""Search index collection schema for product documents."""

from typing import Any

# Fields every document must carry; the index rejects documents without them.
REQUIRED_FIELDS: list[dict[str, Any]] = [
    {"name": "objectID", "type": "string"},
    {"name": "product_id", "type": "int32"},
    {"name": "external_id", "type": "string"},
    {"name": "title", "type": "string"},
    {"name": "title_seo", "type": "string"},
    {"name": "stock", "type": "int32"},
    {"name": "is_active", "type": "bool"},
    {"name": "sale_price", "type": "float"},
    {"name": "indexing_date", "type": "int64"},
    {"name": "relevance_score", "type": "float"},
]

OPTIONAL_FIELDS: list[dict[str, Any]] = [
    # Text
    {"name": "ean", "type": "string"},
    {"name": "sku", "type": "string"},
    {"name": "division", "type": "int32", "facet": True},
    {"name": "brand", "type": "string", "facet": True},
    {"name": "description", "type": "string"},
    {"name": "short_description", "type": "string"},
    {"name": "updated_at", "type": "string"},
    {"name": "created_at", "type": "string"},
    # Ranking inputs
    {"name": "relevance_sales", "type": "int32"},
    {"name": "relevance_amount", "type": "int32"},
    {"name": "wallet", "type": "bool"},
    {"name": "home", "type": "bool"},
    {"name": "cs_months", "type": "int32[]"},
    # Raw upstream objects
    {"name": "seller", "type": "object"},
    {"name": "pricing", "type": "object"},
    {"name": "shipping", "type": "object"},
    {"name": "rating", "type": "object"},
    {"name": "features", "type": "object"},
    {"name": "pictures", "type": "object[]"},
    {"name": "photos", "type": "object[]"},
    {"name": "attributes", "type": "object[]"},
    {"name": "categories", "type": "auto"},
    {"name": "videos", "type": "object[]"},
    {"name": "volumetries", "type": "object[]"},
    {"name": "warranties", "type": "object"},
    {"name": "variations", "type": "object"},
    {"name": "sellers", "type": "object[]"},
    # Flags
    {"name": "is_store_only", "type": "bool", "facet": True},
    {"name": "is_store_pickup", "type": "bool", "facet": True},
    {"name": "is_backorder", "type": "bool", "facet": True},
    {"name": "is_big_ticket", "type": "bool", "facet": True},
    {"name": "super_express", "type": "bool", "facet": True},
    {"name": "digital", "type": "bool", "facet": True},
    {"name": "fulfillment", "type": "bool", "facet": True},
    {"name": "has_free_shipping", "type": "bool", "facet": True},
    {"name": "store_only", "type": "bool", "facet": True},
    {"name": "store_pickup", "type": "bool", "facet": True},
    # Misc
    {"name": "presale_date", "type": "string"},
    {"name": "fulfillment_id", "type": "string"},
    {"name": "extended_catalogue_days", "type": "int32"},
    {"name": "price", "type": "float"},
    {"name": "percent_off", "type": "float"},
    # Category hierarchy, nested and flat
    {"name": "hierarchical_category", "type": "object"},
    {"name": "hierarchical_category.lvl0", "type": "string", "facet": True},
    {"name": "hierarchical_category.lvl1", "type": "string", "facet": True},
    {"name": "hierarchical_category.lvl2", "type": "string", "facet": True},
    # Reviews
    {"name": "review_rating", "type": "float"},
    {"name": "total_reviews", "type": "int32"},
    {"name": "store_rating", "type": "float"},
    # Extra catalog fields
    {"name": "ccs_months", "type": "int32[]"},
    {"name": "fecha_alta_cms", "type": "int64"},
    {"name": "temporada", "type": "int32"},
]

REQUIRED_FIELD_NAMES = tuple(f["name"] for f in REQUIRED_FIELDS)
OPTIONAL_FIELD_NAMES = tuple(f["name"] for f in OPTIONAL_FIELDS)


def collection_schema(name: str) -> dict[str, Any]:
    """Collection definition posted when the collection does not exist yet."""
    fields = [dict(f) for f in REQUIRED_FIELDS]
    fields.extend({**f, "optional": True} for f in OPTIONAL_FIELDS)
    return {
        "name": name,
        "fields": fields,
        "enable_nested_fields": True,
        "default_sorting_field": "relevance_score",
    }
