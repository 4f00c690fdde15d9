"""Normalize raw catalog records into relational rows and child rows."""

from dataclasses import asdict, dataclass, field, fields
from typing import Any, Optional

from product_ingest.errors import TransformError
from product_ingest.ingest.base import RawRecord
from product_ingest.normalize.categories import flatten_categories
from product_ingest.normalize.coercion import (
    as_dict,
    as_flag,
    as_float,
    as_int,
    as_list,
    as_str,
    coalesce,
    non_negative,
    truncate,
)
from product_ingest.normalize.scoring import calculate_relevance_score

MAX_SHORT_DESCRIPTION = 1000
MAX_ATTRIBUTE_NAME = 100
MAX_ATTRIBUTE_VALUE = 500
DEFAULT_SHIPPING_DAYS = 5

VOLUMETRIC_FIELDS = ("height", "width", "depth", "weight", "volumetric_weight")


@dataclass
class ImageRow:
    """Additional product picture (the first one lives on the product row)."""

    image_url: str
    thumbnail_url: str
    image_order: int


@dataclass
class AttributeRow:
    """Product attribute, including volumetric ones."""

    attribute_name: str
    attribute_value: str


@dataclass
class NormalizedProduct:
    """Canonical product row plus the child rows it owns."""

    id: int
    name: str
    description: Optional[str] = None
    short_description: Optional[str] = None
    sku: Optional[str] = None
    brand: Optional[str] = None

    # Pricing
    sales_price: float = 0
    list_price: float = 0
    shipping_cost: float = 0
    percentage_discount: float = 0

    # Inventory / state
    stock: int = 0
    status: int = 0
    visible: int = 1

    # Category
    category_id: Optional[int] = None
    category_name: Optional[str] = None
    category_lvl0: Optional[str] = None
    category_lvl1: Optional[str] = None
    category_lvl2: Optional[str] = None
    category_path: str = ""

    # Seller
    store_id: Optional[int] = None
    store_name: Optional[str] = None
    store_logo: Optional[str] = None
    store_rating: Optional[float] = None
    store_authorized: int = 0

    # Feature flags
    digital: int = 0
    big_ticket: int = 0
    back_order: int = 0
    is_store_pickup: int = 0
    super_express: int = 0
    is_store_only: int = 0
    shipping_days: int = DEFAULT_SHIPPING_DAYS

    # Reviews
    review_rating: Optional[float] = None
    total_reviews: int = 0

    # Media
    main_image: Optional[str] = None
    thumbnail: Optional[str] = None

    # Classification
    fulfillment_type: str = "seller"
    relevance_score: float = 0

    # Children
    images: list[ImageRow] = field(default_factory=list)
    attributes: list[AttributeRow] = field(default_factory=list)

    CHILD_FIELDS = ("images", "attributes")

    def to_row(self) -> dict[str, Any]:
        """Column values for the ``products`` table."""
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if f.name not in self.CHILD_FIELDS
        }

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def extract_images(pictures: list) -> list[ImageRow]:
    """Pictures from index 1 on, keeping their 1-based position as order."""
    images = []
    for index, picture in enumerate(pictures):
        if index == 0 or not isinstance(picture, dict):
            continue
        source = as_str(picture.get("source"))
        if not source:
            continue
        images.append(ImageRow(
            image_url=source,
            thumbnail_url=as_str(picture.get("thumbnail")) or source,
            image_order=index + 1,
        ))
    return images


def extract_attributes(attributes: list) -> list[AttributeRow]:
    rows = []
    for attribute in attributes:
        if not isinstance(attribute, dict):
            continue
        name = as_str(attribute.get("name"))
        value = as_str(attribute.get("value"))
        if not name or not value:
            continue
        rows.append(AttributeRow(
            attribute_name=name[:MAX_ATTRIBUTE_NAME],
            attribute_value=value[:MAX_ATTRIBUTE_VALUE],
        ))
    return rows


def extract_volumetrics(volumetries: list) -> list[AttributeRow]:
    """One attribute per set field of the first volumetry entry."""
    if not volumetries:
        return []
    volumetry = as_dict(volumetries[0])
    rows = []
    for name in VOLUMETRIC_FIELDS:
        value = volumetry.get(name)
        # Zero and empty measurements carry no information
        if not value:
            continue
        text = as_str(value)
        if text:
            rows.append(AttributeRow(attribute_name=name, attribute_value=text[:MAX_ATTRIBUTE_VALUE]))
    return rows


def resolve_product_id(raw: RawRecord) -> Optional[int]:
    """Integer primary key; ``id`` first, numeric ``external_id`` as fallback."""
    product_id = as_int(raw.get("id"), None)
    if product_id is None:
        product_id = as_int(raw.get("external_id"), None)
    return product_id


class RecordNormalizer:
    """Map raw catalog records to ``NormalizedProduct`` rows."""

    def normalize(self, raw: RawRecord) -> NormalizedProduct:
        """
        Normalize one raw record.

        Args:
            raw: Upstream product payload

        Returns:
            NormalizedProduct with image and attribute children

        Raises:
            TransformError: If the record has no usable id or is not a mapping
        """
        if not isinstance(raw, dict):
            raise TransformError(None, f"expected an object, got {type(raw).__name__}")

        product_id = resolve_product_id(raw)
        if product_id is None:
            raise TransformError(raw.get("id"), "missing integer id")

        try:
            return self._build(product_id, raw)
        except TransformError:
            raise
        except Exception as e:
            raise TransformError(product_id, str(e)) from e

    def _build(self, product_id: int, raw: RawRecord) -> NormalizedProduct:
        pricing = as_dict(raw.get("pricing"))
        shipping = as_dict(raw.get("shipping"))
        seller = as_dict(raw.get("seller"))
        rating = as_dict(raw.get("rating"))
        features = as_dict(raw.get("features"))
        pictures = as_list(raw.get("pictures"))

        categories = flatten_categories(raw.get("categories"))

        main_picture = as_dict(pictures[0]) if pictures else {}
        main_image = as_str(main_picture.get("source"))

        return NormalizedProduct(
            id=product_id,
            name=as_str(raw.get("title"), ""),
            description=as_str(raw.get("description")),
            short_description=truncate(as_str(raw.get("short_description")), MAX_SHORT_DESCRIPTION),
            sku=as_str(raw.get("sku")),
            brand=as_str(raw.get("brand")),
            sales_price=non_negative(as_float(coalesce(pricing.get("sales_price"), pricing.get("sale_price")), 0)),
            list_price=non_negative(as_float(pricing.get("list_price"), 0)),
            shipping_cost=non_negative(as_float(shipping.get("cost"), 0)),
            percentage_discount=non_negative(as_float(pricing.get("percentage_discount"), 0)),
            stock=max(0, as_int(raw.get("stock"), 0)),
            status=as_flag(raw.get("is_active")),
            visible=1,
            category_id=categories.category_id,
            category_name=categories.category_name,
            category_lvl0=categories.lvl0,
            category_lvl1=categories.lvl1,
            category_lvl2=categories.lvl2,
            category_path=categories.path,
            store_id=as_int(seller.get("id"), None),
            store_name=as_str(seller.get("name")),
            store_logo=as_str(seller.get("logo")),
            store_rating=as_float(seller.get("store_rating"), None),
            store_authorized=as_flag(coalesce(seller.get("authorized"), seller.get("status"))),
            digital=as_flag(features.get("digital")),
            big_ticket=as_flag(features.get("is_big_ticket")),
            back_order=as_flag(features.get("is_backorder")),
            is_store_pickup=as_flag(features.get("is_store_pickup")),
            super_express=as_flag(features.get("super_express")),
            is_store_only=as_flag(features.get("is_store_only")),
            shipping_days=as_int(shipping.get("days"), DEFAULT_SHIPPING_DAYS),
            review_rating=as_float(coalesce(rating.get("average_score"), rating.get("average")), None),
            total_reviews=max(0, as_int(coalesce(rating.get("total_reviews"), rating.get("count")), 0)),
            main_image=main_image,
            thumbnail=as_str(main_picture.get("thumbnail")) or main_image,
            fulfillment_type="fulfillment" if features.get("fulfillment_id") else "seller",
            relevance_score=calculate_relevance_score(raw),
            images=extract_images(pictures),
            attributes=extract_attributes(as_list(raw.get("attributes"))) + extract_volumetrics(as_list(raw.get("volumetries"))),
        )
