"""Tests for search document projection."""

import pytest

from product_ingest.errors import TransformError
from product_ingest.search.projector import DocumentProjector, slugify
from product_ingest.search.schema import OPTIONAL_FIELD_NAMES, REQUIRED_FIELD_NAMES, collection_schema

FIXED_NOW = 1_700_000_000.5


@pytest.fixture
def projector():
    return DocumentProjector(clock=lambda: FIXED_NOW)


class TestSlugify:
    def test_title(self):
        assert slugify("Super Phone X!! 2024") == "super-phone-x-2024"

    def test_null_title(self):
        assert slugify(None) == "producto"
        assert slugify("") == "producto"

    def test_truncated_to_100(self):
        assert len(slugify("word " * 60)) == 100


class TestDocumentProjector:
    def test_single_product_document(self, projector, shoe_record):
        doc = projector.project(shoe_record)

        assert doc["objectID"] == "X42"
        assert doc["product_id"] == 42
        assert doc["external_id"] == "X42"
        assert doc["title"] == "Shoe"
        assert doc["title_seo"] == "shoe"
        assert doc["stock"] == 3
        assert doc["is_active"] is True
        assert doc["sale_price"] == 80
        assert doc["price"] == 100
        assert doc["percent_off"] == 20
        assert doc["indexing_date"] == 1_700_000_000
        assert doc["relevance_score"] == 78.3
        assert doc["review_rating"] == 4
        assert doc["has_free_shipping"] is True
        assert doc["fulfillment"] is True
        assert doc["photos"] == doc["pictures"]

    def test_required_fields_present(self, projector, shoe_record):
        doc = projector.project(shoe_record)
        for name in REQUIRED_FIELD_NAMES:
            assert doc.get(name) is not None, name

    def test_only_schema_fields(self, projector, shoe_record):
        doc = projector.project(shoe_record)
        assert set(doc) <= set(REQUIRED_FIELD_NAMES) | set(OPTIONAL_FIELD_NAMES)

    def test_object_id_falls_back_to_id(self, projector):
        doc = projector.project({"id": 17, "title": "Lamp"})
        assert doc["objectID"] == "17"
        assert doc["external_id"] == "17"
        assert doc["product_id"] == 17

    def test_hierarchical_category_nested_and_flat(self, projector, shoe_record):
        doc = projector.project(shoe_record)

        assert doc["hierarchical_category"] == {"lvl0": "a", "lvl1": "a > b", "lvl2": "a > b > c"}
        assert doc["hierarchical_category.lvl0"] == "a"
        assert doc["hierarchical_category.lvl1"] == "a > b"
        assert doc["hierarchical_category.lvl2"] == "a > b > c"

    def test_guards_wrong_shapes(self, projector):
        doc = projector.project({
            "id": 1,
            "pictures": "nope",
            "attributes": {"a": 1},
            "categories": "x",
            "videos": None,
            "cs_months": 12,
            "pricing": [1, 2],
            "warranties": "none",
            "seller": "store",
        })

        for name in ("pictures", "photos", "attributes", "categories", "videos", "volumetries", "cs_months", "ccs_months"):
            assert doc[name] == [], name
        for name in ("pricing", "shipping", "rating", "features", "warranties", "variations", "seller"):
            assert doc[name] == {}, name
        assert doc["sellers"] == []

    def test_missing_strings_are_null(self, projector):
        doc = projector.project({"id": 1})

        assert doc["title"] == ""
        assert doc["title_seo"] == "producto"
        assert doc["brand"] is None
        assert doc["description"] is None
        assert doc["ean"] is None
        assert doc["short_description"] is None

    def test_sellers_wraps_seller(self, projector):
        seller = {"id": 3, "name": "Shop", "store_rating": 4.5}
        doc = projector.project({"id": 1, "seller": seller})

        assert doc["seller"] == seller
        assert doc["sellers"] == [seller]
        assert doc["store_rating"] == 4.5

    def test_review_rating_precedence(self, projector):
        assert projector.project({"id": 1, "rating": {"average_score": 4.2, "average": 3}})["review_rating"] == 4.2
        assert projector.project({"id": 1, "rating": {"average": 3}})["review_rating"] == 3
        assert projector.project({"id": 1})["review_rating"] == 0

    def test_title_is_truncated(self, projector):
        doc = projector.project({"id": 1, "title": "t" * 600})
        assert len(doc["title"]) == 500

    @pytest.mark.parametrize("raw", [{}, {"title": "no id"}, {"id": "abc"}, ["list"]])
    def test_unusable_record_raises(self, projector, raw):
        with pytest.raises(TransformError):
            projector.project(raw)


def test_collection_schema_marks_optional_fields():
    schema = collection_schema("products")
    fields = {f["name"]: f for f in schema["fields"]}

    assert schema["name"] == "products"
    assert fields["objectID"].get("optional") is None
    assert fields["brand"]["optional"] is True
    assert schema["default_sorting_field"] == "relevance_score"
