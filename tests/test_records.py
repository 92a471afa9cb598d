"""
Tests for normalizing raw page records into Items.
"""

import json
from datetime import datetime, timezone

import pytest

from docmirror.records import (
    convert_property,
    extract_attributes,
    extract_parent_id,
    extract_title,
    item_from_record,
    items_from_data,
    load_snapshot,
)
from docmirror.types import ListValue, Scalar


def _title(text):
    return {"type": "title", "title": [{"plain_text": text}]}


@pytest.fixture
def record():
    return {
        "id": "p1",
        "last_edited_time": "2025-01-02T03:04:05.000Z",
        "url": "https://example.com/p1",
        "parent": {"type": "database_id", "database_id": "db"},
        "properties": {
            "Name": _title("Design doc"),
            "Parent item": {"type": "relation", "relation": [{"id": "p0"}]},
            "Tags": {"type": "multi_select", "multi_select": [{"name": "eng"}, {"name": "draft"}]},
            "Status": {"type": "status", "status": {"name": "In review"}},
            "Owner": {"type": "people", "people": [{"name": "Kim"}, {"id": "u2"}]},
            "Due": {"type": "date", "date": {"start": "2025-02-01"}},
            "Done": {"type": "checkbox", "checkbox": False},
            "Score": {"type": "formula", "formula": {"type": "number", "number": 3}},
            "Related": {
                "type": "rollup",
                "rollup": {"type": "array", "array": [
                    {"type": "multi_select", "multi_select": [{"name": "x"}]},
                    {"type": "number", "number": 2},
                ]},
            },
        },
    }


class TestTitle:

    def test_named_title_property(self, record):
        assert extract_title(record) == "Design doc"

    def test_any_title_typed_property(self):
        assert extract_title({"properties": {"Label": _title("Via type")}}) == "Via type"

    def test_rich_text_fallback(self):
        record = {"properties": {
            "Desc": {"type": "rich_text", "rich_text": [{"text": {"content": "From text"}}]},
        }}
        assert extract_title(record) == "From text"

    def test_untitled(self):
        assert extract_title({"properties": {"Name": _title("   ")}}) == "Untitled"
        assert extract_title({}) == "Untitled"


class TestParent:

    def test_parent_relation_wins(self, record):
        assert extract_parent_id(record) == "p0"

    def test_structural_page_parent(self):
        record = {"parent": {"type": "page_id", "page_id": "pp"}, "properties": {}}
        assert extract_parent_id(record) == "pp"

    def test_database_parent_is_not_a_parent(self):
        record = {"parent": {"type": "database_id", "database_id": "db"}, "properties": {}}
        assert extract_parent_id(record) is None

    def test_empty_relation_falls_through(self):
        record = {
            "parent": {"type": "page_id", "page_id": "pp"},
            "properties": {"Parent": {"type": "relation", "relation": []}},
        }
        assert extract_parent_id(record) == "pp"

    def test_unrelated_relation_ignored(self):
        record = {"properties": {"Owner team": {"type": "relation", "relation": [{"id": "t1"}]}}}
        assert extract_parent_id(record) is None


class TestAttributes:

    def test_property_conversion(self, record):
        attrs = extract_attributes(record)
        assert "Name" not in attrs
        assert attrs["Parent item"] == ListValue(("p0",))
        assert attrs["Tags"] == ListValue(("eng", "draft"))
        assert attrs["Status"] == Scalar("In review")
        assert attrs["Owner"] == ListValue(("Kim", "u2"))
        assert attrs["Due"] == Scalar("2025-02-01")
        assert attrs["Done"] == Scalar(False)
        assert attrs["Score"] == Scalar(3)
        assert attrs["Related"] == ListValue(("x", "2"))

    def test_attribute_order_follows_properties(self, record):
        assert list(extract_attributes(record))[:3] == ["Parent item", "Tags", "Status"]

    def test_unknown_type_skipped(self):
        assert convert_property({"type": "button", "button": {}}) is None

    def test_malformed_property_becomes_empty(self):
        attrs = extract_attributes({"properties": {
            "Tags": {"type": "multi_select", "multi_select": ["not-an-object"]},
        }})
        assert attrs["Tags"] == Scalar(None)


class TestItems:

    def test_item_from_record(self, record):
        item = item_from_record(record)
        assert item.id == "p1"
        assert item.title == "Design doc"
        assert item.parent_id == "p0"
        assert item.url == "https://example.com/p1"
        assert item.last_modified == datetime(2025, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
        assert item.content is None

    def test_record_without_id_rejected(self, record):
        del record["id"]
        with pytest.raises(ValueError):
            item_from_record(record)

    def test_mixed_raw_and_normalized(self, record):
        normalized = {
            "id": "n1",
            "title": "Norm",
            "last_modified": "2025-01-01T00:00:00Z",
            "parent_id": "p1",
            "attributes": {"Tags": ["a"]},
        }
        items = items_from_data([record, normalized])
        assert [i.id for i in items] == ["p1", "n1"]
        assert items[1].parent_id == "p1"
        assert items[1].attributes == {"Tags": ListValue(("a",))}

    def test_normalized_round_trip(self, record):
        item = item_from_record(record)
        (again,) = items_from_data([item.to_dict()])
        assert again.id == item.id
        assert again.last_modified == item.last_modified
        assert again.attributes == item.attributes

    def test_non_object_rejected(self):
        with pytest.raises(ValueError):
            items_from_data(["p1"])


class TestLoadSnapshot:

    def test_results_wrapper(self, tmp_path, record):
        path = tmp_path / "pages.json"
        path.write_text(json.dumps({"results": [record], "has_more": False}))
        assert [i.id for i in load_snapshot(path)] == ["p1"]

    def test_plain_list(self, tmp_path, record):
        path = tmp_path / "pages.json"
        path.write_text(json.dumps([record]))
        assert len(load_snapshot(path)) == 1

    def test_not_a_list(self, tmp_path):
        path = tmp_path / "pages.json"
        path.write_text(json.dumps("hello"))
        with pytest.raises(ValueError):
            load_snapshot(path)
