"""
Normalization of raw remote page records into Items.

The remote API returns pages as loosely structured JSON: a map of typed
properties, an optional structural parent, and a last-edited timestamp.
This module extracts the title, the (untrusted) parent pointer and the
structured attributes in the form the rest of the mirror expects.

Snapshot files may mix raw records with already-normalized items.
"""

import json
import logging
from collections.abc import Iterable
from pathlib import Path
from typing import Any, Optional

from .types import AttributeValue, Item, ListValue, Scalar, as_utc

logger = logging.getLogger(__name__)

TITLE_PROPERTY_NAMES = ("Name", "Title", "title")

# Relation properties whose name contains one of these carry the hierarchy
PARENT_RELATION_HINTS = ("parent", "relation", "sub", "child")

UNTITLED = "Untitled"


def _plain_text(rich: Optional[list]) -> str:
    """Concatenate the plain text of a rich-text array."""
    if not rich:
        return ""
    parts = []
    for run in rich:
        if not isinstance(run, dict):
            continue
        text = run.get("plain_text")
        if text is None:
            text = (run.get("text") or {}).get("content", "")
        parts.append(text or "")
    return "".join(parts)


def extract_title(record: dict[str, Any]) -> str:
    """Title of a raw record, or "Untitled"."""
    properties = record.get("properties") or {}

    for name in TITLE_PROPERTY_NAMES:
        prop = properties.get(name)
        if isinstance(prop, dict):
            text = _plain_text(prop.get("title"))
            if text.strip():
                return text.strip()

    for prop in properties.values():
        if isinstance(prop, dict) and prop.get("type") == "title":
            text = _plain_text(prop.get("title"))
            if text.strip():
                return text.strip()

    for prop in properties.values():
        if isinstance(prop, dict) and prop.get("rich_text"):
            text = _plain_text(prop.get("rich_text"))
            if text.strip():
                return text.strip()

    return UNTITLED


def extract_parent_id(record: dict[str, Any]) -> Optional[str]:
    """
    Parent pointer of a raw record.

    Relation properties named like a parent link take precedence over the
    structural parent. A database container is never reported as a parent,
    otherwise every page would be a child of the database.
    """
    properties = record.get("properties") or {}
    for name, prop in properties.items():
        lowered = name.lower()
        if not any(hint in lowered for hint in PARENT_RELATION_HINTS):
            continue
        if not isinstance(prop, dict) or "relation" not in prop:
            continue
        relation = prop.get("relation") or []
        if relation and isinstance(relation[0], dict) and relation[0].get("id"):
            return str(relation[0]["id"])

    parent = record.get("parent") or {}
    if parent.get("type") == "page_id" and parent.get("page_id"):
        return str(parent["page_id"])
    return None


def _user_name(user: Optional[dict]) -> Optional[str]:
    if not user:
        return None
    return user.get("name") or user.get("id")


def _convert_formula(formula: dict) -> AttributeValue:
    if formula.get("string"):
        return Scalar(formula["string"])
    if formula.get("number") is not None:
        return Scalar(formula["number"])
    if formula.get("boolean") is not None:
        return Scalar(formula["boolean"])
    if formula.get("date"):
        return Scalar(formula["date"].get("start"))
    return Scalar(None)


def _convert_rollup(rollup: dict) -> AttributeValue:
    if rollup.get("array"):
        values = []
        for element in rollup["array"]:
            if not isinstance(element, dict):
                values.append(str(element))
                continue
            converted = convert_property(element)
            if isinstance(converted, ListValue):
                values.extend(converted.values)
            elif isinstance(converted, Scalar) and converted.value is not None:
                values.append(str(converted.value))
        return ListValue(tuple(values))
    if rollup.get("number") is not None:
        return Scalar(rollup["number"])
    if rollup.get("date"):
        return Scalar(rollup["date"].get("start"))
    return Scalar(None)


def convert_property(prop: dict[str, Any]) -> Optional[AttributeValue]:
    """
    Convert one typed property into an attribute value.

    Returns:
        The attribute value, or None for title properties and unknown types
    """
    kind = prop.get("type")
    value = prop.get(kind) if kind else None

    if kind == "title":
        return None
    if kind == "multi_select":
        return ListValue(tuple(o.get("name", "") for o in value or [] if o.get("name")))
    if kind in ("select", "status"):
        return Scalar((value or {}).get("name"))
    if kind == "rich_text":
        return Scalar(_plain_text(value))
    if kind in ("number", "checkbox", "url", "email", "phone_number",
                "created_time", "last_edited_time"):
        return Scalar(value)
    if kind == "date":
        return Scalar((value or {}).get("start"))
    if kind == "people":
        return ListValue(tuple(n for n in (_user_name(p) for p in value or []) if n))
    if kind == "files":
        names = []
        for f in value or []:
            name = f.get("name") or (f.get("file") or {}).get("url")
            if name:
                names.append(name)
        return ListValue(tuple(names))
    if kind == "relation":
        return ListValue(tuple(r["id"] for r in value or [] if r.get("id")))
    if kind in ("created_by", "last_edited_by"):
        return Scalar(_user_name(value))
    if kind == "formula":
        return _convert_formula(value or {})
    if kind == "rollup":
        return _convert_rollup(value or {})

    logger.debug("Skipping property of unsupported type %r", kind)
    return None


def extract_attributes(record: dict[str, Any]) -> dict[str, AttributeValue]:
    """Structured attributes of a raw record, in property order."""
    attributes: dict[str, AttributeValue] = {}
    for name, prop in (record.get("properties") or {}).items():
        if not isinstance(prop, dict):
            continue
        try:
            converted = convert_property(prop)
        except (AttributeError, KeyError, TypeError) as e:
            logger.warning("Failed to extract property %r: %s", name, e)
            attributes[name] = Scalar(None)
            continue
        if converted is not None:
            attributes[name] = converted
    return attributes


def is_raw_record(data: dict[str, Any]) -> bool:
    """True for records straight from the remote API (vs normalized items)."""
    return "last_edited_time" in data


def item_from_record(record: dict[str, Any]) -> Item:
    """
    Build an Item from a raw remote record.

    Raises:
        ValueError: If the record has no id or no last-edited time
    """
    if not record.get("id"):
        raise ValueError("Record has no id")
    if not record.get("last_edited_time"):
        raise ValueError(f"Record {record['id']} has no last_edited_time")
    return Item(
        id=str(record["id"]),
        title=extract_title(record),
        last_modified=as_utc(record["last_edited_time"]),
        parent_id=extract_parent_id(record),
        attributes=extract_attributes(record),
        url=record.get("url"),
    )


def items_from_data(data: Iterable[dict[str, Any]]) -> list[Item]:
    """Convert a list of raw records and/or normalized item dicts."""
    items = []
    for entry in data:
        if not isinstance(entry, dict):
            raise ValueError(f"Expected an object per item, got {type(entry).__name__}")
        if is_raw_record(entry):
            items.append(item_from_record(entry))
        else:
            items.append(Item.from_dict(entry))
    return items


def load_snapshot(path: Path) -> list[Item]:
    """
    Read items from a JSON snapshot file.

    The file holds either a list of records, or an object with a
    ``results`` list (the shape of one page of API output).
    """
    with open(path, encoding="utf-8") as f:
        data = json.load(f)
    if isinstance(data, dict):
        data = data.get("results", [])
    if not isinstance(data, list):
        raise ValueError(f"Snapshot {path} does not contain a list of items")
    return items_from_data(data)
