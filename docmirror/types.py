"""
Data types for the document mirror.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional, Union


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def parse_utc_timestamp(ts: str) -> datetime:
    """Parse a stored timestamp string to a timezone-aware UTC datetime.

    Accepts the canonical ISO-8601 form as well as 'Z' suffixes and naive
    timestamps (treated as UTC).
    """
    ts = ts.strip().replace("Z", "+00:00")
    dt = datetime.fromisoformat(ts)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def format_utc_timestamp(dt: datetime) -> str:
    """Render a datetime as an ISO-8601 UTC string for persistence."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat()


def as_utc(value: Union[datetime, str]) -> datetime:
    """Coerce a datetime or ISO string into an aware UTC datetime."""
    if isinstance(value, str):
        return parse_utc_timestamp(value)
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# ---------------------------------------------------------------------------
# Attribute values
#
# Structured attributes come from user-editable database properties. Each
# value is either a single scalar or a list of strings; anything else is
# coerced at the boundary by attribute_from_json().
# ---------------------------------------------------------------------------

ScalarType = Union[str, int, float, bool, None]


@dataclass(frozen=True)
class Scalar:
    """A single attribute value (text, number, boolean, or empty)."""
    value: ScalarType = None

    def tokens(self) -> list[str]:
        if self.value is None:
            return []
        if isinstance(self.value, bool):
            return ["true" if self.value else "false"]
        text = str(self.value).strip().lower()
        return [text] if text else []

    def to_json(self) -> ScalarType:
        return self.value


@dataclass(frozen=True)
class ListValue:
    """A multi-valued attribute (tags, people, relations, ...)."""
    values: tuple[str, ...] = ()

    def tokens(self) -> list[str]:
        return [v.strip().lower() for v in self.values if v and v.strip()]

    def to_json(self) -> list[str]:
        return list(self.values)


AttributeValue = Union[Scalar, ListValue]


def attribute_from_json(raw: Any) -> AttributeValue:
    """Build a tagged attribute value from plain JSON data."""
    if isinstance(raw, (Scalar, ListValue)):
        return raw
    if isinstance(raw, (list, tuple)):
        return ListValue(tuple(str(v) for v in raw if v is not None))
    if raw is None or isinstance(raw, (str, int, float, bool)):
        return Scalar(raw)
    # Nested objects have no meaningful search form; keep their text
    return Scalar(str(raw))


def attributes_from_json(raw: Optional[dict[str, Any]]) -> dict[str, AttributeValue]:
    """Convert a plain JSON mapping into ordered tagged attributes."""
    if not raw:
        return {}
    return {str(k): attribute_from_json(v) for k, v in raw.items()}


def attributes_to_json(attributes: Optional[dict[str, AttributeValue]]) -> Optional[dict[str, Any]]:
    """Inverse of attributes_from_json(); None stays None."""
    if attributes is None:
        return None
    return {k: v.to_json() for k, v in attributes.items()}


def flatten_attributes(attributes: dict[str, AttributeValue]) -> list[str]:
    """Lower-cased search tokens for a set of attributes.

    Each attribute contributes its name plus one token per list element
    (or its single scalar token).
    """
    tokens: list[str] = []
    for name, value in attributes.items():
        tokens.extend(value.tokens())
        key = " ".join(name.lower().split())
        if key:
            tokens.append(key)
    return tokens


# ---------------------------------------------------------------------------
# Items and cache entries
# ---------------------------------------------------------------------------


@dataclass
class Item:
    """
    One document in the mirrored collection.

    Items are owned by the ItemStore for the lifetime of one refresh cycle.
    ``content`` starts empty and is filled in by the content resolver or by
    warming the cache.

    Attributes:
        id: Opaque identifier, unique within one store population
        title: Display title
        last_modified: Source modification time (the freshness signal)
        parent_id: Untrusted parent pointer, may be missing or cyclic
        content: Resolved text content, None until resolved
        attributes: Structured properties (ordered)
        url: Link back to the source, if known
    """
    id: str
    title: str
    last_modified: datetime
    parent_id: Optional[str] = None
    content: Optional[str] = None
    attributes: dict[str, AttributeValue] = field(default_factory=dict)
    url: Optional[str] = None

    def __post_init__(self) -> None:
        self.last_modified = as_utc(self.last_modified)
        if self.parent_id == "":
            self.parent_id = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-ready dict."""
        return {
            "id": self.id,
            "title": self.title,
            "last_modified": format_utc_timestamp(self.last_modified),
            "parent_id": self.parent_id,
            "url": self.url,
            "attributes": attributes_to_json(self.attributes),
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> "Item":
        """Deserialize from a normalized JSON dict."""
        return cls(
            id=str(d["id"]),
            title=d.get("title") or "Untitled",
            last_modified=as_utc(d["last_modified"]),
            parent_id=d.get("parent_id") or None,
            content=d.get("content"),
            attributes=attributes_from_json(d.get("attributes")),
            url=d.get("url"),
        )

    def __str__(self) -> str:
        return f"{self.id}: {self.title}"


@dataclass(frozen=True)
class CacheEntry:
    """
    One persisted content record.

    Valid for an item iff ``source_last_modified >= item.last_modified``.
    ``cached_at`` only records when the write happened.
    """
    content: str
    source_last_modified: datetime
    cached_at: datetime
    attributes: Optional[dict[str, AttributeValue]] = None

    def is_valid_for(self, last_modified: datetime) -> bool:
        return self.source_last_modified >= as_utc(last_modified)
