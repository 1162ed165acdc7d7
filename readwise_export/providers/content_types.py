"""Books and highlights as returned by the Readwise export API."""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from readwise_export.providers.errors import ReadwiseParseError

BOOK_FIELDS = (
    "asin",
    "author",
    "category",
    "cover_image_url",
    "readable_title",
    "readwise_url",
    "source",
    "source_url",
    "title",
    "unique_url",
)

HIGHLIGHT_FIELDS = (
    "color",
    "created_at",
    "end_location",
    "external_id",
    "highlighted_at",
    "is_discard",
    "is_favorite",
    "location",
    "location_type",
    "note",
    "readwise_url",
    "tags",
    "text",
    "updated_at",
    "url",
)


def normalize_id(value: Any, field: str = "id") -> str:
    """Return the string form of a remote identifier.

    The API is not consistent about sending ids as numbers or strings, so
    both are coerced to ``str`` to make ``42`` and ``"42"`` join equally.
    """
    # bool is an int subclass; a flag is never a valid id
    if isinstance(value, bool) or value is None:
        raise ReadwiseParseError(f"Invalid identifier for '{field}': {value!r}")
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if not math.isfinite(value) or not value.is_integer():
            raise ReadwiseParseError(f"Invalid identifier for '{field}': {value!r}")
        return str(int(value))
    if isinstance(value, str):
        if not value.strip():
            raise ReadwiseParseError(f"Empty identifier for '{field}'")
        return value
    raise ReadwiseParseError(f"Invalid identifier for '{field}': {value!r}")


def parse_timestamp(value: Any, field: str = "highlighted_at") -> datetime | None:
    """Convert an API timestamp to an aware datetime (UTC if no offset given)."""
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, bool):
        raise ReadwiseParseError(f"Invalid timestamp for '{field}': {value!r}")
    elif isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value, tz=timezone.utc)
        except (OverflowError, OSError, ValueError) as e:
            raise ReadwiseParseError(f"Invalid timestamp for '{field}': {value!r}") from e
    elif isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError as e:
            raise ReadwiseParseError(f"Invalid timestamp for '{field}': {value!r}") from e
    else:
        raise ReadwiseParseError(f"Invalid timestamp for '{field}': {value!r}")

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _require_object(data: Any, what: str) -> dict[str, Any]:
    if not isinstance(data, dict):
        raise ReadwiseParseError(f"Expected {what} object, got {type(data).__name__}")
    return data


@dataclass(frozen=True)
class Highlight:
    """A single highlighted passage belonging to a book."""

    book_id: str
    highlight_id: str
    color: str | None = None
    created_at: str | None = None
    end_location: int | None = None
    external_id: str | None = None
    highlighted_at: Any = None
    is_discard: bool | None = None
    is_favorite: bool | None = None
    location: int | None = None
    location_type: str | None = None
    note: str | None = None
    readwise_url: str | None = None
    tags: list[dict[str, Any]] | None = None
    text: str | None = None
    updated_at: str | None = None
    url: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "book_id", normalize_id(self.book_id, "book_id"))
        object.__setattr__(self, "highlight_id", normalize_id(self.highlight_id, "id"))

    @property
    def highlighted_at_time(self) -> datetime | None:
        """Sort key for ordering highlights chronologically."""
        return parse_timestamp(self.highlighted_at)

    @classmethod
    def from_api(cls, data: Any) -> Highlight:
        """Decode one entry of a book's ``highlights`` array."""
        hl = _require_object(data, "highlight")
        for key in ("id", "book_id"):
            if key not in hl:
                raise ReadwiseParseError(f"Highlight is missing '{key}'")
        # Reject unparseable timestamps here rather than at sort time
        parse_timestamp(hl.get("highlighted_at"))

        return cls(
            book_id=hl["book_id"],
            highlight_id=hl["id"],
            **{name: hl.get(name) for name in HIGHLIGHT_FIELDS},
        )


@dataclass(frozen=True)
class Book:
    """A source (book, article, tweet, podcast) and its highlights."""

    book_id: str
    asin: str | None = None
    author: str | None = None
    category: str | None = None
    cover_image_url: str | None = None
    readable_title: str | None = None
    readwise_url: str | None = None
    source: str | None = None
    source_url: str | None = None
    tags: list[dict[str, Any]] | None = None
    title: str | None = None
    unique_url: str | None = None
    highlights: tuple[Highlight, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "book_id", normalize_id(self.book_id, "user_book_id"))
        object.__setattr__(self, "highlights", tuple(self.highlights))

    @classmethod
    def from_api(cls, data: Any) -> Book:
        """Decode one entry of the export ``results`` array."""
        book = _require_object(data, "book")
        if "user_book_id" not in book:
            raise ReadwiseParseError("Book is missing 'user_book_id'")
        raw_highlights = book.get("highlights")
        if not isinstance(raw_highlights, list):
            raise ReadwiseParseError(
                f"Book {book['user_book_id']!r} has no 'highlights' list"
            )

        return cls(
            book_id=book["user_book_id"],
            tags=book.get("book_tags"),
            highlights=tuple(Highlight.from_api(hl) for hl in raw_highlights),
            **{name: book.get(name) for name in BOOK_FIELDS},
        )


@dataclass(frozen=True)
class ExportPage:
    """One response of the export endpoint."""

    books: tuple[Book, ...]
    next_cursor: str | None = None

    @classmethod
    def from_api(cls, data: Any) -> ExportPage:
        body = _require_object(data, "response")
        results = body.get("results")
        if not isinstance(results, list):
            raise ReadwiseParseError("Export response has no 'results' list")

        next_cursor = body.get("nextPageCursor")
        if next_cursor is not None and not isinstance(next_cursor, str):
            raise ReadwiseParseError(f"Invalid 'nextPageCursor': {next_cursor!r}")

        return cls(
            books=tuple(Book.from_api(book) for book in results),
            next_cursor=next_cursor or None,
        )
