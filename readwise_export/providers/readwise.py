"""Readwise API client: paginated highlight export and the save endpoint."""

from __future__ import annotations

import logging
import time
from datetime import datetime
from typing import TYPE_CHECKING, Any, Iterable, Iterator

import httpx

from readwise_export.providers.content_types import Book, ExportPage, Highlight
from readwise_export.providers.errors import (
    ReadwiseAuthError,
    ReadwiseConfigError,
    ReadwiseError,
    ReadwisePaginationLimitError,
    ReadwiseParseError,
    ReadwiseRateLimitError,
    ReadwiseRequestError,
)

if TYPE_CHECKING:
    from readwise_export.core.settings import Settings

__all__ = [
    "READWISE_BASE_URL",
    "ReadwiseAuthError",
    "ReadwiseClient",
    "ReadwiseConfigError",
    "ReadwiseError",
    "ReadwisePaginationLimitError",
    "ReadwiseParseError",
    "ReadwiseRateLimitError",
    "ReadwiseRequestError",
    "sort_highlights",
]

logger = logging.getLogger(__name__)

READWISE_BASE_URL = "https://readwise.io/api"
DEFAULT_TIMEOUT = 30.0
DEFAULT_MAX_PAGES = 1000


def sort_highlights(books: Iterable[Book]) -> list[Highlight]:
    """Flatten the highlights of all books and order them by highlighted_at.

    The sort is stable: highlights with the same timestamp keep the order in
    which they arrived. Highlights without a timestamp go last.
    """
    highlights = [hl for book in books for hl in book.highlights]

    def _key(hl: Highlight) -> tuple[bool, datetime | None]:
        ts = hl.highlighted_at_time
        return (ts is None, ts)

    return sorted(highlights, key=_key)


def _encode_ids(book_ids: Iterable[Any] | str | int | None) -> str | None:
    """Comma-join book ids, or None when there is nothing to filter on."""
    if book_ids is None:
        return None
    if isinstance(book_ids, (str, int)):
        book_ids = [book_ids]
    # dict keeps first-seen order while dropping duplicates
    unique = dict.fromkeys(str(book_id) for book_id in book_ids)
    return ",".join(unique) or None


class ReadwiseClient:
    """Client for the Readwise export (v2) and save (v3) endpoints."""

    def __init__(
        self,
        token: str,
        *,
        base_url: str = READWISE_BASE_URL,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.BaseTransport | None = None,
        max_pages: int | None = DEFAULT_MAX_PAGES,
        max_duration: float | None = None,
    ) -> None:
        if not token or not token.strip():
            raise ReadwiseConfigError("Readwise API token is required")
        if max_pages is not None and max_pages < 1:
            raise ReadwiseConfigError(f"max_pages must be positive, got {max_pages}")
        if max_duration is not None and max_duration <= 0:
            raise ReadwiseConfigError(f"max_duration must be positive, got {max_duration}")

        self._max_pages = max_pages
        self._max_duration = max_duration
        self._client = httpx.Client(
            base_url=base_url,
            headers={"Authorization": f"Token {token.strip()}"},
            timeout=timeout,
            transport=transport,
        )

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        transport: httpx.BaseTransport | None = None,
    ) -> ReadwiseClient:
        return cls(
            settings.readwise_api_token,
            base_url=settings.readwise_base_url,
            timeout=settings.readwise_timeout,
            transport=transport,
            max_pages=settings.max_pages,
            max_duration=settings.max_duration,
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "ReadwiseClient":
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def _request(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, str] | None = None,
        json: Any = None,
    ) -> httpx.Response:
        """Send a request, turning transport failures into ReadwiseRequestError.

        Status codes are left to the caller; nothing is retried.
        """
        try:
            return self._client.request(method, url, params=params, json=json)
        except httpx.HTTPError as e:
            raise ReadwiseRequestError(f"{method} {url} failed: {e}") from e

    def _check_write_status(self, resp: httpx.Response, action: str) -> None:
        if resp.status_code == 429:
            retry_after: int | None
            try:
                retry_after = int(resp.headers["Retry-After"])
            except (KeyError, ValueError):
                retry_after = None
            logger.warning(f"{action} rate limited (429), Retry-After: {retry_after}")
            if retry_after is None:
                raise ReadwiseRateLimitError("Rate limit exceeded", retry_after=None)
            raise ReadwiseRateLimitError(
                f"Rate limit exceeded, retry after {retry_after} seconds",
                retry_after=retry_after,
            )
        if resp.status_code == 401:
            raise ReadwiseAuthError("Invalid Readwise API token", status_code=401)
        if resp.status_code >= 400:
            raise ReadwiseRequestError(
                f"{action} request failed (HTTP {resp.status_code})",
                status_code=resp.status_code,
            )

    def validate_token(self) -> bool:
        """Check if the token is valid. Returns True if valid, raises ReadwiseAuthError otherwise."""
        resp = self._request("GET", "/v2/auth/")
        if resp.status_code == 204:
            return True
        if resp.status_code == 401:
            raise ReadwiseAuthError("Invalid Readwise API token", status_code=401)
        if not resp.is_success:
            raise ReadwiseRequestError(
                f"Token check failed (HTTP {resp.status_code})",
                status_code=resp.status_code,
            )
        return True

    # --- Export API (v2) ---

    def _export_page(
        self,
        *,
        updated_after: datetime | str | None = None,
        book_ids: Iterable[Any] | None = None,
        page_cursor: str | None = None,
    ) -> ExportPage:
        """Fetch and decode a single page of the export endpoint.

        Filters that are not set are left out of the query entirely, so an
        empty ``book_ids`` means "all books" rather than "no books".
        """
        params: dict[str, str] = {}
        if updated_after:
            params["updatedAfter"] = (
                updated_after.isoformat() if isinstance(updated_after, datetime) else updated_after
            )
        ids = _encode_ids(book_ids)
        if ids:
            params["ids"] = ids
        if page_cursor:
            params["pageCursor"] = page_cursor

        resp = self._request("GET", "/v2/export/", params=params)
        if resp.status_code == 401:
            raise ReadwiseAuthError("Invalid Readwise API token", status_code=401)
        if not resp.is_success:
            raise ReadwiseRequestError(
                f"Export request failed (HTTP {resp.status_code})",
                status_code=resp.status_code,
            )

        try:
            data = resp.json()
        except ValueError as e:
            raise ReadwiseParseError(f"Export response is not valid JSON: {e}") from e
        return ExportPage.from_api(data)

    def iter_export_pages(
        self,
        *,
        updated_after: datetime | str | None = None,
        book_ids: Iterable[Any] | None = None,
    ) -> Iterator[ExportPage]:
        """Yield export pages, following nextPageCursor until it runs out.

        The filters stay the same for every page; only the cursor advances.
        Raises ReadwisePaginationLimitError if the server keeps handing out
        cursors past ``max_pages`` or ``max_duration``.
        """
        started = time.monotonic()
        cursor: str | None = None
        pages = 0

        while True:
            page = self._export_page(
                updated_after=updated_after,
                book_ids=book_ids,
                page_cursor=cursor,
            )
            pages += 1
            logger.debug(
                f"Export page {pages}: {len(page.books)} books, "
                f"{'more to come' if page.next_cursor else 'last page'}"
            )
            yield page

            if page.next_cursor is None:
                return
            if self._max_pages is not None and pages >= self._max_pages:
                raise ReadwisePaginationLimitError(
                    f"Export still paginating after {pages} pages (max_pages={self._max_pages})",
                    pages_fetched=pages,
                )
            elapsed = time.monotonic() - started
            if self._max_duration is not None and elapsed > self._max_duration:
                raise ReadwisePaginationLimitError(
                    f"Export still paginating after {elapsed:.1f}s (max_duration={self._max_duration}s)",
                    pages_fetched=pages,
                )
            cursor = page.next_cursor

    def export_books(
        self,
        *,
        updated_after: datetime | str | None = None,
        book_ids: Iterable[Any] | None = None,
    ) -> list[Book]:
        """Fetch every page of the export and return all books in arrival order.

        A failure on any page aborts the whole export; books from earlier
        pages are not returned.
        """
        pages = self.iter_export_pages(updated_after=updated_after, book_ids=book_ids)
        return [book for page in pages for book in page.books]

    def export(
        self,
        *,
        updated_after: datetime | str | None = None,
        book_ids: Iterable[Any] | None = None,
    ) -> list[Highlight]:
        """Export all highlights, optionally filtered, ordered by highlighted_at.

        Args:
            updated_after: Only include books updated at or after this time
            book_ids: Restrict to these user_book_ids (empty = no restriction)

        Returns:
            Highlights of all matching books, oldest first
        """
        books = self.export_books(updated_after=updated_after, book_ids=book_ids)
        highlights = sort_highlights(books)
        logger.info(f"Exported {len(highlights)} highlights from {len(books)} books")
        return highlights

    # --- Write endpoints ---

    def save(self, params: dict[str, Any]) -> str:
        """Save a document to Reader (v3). Returns the raw response body.

        Raises:
            ReadwiseRateLimitError: On HTTP 429, with ``retry_after`` seconds
            ReadwiseRequestError: On any other HTTP error
        """
        resp = self._request("POST", "/v3/save/", json=params)
        self._check_write_status(resp, "Save")
        return resp.text

    def create_highlights(self, highlights: list[dict[str, Any]]) -> Any:
        """Create highlights through the v2 highlights endpoint."""
        if not highlights:
            raise ValueError("At least one highlight is required")
        resp = self._request("POST", "/v2/highlights/", json={"highlights": highlights})
        self._check_write_status(resp, "Create highlights")
        try:
            return resp.json()
        except ValueError as e:
            raise ReadwiseParseError(f"Create highlights response is not valid JSON: {e}") from e

    def create_highlight(self, highlight: dict[str, Any]) -> Any:
        return self.create_highlights([highlight])
