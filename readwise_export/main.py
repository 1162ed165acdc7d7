from __future__ import annotations

import logging
from dataclasses import asdict
from datetime import datetime
from typing import Any, Iterator

from fastapi import Body, Depends, FastAPI, Query, Request
from fastapi.responses import JSONResponse, Response

from readwise_export.core.settings import Settings
from readwise_export.providers.readwise import (
    ReadwiseAuthError,
    ReadwiseClient,
    ReadwiseConfigError,
    ReadwiseError,
    ReadwisePaginationLimitError,
    ReadwiseRateLimitError,
)

logger = logging.getLogger(__name__)

app = FastAPI(title="readwise-export")


@app.on_event("startup")
def _startup() -> None:
    s = Settings.from_env()
    logging.basicConfig(
        level=s.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def get_client() -> Iterator[ReadwiseClient]:
    """Per-request Readwise client built from the environment."""
    with ReadwiseClient.from_settings(Settings.from_env()) as client:
        yield client


@app.exception_handler(ReadwiseError)
async def _readwise_error(request: Request, exc: ReadwiseError) -> JSONResponse:
    headers: dict[str, str] = {}
    if isinstance(exc, ReadwiseConfigError):
        status = 500
    elif isinstance(exc, ReadwiseAuthError):
        status = 401
    elif isinstance(exc, ReadwiseRateLimitError):
        status = 429
        if exc.retry_after is not None:
            headers["Retry-After"] = str(exc.retry_after)
    elif isinstance(exc, ReadwisePaginationLimitError):
        status = 504
    else:
        # ReadwiseParseError and ReadwiseRequestError: upstream misbehaved
        status = 502

    if status >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
    return JSONResponse({"error": str(exc)}, status_code=status, headers=headers)


@app.get("/api/export")
def api_export(
    updated_after: datetime | None = None,
    book_ids: list[str] = Query(default=[]),
    client: ReadwiseClient = Depends(get_client),
):
    """Export all highlights, oldest first.

    Args:
        updated_after: Only books updated after this timestamp
        book_ids: Repeatable user_book_id filter
    """
    highlights = client.export(updated_after=updated_after, book_ids=book_ids)
    return {
        "count": len(highlights),
        "highlights": [asdict(hl) for hl in highlights],
    }


@app.post("/api/save")
def api_save(
    payload: dict[str, Any] = Body(...),
    client: ReadwiseClient = Depends(get_client),
):
    """Save a document to Reader; the upstream body is passed through as-is."""
    raw = client.save(payload)
    return Response(content=raw, media_type="application/json")


@app.post("/api/highlights")
def api_create_highlights(
    payload: dict[str, Any] = Body(...),
    client: ReadwiseClient = Depends(get_client),
):
    highlights = payload.get("highlights")
    if not isinstance(highlights, list) or not highlights:
        return JSONResponse({"error": "'highlights' must be a non-empty list"}, status_code=422)
    return client.create_highlights(highlights)


@app.get("/api/auth")
def api_auth(client: ReadwiseClient = Depends(get_client)):
    return {"valid": client.validate_token()}
