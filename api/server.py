"""FastAPI application serving catalog records to playout clients."""
from __future__ import annotations

import base64
import logging
import time
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, HTTPException, Query, Request, Response, status
from fastapi.responses import JSONResponse, PlainTextResponse

from scanner.engine import ReconcileEngine
from scanner.records import CRLF
from scanner.store import MediaStore

from .models import HealthResponse, MediaEntryModel, MediaListResponse

LOGGER = logging.getLogger("mediascanner.api")


def _reply(code: int, header: str, body: str = "") -> PlainTextResponse:
    return PlainTextResponse(f"{code} {header}{CRLF}{body}", status_code=code)


def _normalise_id(media_id: str) -> str:
    return media_id.strip("/").upper()


def create_app(
    store: MediaStore,
    engine: Optional[ReconcileEngine] = None,
    *,
    version: str = "dev",
) -> FastAPI:
    """Create a FastAPI application over *store*.

    *engine* is optional; without it the thumbnail generation routes answer
    503 because no worker is available to perform the re-scan.
    """

    app = FastAPI(
        title="Media Scanner",
        version=version,
        docs_url="/docs",
        openapi_url="/openapi.json",
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):  # type: ignore[override]
        start = time.perf_counter()
        response: Optional[Response] = None
        try:
            response = await call_next(request)
            return response
        finally:
            duration_ms = (time.perf_counter() - start) * 1000
            status_code = response.status_code if response is not None else 500
            LOGGER.debug(
                "%s %s -> %s (%.1f ms)",
                request.method,
                request.url.path,
                status_code,
                duration_ms,
            )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(_request: Request, exc: HTTPException):
        detail = exc.detail if isinstance(exc.detail, str) else str(exc.detail)
        return JSONResponse(status_code=exc.status_code, content={"error": detail})

    @app.get("/healthz", response_model=HealthResponse)
    def healthz() -> HealthResponse:
        return HealthResponse(
            version=version,
            time_utc=datetime.now(timezone.utc).isoformat(),
            entries=store.count(),
            queue_depth=engine.queue_depth if engine is not None else None,
        )

    # ------------------------------------------------------------------
    # Legacy record endpoints
    # ------------------------------------------------------------------
    @app.get("/cls", response_class=PlainTextResponse)
    def list_cinf() -> PlainTextResponse:
        return _reply(200, "CLS OK", "".join(store.list_cinf()) + CRLF)

    @app.get("/tls", response_class=PlainTextResponse)
    def list_tinf() -> PlainTextResponse:
        return _reply(200, "TLS OK", "".join(store.list_tinf()) + CRLF)

    @app.get("/cinf/{media_id:path}", response_class=PlainTextResponse)
    def cinf(media_id: str) -> PlainTextResponse:
        record = store.get_cinf(_normalise_id(media_id))
        if record is None:
            return _reply(404, "CINF ERROR")
        return _reply(201, "CINF OK", record)

    @app.get("/tinf/{media_id:path}", response_class=PlainTextResponse)
    def tinf(media_id: str) -> PlainTextResponse:
        record = store.get_tinf(_normalise_id(media_id))
        if record is None:
            return _reply(404, "TINF ERROR")
        return _reply(201, "TINF OK", record)

    @app.get("/thumbnail/generate", response_class=PlainTextResponse)
    def thumbnail_generate_all() -> PlainTextResponse:
        if engine is None:
            return _reply(503, "THUMBNAIL GENERATE_ALL ERROR")
        engine.request_rescan()
        return _reply(202, "THUMBNAIL GENERATE_ALL OK")

    @app.get("/thumbnail/generate/{media_id:path}", response_class=PlainTextResponse)
    def thumbnail_generate(media_id: str) -> PlainTextResponse:
        if engine is None:
            return _reply(503, "THUMBNAIL GENERATE ERROR")
        if not engine.request_rescan(_normalise_id(media_id)):
            return _reply(404, "THUMBNAIL GENERATE ERROR")
        return _reply(202, "THUMBNAIL GENERATE OK")

    @app.get("/thumbnail/{media_id:path}", response_class=PlainTextResponse)
    def thumbnail(media_id: str) -> PlainTextResponse:
        data = store.get_thumbnail(_normalise_id(media_id))
        if data is None:
            return _reply(404, "THUMBNAIL RETRIEVE ERROR")
        encoded = base64.b64encode(data).decode("ascii")
        return _reply(201, "THUMBNAIL RETRIEVE OK", encoded + CRLF)

    # ------------------------------------------------------------------
    # JSON endpoints
    # ------------------------------------------------------------------
    @app.get("/media", response_model=MediaListResponse)
    def media(
        start_after: Optional[str] = Query(None, description="Return entries with ids after this one."),
        limit: int = Query(256, ge=1, le=1000),
    ) -> MediaListResponse:
        entries, has_more = store.list_page(start_after, limit)
        return MediaListResponse(
            items=[MediaEntryModel.from_entry(entry) for entry in entries],
            next_cursor=entries[-1].id if has_more and entries else None,
        )

    @app.get("/media/info/{media_id:path}")
    def media_info(media_id: str):
        info = store.get_media_info(_normalise_id(media_id))
        if info is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="media info not found")
        return info

    return app


__all__ = ["create_app"]
