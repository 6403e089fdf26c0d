"""apkg-import API - FastAPI application."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from packages.apkg.importer import ApkgImporter
from packages.apkg.models import ImportResult
from packages.common.config import get_settings
from packages.common.exceptions import DeckImportError
from packages.common.logging import configure_logging, get_logger

logger = get_logger(module=__name__)

VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    """Application lifespan handler for startup/shutdown."""
    settings = get_settings()
    configure_logging(debug=settings.debug, json_output=settings.json_logs or not settings.debug)
    app.state.settings = settings
    yield


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="apkg-import",
        description="Validates Anki .apkg packages and converts them into text-only decks",
        version=VERSION,
        lifespan=lifespan,
        debug=settings.debug,
    )

    @app.exception_handler(DeckImportError)
    async def deck_import_error_handler(_request: Request, exc: DeckImportError) -> JSONResponse:
        """Map every import failure kind to a structured 422 response."""
        return JSONResponse(status_code=422, content=exc.to_dict())

    @app.get("/health", response_class=JSONResponse)
    async def health() -> dict[str, Any]:
        """Health check endpoint."""
        return {
            "status": "healthy",
            "version": VERSION,
            "limits": {
                "max_archive_bytes": settings.max_archive_bytes,
                "preview_limit": settings.preview_limit,
            },
        }

    @app.post("/import", response_model=ImportResult)
    async def import_package(
        request: Request,
        filename: str | None = Query(default=None, description="Declared file name"),
        previews: int | None = Query(default=None, ge=0, description="Card previews to render"),
    ) -> ImportResult:
        """Import a package sent as the raw request body.

        Args:
            request: Request whose body is the ``.apkg`` bytes.
            filename: Name of the uploaded file, logged for diagnostics.
            previews: Number of card previews; defaults to the configured limit.

        Returns:
            The normalized deck.
        """
        declared_length = request.headers.get("content-length")
        if declared_length and declared_length.isdigit() and int(declared_length) > settings.max_archive_bytes:
            raise HTTPException(status_code=413, detail="Package exceeds the upload size limit")

        data = await request.body()
        if len(data) > settings.max_archive_bytes:
            raise HTTPException(status_code=413, detail="Package exceeds the upload size limit")
        if not data:
            raise HTTPException(status_code=400, detail="Request body is empty")

        logger.info(
            "import_requested",
            filename=filename,
            content_type=request.headers.get("content-type"),
            size=len(data),
        )
        importer = ApkgImporter(settings)
        return await run_in_threadpool(importer.import_bytes, data, filename, preview_limit=previews)

    return app


app = create_app()
