"""FastAPI application entry point."""
from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from comment_radar.config import Settings, get_settings
from comment_radar.integrations.scrapecreators import ScrapeCreatorsClient, UpstreamFailure
from comment_radar.logging import configure_logging, get_logger
from comment_radar.models.common import (
    IngestResponse,
    LoadMoreRequest,
    LoadMoreResponse,
    NarrativeRequest,
    NarrativeSummary,
)
from comment_radar.services.ingestion import IngestionService, InvalidQueryError
from comment_radar.services.summarizer import SummaryService

settings = get_settings()
configure_logging(settings.log_level, settings.log_json)
logger = get_logger(__name__)


class ServiceRegistry:
    def __init__(self, settings: Settings) -> None:
        self.upstream = ScrapeCreatorsClient(settings)
        self.ingestion = IngestionService(self.upstream, settings)
        self.summarizer = SummaryService(settings)

    async def aclose(self) -> None:
        await self.upstream.aclose()


def get_services() -> ServiceRegistry:
    return app.state.services  # type: ignore[attr-defined]


app = FastAPI(title="Comment Radar API", version="0.1.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
async def startup_event() -> None:
    logger.info("Starting application")
    app.state.services = ServiceRegistry(settings)  # type: ignore[attr-defined]


@app.on_event("shutdown")
async def shutdown_event() -> None:
    logger.info("Shutting down application")
    await app.state.services.aclose()  # type: ignore[attr-defined]


@app.exception_handler(InvalidQueryError)
async def invalid_query_handler(request: Request, exc: InvalidQueryError) -> JSONResponse:
    logger.info("Rejected request", path=request.url.path, error=str(exc))
    return JSONResponse(status_code=400, content={"success": False, "error": str(exc)})


def _error_status(status: Optional[int]) -> int:
    return status if status is not None and status >= 400 else 502


@app.get("/ingest")
async def ingest_comments(
    query: Optional[str] = None,
    query_type: Optional[str] = Query(None, alias="type"),
    latest_only: bool = Query(False, alias="latestOnly"),
    target_data: Optional[int] = Query(None, alias="targetData"),
    services: ServiceRegistry = Depends(get_services),
) -> JSONResponse:
    outcome = await services.ingestion.ingest(
        query,
        query_type,
        latest_only=latest_only,
        target_count=target_data,
    )
    response = IngestResponse(
        success=outcome.success,
        data=outcome.result,
        error=outcome.error,
        debug=outcome.debug or None,
    )
    status_code = _error_status(outcome.upstream_status) if outcome.upstream_status else 200
    return JSONResponse(status_code=status_code, content=response.model_dump(mode="json", by_alias=True))


@app.post("/comments/more")
async def load_more_comments(
    payload: LoadMoreRequest,
    services: ServiceRegistry = Depends(get_services),
) -> JSONResponse:
    try:
        page = await services.ingestion.load_more(payload.video_url, payload.cursor)
    except UpstreamFailure as exc:
        logger.warning("Load more failed", video_url=payload.video_url, status=exc.status)
        response = LoadMoreResponse(success=False, error=f"API error: {exc.raw_body or exc}")
        return JSONResponse(
            status_code=_error_status(exc.status),
            content=response.model_dump(mode="json", by_alias=True),
        )
    response = LoadMoreResponse(success=True, data=page)
    return JSONResponse(content=response.model_dump(mode="json", by_alias=True))


@app.post("/narratives", response_model=NarrativeSummary)
async def analyze_narratives(
    payload: NarrativeRequest,
    services: ServiceRegistry = Depends(get_services),
) -> NarrativeSummary:
    if not payload.comments:
        raise HTTPException(status_code=400, detail="No comments provided")
    return await services.summarizer.summarize_narratives(payload.comments)


@app.get("/health")
async def healthcheck() -> Dict[str, Any]:
    return {"status": "ok"}


def get_app() -> FastAPI:
    return app
