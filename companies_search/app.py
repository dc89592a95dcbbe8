"""
UK Companies House Filtered Search API - FastAPI Application
"""
import json
import logging
import queue
import threading
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from functools import lru_cache
from typing import AsyncGenerator, Literal, Optional

from fastapi import Depends, FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response, StreamingResponse
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from companies_search.config import CORS_ORIGINS
from companies_search.db import create_db_engine, init_db
from companies_search.errors import SearchCancelled, SearchError
from companies_search.models import SearchFilters, SearchResult
from companies_search.services.cache import DurableCache, ResultCache
from companies_search.services.companies_house import CompaniesHouseAPI
from companies_search.services.export_service import export_to_csv, export_to_excel, export_to_json
from companies_search.services.preset_store import PresetStore
from companies_search.services.search_engine import FilterResolutionEngine
from companies_search.services.snapshot_store import SnapshotStore
from companies_search.utils.sic_codes import SIC_CODES, get_all_sic_codes, search_sic_codes
from companies_search.utils.validation import ensure_valid

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def purge_expired_data(snapshots: SnapshotStore, cache: ResultCache) -> None:
    """Drop expired snapshots and durable cache entries."""
    try:
        snapshot_count = snapshots.purge_expired()
    except SQLAlchemyError as e:
        logger.warning(f"Failed to purge expired snapshots: {e}")
        snapshot_count = 0
    cache_count = cache.purge_expired()
    logger.info(f"Purged {snapshot_count} expired snapshots and {cache_count} expired cache entries")


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    purge_expired_data(get_snapshot_store(), get_result_cache())
    yield


# Initialize FastAPI app
app = FastAPI(
    title="UK Companies House Filtered Search",
    description="Filtered, paginated search over Companies House with export snapshots",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Dependencies

@lru_cache(maxsize=1)
def get_session_factory() -> sessionmaker:
    return init_db(create_db_engine())


@lru_cache(maxsize=1)
def get_api_client() -> CompaniesHouseAPI:
    return CompaniesHouseAPI()


@lru_cache(maxsize=1)
def get_result_cache() -> ResultCache:
    return ResultCache(durable=DurableCache(get_session_factory()))


@lru_cache(maxsize=1)
def get_snapshot_store() -> SnapshotStore:
    return SnapshotStore(get_session_factory())


@lru_cache(maxsize=1)
def get_preset_store() -> PresetStore:
    return PresetStore(get_session_factory())


def get_engine(
    api: CompaniesHouseAPI = Depends(get_api_client),
    cache: ResultCache = Depends(get_result_cache),
    snapshots: SnapshotStore = Depends(get_snapshot_store),
) -> FilterResolutionEngine:
    return FilterResolutionEngine(api, cache=cache, snapshots=snapshots)


# Request/Response models
class SearchRequest(BaseModel):
    filters: SearchFilters
    page: int = 1
    page_size: int = 50


class PresetRequest(BaseModel):
    name: str
    filters: SearchFilters


def _search_response(result: SearchResult) -> dict:
    return {
        "items": [item.model_dump(mode="json") for item in result.items],
        "page": result.page,
        "page_size": result.page_size,
        "total_estimated": result.total,
        "result_token": result.token,
        "truncated": result.truncated,
        "strategy": result.strategy.value,
    }


def _error_payload(exc: SearchError, status_code: int) -> dict:
    return {
        "kind": exc.kind,
        "message": exc.message,
        "status_code": status_code,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


def _format_sse_event(event_type: str, data: dict) -> str:
    """Format data as an SSE event string."""
    return f"event: {event_type}\ndata: {json.dumps(data, default=str)}\n\n"


@app.exception_handler(SearchError)
async def search_error_handler(request: Request, exc: SearchError):
    status_code = exc.status_code if 400 <= exc.status_code < 600 else 500
    if status_code >= 500:
        logger.error(f"{exc.kind} on {request.method} {request.url.path}: {exc.message}")
    return JSONResponse(status_code=status_code, content={"error": _error_payload(exc, status_code)})


@app.get("/api")
async def api_root():
    """API info endpoint"""
    return {"message": "UK Companies House Filtered Search API", "version": "1.0.0"}


@app.get("/api/sic-codes")
async def get_sic_codes(q: Optional[str] = None):
    """SIC codes for the autocomplete; all codes when no query is given"""
    if not q:
        return get_all_sic_codes()
    return [
        {"code": code, "description": SIC_CODES[code][0] if code in SIC_CODES else code}
        for code in search_sic_codes(q)
    ]


@app.post("/api/search")
def search_companies(request: SearchRequest, engine: FilterResolutionEngine = Depends(get_engine)):
    """
    Search companies with filters and return one page plus an export token.
    Officer birth-year searches can be slow; use /api/search/stream for progress.
    """
    logger.info(f"Search request - filters: {request.filters.model_dump(exclude_defaults=True)}")
    result = engine.resolve(request.filters, request.page, request.page_size)
    return _search_response(result)


@app.post("/api/search/stream")
def search_companies_stream(request: SearchRequest, engine: FilterResolutionEngine = Depends(get_engine)):
    """
    Same as /api/search, answered as Server-Sent Events:
    `progress` events with current/total, then one `result` or `error` event.
    Closing the connection cancels the search.
    """
    ensure_valid(request.filters, request.page, request.page_size)

    events: "queue.Queue[Optional[tuple]]" = queue.Queue()
    cancel_event = threading.Event()

    def on_progress(current: int, total: int) -> None:
        events.put(("progress", {"current": current, "total": total}))

    def run_search() -> None:
        try:
            result = engine.resolve(
                request.filters,
                request.page,
                request.page_size,
                on_progress=on_progress,
                cancel_event=cancel_event,
            )
            events.put(("result", _search_response(result)))
        except SearchCancelled:
            logger.info("Streaming search cancelled by client")
        except SearchError as e:
            events.put(("error", _error_payload(e, e.status_code)))
        except Exception as e:
            logger.exception("Streaming search failed")
            events.put(("error", {"kind": "InternalError", "message": str(e), "status_code": 500}))
        finally:
            events.put(None)

    threading.Thread(target=run_search, name="search-stream", daemon=True).start()

    def event_generator():
        try:
            while True:
                event = events.get()
                if event is None:
                    break
                yield _format_sse_event(*event)
        finally:
            # Runs on completion and on client disconnect
            cancel_event.set()

    return StreamingResponse(event_generator(), media_type="text/event-stream")


@app.get("/api/export")
def export_results(
    token: str = Query(..., min_length=1),
    format: Literal["csv", "json", "excel"] = "csv",
    snapshots: SnapshotStore = Depends(get_snapshot_store),
):
    """Export the full result set of an earlier search by its token"""
    companies = snapshots.load(token)
    stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")

    if format == "json":
        data, media_type, ext = export_to_json(companies), "application/json", "json"
    elif format == "excel":
        data = export_to_excel(companies)
        media_type = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
        ext = "xlsx"
    else:
        data, media_type, ext = export_to_csv(companies), "text/csv", "csv"

    return StreamingResponse(
        data,
        media_type=media_type,
        headers={
            "Content-Disposition": f"attachment; filename=companies_export_{stamp}.{ext}"
        }
    )


@app.get("/api/presets")
def list_presets(presets: PresetStore = Depends(get_preset_store)):
    """Saved filter presets, newest first"""
    return {"presets": [preset.model_dump(mode="json") for preset in presets.list()]}


@app.post("/api/presets", status_code=201)
def create_preset(request: PresetRequest, presets: PresetStore = Depends(get_preset_store)):
    preset = presets.create(request.name, request.filters)
    return {"preset": preset.model_dump(mode="json")}


@app.delete("/api/presets/{preset_id}", status_code=204)
def delete_preset(preset_id: str, presets: PresetStore = Depends(get_preset_store)):
    presets.delete(preset_id)
    return Response(status_code=204)


@app.get("/api/cache/stats")
def cache_stats(cache: ResultCache = Depends(get_result_cache)):
    return cache.stats()


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {"status": "healthy"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
