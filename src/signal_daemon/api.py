"""REST API server for Signal daemon."""

import time
from typing import Optional

from fastapi import Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from rich.console import Console

from .api_errors import (
    APIError,
    CategoryError,
    InvalidDateError,
    NotFoundError,
    ServerError,
    ServiceNotConfiguredError,
)
from .api_models import (
    APIResponse,
    ArticleListResponse,
    ArticleResponse,
    SourceResponse,
)
from .archive import InsightArchive
from .dates import parse_timestamp
from .fetchers import RSSFetcher
from .insight_cache import InsightCache
from .models import Category
from .observability import log as obs_log
from .orchestrator import SignalOrchestrator
from .storage import Storage

console = Console()

app = FastAPI(
    title="Signal API",
    description="Articles and AI-generated insights for mortgage and product news",
    version="1.0.0",
)


def configure_app(
    storage: Storage,
    insight_cache: InsightCache,
    archive: InsightArchive,
    fetcher: RSSFetcher,
    orchestrator: Optional[SignalOrchestrator] = None,
) -> FastAPI:
    """Attach the daemon's shared services to the app.

    The in-memory insight tier lives in insight_cache, so every request must
    see the same instance.
    """
    app.state.storage = storage
    app.state.insight_cache = insight_cache
    app.state.archive = archive
    app.state.fetcher = fetcher
    app.state.orchestrator = orchestrator
    return app


@app.middleware("http")
async def log_requests(request: Request, call_next) -> Response:
    """Log API requests in same style as daemon output."""
    if not request.url.path.startswith("/api/"):
        return await call_next(request)

    start_time = time.time()
    response = await call_next(request)
    duration = (time.time() - start_time) * 1000

    client_ip = request.client.host if request.client else "unknown"
    query_str = f"?{request.url.query}" if request.url.query else ""
    console.print(
        f"[dim]   📡 API: {request.method} {request.url.path}{query_str} from {client_ip} → {response.status_code} ({duration:.0f}ms)[/dim]"
    )

    obs_log(
        "api.request",
        method=request.method,
        path=request.url.path,
        query=request.url.query if request.url.query else None,
        client_ip=client_ip,
        status_code=response.status_code,
        duration_ms=int(duration),
    )

    return response


@app.exception_handler(APIError)
async def api_error_handler(request: Request, exc: APIError) -> JSONResponse:
    """Format APIError as {"success": false, "message": "...", "data": null}."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "message": exc.message, "data": None},
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Convert FastAPI's {"detail": [...]} errors to the standard envelope."""
    first_error = exc.errors()[0]
    field = " -> ".join(str(loc) for loc in first_error["loc"])

    return JSONResponse(
        status_code=422,
        content={
            "success": False,
            "message": f"Validation error in {field}: {first_error['msg']}",
            "data": None,
        },
    )


def _service(request: Request, name: str):
    service = getattr(request.app.state, name, None)
    if service is None:
        raise ServiceNotConfiguredError(name)
    return service


def get_storage(request: Request) -> Storage:
    return _service(request, "storage")


def get_insight_cache(request: Request) -> InsightCache:
    return _service(request, "insight_cache")


def get_archive(request: Request) -> InsightArchive:
    return _service(request, "archive")


def get_fetcher(request: Request) -> RSSFetcher:
    return _service(request, "fetcher")


app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:*", "http://127.0.0.1:*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _parse_category(value: Optional[str], required: bool = False) -> Optional[Category]:
    """Validate a category query parameter.

    Raises:
        CategoryError: If the value is missing (when required) or unknown
    """
    if value is None or value == "":
        if required:
            raise CategoryError()
        return None
    try:
        return Category.parse(value)
    except ValueError:
        raise CategoryError(value)


def _check_date(name: str, value: Optional[str]) -> Optional[str]:
    if value and parse_timestamp(value) is None:
        raise InvalidDateError(name, value)
    return value


@app.get("/health")
def health_check(
    request: Request, storage: Storage = Depends(get_storage)
) -> dict:
    """Health check endpoint that verifies database connectivity."""
    try:
        articles_count = storage.count_articles()
        orchestrator = getattr(request.app.state, "orchestrator", None)
        return {
            "success": True,
            "message": "Service healthy",
            "data": {
                "service": "signal-api",
                "database": "connected",
                "articles": articles_count,
                "last_run": orchestrator.last_run if orchestrator else None,
            },
        }
    except Exception as e:
        raise ServerError(f"Health check failed: {str(e)}")


@app.get("/api/articles")
def get_articles(
    source: Optional[str] = Query(None, description="Exact source name"),
    category: Optional[str] = Query(None, description="Category ('all' = any)"),
    start_date: Optional[str] = Query(None, description="Earliest pubDate"),
    end_date: Optional[str] = Query(None, description="Latest pubDate (whole day)"),
    keyword: Optional[str] = Query(None, description="Title/summary substring"),
    limit: Optional[int] = Query(None, ge=1, le=1000),
    storage: Storage = Depends(get_storage),
) -> dict:
    """Get articles matching all supplied filters, newest first."""
    parsed_category = _parse_category(category)
    _check_date("start_date", start_date)
    _check_date("end_date", end_date)

    articles = storage.query_articles(
        source=source,
        category=parsed_category.value if parsed_category else None,
        start_date=start_date,
        end_date=end_date,
        keyword=keyword,
        limit=limit,
    )

    data = ArticleListResponse(
        items=[ArticleResponse.from_article(article) for article in articles],
        total=len(articles),
        filters_applied={
            "source": source,
            "category": parsed_category.value if parsed_category else None,
            "start_date": start_date,
            "end_date": end_date,
            "keyword": keyword,
            "limit": limit,
        },
    )
    return APIResponse(
        success=True,
        message=f"Retrieved {len(articles)} articles",
        data=data.model_dump(mode="json"),
    ).model_dump()


@app.get("/api/sources")
def get_sources(fetcher: RSSFetcher = Depends(get_fetcher)) -> dict:
    """Get all configured sources."""
    sources = [SourceResponse(**source) for source in fetcher.list_sources()]
    return APIResponse(
        success=True,
        message=f"Retrieved {len(sources)} sources",
        data={
            "sources": [source.model_dump() for source in sources],
            "total": len(sources),
        },
    ).model_dump()


@app.get("/api/insights")
def get_insights(
    category: Optional[str] = Query(None, description="Category to analyze"),
    refresh: bool = Query(False, description="Regenerate even if cached today"),
    storage: Storage = Depends(get_storage),
    insight_cache: InsightCache = Depends(get_insight_cache),
) -> dict:
    """Get today's insights for a category, generating them on a cache miss.

    The article slice is the store's articles for the category (every
    category for "all").
    """
    parsed_category = _parse_category(category, required=True)

    try:
        articles = storage.query_articles(category=parsed_category.value)
        insight_set = insight_cache.get_or_generate(
            parsed_category, articles, force=refresh
        )
    except APIError:
        raise
    except Exception as e:
        raise ServerError(f"Failed to get insights: {str(e)}")

    return insight_set.to_dict()


@app.post("/api/refresh")
def refresh_articles(
    storage: Storage = Depends(get_storage),
    fetcher: RSSFetcher = Depends(get_fetcher),
    insight_cache: InsightCache = Depends(get_insight_cache),
) -> dict:
    """Fetch all feeds now and invalidate the in-memory insights."""
    try:
        articles = fetcher.fetch_all()
    except Exception as e:
        raise ServerError(f"Failed to refresh articles: {str(e)}")

    new_count = 0
    errors = 0
    for article in articles:
        try:
            _, is_new = storage.upsert_article(article)
            new_count += int(is_new)
        except Exception as e:
            errors += 1
            console.print(f"[red]Failed to store '{article.title}': {e}[/red]")

    # Stored articles changed even if some upserts failed
    insight_cache.clear_insights()

    return APIResponse(
        success=True,
        message=f"Fetched {len(articles)} articles ({new_count} new, {errors} failed)",
        data={"fetched": len(articles), "new": new_count, "errors": errors},
    ).model_dump()


@app.get("/api/insights/archive")
def browse_archive(
    category: Optional[str] = Query(None),
    start_date: Optional[str] = Query(None, description="Earliest generation date"),
    end_date: Optional[str] = Query(None, description="Latest generation date"),
    limit: int = Query(50, ge=1, le=500),
    archive: InsightArchive = Depends(get_archive),
) -> dict:
    """List archived insight records newest first."""
    parsed_category = _parse_category(category)
    _check_date("start_date", start_date)
    _check_date("end_date", end_date)

    records = archive.browse(
        category=parsed_category.value if parsed_category else None,
        start_date=start_date,
        end_date=end_date,
        limit=limit,
    )
    return APIResponse(
        success=True,
        message=f"Retrieved {len(records)} archived insight records",
        data={"items": [record.to_dict() for record in records], "total": len(records)},
    ).model_dump()


@app.get("/api/insights/search")
def search_archive(
    q: str = Query(..., min_length=1, description="Keyword to search for"),
    category: Optional[str] = Query(None),
    limit: int = Query(50, ge=1, le=500),
    archive: InsightArchive = Depends(get_archive),
) -> dict:
    """Case-insensitive keyword search over archived insights."""
    parsed_category = _parse_category(category)

    records = archive.search(
        q, category=parsed_category.value if parsed_category else None, limit=limit
    )
    return APIResponse(
        success=True,
        message=f"Found {len(records)} archived insight records matching '{q}'",
        data={
            "items": [record.to_dict() for record in records],
            "total": len(records),
            "query": q,
        },
    ).model_dump()


@app.get("/api/insights/archive/{record_id}")
def get_archived_insights(
    record_id: str, archive: InsightArchive = Depends(get_archive)
) -> dict:
    """Get one archived insight record."""
    record = archive.get_by_id(record_id)
    if record is None:
        raise NotFoundError("Insight record", record_id)
    return record.to_dict()
