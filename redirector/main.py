import logging
import random
from pathlib import Path
from typing import Optional, Sequence, Tuple

from fastapi import Depends, FastAPI, HTTPException, Request, status
from fastapi.responses import PlainTextResponse, RedirectResponse, Response
from fastapi.templating import Jinja2Templates
from jinja2 import TemplateError
from starlette.exceptions import HTTPException as StarletteHTTPException

from redirector import __version__
from redirector.config import Settings
from redirector.exceptions import StatsPersistenceError
from redirector.models import PathRegistry, StatsStore
from redirector.redirect import SAVE_ERROR_MESSAGE, KeywordFilter, Outcome, RedirectEngine
from redirector.schemas import ReservedPaths
from redirector.storage import ensure_data_dir

logger = logging.getLogger(__name__)

ALL_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]
VIEW_METHODS = ("GET", "HEAD")
RESET_METHODS = ("POST",)

templates = Jinja2Templates(directory=str(Path(__file__).parent / "templates"))


def get_store(request: Request) -> StatsStore:
    return request.app.state.store


def get_reserved(request: Request) -> ReservedPaths:
    return request.app.state.reserved


def get_engine(request: Request) -> RedirectEngine:
    return request.app.state.engine


def method_not_allowed(allowed: Sequence[str]) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_405_METHOD_NOT_ALLOWED,
        detail="Method not allowed",
        headers={"Allow": ", ".join(allowed)},
    )


def require_view_method(request: Request) -> None:
    if request.method not in VIEW_METHODS:
        raise method_not_allowed(VIEW_METHODS)


def reserved_methods(reserved: ReservedPaths, path: str) -> Optional[Tuple[str, ...]]:
    """Methods a reserved path answers, or None for any other path."""
    if path in (f"/{reserved.stats_path}", f"/{reserved.stats_json_path}"):
        return VIEW_METHODS
    if path == f"/{reserved.reset_path}":
        return RESET_METHODS
    return None


def stats_html(
    request: Request,
    store: StatsStore = Depends(get_store),
    reserved: ReservedPaths = Depends(get_reserved),
):
    """
    Renders the counters as an HTML page with a reset button.
    """
    require_view_method(request)
    view = store.snapshot()
    try:
        return templates.TemplateResponse(
            request,
            "stats.html",
            {
                "total_redirects": view.total_redirects,
                "start_time": view.start_time,
                "rows": sorted(view.paths.items()),
                "reset_url": f"/{reserved.reset_path}",
            },
        )
    except TemplateError as e:
        logger.error(f"Error rendering HTML stats: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Error rendering statistics"
        )


def stats_json(request: Request, store: StatsStore = Depends(get_store)):
    """
    Returns the counters as indented JSON.
    """
    require_view_method(request)
    return Response(content=store.snapshot().model_dump_json(indent=2), media_type="application/json")


def reset_stats(
    request: Request,
    store: StatsStore = Depends(get_store),
    reserved: ReservedPaths = Depends(get_reserved),
):
    """
    Clears all counters and sends the caller back to the HTML view.
    Only POST is accepted.
    """
    if request.method not in RESET_METHODS:
        raise method_not_allowed(RESET_METHODS)
    store.reset()
    logger.info("Statistics reset")
    return RedirectResponse(url=f"/{reserved.stats_path}", status_code=status.HTTP_303_SEE_OTHER)


def redirect_request(request: Request):
    """
    Forwards any other request to the base URL and counts it.

    Accepts every method. Path and query are read from the ASGI scope;
    `request.url` splits the decoded path at an encoded `?` or `#`.
    """
    path = request.scope["path"]
    allowed = reserved_methods(get_reserved(request), path)
    if allowed is not None:
        raise method_not_allowed(allowed)

    query = request.scope["query_string"].decode("latin-1")
    result = get_engine(request).handle(path, query)
    if result.outcome is not Outcome.REDIRECT:
        raise HTTPException(status_code=result.status_code, detail=result.message)
    return RedirectResponse(url=result.location, status_code=result.status_code)


async def plain_text_http_exception_handler(request: Request, exc: StarletteHTTPException):
    return PlainTextResponse(
        str(exc.detail),
        status_code=exc.status_code,
        headers=getattr(exc, "headers", None),
    )


async def persistence_exception_handler(request: Request, exc: StatsPersistenceError):
    return PlainTextResponse(SAVE_ERROR_MESSAGE, status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)


def create_app(store: StatsStore, reserved: ReservedPaths, engine: RedirectEngine) -> FastAPI:
    """
    Wires the reserved endpoints and the catch-all redirect onto a new app.
    Reserved routes are registered first so they never reach the redirect.
    """
    app = FastAPI(
        title="Redirector",
        description="Redirects every request to a base URL and counts redirects per path",
        version=__version__,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    app.state.store = store
    app.state.reserved = reserved
    app.state.engine = engine

    app.add_exception_handler(StarletteHTTPException, plain_text_http_exception_handler)
    app.add_exception_handler(StatsPersistenceError, persistence_exception_handler)

    app.add_api_route(f"/{reserved.stats_path}", stats_html, methods=ALL_METHODS, include_in_schema=False)
    app.add_api_route(f"/{reserved.stats_json_path}", stats_json, methods=ALL_METHODS, include_in_schema=False)
    app.add_api_route(f"/{reserved.reset_path}", reset_stats, methods=ALL_METHODS, include_in_schema=False)
    app.add_route("/{full_path:path}", redirect_request, include_in_schema=False)

    return app


def build_app(settings: Settings, rng: Optional[random.Random] = None) -> FastAPI:
    """Loads persisted state for `settings` and returns the ready app."""
    ensure_data_dir(settings.data_dir)

    reserved = PathRegistry(settings.paths_path, rng=rng).load_or_generate()

    store = StatsStore(settings.stats_path)
    store.load()

    engine = RedirectEngine(store, settings.base_url, KeywordFilter(settings.keywords()))
    return create_app(store, reserved, engine)
