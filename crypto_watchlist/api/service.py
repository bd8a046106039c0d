"""FastAPI application serving the crypto watchlist dashboard."""

import logging
from collections.abc import AsyncGenerator, Callable
from contextlib import asynccontextmanager
from typing import Annotated, Final

import uvicorn
from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse, RedirectResponse, Response

from ..market_data.client import MarketDataClient, MarketDataError
from ..query_cache.queries import CryptoQueries
from ..shared.charts import DEFAULT_TIMEFRAME
from ..watchlist.sharing import WatchlistImportError, export_filename
from ..watchlist.storage import SqliteWatchlistStorage
from ..watchlist.store import WatchlistStore
from .dashboard import DEFAULT_SORT, Dashboard, UpstreamUnavailableError
from .models import (
    DashboardResponse,
    DetailsResponse,
    ErrorResponse,
    ManagerResponse,
    RemoveManyRequest,
    SearchResponse,
    ShareResponse,
    SortOption,
    ToggleResponse,
    WatchlistResponse,
)
from .settings import api_settings
from .validators import validate_coin_id, validate_timeframe

ERROR_UPSTREAM_UNAVAILABLE: Final[str] = "upstream_unavailable"
ERROR_COIN_NOT_FOUND: Final[str] = "coin_not_found"
ERROR_INVALID_IMPORT: Final[str] = "invalid_import"
ERROR_CONFIRMATION_REQUIRED: Final[str] = "confirmation_required"
ERROR_INTERNAL_ERROR: Final[str] = "internal_error"
ERROR_NOT_FOUND: Final[str] = "not_found"
ERROR_STORAGE_UNAVAILABLE: Final[str] = "storage_unavailable"

logger = logging.getLogger(__name__)


def default_dashboard() -> Dashboard:
    """Dashboard backed by SQLite and the live market data provider."""
    return Dashboard(
        store=WatchlistStore(SqliteWatchlistStorage()),
        queries=CryptoQueries(MarketDataClient()),
    )


def get_dashboard(request: Request) -> Dashboard:
    """
    Dependency function to provide the running dashboard.

    Returns:
        Dashboard: Instance started by the application lifespan
    """
    return request.app.state.dashboard


DashboardDep = Annotated[Dashboard, Depends(get_dashboard)]
CoinId = Annotated[str, Depends(validate_coin_id)]


def _ensure_saved(dashboard: Dashboard) -> None:
    """
    Raise when the last watchlist change could not be persisted.

    Raises:
        HTTPException: 503; the watchlist keeps its previous contents
    """
    if dashboard.store.last_write_error is not None:
        raise HTTPException(
            status_code=503,
            detail=ErrorResponse(
                error=ERROR_STORAGE_UNAVAILABLE,
                message="The watchlist could not be saved, no changes were made",
            ).model_dump(),
        )


def _watchlist(dashboard: Dashboard) -> WatchlistResponse:
    _ensure_saved(dashboard)
    ids = dashboard.store.get()
    return WatchlistResponse(ids=ids, count=len(ids))


def create_app(
    dashboard_factory: Callable[[], Dashboard] = default_dashboard,
) -> FastAPI:
    """Build the application. The dashboard is created and started on startup."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        dashboard = dashboard_factory()
        await dashboard.start()
        app.state.dashboard = dashboard
        try:
            yield
        finally:
            await dashboard.stop()

    app = FastAPI(
        title="Crypto Watchlist API",
        description="Personal cryptocurrency watchlist over live market data",
        version="1.0.0",
        lifespan=lifespan,
    )

    @app.get("/", response_model=None)
    async def root(request: Request, dashboard: DashboardDep) -> Response:
        """Health check endpoint. Also consumes shared watchlist links.

        Returns:
            Health status, or a redirect to the same URL without the
            `watchlist` parameter when a share link was opened
        """
        if (cleaned := await dashboard.seed_from_url(str(request.url))) is not None:
            return RedirectResponse(cleaned, status_code=303)
        return JSONResponse(
            {"message": "Crypto Watchlist API is running", "status": "healthy"}
        )

    @app.get("/markets", response_model=DashboardResponse)
    async def markets(
        dashboard: DashboardDep,
        sort: Annotated[SortOption, Query(description="Sort field")] = DEFAULT_SORT,
    ) -> DashboardResponse:
        """Watchlist coins, or the most valuable coins when the watchlist is empty."""
        return await dashboard.overview(sort)

    @app.get("/search", response_model=SearchResponse)
    async def search(
        dashboard: DashboardDep,
        q: Annotated[str, Query(max_length=100, description="Name or symbol")] = "",
    ) -> SearchResponse:
        return await dashboard.search(q)

    @app.get("/coins/{coin_id}", response_model=DetailsResponse)
    async def coin_details(
        dashboard: DashboardDep,
        coin_id: CoinId,
        timeframe: Annotated[
            str, Query(description="Chart timeframe, e.g. 1H, 24H, 7D")
        ] = DEFAULT_TIMEFRAME,
    ) -> DetailsResponse:
        """
        Coin details with price and volume charts.

        Raises:
            HTTPException: 422 for an unknown timeframe
        """
        return await dashboard.details(coin_id, validate_timeframe(timeframe))

    @app.get("/watchlist", response_model=ManagerResponse)
    async def get_watchlist(dashboard: DashboardDep) -> ManagerResponse:
        return await dashboard.manager()

    @app.put("/watchlist", response_model=WatchlistResponse)
    async def replace_watchlist(
        dashboard: DashboardDep, ids: list[str]
    ) -> WatchlistResponse:
        await dashboard.store.replace(ids)
        return _watchlist(dashboard)

    @app.delete("/watchlist", response_model=WatchlistResponse)
    async def clear_watchlist(
        dashboard: DashboardDep,
        confirm: Annotated[bool, Query(description="Must be true")] = False,
    ) -> WatchlistResponse:
        """Clear the whole watchlist. Requires explicit confirmation."""
        if not confirm:
            raise HTTPException(
                status_code=400,
                detail=ErrorResponse(
                    error=ERROR_CONFIRMATION_REQUIRED,
                    message="Clearing the watchlist requires confirm=true",
                ).model_dump(),
            )
        await dashboard.store.clear()
        return _watchlist(dashboard)

    @app.get("/watchlist/export")
    async def export_watchlist(dashboard: DashboardDep) -> Response:
        return Response(
            content=dashboard.export(),
            media_type="application/json",
            headers={
                "Content-Disposition": f'attachment; filename="{export_filename()}"'
            },
        )

    @app.post("/watchlist/import", response_model=WatchlistResponse)
    async def import_watchlist(
        request: Request, dashboard: DashboardDep
    ) -> WatchlistResponse:
        """
        Merge an uploaded JSON array of coin ids into the watchlist.

        Raises:
            HTTPException: 422 when the file is rejected; nothing is merged
        """
        try:
            await dashboard.import_file(await request.body())
        except WatchlistImportError as e:
            raise HTTPException(
                status_code=422,
                detail=ErrorResponse(
                    error=ERROR_INVALID_IMPORT, message=str(e)
                ).model_dump(),
            ) from e
        return _watchlist(dashboard)

    @app.get("/watchlist/share", response_model=ShareResponse)
    async def share_watchlist(dashboard: DashboardDep) -> ShareResponse:
        return dashboard.share()

    @app.post("/watchlist/remove", response_model=WatchlistResponse)
    async def remove_many(
        dashboard: DashboardDep, body: RemoveManyRequest
    ) -> WatchlistResponse:
        await dashboard.remove_many(body.ids)
        return _watchlist(dashboard)

    @app.post("/watchlist/{coin_id}", response_model=WatchlistResponse)
    async def add_coin(dashboard: DashboardDep, coin_id: CoinId) -> WatchlistResponse:
        await dashboard.store.add(coin_id)
        return _watchlist(dashboard)

    @app.delete("/watchlist/{coin_id}", response_model=WatchlistResponse)
    async def remove_coin(
        dashboard: DashboardDep, coin_id: CoinId
    ) -> WatchlistResponse:
        await dashboard.store.remove(coin_id)
        return _watchlist(dashboard)

    @app.post("/watchlist/{coin_id}/toggle", response_model=ToggleResponse)
    async def toggle_coin(dashboard: DashboardDep, coin_id: CoinId) -> ToggleResponse:
        in_watchlist = await dashboard.store.toggle(coin_id)
        _ensure_saved(dashboard)
        ids = dashboard.store.get()
        return ToggleResponse(ids=ids, count=len(ids), in_watchlist=in_watchlist)

    @app.exception_handler(UpstreamUnavailableError)
    async def upstream_handler(
        _: Request, exc: UpstreamUnavailableError
    ) -> JSONResponse:
        """Map a failed query with no cached fallback to 502, or 404 for unknown coins."""
        if isinstance(exc.cause, MarketDataError) and exc.cause.status == 404:
            return JSONResponse(
                status_code=404,
                content=ErrorResponse(
                    error=ERROR_COIN_NOT_FOUND, message=f"{exc.what} was not found"
                ).model_dump(),
            )
        return JSONResponse(
            status_code=502,
            content=ErrorResponse(
                error=ERROR_UPSTREAM_UNAVAILABLE,
                message=f"{exc.what} is temporarily unavailable",
            ).model_dump(),
        )

    @app.exception_handler(404)
    async def not_found_handler(_: Request, exc: Exception) -> JSONResponse:
        """Handle 404 errors.

        Returns:
            JSONResponse: Error response in JSON format
        """
        if isinstance(exc, HTTPException) and isinstance(exc.detail, dict):
            return JSONResponse(status_code=404, content=exc.detail)
        return JSONResponse(
            status_code=404,
            content=ErrorResponse(
                error=ERROR_NOT_FOUND, message="Endpoint not found"
            ).model_dump(),
        )

    @app.exception_handler(500)
    async def internal_error_handler(_: Request, exc: Exception) -> JSONResponse:
        """Handle internal server errors.

        Args:
            exc: The exception that was raised

        Returns:
            JSONResponse: Error response in JSON format
        """
        logger.error(f"Internal server error: {exc}", exc_info=exc)
        return JSONResponse(
            status_code=500,
            content=ErrorResponse(
                error=ERROR_INTERNAL_ERROR, message="An internal server error occurred"
            ).model_dump(),
        )

    return app


app = create_app()


async def main() -> None:
    """Main entry point for the API server."""
    config = uvicorn.Config(
        app,
        host=api_settings.api_host,
        port=api_settings.api_port,
        log_level=api_settings.log_level.lower(),
    )
    server = uvicorn.Server(config)
    await server.serve()


if __name__ == "__main__":
    import asyncio

    asyncio.run(main())
