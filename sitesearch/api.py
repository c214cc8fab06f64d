"""
The HTTP surface is a thin shell over RunCoordinator and SearchEngine. Every
route is a plain def, so FastAPI runs them on its threadpool; the slow parts
(a full crawl) already run in the background.

Run with: uvicorn sitesearch.api:app_from_env --factory
"""

from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from sitesearch.config import load_settings
from sitesearch.coordinator import RunCoordinator
from sitesearch.responses import Rejected
from sitesearch.search import SearchEngine
from sitesearch.statistics import get_statistics
from sitesearch.util.logger import setup_logging

logger = logging.getLogger(__name__)


def _respond(result: BaseModel) -> JSONResponse:
    status_code = 400 if isinstance(result, Rejected) else 200
    return JSONResponse(content=result.model_dump(), status_code=status_code)


def create_app(coordinator: RunCoordinator, search_engine: SearchEngine) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        logger.info("Shutting down, stopping any indexing run")
        coordinator.close()

    app = FastAPI(title="sitesearch", lifespan=lifespan)

    @app.get("/api/startIndexing", tags=["indexing"])
    def start_indexing():
        """
        Starts a full crawl of every configured site in the background.
        """
        return _respond(coordinator.start_run())

    @app.get("/api/stopIndexing", tags=["indexing"])
    def stop_indexing():
        """
        Stops the running crawl; sites still being indexed end up FAILED.
        """
        return _respond(coordinator.stop_run())

    @app.post("/api/indexPage", tags=["indexing"])
    def index_page(url: str = ""):
        if not url.strip():
            return _respond(Rejected(error="URL must not be empty"))
        return _respond(coordinator.index_single_page(url))

    @app.get("/api/search", tags=["search"])
    def search(query: str = "", site: str | None = None, offset: int = 0, limit: int = 20):
        if not query.strip():
            return _respond(Rejected(error="Query must not be empty"))
        return _respond(search_engine.search(query, site, offset, limit))

    @app.get("/api/statistics", tags=["statistics"])
    def statistics():
        return _respond(get_statistics(coordinator.db_path))

    return app


def app_from_env() -> FastAPI:
    """
    Builds the app from the configuration file named by SITESEARCH_CONFIG
    (config.yaml by default).
    """
    settings = load_settings()
    setup_logging(settings.logging)
    coordinator = RunCoordinator(settings)
    search_engine = SearchEngine(settings.database, coordinator.extractor)
    return create_app(coordinator, search_engine)
