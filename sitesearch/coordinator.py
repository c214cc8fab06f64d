from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from datetime import datetime
import logging
import threading
import time

from sitesearch.config import SiteConfig, Settings
from sitesearch.crawl import CrawlEngine, CrawlRun, SiteCrawl
from sitesearch.db.context import Transaction
from sitesearch.db.page import get_page_by_path, insert_page
from sitesearch.db.schema import create_schema
from sitesearch.db.site import (
    delete_site_by_url,
    exists_site_with_status,
    get_site_by_url,
    insert_site,
    update_site_status,
    update_status_for_all,
)
from sitesearch.db.types import Page, Site, Status
from sitesearch.errors import InvalidRequestError, NotReadyError, SiteSearchError
from sitesearch.indexer import IndexWriter
from sitesearch.lemmas import LemmaExtractor
from sitesearch.morphology import default_morphologies
from sitesearch.responses import Accepted, CommandResult, Rejected
from sitesearch.util.download import Fetcher
from sitesearch.util.html import relative_path
from sitesearch.util.pool import WorkerPool

logger = logging.getLogger(__name__)

STOPPED_BY_USER = "Indexing stopped by user"
INTERRUPTED = "Indexing interrupted before it could finish"


class RunCoordinator:
    """
    Owns the indexing lifecycle: full runs over every configured site, stopping
    them, and reindexing a single page on demand.

    A full run is driven from a single-thread executor so that start_run()
    returns straight away; the crawl itself happens on a WorkerPool that is
    created on the first run and recreated after every stop.
    """

    def __init__(
        self,
        settings: Settings,
        fetcher: Fetcher | None = None,
        extractor: LemmaExtractor | None = None,
        writer: IndexWriter | None = None,
    ) -> None:
        self.settings = settings
        self.db_path = settings.database
        indexing = settings.indexing

        self.fetcher = fetcher or Fetcher(
            indexing.user_agent,
            indexing.referrer,
            delay=indexing.request_delay,
            timeout=indexing.request_timeout,
        )
        self.extractor = extractor or LemmaExtractor(default_morphologies())
        self.writer = writer or IndexWriter(self.db_path)
        self.engine = CrawlEngine(
            self.db_path,
            self.fetcher,
            self.extractor,
            self.writer,
            batch_size=indexing.batch_size,
        )

        self._command_lock = threading.Lock()
        self._status_lock = threading.Lock()
        self.pool: WorkerPool | None = None
        self._runner: ThreadPoolExecutor | None = None
        self._run: CrawlRun | None = None
        self._future: Future | None = None

        create_schema(self.db_path)
        self._recover_interrupted()

    def _recover_interrupted(self) -> None:
        # A site can only be INDEXING while this process is crawling it
        with Transaction(self.db_path) as db:
            count = update_status_for_all(
                db, Status.INDEXING, Status.FAILED, datetime.now(), INTERRUPTED
            )
        if count:
            logger.warning("Marked %d site(s) left INDEXING by a previous process as FAILED", count)

    def is_indexing(self) -> bool:
        if self._future is not None and not self._future.done():
            return True
        with Transaction(self.db_path) as db:
            return exists_site_with_status(db, Status.INDEXING)

    def start_run(self) -> CommandResult:
        with self._command_lock:
            try:
                if self.is_indexing():
                    raise NotReadyError("Indexing is already running")
            except SiteSearchError as e:
                return Rejected(error=str(e))

            if self.pool is None or self.pool.is_shutdown:
                self.pool = WorkerPool(self.settings.indexing.workers)
            if self._runner is None:
                self._runner = ThreadPoolExecutor(max_workers=1, thread_name_prefix="indexing-run")

            run = CrawlRun(self.pool, self._status_lock)
            self._run = run
            self._future = self._runner.submit(self._perform_run, run)
            logger.info("Indexing run started for %d site(s)", len(self.settings.sites))
            return Accepted()

    def _perform_run(self, run: CrawlRun) -> None:
        try:
            for site_config in self.settings.sites:
                if run.stopped:
                    logger.info("Run stopped before %s was started", site_config.url)
                    break
                self._start_site(run, site_config)

            run.pool.await_quiescence()
            if run.stopped:
                logger.info("Indexing run ended by a stop request")
                return

            with self._status_lock, Transaction(self.db_path) as db:
                count = update_status_for_all(db, Status.INDEXING, Status.INDEXED, datetime.now())
            logger.info("Indexing run finished, %d site(s) indexed", count)
        except Exception:
            logger.exception("Indexing run failed")
            with self._status_lock, Transaction(self.db_path) as db:
                update_status_for_all(
                    db, Status.INDEXING, Status.FAILED, datetime.now(), "Indexing run failed"
                )

    def _start_site(self, run: CrawlRun, site_config: SiteConfig) -> None:
        logger.info("Starting indexing of %s", site_config.url)
        with self._status_lock, Transaction(self.db_path) as db:
            removed = delete_site_by_url(db, site_config.url)
            site = insert_site(
                db,
                Site(
                    url=site_config.url,
                    name=site_config.name,
                    status=Status.INDEXING,
                    status_time=datetime.now(),
                ),
            )
        if removed:
            logger.debug("Cleared previous index of %s", site_config.url)

        crawl = SiteCrawl(run, site)
        run.sites.append(crawl)
        if not self.engine.start(crawl):
            logger.warning("Could not submit crawl of %s, pool is shut down", site.url)

    def stop_run(self) -> CommandResult:
        with self._command_lock:
            run = self._run
            try:
                if run is None or not self.is_indexing():
                    raise NotReadyError("Indexing is not running")
            except SiteSearchError as e:
                return Rejected(error=str(e))

            logger.info("Stop requested, waiting for crawl tasks to wind down")
            run.stop_event.set()
            indexing = self.settings.indexing

            quiescent = False
            for _ in range(indexing.stop_poll_retries):
                if run.pool.is_quiescent():
                    quiescent = True
                    break
                time.sleep(indexing.stop_poll_interval)
            if not quiescent:
                logger.warning("Crawl tasks still running after stop was requested")

            if not run.pool.shutdown(indexing.shutdown_grace):
                logger.warning(
                    "Worker pool did not finish within %.0fs, forcing termination",
                    indexing.shutdown_grace,
                )
                run.pool.shutdown_now()

            if self._future is not None:
                try:
                    self._future.result(timeout=indexing.shutdown_grace)
                except FutureTimeout:
                    logger.warning("Indexing run did not wind down in time")
            if self._runner is not None:
                self._runner.shutdown(wait=False)
                self._runner = None

            with self._status_lock, Transaction(self.db_path) as db:
                count = update_status_for_all(
                    db, Status.INDEXING, Status.FAILED, datetime.now(), STOPPED_BY_USER
                )
            logger.info("Indexing stopped, %d site(s) marked FAILED", count)
            return Accepted()

    def wait(self, timeout: float | None = None) -> bool:
        """
        Blocks until the current run is over. Returns False on timeout.
        """
        future = self._future
        if future is None:
            return True
        try:
            future.result(timeout=timeout)
        except FutureTimeout:
            return False
        return True

    def index_single_page(self, url: str) -> CommandResult:
        try:
            url = (url or "").strip()
            if not url:
                raise InvalidRequestError("URL must not be empty")
            site_config = self.settings.find_site(url)
            if site_config is None:
                raise InvalidRequestError(
                    "This page is outside the sites listed in the configuration"
                )
        except SiteSearchError as e:
            return Rejected(error=str(e))

        site = self._get_or_create_site(site_config)
        try:
            return self._index_page(site, url)
        except Exception as e:
            logger.exception("Error indexing page %s", url)
            message = f"Error indexing page {url}: {e}"
            with self._status_lock, Transaction(self.db_path) as db:
                update_site_status(db, site.id, Status.FAILED, datetime.now(), message)
            return Rejected(error=message)

    def _get_or_create_site(self, site_config: SiteConfig) -> Site:
        with self._status_lock, Transaction(self.db_path) as db:
            site = get_site_by_url(db, site_config.url)
            if site is None:
                site = insert_site(
                    db,
                    Site(
                        url=site_config.url,
                        name=site_config.name,
                        status=Status.INDEXED,
                        status_time=datetime.now(),
                    ),
                )
                logger.info("Created site %s for single page indexing", site.url)
            return site

    def _index_page(self, site: Site, url: str) -> CommandResult:
        path = relative_path(url)
        with Transaction(self.db_path) as db:
            existing = get_page_by_path(db, site.id, path)
        if existing is not None:
            logger.info("Reindexing %s%s", site.url, path)
            self.writer.remove_page(existing)

        result = self.fetcher.fetch(url)
        content = result.content if result.ok else ""
        with Transaction(self.db_path) as db:
            page = insert_page(
                db, Page(site_id=site.id, path=path, code=result.status_code, content=content)
            )

        if not result.ok:
            logger.warning("Page %s returned %d", url, result.status_code)
            return Rejected(error=f"Failed to index page, response code: {result.status_code}")
        if page is None:
            return Rejected(error="Page is being indexed by another request")

        count = self.writer.index_page(page, self.extractor.extract(page.content))
        logger.info("Indexed %s with %d lemmas", url, count)
        return Accepted()

    def close(self) -> None:
        if self._run is not None and self.is_indexing():
            self.stop_run()
        if self.pool is not None and not self.pool.is_shutdown:
            self.pool.shutdown(self.settings.indexing.shutdown_grace)
        if self._runner is not None:
            self._runner.shutdown(wait=False)
            self._runner = None
