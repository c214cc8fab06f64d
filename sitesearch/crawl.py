from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from functools import partial
import logging
import threading
from urllib.parse import urlparse

from sitesearch.db.context import Transaction
from sitesearch.db.page import insert_page, page_exists
from sitesearch.db.site import touch_site, update_site_status
from sitesearch.db.types import Page, Site, Status
from sitesearch.indexer import IndexWriter
from sitesearch.lemmas import LemmaExtractor
from sitesearch.util.containers import ThreadSafeDict
from sitesearch.util.download import HTTP_OK, Fetcher, FetchResult
from sitesearch.util.html import relative_path
from sitesearch.util.pool import WorkerPool

logger = logging.getLogger(__name__)

BATCH_SIZE = 50


class NodeState(str, Enum):
    PENDING = "PENDING"
    FETCHING = "FETCHING"
    LINK_EXTRACTED = "LINK_EXTRACTED"
    PERSIST_PENDING = "PERSIST_PENDING"
    INDEXED = "INDEXED"
    SKIPPED = "SKIPPED"
    FAILED = "FAILED"


@dataclass(kw_only=True)
class CrawlNode:
    """
    One URL of the crawl tree. Nodes live in their SiteCrawl's arena and refer
    to each other by position, so deep sites never turn into deep recursion.
    """

    index: int
    url: str
    path: str
    parent: int | None
    state: NodeState = NodeState.PENDING
    children: list[int] = field(default_factory=list)
    # Fetched by the parent (or by the node itself for the root) and dropped
    # once the node's links have been read.
    fetched: FetchResult | None = None
    page: Page | None = None
    pending_children: int = 0
    processed: bool = False
    done: bool = False


class CrawlRun:
    """
    State shared by every task of one indexing run: the worker pool, the stop
    flag, and the lock that serializes site status changes.
    """

    def __init__(self, pool: WorkerPool, status_lock: threading.Lock) -> None:
        self.pool = pool
        self.status_lock = status_lock
        self.stop_event = threading.Event()
        self.sites: list["SiteCrawl"] = []

    @property
    def stopped(self) -> bool:
        return self.stop_event.is_set()


class SiteCrawl:
    """
    The crawl of one site within a run: the node arena, the set of claimed
    paths, and whether the site has failed.
    """

    def __init__(self, run: CrawlRun, site: Site) -> None:
        self.run = run
        self.site = site
        parsed = urlparse(site.url)
        self.host = parsed.netloc
        self.base_path = parsed.path

        # Paths already taken by some task; claim with put_if_absent
        self.claimed: ThreadSafeDict[str, bool] = ThreadSafeDict()
        self.failed = False
        self.finished = threading.Event()

        self._nodes: list[CrawlNode] = []
        self._lock = threading.Lock()

    def accepts(self, url: str) -> bool:
        parsed = urlparse(url)
        if parsed.netloc != self.host:
            return False
        base = self.base_path
        return not base or parsed.path == base or parsed.path.startswith(base + "/")

    def add_node(self, url: str, parent: CrawlNode | None = None) -> CrawlNode:
        with self._lock:
            node = CrawlNode(
                index=len(self._nodes),
                url=url,
                path=relative_path(url),
                parent=parent.index if parent else None,
            )
            self._nodes.append(node)
            if parent is not None:
                parent.children.append(node.index)
            return node

    def node(self, index: int) -> CrawlNode:
        with self._lock:
            return self._nodes[index]

    def children_of(self, node: CrawlNode) -> list[CrawlNode]:
        with self._lock:
            return [self._nodes[i] for i in node.children]

    def __len__(self) -> int:
        with self._lock:
            return len(self._nodes)

    def fork(self, parent: CrawlNode) -> None:
        with self._lock:
            parent.pending_children += 1

    def finish(self, node: CrawlNode) -> None:
        """
        Marks the node's own work as over and joins it into its parent: a node
        is done once it is processed and all the children it forked are done.
        """
        with self._lock:
            node.processed = True
            current: CrawlNode | None = node
            while (
                current is not None
                and current.processed
                and current.pending_children == 0
                and not current.done
            ):
                current.done = True
                if current.parent is None:
                    self.finished.set()
                    logger.info(
                        "Crawl tree of %s complete, %d nodes",
                        self.site.url,
                        len(self._nodes),
                    )
                    break
                parent = self._nodes[current.parent]
                parent.pending_children -= 1
                current = parent


class CrawlEngine:
    """
    Walks a site breadth of one node at a time: each task reads the links of
    its page, fetches the pages behind the links it manages to claim, saves
    them in batches with their lemmas, and forks one task per new page.
    """

    def __init__(
        self,
        db_path: str,
        fetcher: Fetcher,
        extractor: LemmaExtractor,
        writer: IndexWriter,
        batch_size: int = BATCH_SIZE,
    ) -> None:
        self.db_path = db_path
        self.fetcher = fetcher
        self.extractor = extractor
        self.writer = writer
        self.batch_size = batch_size

    def start(self, crawl: SiteCrawl) -> bool:
        root = crawl.add_node(crawl.site.url)
        crawl.claimed.put_if_absent(root.path, True)
        if not self._submit(crawl, root):
            root.state = NodeState.SKIPPED
            crawl.finish(root)
            return False
        return True

    def _submit(self, crawl: SiteCrawl, node: CrawlNode) -> bool:
        return crawl.run.pool.submit(partial(self.process, crawl, node))

    def process(self, crawl: SiteCrawl, node: CrawlNode) -> None:
        """
        Entrypoint of each crawl task. Anything unexpected fails the whole
        site; sibling tasks notice and wind down on their own.
        """
        try:
            self._process(crawl, node)
        except Exception as e:
            node.state = NodeState.FAILED
            logger.error("Error indexing page %s", node.url, exc_info=e)
            self._fail_site(crawl, f"Error indexing page {node.url}: {e}")
        finally:
            node.fetched = None
            crawl.finish(node)

    def _process(self, crawl: SiteCrawl, node: CrawlNode) -> None:
        if self._should_skip(crawl, node, "before processing"):
            node.state = NodeState.SKIPPED
            return

        # The root has no parent to have fetched it
        if node.parent is None:
            node.state = NodeState.FETCHING
            node.fetched = self.fetcher.fetch(node.url)
            node.state = NodeState.PERSIST_PENDING
            if not self._flush(crawl, [node]):
                node.state = NodeState.SKIPPED
                return

        assert node.fetched is not None, "node processed before its page was fetched"
        links = self.fetcher.extract_links(node.url, node.fetched.content)
        node.fetched = None
        node.state = NodeState.LINK_EXTRACTED
        logger.info("Processing %s: %d links", node.url, len(links))

        batch: list[CrawlNode] = []
        for link in sorted(links):
            if not crawl.accepts(link):
                continue
            if self._should_skip(crawl, node, "before claiming"):
                break

            path = relative_path(link)
            if self._page_exists(crawl, path):
                continue
            if not crawl.claimed.put_if_absent(path, True):
                continue

            child = crawl.add_node(link, node)
            child.state = NodeState.FETCHING
            child.fetched = self.fetcher.fetch(link)
            child.state = NodeState.PERSIST_PENDING
            logger.debug("Status for %s: %d", link, child.fetched.status_code)

            batch.append(child)
            if len(batch) >= self.batch_size:
                self._flush(crawl, batch)
                batch = []
        self._flush(crawl, batch)

        self._touch_site(crawl)
        node.state = NodeState.INDEXED

        if self._should_skip(crawl, node, "before forking"):
            return
        self._fork_children(crawl, node)

    def _fork_children(self, crawl: SiteCrawl, node: CrawlNode) -> None:
        for child in crawl.children_of(node):
            if child.page is None:
                # Never saved: stopped before its batch, or the path was taken
                child.state = NodeState.SKIPPED
                child.fetched = None
                continue
            crawl.fork(node)
            if not self._submit(crawl, child):
                child.state = NodeState.SKIPPED
                child.fetched = None
                crawl.finish(child)

    def _flush(self, crawl: SiteCrawl, batch: list[CrawlNode]) -> bool:
        """
        Saves a batch of fetched pages, then indexes the lemmas of the ones
        that came back 200. Returns False if the batch was dropped because the
        run is stopping or the site has failed.
        """
        if not batch:
            return True
        if self._should_skip(crawl, None, "before saving pages"):
            return False

        with Transaction(self.db_path) as db:
            for node in batch:
                assert node.fetched is not None
                node.page = insert_page(
                    db,
                    Page(
                        site_id=crawl.site.id,
                        path=node.path,
                        code=node.fetched.status_code,
                        content=node.fetched.content,
                    ),
                )
        logger.debug("Saved %d pages for %s", len(batch), crawl.site.url)

        for node in batch:
            if node.page is None or node.page.code != HTTP_OK:
                continue
            if self._should_skip(crawl, None, "before indexing lemmas"):
                return False
            self.writer.index_page(node.page, self.extractor.extract(node.page.content))
        return True

    def _should_skip(self, crawl: SiteCrawl, node: CrawlNode | None, where: str) -> bool:
        if crawl.run.stopped:
            logger.debug(
                "Indexing stopped by user %s: %s", where, node.url if node else crawl.site.url
            )
            return True
        if crawl.failed:
            logger.debug("Indexing of %s halted by an earlier error", crawl.site.url)
            return True
        return False

    def _page_exists(self, crawl: SiteCrawl, path: str) -> bool:
        with Transaction(self.db_path) as db:
            return page_exists(db, crawl.site.id, path)

    def _touch_site(self, crawl: SiteCrawl) -> None:
        with crawl.run.status_lock:
            if crawl.failed or crawl.site.status != Status.INDEXING:
                return
            now = datetime.now()
            with Transaction(self.db_path) as db:
                touch_site(db, crawl.site.id, now)
            crawl.site.status_time = now

    def _fail_site(self, crawl: SiteCrawl, message: str) -> None:
        with crawl.run.status_lock:
            crawl.failed = True
            crawl.site.status = Status.FAILED
            crawl.site.last_error = message
            crawl.site.status_time = datetime.now()
            with Transaction(self.db_path) as db:
                update_site_status(
                    db, crawl.site.id, Status.FAILED, crawl.site.status_time, message
                )
