from datetime import datetime
import re
import threading
from urllib.parse import urlparse

import pytest

from sitesearch.config import IndexingSettings, Settings, SiteConfig
from sitesearch.db.context import Transaction
from sitesearch.db.page import insert_page
from sitesearch.db.schema import create_schema
from sitesearch.db.site import insert_site
from sitesearch.db.types import Page, Site, Status
from sitesearch.indexer import IndexWriter
from sitesearch.lemmas import LemmaExtractor
from sitesearch.morphology import WordForm
from sitesearch.util.download import FETCH_ERROR_STATUS, Fetcher, FetchResult

SITE_URL = "https://site.test"


class FakeMorphology:
    """
    Dictionary-backed analyzer for Latin words: a few irregular forms, plural
    "s" stripped, and a handful of function words.
    """

    language = "fake"
    function_tags = frozenset({"CONJ", "ART"})

    IRREGULAR = {"mice": "mouse", "geese": "goose", "ran": "run", "running": "run"}
    FUNCTION_WORDS = {"and": "CONJ", "or": "CONJ", "the": "ART", "a": "ART"}

    def matches(self, word: str) -> bool:
        return re.fullmatch(r"[a-z]+", word) is not None

    def normal_forms(self, word: str) -> list[WordForm]:
        if word in self.FUNCTION_WORDS:
            return [WordForm(word, frozenset({self.FUNCTION_WORDS[word]}))]
        if word in self.IRREGULAR:
            return [WordForm(self.IRREGULAR[word], frozenset({"NOUN"}))]
        if len(word) > 3 and word.endswith("s") and not word.endswith("ss"):
            return [WordForm(word[:-1], frozenset({"NOUN"}))]
        return [WordForm(word, frozenset({"NOUN"}))]


class FakeFetcher(Fetcher):
    """
    Serves an in-memory site keyed by path. Unknown paths are 404s. Fetches of
    paths in fail_on raise; fetches of paths in gated block until gate is set.
    """

    def __init__(self, pages: dict[str, tuple[int, str]], site_url: str = SITE_URL):
        super().__init__("TestAgent/1.0", "https://referrer.test", delay=0, timeout=1)
        self.pages = pages
        self.host = urlparse(site_url).netloc
        self.fail_on: set[str] = set()
        self.gated: set[str] = set()
        self.gate = threading.Event()
        self.blocked = threading.Event()
        self.calls: list[str] = []
        self._lock = threading.Lock()

    def fetch(self, url: str) -> FetchResult:
        parsed = urlparse(url)
        path = parsed.path or "/"
        with self._lock:
            self.calls.append(path)
        if parsed.netloc != self.host:
            return FetchResult(url, FETCH_ERROR_STATUS, error="Unknown host")
        if path in self.fail_on:
            raise RuntimeError(f"boom at {path}")
        if path in self.gated:
            self.blocked.set()
            self.gate.wait(10)
        status, content = self.pages.get(path, (404, ""))
        return FetchResult(url, status, content)

    def fetch_count(self, path: str) -> int:
        with self._lock:
            return self.calls.count(path)


def html(title: str, body: str, links: tuple[str, ...] = ()) -> str:
    anchors = "".join(f'<a href="{link}">{link}</a>' for link in links)
    return (
        f"<html><head><title>{title}</title></head>"
        f"<body><p>{body}</p>{anchors}</body></html>"
    )


SITE_PAGES = {
    "/": (
        200,
        html(
            "Home",
            "Welcome to the mice and geese farm",
            ("/a", "/b", "/a#top", "/docs/report.pdf", "https://other.test/x", "mailto:x@site.test"),
        ),
    ),
    "/a": (200, html("Page A", "Mice running in the barn", ("/", "/b", "/c"))),
    "/b": (200, html("Page B", "Geese and ducks by the pond", ("/c", "/d"))),
    "/c": (200, html("Page C", "A quiet barn with hay", ("/",))),
    # /d is not served and comes back as a 404
}


@pytest.fixture
def db_path(tmp_path) -> str:
    path = str(tmp_path / "test.db")
    create_schema(path)
    return path


@pytest.fixture
def extractor() -> LemmaExtractor:
    return LemmaExtractor([FakeMorphology()])


@pytest.fixture
def writer(db_path) -> IndexWriter:
    return IndexWriter(db_path)


@pytest.fixture
def fetcher() -> FakeFetcher:
    return FakeFetcher(dict(SITE_PAGES))


@pytest.fixture
def settings(db_path) -> Settings:
    return Settings(
        sites=[SiteConfig(url=SITE_URL, name="Test Site")],
        database=db_path,
        indexing=IndexingSettings(
            workers=4,
            request_delay=0,
            stop_poll_retries=20,
            stop_poll_interval=0.05,
            shutdown_grace=5,
        ),
    )


@pytest.fixture
def coordinator(settings, fetcher, extractor, writer):
    from sitesearch.coordinator import RunCoordinator

    coordinator = RunCoordinator(settings, fetcher=fetcher, extractor=extractor, writer=writer)
    yield coordinator
    fetcher.gate.set()
    coordinator.close()


def make_site(db_path: str, url: str = SITE_URL, name: str = "Test Site", status=Status.INDEXED) -> Site:
    with Transaction(db_path) as db:
        return insert_site(
            db, Site(url=url, name=name, status=status, status_time=datetime.now())
        )


def add_page(
    db_path: str,
    writer: IndexWriter,
    extractor: LemmaExtractor,
    site: Site,
    path: str,
    content: str,
    code: int = 200,
) -> Page:
    with Transaction(db_path) as db:
        page = insert_page(db, Page(site_id=site.id, path=path, code=code, content=content))
    assert page is not None
    if code == 200:
        writer.index_page(page, extractor.extract(content))
    return page
