import logging
from typing import Mapping

from sitesearch.db.context import Transaction
from sitesearch.db.index import insert_index
from sitesearch.db.lemma import (
    decrement_lemmas_for_page,
    delete_unused_lemmas,
    upsert_lemma,
)
from sitesearch.db.page import delete_page
from sitesearch.db.types import Index, Page
from sitesearch.util.containers import StripedLock

logger = logging.getLogger(__name__)


class IndexWriter:
    """
    Writes lemma and index rows for pages. Every page containing a lemma bumps
    that lemma's document frequency once, while the index row records how many
    times the lemma occurs on the page.

    One instance is shared by the crawl and the single-page path so that both
    serialize on the same (site, lemma) locks.
    """

    def __init__(self, db_path: str, locks: StripedLock | None = None) -> None:
        self.db_path = db_path
        self.locks = locks or StripedLock()

    def index_page(self, page: Page, lemma_counts: Mapping[str, int]) -> int:
        """
        The lock for (site, lemma) is held from reading the lemma row through
        inserting the index row, so concurrent pages sharing a lemma can never
        lose an increment.
        """
        for lemma_text, count in lemma_counts.items():
            with self.locks.hold((page.site_id, lemma_text)):
                with Transaction(self.db_path) as db:
                    lemma = upsert_lemma(db, page.site_id, lemma_text)
                    insert_index(
                        db, Index(page_id=page.id, lemma_id=lemma.id, rank=float(count))
                    )
        logger.debug("Indexed %d lemmas for page %s", len(lemma_counts), page.path)
        return len(lemma_counts)

    def remove_page(self, page: Page) -> None:
        """
        Takes a page out of the index ahead of reindexing it: its lemmas stop
        counting it, the page and its index rows go, and lemmas no page uses
        any more are dropped.
        """
        with Transaction(self.db_path) as db:
            decrement_lemmas_for_page(db, page.id)
            delete_page(db, page.id)
            removed = delete_unused_lemmas(db, page.site_id)
        logger.debug("Removed page %s, %d orphaned lemmas dropped", page.path, removed)
