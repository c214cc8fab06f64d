from collections import Counter
from concurrent.futures import ThreadPoolExecutor

from conftest import add_page, make_site

from sitesearch.db.context import Transaction
from sitesearch.db.index import list_index_for_page_all
from sitesearch.db.lemma import count_lemmas_for_site, get_lemma
from sitesearch.db.page import insert_page
from sitesearch.db.types import Page


def test_frequency_counts_pages_and_rank_counts_occurrences(db_path, writer, extractor):
    site = make_site(db_path)
    first = add_page(db_path, writer, extractor, site, "/1", "<p>apple apple pear</p>")
    add_page(db_path, writer, extractor, site, "/2", "<p>apple plum</p>")

    with Transaction(db_path) as db:
        apple = get_lemma(db, site.id, "apple")
        assert apple.frequency == 2
        assert get_lemma(db, site.id, "pear").frequency == 1

        ranks = {row.lemma_id: row.rank for row in list_index_for_page_all(db, first.id)}
        assert ranks[apple.id] == 2.0
        assert len(ranks) == 2


def test_concurrent_pages_never_lose_increments(db_path, writer):
    site = make_site(db_path)
    pages = []
    with Transaction(db_path) as db:
        for i in range(40):
            pages.append(
                insert_page(db, Page(site_id=site.id, path=f"/{i}", code=200, content=""))
            )

    counts = Counter({"shared": 3, "common": 1})
    with ThreadPoolExecutor(max_workers=8) as executor:
        list(executor.map(lambda page: writer.index_page(page, counts), pages))

    with Transaction(db_path) as db:
        assert get_lemma(db, site.id, "shared").frequency == 40
        assert get_lemma(db, site.id, "common").frequency == 40
        for page in pages:
            rows = list_index_for_page_all(db, page.id)
            assert sorted(row.rank for row in rows) == [1.0, 3.0]


def test_repeated_reindex_does_not_drift(db_path, writer, extractor):
    site = make_site(db_path)
    add_page(db_path, writer, extractor, site, "/1", "<p>river stone</p>")
    page = add_page(db_path, writer, extractor, site, "/2", "<p>river bank</p>")

    for _ in range(5):
        writer.remove_page(page)
        page = add_page(db_path, writer, extractor, site, "/2", "<p>river bank</p>")

    with Transaction(db_path) as db:
        assert get_lemma(db, site.id, "river").frequency == 2
        assert get_lemma(db, site.id, "bank").frequency == 1
        assert get_lemma(db, site.id, "stone").frequency == 1
        assert count_lemmas_for_site(db, site.id) == 3


def test_remove_page_drops_orphaned_lemmas(db_path, writer, extractor):
    site = make_site(db_path)
    page = add_page(db_path, writer, extractor, site, "/1", "<p>lonely word</p>")

    writer.remove_page(page)

    with Transaction(db_path) as db:
        assert count_lemmas_for_site(db, site.id) == 0
        assert list_index_for_page_all(db, page.id) == []
