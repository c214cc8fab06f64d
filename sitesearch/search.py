from collections import defaultdict
from html import escape
import logging

from sitesearch.db.context import Transaction
from sitesearch.db.index import list_index_for_page, page_ids_for_lemma
from sitesearch.db.lemma import find_lemmas, sum_lemma_frequency
from sitesearch.db.page import count_pages_for_sites, list_pages_by_ids
from sitesearch.db.site import get_site_by_url, list_sites_by_status
from sitesearch.db.types import Lemma, Site, Status
from sitesearch.errors import InvalidRequestError, NotReadyError, SiteSearchError
from sitesearch.lemmas import LemmaExtractor
from sitesearch.responses import Rejected, SearchItem, SearchResponse, SearchResults
from sitesearch.util.html import extract_body_text, extract_title

logger = logging.getLogger(__name__)

# Lemmas found on at least this share of the candidate pages are dropped
COMMON_LEMMA_THRESHOLD = 0.8
SNIPPET_LENGTH = 1500
RANK_PAGE_SIZE = 100
ELLIPSIS = "..."


class SearchEngine:
    """
    Answers free-text queries from the lemma index. Query words go through the
    same LemmaExtractor as page content; lemmas that almost every page has are
    dropped, the rest are intersected rarest first, and the matching pages are
    ranked by the summed occurrence counts of the query lemmas.
    """

    def __init__(
        self,
        db_path: str,
        extractor: LemmaExtractor,
        threshold: float = COMMON_LEMMA_THRESHOLD,
        snippet_length: int = SNIPPET_LENGTH,
    ) -> None:
        self.db_path = db_path
        self.extractor = extractor
        self.threshold = threshold
        self.snippet_length = snippet_length

    def search(
        self, query: str, site: str | None = None, offset: int = 0, limit: int = 20
    ) -> SearchResponse:
        try:
            return self._search(query, site, offset, limit)
        except SiteSearchError as e:
            logger.info("Search for %r rejected: %s", query, e)
            return Rejected(error=str(e))

    def _search(self, query: str, site: str | None, offset: int, limit: int) -> SearchResults:
        if not query or not query.strip():
            raise InvalidRequestError("Query must not be empty")
        if offset < 0:
            raise InvalidRequestError("Offset must not be negative")
        if limit <= 0:
            raise InvalidRequestError("Limit must be positive")

        with Transaction(self.db_path) as db:
            sites = self._candidate_sites(db, site)
            site_ids = [s.id for s in sites]

            query_lemmas = sorted(self.extractor.lemmatize(query))
            lemmas = self._drop_common(db, query_lemmas, site_ids)
            records = find_lemmas(db, lemmas, site_ids)
            if not records:
                return SearchResults(count=0, data=[])

            records.sort(key=lambda r: (r.frequency, r.lemma, r.site_id))
            page_ids = self._matching_pages(db, records)
            if not page_ids:
                return SearchResults(count=0, data=[])

            relevance = self._relevance(db, page_ids, records)
            ranked = sorted(relevance.items(), key=lambda item: (-item[1], item[0]))
            window = ranked[offset : offset + limit]
            pages = {p.id: p for p in list_pages_by_ids(db, [pid for pid, _ in window])}

        sites_by_id = {s.id: s for s in sites}
        items = []
        for page_id, score in window:
            page = pages.get(page_id)
            if page is None:
                # Removed by a concurrent reindex after ranking
                logger.debug("Page %d vanished while building results", page_id)
                continue
            page_site = sites_by_id[page.site_id]
            items.append(
                SearchItem(
                    site=page_site.url,
                    site_name=page_site.name,
                    uri=page.path,
                    title=extract_title(page.content),
                    snippet=build_snippet(page.content, lemmas, self.snippet_length),
                    relevance=score,
                )
            )
        logger.info("Search for %r matched %d page(s)", query, len(ranked))
        return SearchResults(count=len(ranked), data=items)

    def _candidate_sites(self, db, site_url: str | None) -> list[Site]:
        if site_url:
            site = get_site_by_url(db, site_url.strip().rstrip("/"))
            if site is None:
                raise InvalidRequestError(f"Unknown site: {site_url}")
            if site.status == Status.INDEXING:
                raise NotReadyError(f"Site {site.url} is still being indexed")
            sites = [site] if site.status == Status.INDEXED else []
        else:
            sites = list_sites_by_status(db, Status.INDEXED)
        if not sites:
            raise NotReadyError("There are no indexed sites to search")
        return sites

    def _drop_common(self, db, lemmas: list[str], site_ids: list[int]) -> list[str]:
        total = count_pages_for_sites(db, site_ids)
        kept = []
        for lemma in lemmas:
            if sum_lemma_frequency(db, lemma, site_ids) >= self.threshold * total:
                logger.info("Dropping lemma %r, too common across %d pages", lemma, total)
                continue
            kept.append(lemma)
        return kept

    def _matching_pages(self, db, records: list[Lemma]) -> set[int]:
        """
        Per site, pages holding every lemma of the query that the site knows,
        intersected rarest lemma first; the union over all sites.
        """
        by_site: dict[int, list[Lemma]] = defaultdict(list)
        for record in records:
            by_site[record.site_id].append(record)

        matched: set[int] = set()
        for site_records in by_site.values():
            pages = page_ids_for_lemma(db, site_records[0].id)
            for record in site_records[1:]:
                if not pages:
                    break
                pages &= page_ids_for_lemma(db, record.id)
            matched |= pages
        return matched

    def _relevance(self, db, page_ids: set[int], records: list[Lemma]) -> dict[int, float]:
        lemma_ids = [r.id for r in records]
        absolute: dict[int, float] = {}
        for page_id in page_ids:
            total = 0.0
            offset = 0
            while True:
                rows = list_index_for_page(db, page_id, lemma_ids, RANK_PAGE_SIZE, offset)
                total += sum(row.rank for row in rows)
                if len(rows) < RANK_PAGE_SIZE:
                    break
                offset += RANK_PAGE_SIZE
            absolute[page_id] = total

        top = max(absolute.values(), default=0.0)
        if top == 0:
            return {page_id: 0.0 for page_id in absolute}
        return {page_id: score / top for page_id, score in absolute.items()}


def build_snippet(content: str, lemmas: list[str], length: int = SNIPPET_LENGTH) -> str:
    """
    A window of the page body around the first place any lemma occurs, with
    every word containing a lemma wrapped in <b></b>. Empty if no lemma occurs
    in the body.
    """
    if not lemmas:
        return ""
    text = extract_body_text(content)
    lowered = text.lower()
    positions = [p for p in (lowered.find(lemma.lower()) for lemma in lemmas) if p >= 0]
    if not positions:
        return ""

    first = min(positions)
    start = max(0, first - length // 2)
    end = min(len(text), start + length)

    words = []
    for word in text[start:end].split():
        if any(lemma.lower() in word.lower() for lemma in lemmas):
            words.append(f"<b>{escape(word)}</b>")
        else:
            words.append(escape(word))
    snippet = " ".join(words)

    if start > 0 and not (text[start - 1].isspace() or text[start].isspace()):
        snippet = ELLIPSIS + snippet
    if end < len(text) and not (text[end - 1].isspace() or text[end].isspace()):
        snippet = snippet + ELLIPSIS
    return snippet
