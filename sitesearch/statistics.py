from sitesearch.db.context import Transaction
from sitesearch.db.lemma import count_lemmas_for_site
from sitesearch.db.page import count_pages_for_site
from sitesearch.db.site import list_sites
from sitesearch.db.types import Status
from sitesearch.responses import (
    DetailedStatistics,
    StatisticsData,
    StatisticsResponse,
    TotalStatistics,
)


def get_statistics(db_path: str) -> StatisticsResponse:
    """
    Totals over every stored site plus one entry per site. A site's error is
    only reported while it is FAILED.
    """
    detailed = []
    with Transaction(db_path) as db:
        for site in list_sites(db):
            detailed.append(
                DetailedStatistics(
                    url=site.url,
                    name=site.name,
                    status=site.status.value,
                    status_time=site.status_time.isoformat(),
                    error=(site.last_error or "") if site.status == Status.FAILED else "",
                    pages=count_pages_for_site(db, site.id),
                    lemmas=count_lemmas_for_site(db, site.id),
                )
            )

    total = TotalStatistics(
        sites=len(detailed),
        pages=sum(d.pages for d in detailed),
        lemmas=sum(d.lemmas for d in detailed),
        indexing=any(d.status == Status.INDEXING.value for d in detailed),
    )
    return StatisticsResponse(statistics=StatisticsData(total=total, detailed=detailed))
