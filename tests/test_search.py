import pytest

from conftest import add_page, html, make_site

from sitesearch.db.types import Status
from sitesearch.responses import Rejected, SearchResults
from sitesearch.search import SearchEngine, build_snippet


@pytest.fixture
def engine(db_path, extractor) -> SearchEngine:
    return SearchEngine(db_path, extractor)


@pytest.fixture
def corpus(db_path, writer, extractor):
    """
    Ten pages that all say "common"; alpha and beta on a few of them with
    different counts.
    """
    site = make_site(db_path)
    bodies = {
        "/p1": "common alpha alpha alpha beta",
        "/p2": "common alpha beta",
        "/p3": "common alpha beta beta",
        "/p4": "common alpha",
        "/p5": "common gamma",
    }
    for i in range(6, 11):
        bodies[f"/p{i}"] = "common filler text"
    for path, body in bodies.items():
        add_page(db_path, writer, extractor, site, path, html(path.upper(), body))
    return site


def test_results_are_ranked_by_relative_relevance(engine, corpus):
    result = engine.search("alpha beta")

    assert isinstance(result, SearchResults)
    assert result.count == 3
    assert [item.uri for item in result.data] == ["/p1", "/p3", "/p2"]
    relevances = [item.relevance for item in result.data]
    assert relevances[0] == 1.0
    assert relevances == sorted(relevances, reverse=True)
    assert relevances[1] == pytest.approx(0.75)
    assert relevances[2] == pytest.approx(0.5)

    top = result.data[0]
    assert top.site == corpus.url
    assert top.site_name == corpus.name
    assert top.title == "/P1"
    assert "<b>alpha</b>" in top.snippet


def test_near_universal_lemma_does_not_change_results(engine, corpus):
    without = engine.search("alpha beta")
    with_common = engine.search("alpha beta common")

    assert with_common == without


def test_query_of_only_common_lemmas_finds_nothing(engine, corpus):
    result = engine.search("common")
    assert result == SearchResults(count=0, data=[])


def test_pagination_is_a_slice_of_the_ranking(engine, corpus):
    full = engine.search("alpha", offset=0, limit=4)
    first = engine.search("alpha", offset=0, limit=2)
    second = engine.search("alpha", offset=2, limit=2)

    assert full.count == first.count == second.count == 4
    assert [i.uri for i in first.data + second.data] == [i.uri for i in full.data]
    assert engine.search("alpha", offset=10, limit=2).data == []


def test_search_by_word_form_matches_lemma(engine, corpus, db_path, writer, extractor):
    add_page(db_path, writer, extractor, corpus, "/mice", html("Mice", "two mice"))

    result = engine.search("mouse")
    assert [item.uri for item in result.data] == ["/mice"]
    # Snippets match lemma text literally, and "mice" does not contain "mouse"
    assert result.data[0].snippet == ""


def test_unknown_words_give_empty_results(engine, corpus):
    assert engine.search("zebra") == SearchResults(count=0, data=[])


def test_site_filter_restricts_candidates(engine, corpus, db_path, writer, extractor):
    other = make_site(db_path, url="https://other.test", name="Other")
    for i in range(4):
        add_page(db_path, writer, extractor, other, f"/o{i}", html("O", f"alpha page{i}"))
    # Keeps alpha under the common-lemma threshold within this site alone
    for i in range(4, 6):
        add_page(db_path, writer, extractor, other, f"/o{i}", html("O", "nothing here"))

    everywhere = engine.search("alpha")
    only_other = engine.search("alpha", site="https://other.test/")

    assert {item.site for item in everywhere.data} == {corpus.url, other.url}
    assert only_other.count == 4
    assert {item.site for item in only_other.data} == {other.url}


@pytest.mark.parametrize(
    "query,kwargs",
    [
        ("", {}),
        ("   ", {}),
        ("alpha", {"offset": -1}),
        ("alpha", {"limit": 0}),
        ("alpha", {"site": "https://unknown.test"}),
    ],
)
def test_invalid_requests_are_rejected(engine, corpus, query, kwargs):
    assert isinstance(engine.search(query, **kwargs), Rejected)


def test_site_still_indexing_is_rejected(engine, db_path):
    make_site(db_path, status=Status.INDEXING)

    result = engine.search("alpha", site="https://site.test")
    assert isinstance(result, Rejected)
    assert "still being indexed" in result.error


def test_no_indexed_sites_is_rejected(engine, db_path):
    make_site(db_path, status=Status.FAILED)

    result = engine.search("alpha")
    assert isinstance(result, Rejected)
    assert "no indexed sites" in result.error


def test_snippet_marks_only_matching_words():
    content = "<html><body><p>foo bar baz</p></body></html>"
    assert build_snippet(content, ["bar"]) == "foo <b>bar</b> baz"


def test_snippet_marks_words_containing_lemma():
    content = "<body>The barns and the bar</body>"
    assert build_snippet(content, ["bar"]) == "The <b>barns</b> and the <b>bar</b>"


def test_snippet_is_empty_when_nothing_matches():
    assert build_snippet("<body>foo baz</body>", ["bar"]) == ""
    assert build_snippet("<body>foo bar</body>", []) == ""


def test_snippet_leaves_out_the_title():
    content = "<html><head><title>bar</title></head><body>foo only</body></html>"
    assert build_snippet(content, ["bar"]) == ""


def test_long_snippet_is_windowed_with_ellipses():
    words = [f"w{i:04d}" for i in range(1000)]
    words[500] = "target"
    content = "<body>" + " ".join(words) + "</body>"

    snippet = build_snippet(content, ["target"], length=100)

    assert "<b>target</b>" in snippet
    assert snippet.startswith("...")
    assert snippet.endswith("...")
    assert "w0000" not in snippet
    assert "w0999" not in snippet


def test_snippet_window_is_clipped_not_shifted_near_the_end():
    words = [f"w{i:04d}" for i in range(1000)]
    words[995] = "target"
    content = "<body>" + " ".join(words) + "</body>"

    snippet = build_snippet(content, ["target"], length=100)

    # The window starts 50 characters before the match, inside w0986
    assert snippet.startswith("...6 w0987")
    assert "w0985" not in snippet
    assert snippet.endswith("<b>target</b> w0996 w0997 w0998 w0999")


def test_pages_removed_after_ranking_are_left_out(engine, corpus, monkeypatch):
    from sitesearch import search

    real = search.list_pages_by_ids

    def drop_first(db, page_ids):
        return real(db, page_ids[1:])

    monkeypatch.setattr(search, "list_pages_by_ids", drop_first)

    result = engine.search("alpha beta")

    assert result.count == 3
    assert [item.uri for item in result.data] == ["/p3", "/p2"]
