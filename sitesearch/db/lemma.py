from sqlite3 import Cursor

from sitesearch.db.types import Lemma


def _row_to_lemma(row) -> Lemma:
    return Lemma(id=row[0], site_id=row[1], lemma=row[2], frequency=row[3])


def upsert_lemma(db: Cursor, site_id: int, lemma: str) -> Lemma:
    """
    Counts one more page for the lemma, creating it with a frequency of 1 if
    this is the first page of the site to contain it.
    """
    db.execute(
        """
        INSERT INTO lemma (site_id, lemma, frequency)
        VALUES (?, ?, 1)
        ON CONFLICT(site_id, lemma) DO UPDATE SET
            frequency = frequency + 1
        RETURNING *
        """,
        (site_id, lemma),
    )
    row = db.fetchone()
    assert row is not None, "Failed to upsert lemma"
    return _row_to_lemma(row)


def get_lemma(db: Cursor, site_id: int, lemma: str) -> Lemma | None:
    db.execute("SELECT * FROM lemma WHERE site_id = ? AND lemma = ?", (site_id, lemma))
    row = db.fetchone()
    return _row_to_lemma(row) if row else None


def find_lemmas(db: Cursor, lemmas: list[str], site_ids: list[int]) -> list[Lemma]:
    if not lemmas or not site_ids:
        return []
    lemma_marks = ",".join("?" * len(lemmas))
    site_marks = ",".join("?" * len(site_ids))
    db.execute(
        f"""
        SELECT * FROM lemma
        WHERE lemma IN ({lemma_marks}) AND site_id IN ({site_marks})
        """,
        (*lemmas, *site_ids),
    )
    return [_row_to_lemma(row) for row in db.fetchall()]


def sum_lemma_frequency(db: Cursor, lemma: str, site_ids: list[int]) -> int:
    """
    Number of pages, across the given sites, known to contain the lemma.
    """
    if not site_ids:
        return 0
    marks = ",".join("?" * len(site_ids))
    db.execute(
        f"""
        SELECT COALESCE(SUM(frequency), 0) FROM lemma
        WHERE lemma = ? AND site_id IN ({marks})
        """,
        (lemma, *site_ids),
    )
    return db.fetchone()[0]


def decrement_lemmas_for_page(db: Cursor, page_id: int) -> int:
    db.execute(
        """
        UPDATE lemma SET frequency = frequency - 1
        WHERE id IN (SELECT lemma_id FROM search_index WHERE page_id = ?)
        """,
        (page_id,),
    )
    return db.rowcount


def delete_unused_lemmas(db: Cursor, site_id: int) -> int:
    db.execute("DELETE FROM lemma WHERE site_id = ? AND frequency <= 0", (site_id,))
    return db.rowcount


def count_lemmas_for_site(db: Cursor, site_id: int) -> int:
    db.execute("SELECT COUNT(*) FROM lemma WHERE site_id = ?", (site_id,))
    return db.fetchone()[0]
