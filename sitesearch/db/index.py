from sqlite3 import Cursor

from sitesearch.db.types import Index


def _row_to_index(row) -> Index:
    return Index(id=row[0], page_id=row[1], lemma_id=row[2], rank=row[3])


def insert_index(db: Cursor, index: Index) -> Index:
    db.execute(
        """
        INSERT INTO search_index (page_id, lemma_id, rank)
        VALUES (?, ?, ?)
        RETURNING id
        """,
        (index.page_id, index.lemma_id, index.rank),
    )
    row = db.fetchone()
    assert row is not None, "Failed to insert index"
    return Index(id=row[0], page_id=index.page_id, lemma_id=index.lemma_id, rank=index.rank)


def page_ids_for_lemma(db: Cursor, lemma_id: int) -> set[int]:
    db.execute("SELECT page_id FROM search_index WHERE lemma_id = ?", (lemma_id,))
    return {row[0] for row in db.fetchall()}


def list_index_for_page(
    db: Cursor, page_id: int, lemma_ids: list[int], limit: int, offset: int = 0
) -> list[Index]:
    if not lemma_ids:
        return []
    marks = ",".join("?" * len(lemma_ids))
    db.execute(
        f"""
        SELECT * FROM search_index
        WHERE page_id = ? AND lemma_id IN ({marks})
        ORDER BY id
        LIMIT ? OFFSET ?
        """,
        (page_id, *lemma_ids, limit, offset),
    )
    return [_row_to_index(row) for row in db.fetchall()]


def list_index_for_page_all(db: Cursor, page_id: int) -> list[Index]:
    db.execute("SELECT * FROM search_index WHERE page_id = ? ORDER BY id", (page_id,))
    return [_row_to_index(row) for row in db.fetchall()]
