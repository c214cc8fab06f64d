from sqlite3 import Cursor

from sitesearch.db.types import Page


def _row_to_page(row) -> Page:
    return Page(id=row[0], site_id=row[1], path=row[2], code=row[3], content=row[4])


def insert_page(db: Cursor, page: Page) -> Page | None:
    """
    Paths are unique per site. If another writer got there first, nothing is
    inserted and None comes back, which lets callers skip indexing a page they
    do not own.
    """
    db.execute(
        """
        INSERT INTO page (site_id, path, code, content)
        VALUES (?, ?, ?, ?)
        ON CONFLICT(site_id, path) DO NOTHING
        RETURNING *
        """,
        (page.site_id, page.path, page.code, page.content),
    )
    row = db.fetchone()
    return _row_to_page(row) if row else None


def get_page_by_id(db: Cursor, page_id: int) -> Page | None:
    db.execute("SELECT * FROM page WHERE id = ?", (page_id,))
    row = db.fetchone()
    return _row_to_page(row) if row else None


def get_page_by_path(db: Cursor, site_id: int, path: str) -> Page | None:
    db.execute("SELECT * FROM page WHERE site_id = ? AND path = ?", (site_id, path))
    row = db.fetchone()
    return _row_to_page(row) if row else None


def page_exists(db: Cursor, site_id: int, path: str) -> bool:
    db.execute(
        "SELECT 1 FROM page WHERE site_id = ? AND path = ? LIMIT 1", (site_id, path)
    )
    return db.fetchone() is not None


def list_pages_by_ids(db: Cursor, page_ids: list[int]) -> list[Page]:
    if not page_ids:
        return []
    marks = ",".join("?" * len(page_ids))
    db.execute(f"SELECT * FROM page WHERE id IN ({marks})", tuple(page_ids))
    return [_row_to_page(row) for row in db.fetchall()]


def count_pages_for_site(db: Cursor, site_id: int) -> int:
    db.execute("SELECT COUNT(*) FROM page WHERE site_id = ?", (site_id,))
    return db.fetchone()[0]


def count_pages_for_sites(db: Cursor, site_ids: list[int]) -> int:
    if not site_ids:
        return 0
    marks = ",".join("?" * len(site_ids))
    db.execute(
        f"SELECT COUNT(*) FROM page WHERE site_id IN ({marks})", tuple(site_ids)
    )
    return db.fetchone()[0]


def delete_page(db: Cursor, page_id: int) -> None:
    db.execute("DELETE FROM page WHERE id = ?", (page_id,))
