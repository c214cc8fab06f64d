from datetime import datetime
from sqlite3 import Cursor

from sitesearch.db.types import Site, Status


def _row_to_site(row) -> Site:
    return Site(
        id=row[0],
        url=row[1],
        name=row[2],
        status=Status(row[3]),
        status_time=datetime.fromisoformat(row[4]),
        last_error=row[5],
    )


def insert_site(db: Cursor, site: Site) -> Site:
    db.execute(
        """
        INSERT INTO site (url, name, status, status_time, last_error)
        VALUES (?, ?, ?, ?, ?)
        RETURNING *
    """,
        (
            site.url,
            site.name,
            site.status.value,
            site.status_time.isoformat(),
            site.last_error,
        ),
    )
    row = db.fetchone()
    assert row is not None, "Failed to insert site"
    return _row_to_site(row)


def get_site_by_id(db: Cursor, site_id: int) -> Site | None:
    db.execute("SELECT * FROM site WHERE id = ?", (site_id,))
    row = db.fetchone()
    return _row_to_site(row) if row else None


def get_site_by_url(db: Cursor, url: str) -> Site | None:
    db.execute("SELECT * FROM site WHERE url = ?", (url,))
    row = db.fetchone()
    return _row_to_site(row) if row else None


def list_sites(db: Cursor) -> list[Site]:
    db.execute("SELECT * FROM site ORDER BY id")
    return [_row_to_site(row) for row in db.fetchall()]


def list_sites_by_status(db: Cursor, status: Status) -> list[Site]:
    db.execute("SELECT * FROM site WHERE status = ? ORDER BY id", (status.value,))
    return [_row_to_site(row) for row in db.fetchall()]


def exists_site_with_status(db: Cursor, status: Status) -> bool:
    db.execute("SELECT 1 FROM site WHERE status = ? LIMIT 1", (status.value,))
    return db.fetchone() is not None


def update_site_status(
    db: Cursor,
    site_id: int,
    status: Status,
    status_time: datetime,
    last_error: str | None = None,
) -> None:
    """
    The error text is only overwritten when one is given, so a site that failed
    keeps the reason it failed with.
    """
    db.execute(
        """
        UPDATE site
        SET status = ?, status_time = ?, last_error = COALESCE(?, last_error)
        WHERE id = ?
        """,
        (status.value, status_time.isoformat(), last_error, site_id),
    )


def update_status_for_all(
    db: Cursor,
    from_status: Status,
    to_status: Status,
    status_time: datetime,
    last_error: str | None = None,
) -> int:
    db.execute(
        """
        UPDATE site
        SET status = ?, status_time = ?, last_error = COALESCE(?, last_error)
        WHERE status = ?
        """,
        (to_status.value, status_time.isoformat(), last_error, from_status.value),
    )
    return db.rowcount


def touch_site(db: Cursor, site_id: int, status_time: datetime) -> None:
    db.execute(
        "UPDATE site SET status_time = ? WHERE id = ?",
        (status_time.isoformat(), site_id),
    )


def delete_site_by_url(db: Cursor, url: str) -> int:
    """
    Pages, lemmas and index rows go with the site via ON DELETE CASCADE.
    """
    db.execute("DELETE FROM site WHERE url = ?", (url,))
    return db.rowcount
