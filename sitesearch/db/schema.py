from sitesearch.db.context import DB_FILE, Transaction


def create_schema(db_path: str = DB_FILE):
    with Transaction(db_path) as db:
        # Turn on WAL mode
        db.connection.execute("PRAGMA journal_mode=WAL;")

        db.execute(
            """
        CREATE TABLE IF NOT EXISTS site (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            url TEXT NOT NULL UNIQUE,
            name TEXT NOT NULL,
            status TEXT NOT NULL CHECK (status IN ('INDEXING', 'INDEXED', 'FAILED')),
            status_time TIMESTAMP NOT NULL,
            last_error TEXT
        );
        """
        )

        db.execute(
            """
        CREATE TABLE IF NOT EXISTS page (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            site_id INTEGER NOT NULL,
            path TEXT NOT NULL,
            code INTEGER NOT NULL,
            content TEXT NOT NULL,
            UNIQUE(site_id, path),
            FOREIGN KEY (site_id) REFERENCES site(id) ON DELETE CASCADE
        );
        """
        )

        db.execute(
            """
        CREATE TABLE IF NOT EXISTS lemma (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            site_id INTEGER NOT NULL,
            lemma TEXT NOT NULL,
            frequency INTEGER NOT NULL CHECK (frequency >= 0),
            UNIQUE(site_id, lemma),
            FOREIGN KEY (site_id) REFERENCES site(id) ON DELETE CASCADE
        );
        """
        )

        db.execute(
            """
        CREATE TABLE IF NOT EXISTS search_index (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            page_id INTEGER NOT NULL,
            lemma_id INTEGER NOT NULL,
            rank REAL NOT NULL,
            UNIQUE(page_id, lemma_id),
            FOREIGN KEY (page_id) REFERENCES page(id) ON DELETE CASCADE,
            FOREIGN KEY (lemma_id) REFERENCES lemma(id) ON DELETE CASCADE
        );
        """
        )

        db.execute(
            "CREATE INDEX IF NOT EXISTS idx_search_index_lemma ON search_index (lemma_id);"
        )
