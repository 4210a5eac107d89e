"""
SQLite persistence for categories, expenses, import sessions and history.

Parsed rows and the column mapping are nested models in code and are only
turned into JSON text here, at the storage boundary.
"""
import json
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, List, Optional

from core.config import Settings, get_settings
from core.logger import setup_logger
from core.schema import (
    ACTIVE_STATUSES,
    PARSED_ROWS_ADAPTER,
    ColumnMapping,
    ImportHistory,
    ImportSession,
)

logger = setup_logger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS categories (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL UNIQUE
);

CREATE TABLE IF NOT EXISTS expenses (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL,
    category_id INTEGER NOT NULL,
    amount REAL NOT NULL,
    description TEXT NOT NULL,
    date TEXT NOT NULL,
    created_at TIMESTAMP NOT NULL
);

CREATE TABLE IF NOT EXISTS import_sessions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL,
    status TEXT NOT NULL DEFAULT 'upload',
    file_name TEXT,
    file_size INTEGER,
    raw_csv_data TEXT,
    column_mapping TEXT,
    parsed_rows TEXT,
    valid_row_count INTEGER NOT NULL DEFAULT 0,
    invalid_row_count INTEGER NOT NULL DEFAULT 0,
    skipped_row_count INTEGER NOT NULL DEFAULT 0,
    imported_expense_count INTEGER NOT NULL DEFAULT 0,
    created_at TIMESTAMP NOT NULL,
    updated_at TIMESTAMP NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_import_sessions_user_status
    ON import_sessions (user_id, status);

CREATE TABLE IF NOT EXISTS import_history (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL,
    session_id INTEGER NOT NULL,
    file_name TEXT NOT NULL,
    total_rows INTEGER NOT NULL,
    imported_rows INTEGER NOT NULL,
    skipped_rows INTEGER NOT NULL,
    created_at TIMESTAMP NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_import_history_user
    ON import_history (user_id, created_at);
"""


def utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


class Database:
    def __init__(
        self,
        db_path: Optional[str] = None,
        timeout: Optional[float] = None,
        settings: Optional[Settings] = None
    ):
        self.settings = settings or get_settings()
        self.db_path = db_path or self.settings.database_path
        self.timeout = timeout or self.settings.database_timeout

    def get_connection(self) -> sqlite3.Connection:
        """Create a database connection in autocommit mode; transactions are explicit."""
        conn = sqlite3.connect(self.db_path, timeout=self.timeout, isolation_level=None)
        conn.row_factory = sqlite3.Row
        return conn

    @contextmanager
    def connect(self) -> Iterator[sqlite3.Connection]:
        """Connection for read-only work, closed on exit."""
        conn = self.get_connection()
        try:
            yield conn
        finally:
            conn.close()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """
        Run a block inside one write transaction.

        BEGIN IMMEDIATE takes the write lock before anything is read, so a
        read-modify-write of a session cannot interleave with another writer.
        Any exception rolls the whole block back and is re-raised.
        """
        conn = self.get_connection()
        try:
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")
        finally:
            conn.close()

    def init_db(self) -> None:
        """Create tables and seed the configured categories when none exist."""
        db_dir = Path(self.db_path).parent
        if str(db_dir) not in ("", "."):
            db_dir.mkdir(parents=True, exist_ok=True)

        try:
            with self.connect() as conn:
                conn.executescript(SCHEMA)
            with self.transaction() as conn:
                existing = conn.execute("SELECT COUNT(*) FROM categories").fetchone()[0]
                if existing == 0:
                    conn.executemany(
                        "INSERT OR IGNORE INTO categories (name) VALUES (?)",
                        [(name,) for name in self.settings.seed_categories]
                    )
            logger.info(f"Database initialized successfully at {self.db_path}")
        except sqlite3.Error as e:
            logger.error(f"Database initialization failed: {e}")
            raise

    # Import sessions

    def fetch_session(self, conn: sqlite3.Connection, session_id: int, user_id: int) -> Optional[ImportSession]:
        row = conn.execute(
            "SELECT * FROM import_sessions WHERE id = ? AND user_id = ?",
            (session_id, user_id)
        ).fetchone()
        return _row_to_session(row) if row else None

    def fetch_active_session(self, conn: sqlite3.Connection, user_id: int) -> Optional[ImportSession]:
        placeholders = ", ".join("?" for _ in ACTIVE_STATUSES)
        row = conn.execute(
            f"""
            SELECT * FROM import_sessions
            WHERE user_id = ? AND status IN ({placeholders})
            ORDER BY created_at DESC, id DESC
            LIMIT 1
            """,
            (user_id, *ACTIVE_STATUSES)
        ).fetchone()
        return _row_to_session(row) if row else None

    def cancel_active_sessions(
        self,
        conn: sqlite3.Connection,
        user_id: int,
        session_id: Optional[int] = None
    ) -> int:
        """
        Mark the user's non-terminal sessions cancelled.

        Args:
            conn: Connection inside an open transaction
            user_id: Owning user
            session_id: Restrict to one session when given

        Returns:
            Number of sessions cancelled
        """
        placeholders = ", ".join("?" for _ in ACTIVE_STATUSES)
        sql = (
            f"UPDATE import_sessions SET status = 'cancelled', updated_at = ? "
            f"WHERE user_id = ? AND status IN ({placeholders})"
        )
        params: list = [utcnow(), user_id, *ACTIVE_STATUSES]
        if session_id is not None:
            sql += " AND id = ?"
            params.append(session_id)
        return conn.execute(sql, params).rowcount

    def insert_session(self, conn: sqlite3.Connection, user_id: int) -> ImportSession:
        now = utcnow()
        cursor = conn.execute(
            """
            INSERT INTO import_sessions (user_id, status, created_at, updated_at)
            VALUES (?, 'upload', ?, ?)
            """,
            (user_id, now, now)
        )
        return self.fetch_session(conn, cursor.lastrowid, user_id)

    def save_session(self, conn: sqlite3.Connection, session: ImportSession) -> ImportSession:
        """Write every mutable column of the session in one statement."""
        session.updated_at = datetime.now(timezone.utc)
        conn.execute(
            """
            UPDATE import_sessions SET
                status = ?, file_name = ?, file_size = ?, raw_csv_data = ?,
                column_mapping = ?, parsed_rows = ?,
                valid_row_count = ?, invalid_row_count = ?, skipped_row_count = ?,
                imported_expense_count = ?, updated_at = ?
            WHERE id = ? AND user_id = ?
            """,
            (
                session.status,
                session.file_name,
                session.file_size,
                session.raw_csv_data,
                session.column_mapping.model_dump_json() if session.column_mapping else None,
                PARSED_ROWS_ADAPTER.dump_json(session.parsed_rows).decode("utf-8")
                if session.parsed_rows is not None else None,
                session.valid_row_count,
                session.invalid_row_count,
                session.skipped_row_count,
                session.imported_expense_count,
                session.updated_at.isoformat(),
                session.id,
                session.user_id,
            )
        )
        return session

    # Import history

    def insert_history(
        self,
        conn: sqlite3.Connection,
        user_id: int,
        session_id: int,
        file_name: str,
        total_rows: int,
        imported_rows: int,
        skipped_rows: int
    ) -> ImportHistory:
        cursor = conn.execute(
            """
            INSERT INTO import_history
                (user_id, session_id, file_name, total_rows, imported_rows, skipped_rows, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (user_id, session_id, file_name, total_rows, imported_rows, skipped_rows, utcnow())
        )
        row = conn.execute("SELECT * FROM import_history WHERE id = ?", (cursor.lastrowid,)).fetchone()
        return ImportHistory(**dict(row))

    def list_history(self, conn: sqlite3.Connection, user_id: int) -> List[ImportHistory]:
        rows = conn.execute(
            "SELECT * FROM import_history WHERE user_id = ? ORDER BY created_at DESC, id DESC",
            (user_id,)
        ).fetchall()
        return [ImportHistory(**dict(row)) for row in rows]


def _row_to_session(row: sqlite3.Row) -> ImportSession:
    data = dict(row)
    mapping = data.pop("column_mapping")
    parsed_rows = data.pop("parsed_rows")
    return ImportSession(
        **data,
        column_mapping=ColumnMapping(**json.loads(mapping)) if mapping else None,
        parsed_rows=PARSED_ROWS_ADAPTER.validate_json(parsed_rows) if parsed_rows else None,
    )


# Global DB instance
_db: Optional[Database] = None


def get_db() -> Database:
    global _db
    if _db is None:
        _db = Database()
    return _db


def reset_db() -> None:
    """Drop the cached Database (useful for testing)."""
    global _db
    _db = None
