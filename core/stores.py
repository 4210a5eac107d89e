"""
Category and expense stores consumed by the import engine.

The engine only depends on the two protocols; the SQLite classes are the
default implementations backed by the shared Database.
"""
import sqlite3
from typing import List, Optional, Protocol

from core.db import Database, utcnow
from core.logger import setup_logger
from core.schema import Category, Expense

logger = setup_logger(__name__)


class CategoryStore(Protocol):
    """Read-only source of categories."""

    def list_categories(self) -> List[Category]:
        ...


class ExpenseStore(Protocol):
    """Sink for finalized expenses; inserts run on the caller's transaction."""

    def insert_expense(
        self,
        conn: sqlite3.Connection,
        user_id: int,
        category_id: int,
        amount: float,
        description: str,
        date: str
    ) -> int:
        ...


class SqliteCategoryStore:
    def __init__(self, db: Database):
        self.db = db

    def list_categories(self) -> List[Category]:
        with self.db.connect() as conn:
            rows = conn.execute("SELECT id, name FROM categories ORDER BY id").fetchall()
        return [Category(id=row["id"], name=row["name"]) for row in rows]

    def add_category(self, name: str) -> Category:
        with self.db.transaction() as conn:
            cursor = conn.execute("INSERT INTO categories (name) VALUES (?)", (name,))
            category = Category(id=cursor.lastrowid, name=name)
        logger.info(f"Added category {name} (id={category.id})")
        return category


class SqliteExpenseStore:
    def __init__(self, db: Database):
        self.db = db

    def insert_expense(
        self,
        conn: sqlite3.Connection,
        user_id: int,
        category_id: int,
        amount: float,
        description: str,
        date: str
    ) -> int:
        cursor = conn.execute(
            """
            INSERT INTO expenses (user_id, category_id, amount, description, date, created_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (user_id, category_id, amount, description, date, utcnow())
        )
        return cursor.lastrowid

    def list_expenses(self, user_id: int, limit: Optional[int] = None) -> List[Expense]:
        """Expenses for a user, oldest first."""
        sql = "SELECT * FROM expenses WHERE user_id = ? ORDER BY id"
        params: list = [user_id]
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)
        with self.db.connect() as conn:
            rows = conn.execute(sql, params).fetchall()
        return [Expense(**dict(row)) for row in rows]
