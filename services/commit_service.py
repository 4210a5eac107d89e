"""
Commit of a previewed import session into persisted expenses.
"""
import sqlite3
from typing import List, Optional

from core.config import Settings, get_settings
from core.db import Database, get_db
from core.exceptions import (
    ImportCommitError,
    NoParsedRowsError,
    NoValidRowsError,
    SessionNotActiveError,
    SessionNotFoundError,
)
from core.logger import format_context, setup_logger
from core.matching import find_category_by_name
from core.schema import ImportHistory, ImportResult
from core.stores import CategoryStore, ExpenseStore, SqliteCategoryStore, SqliteExpenseStore

logger = setup_logger(__name__)

FALLBACK_CATEGORY_ID = 1
DEFAULT_HISTORY_FILE_NAME = "unknown.csv"


class CommitCoordinator:
    """
    Materializes the accepted rows of a session in one transaction.

    Args:
        db: Database to use (defaults to the shared instance)
        category_store: Source of the default category
        expense_store: Target for expense inserts
        settings: Application settings
    """

    def __init__(
        self,
        db: Optional[Database] = None,
        category_store: Optional[CategoryStore] = None,
        expense_store: Optional[ExpenseStore] = None,
        settings: Optional[Settings] = None
    ):
        self.settings = settings or get_settings()
        self.db = db or get_db()
        self.category_store = category_store or SqliteCategoryStore(self.db)
        self.expense_store = expense_store or SqliteExpenseStore(self.db)

    def default_category_id(self) -> int:
        """Id of the configured default category, or 1 when it does not exist."""
        category = find_category_by_name(
            self.category_store.list_categories(),
            self.settings.default_category_name
        )
        return category.id if category else FALLBACK_CATEGORY_ID

    def confirm(self, session_id: int, user_id: int) -> ImportResult:
        """
        Import every row that is neither skipped nor invalid.

        Expenses, the session's completed status and the history record are
        written in one transaction; on any failure nothing is kept and the
        session stays in preview.

        Args:
            session_id: Session in preview status
            user_id: Owning user

        Returns:
            ImportResult with imported/skipped counts and the history record

        Raises:
            SessionNotFoundError: If the user has no such session
            SessionNotActiveError: If the session is not in preview
            NoParsedRowsError: If mapping was never saved
            NoValidRowsError: If no row is importable
            ImportCommitError: If the transaction failed and was rolled back
        """
        default_category_id = self.default_category_id()

        try:
            with self.db.transaction() as conn:
                session = self.db.fetch_session(conn, session_id, user_id)
                if session is None:
                    raise SessionNotFoundError("Session not found", details={"session_id": session_id})
                if session.status != "preview":
                    raise SessionNotActiveError(
                        "Session is not in preview status",
                        details={"session_id": session_id, "status": session.status}
                    )
                if session.parsed_rows is None:
                    raise NoParsedRowsError("No parsed rows in session", details={"session_id": session_id})

                rows_to_import = [row for row in session.parsed_rows if row.is_importable]
                if not rows_to_import:
                    raise NoValidRowsError(
                        "No valid rows to import",
                        details={"session_id": session_id, "total_rows": len(session.parsed_rows)}
                    )

                for row in rows_to_import:
                    self.expense_store.insert_expense(
                        conn,
                        user_id=user_id,
                        category_id=row.category_id or default_category_id,
                        amount=row.amount,
                        description=row.description,
                        date=row.date,
                    )

                imported_count = len(rows_to_import)
                skipped_count = len(session.parsed_rows) - imported_count

                session.status = "completed"
                session.imported_expense_count = imported_count
                self.db.save_session(conn, session)

                history = self.db.insert_history(
                    conn,
                    user_id=user_id,
                    session_id=session_id,
                    file_name=session.file_name or DEFAULT_HISTORY_FILE_NAME,
                    total_rows=len(session.parsed_rows),
                    imported_rows=imported_count,
                    skipped_rows=skipped_count,
                )
        except sqlite3.Error as e:
            logger.error(
                f"Import transaction rolled back {format_context(user_id=user_id, session_id=session_id)}: {e}",
                exc_info=True
            )
            raise ImportCommitError(
                "Import failed and was rolled back",
                details={"session_id": session_id, "error": str(e)}
            )

        logger.info(
            f"Import completed {format_context(user_id=user_id, session_id=session_id, imported=imported_count, skipped=skipped_count)}"
        )
        return ImportResult(imported_count=imported_count, skipped_count=skipped_count, history=history)

    def list_history(self, user_id: int) -> List[ImportHistory]:
        """History records for the user, newest first."""
        with self.db.connect() as conn:
            return self.db.list_history(conn, user_id)
