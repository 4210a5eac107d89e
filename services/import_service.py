"""
Import session service.
Owns the session lifecycle: upload -> (mapping) -> preview -> completed,
with cancellation allowed from any non-terminal state.
"""
import sqlite3
from typing import Any, Dict, Iterable, List, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from core.config import Settings, get_settings
from core.db import Database, get_db
from core.exceptions import (
    FileTooLargeError,
    MappingError,
    NoActiveSessionError,
    NoCsvDataError,
    NoParsedRowsError,
    RowNotFoundError,
    SessionNotActiveError,
    SessionNotFoundError,
)
from core.logger import format_context, setup_logger
from core.matching import suggest_mapping
from core.parsing import detect_delimiter, parse_csv, split_header
from core.schema import (
    ACTIVE_STATUSES,
    ColumnMapping,
    CsvStructure,
    ImportSession,
    MappingResult,
    ParsedRow,
    RowUpdate,
    UploadResult,
)
from core.stores import CategoryStore, SqliteCategoryStore
from services.row_processor import RowProcessor, count_rows

logger = setup_logger(__name__)


def refresh_counts(session: ImportSession) -> None:
    """Recompute the denormalized counters from the session's parsed rows."""
    counts = count_rows(session.parsed_rows or [])
    session.valid_row_count = counts.valid
    session.invalid_row_count = counts.invalid
    session.skipped_row_count = counts.skipped


def find_row(session: ImportSession, row_index: int) -> ParsedRow:
    for row in session.parsed_rows or []:
        if row.row_index == row_index:
            return row
    raise RowNotFoundError(
        "Row not found",
        details={"session_id": session.id, "row_index": row_index}
    )


class ImportSessionService:
    """
    Drives an import session through its steps.

    Every mutating call reads, changes and writes the session inside a
    single database transaction, so rows and counters are stored together.

    Args:
        db: Database to use (defaults to the shared instance)
        category_store: Source of categories for matching
        settings: Application settings
    """

    def __init__(
        self,
        db: Optional[Database] = None,
        category_store: Optional[CategoryStore] = None,
        settings: Optional[Settings] = None
    ):
        self.settings = settings or get_settings()
        self.db = db or get_db()
        self.category_store = category_store or SqliteCategoryStore(self.db)

    def _row_processor(self) -> RowProcessor:
        return RowProcessor(self.category_store.list_categories(), self.settings.category_aliases)

    def _load_for_update(
        self,
        conn: sqlite3.Connection,
        session_id: int,
        user_id: int,
        allowed: Iterable[str] = ACTIVE_STATUSES
    ) -> ImportSession:
        session = self.db.fetch_session(conn, session_id, user_id)
        if session is None:
            raise SessionNotFoundError(
                "Session not found",
                details={"session_id": session_id}
            )
        allowed = tuple(allowed)
        if session.status not in allowed:
            raise SessionNotActiveError(
                f"Session is in {session.status} status",
                details={"session_id": session_id, "status": session.status, "allowed": list(allowed)}
            )
        return session

    # Lifecycle

    def create_session(self, user_id: int) -> ImportSession:
        """
        Start a new session, cancelling any active one for the user.

        Args:
            user_id: Owning user

        Returns:
            The new session in upload status
        """
        with self.db.transaction() as conn:
            cancelled = self.db.cancel_active_sessions(conn, user_id)
            session = self.db.insert_session(conn, user_id)

        logger.info(f"Created new import session {format_context(user_id=user_id, session_id=session.id, cancelled=cancelled or None)}")
        return session

    def get_active_session(self, user_id: int) -> Optional[ImportSession]:
        with self.db.connect() as conn:
            return self.db.fetch_active_session(conn, user_id)

    def require_active_session(self, user_id: int) -> ImportSession:
        session = self.get_active_session(user_id)
        if session is None:
            raise NoActiveSessionError("No active import session", details={"user_id": user_id})
        return session

    def get_session(self, session_id: int, user_id: int) -> ImportSession:
        with self.db.connect() as conn:
            session = self.db.fetch_session(conn, session_id, user_id)
        if session is None:
            raise SessionNotFoundError("Session not found", details={"session_id": session_id})
        return session

    def cancel_session(self, session_id: int, user_id: int) -> bool:
        """
        Cancel a non-terminal session.

        Returns:
            False if the session does not exist or is already terminal
        """
        with self.db.transaction() as conn:
            updated = self.db.cancel_active_sessions(conn, user_id, session_id=session_id)

        if updated:
            logger.info(f"Cancelled import session {format_context(user_id=user_id, session_id=session_id)}")
        return updated > 0

    # Upload

    def upload_csv(self, user_id: int, file_name: str, csv_text: str) -> UploadResult:
        """
        Store an uploaded CSV on the user's active session and describe its structure.

        A session is created when the user has none. Re-uploading replaces the
        previous file and clears any mapping and parsed rows.

        Args:
            user_id: Owning user
            file_name: Name of the uploaded file
            csv_text: Full file contents

        Returns:
            UploadResult with the session and detected structure

        Raises:
            FileTooLargeError: If the text exceeds the upload cap
            MalformedInputError: If there is no header plus data row
        """
        # Spreadsheet exports often start with a UTF-8 byte order mark
        if csv_text.startswith("\ufeff"):
            csv_text = csv_text[1:]

        size = len(csv_text.encode("utf-8"))
        if size > self.settings.max_upload_bytes:
            raise FileTooLargeError(
                "CSV file is too large",
                details={"size": size, "max_bytes": self.settings.max_upload_bytes}
            )

        delimiter = detect_delimiter(csv_text)
        headers, data_rows = split_header(parse_csv(csv_text, delimiter))

        with self.db.transaction() as conn:
            session = self.db.fetch_active_session(conn, user_id)
            if session is None:
                session = self.db.insert_session(conn, user_id)

            session.status = "upload"
            session.file_name = file_name
            session.file_size = len(csv_text)
            session.raw_csv_data = csv_text
            session.column_mapping = None
            session.parsed_rows = None
            session.imported_expense_count = 0
            refresh_counts(session)
            self.db.save_session(conn, session)

        structure = CsvStructure(
            headers=headers,
            delimiter=delimiter,
            row_count=len(data_rows),
            sample_rows=data_rows[:self.settings.sample_row_count],
            suggested_mapping=suggest_mapping(headers),
        )

        logger.info(
            f"CSV uploaded {format_context(user_id=user_id, session_id=session.id, file_name=file_name, row_count=len(data_rows))}"
        )
        return UploadResult(session=session, structure=structure)

    # Mapping

    def save_mapping(
        self,
        session_id: int,
        user_id: int,
        mapping: Union[ColumnMapping, Dict[str, Any]],
        preserve_decisions: bool = False
    ) -> MappingResult:
        """
        Parse every data row under the mapping and move the session to preview.

        By default the rows are rebuilt from the raw CSV alone, which discards
        earlier edits and skips. With ``preserve_decisions`` the previous skip
        flags are carried over by row index.

        Args:
            session_id: Session to update
            user_id: Owning user
            mapping: Column mapping (date, amount and description are required)
            preserve_decisions: Keep prior skip flags

        Returns:
            MappingResult with the parsed rows and counts
        """
        if not isinstance(mapping, ColumnMapping):
            try:
                mapping = ColumnMapping.model_validate(mapping)
            except PydanticValidationError as e:
                missing = sorted({str(err["loc"][0]) for err in e.errors() if err.get("loc")})
                raise MappingError(
                    "Column mapping requires date, amount and description columns",
                    details={"fields": missing}
                )

        processor = self._row_processor()

        with self.db.transaction() as conn:
            session = self._load_for_update(conn, session_id, user_id)
            if not session.raw_csv_data:
                raise NoCsvDataError("No CSV data in session", details={"session_id": session_id})

            delimiter = detect_delimiter(session.raw_csv_data)
            headers, data_rows = split_header(parse_csv(session.raw_csv_data, delimiter))
            parsed_rows = processor.process_rows(headers, data_rows, mapping)

            if preserve_decisions and session.parsed_rows:
                previously_skipped = {row.row_index for row in session.parsed_rows if row.skipped}
                for row in parsed_rows:
                    row.skipped = row.row_index in previously_skipped

            session.column_mapping = mapping
            session.parsed_rows = parsed_rows
            session.status = "preview"
            refresh_counts(session)
            self.db.save_session(conn, session)

        logger.info(
            "Mapping saved and rows parsed "
            f"{format_context(user_id=user_id, session_id=session_id, valid=session.valid_row_count, invalid=session.invalid_row_count)}"
        )
        return MappingResult(
            session=session,
            parsed_rows=parsed_rows,
            valid_count=session.valid_row_count,
            invalid_count=session.invalid_row_count,
        )

    def back_to_mapping(self, session_id: int, user_id: int) -> ImportSession:
        """Return a previewed session to the mapping step; rows stay until the mapping is re-saved."""
        with self.db.transaction() as conn:
            session = self._load_for_update(conn, session_id, user_id, allowed=("preview", "mapping"))
            session.status = "mapping"
            self.db.save_session(conn, session)

        logger.info(f"Session returned to mapping {format_context(user_id=user_id, session_id=session_id)}")
        return session

    # Preview

    def get_parsed_rows(self, session_id: int, user_id: int) -> List[ParsedRow]:
        session = self.get_session(session_id, user_id)
        return session.parsed_rows or []

    def _load_for_preview(self, conn: sqlite3.Connection, session_id: int, user_id: int) -> ImportSession:
        session = self._load_for_update(conn, session_id, user_id)
        if session.parsed_rows is None:
            raise NoParsedRowsError("No parsed rows in session", details={"session_id": session_id})
        if session.status != "preview":
            raise SessionNotActiveError(
                "Session is not in preview status",
                details={"session_id": session_id, "status": session.status}
            )
        return session

    def update_row(
        self,
        session_id: int,
        user_id: int,
        row_index: int,
        updates: Union[RowUpdate, Dict[str, Any]]
    ) -> ParsedRow:
        """
        Apply field edits to one row, re-validate it and recompute the counters.

        Args:
            session_id: Session in preview status
            user_id: Owning user
            row_index: Row to edit
            updates: Fields to change; omitted fields are left alone

        Returns:
            The updated row
        """
        if isinstance(updates, RowUpdate):
            changes = updates.model_dump(exclude_unset=True)
        else:
            changes = {key: value for key, value in updates.items() if key in RowUpdate.model_fields}

        processor = self._row_processor()

        with self.db.transaction() as conn:
            session = self._load_for_preview(conn, session_id, user_id)
            current = find_row(session, row_index)
            updated = processor.apply_updates(current, changes)
            session.parsed_rows = [updated if row.row_index == row_index else row for row in session.parsed_rows]
            refresh_counts(session)
            self.db.save_session(conn, session)

        logger.info(f"Row updated {format_context(user_id=user_id, session_id=session_id, row_index=row_index)}")
        return updated

    def skip_row(self, session_id: int, user_id: int, row_index: int, skip: bool) -> ParsedRow:
        """
        Mark a row as skipped or not; field data and errors are left unchanged.

        Returns:
            The updated row
        """
        with self.db.transaction() as conn:
            session = self._load_for_preview(conn, session_id, user_id)
            row = find_row(session, row_index)
            row.skipped = skip
            refresh_counts(session)
            self.db.save_session(conn, session)

        logger.info(f"Row skip status updated {format_context(user_id=user_id, session_id=session_id, row_index=row_index, skip=skip)}")
        return row
