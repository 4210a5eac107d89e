"""
Tests for confirming an import session.
"""
import sqlite3

import pytest

from core.exceptions import (
    ImportCommitError,
    NoParsedRowsError,
    NoValidRowsError,
    SessionNotActiveError,
    SessionNotFoundError,
)
from services.commit_service import CommitCoordinator
from tests.helpers import OTHER_USER_ID, SAMPLE_CSV, USER_ID

EIGHT_ROW_CSV = (
    "Date,Amount,Description\n"
    "2026-01-01,10,Row 0\n"
    "2026-01-02,11,Row 1\n"
    "2026-01-03,12,Row 2\n"
    "2026-01-04,13,Row 3\n"
    "2026-01-05,14,Row 4\n"
    "2026-01-06,15,Row 5\n"
    "2026-01-07,16,Row 6\n"
    "2026-01-08,-5,Negative row\n"
)


class FailingExpenseStore:
    """Inserts normally until the given call, then fails like a constraint violation."""

    def __init__(self, inner, fail_on: int):
        self.inner = inner
        self.fail_on = fail_on
        self.calls = 0

    def insert_expense(self, conn, **kwargs):
        self.calls += 1
        if self.calls == self.fail_on:
            raise sqlite3.IntegrityError("simulated constraint failure")
        return self.inner.insert_expense(conn, **kwargs)


def test_confirm_imports_accepted_rows(service, coordinator, expense_store):
    upload = service.upload_csv(USER_ID, "eight.csv", EIGHT_ROW_CSV)
    session_id = upload.session.id
    service.save_mapping(session_id, USER_ID, {"date": "Date", "amount": "Amount", "description": "Description"})
    service.skip_row(session_id, USER_ID, 5, True)
    service.skip_row(session_id, USER_ID, 6, True)

    result = coordinator.confirm(session_id, USER_ID)

    assert result.imported_count == 5
    assert result.skipped_count == 3
    assert result.history.total_rows == 8
    assert result.history.imported_rows == 5
    assert result.history.skipped_rows == 3
    assert result.history.file_name == "eight.csv"
    assert result.history.session_id == session_id

    expenses = expense_store.list_expenses(USER_ID)
    assert [e.description for e in expenses] == ["Row 0", "Row 1", "Row 2", "Row 3", "Row 4"]
    assert all(e.user_id == USER_ID for e in expenses)

    session = service.get_session(session_id, USER_ID)
    assert session.status == "completed"
    assert session.imported_expense_count == 5


def test_confirm_uses_resolved_or_default_category(service, coordinator, expense_store, previewed_session):
    service.update_row(previewed_session.id, USER_ID, 3, {"date": "2026-01-18", "category": ""})

    coordinator.confirm(previewed_session.id, USER_ID)

    by_description = {e.description: e for e in expense_store.list_expenses(USER_ID)}
    assert by_description["Lunch at cafe"].category_id == 1
    assert by_description["Monthly rent"].category_id == 5
    assert by_description["Uber ride"].category_id == 2
    # Cleared category falls back to "Other"
    assert by_description["Broken date row"].category_id == 6
    assert by_description["Broken date row"].date == "2026-01-18"


def test_default_category_falls_back_to_id_one(db, settings, category_store):
    with db.transaction() as conn:
        conn.execute("DELETE FROM categories WHERE name = 'Other'")
    coordinator = CommitCoordinator(db=db, category_store=category_store, settings=settings)
    assert coordinator.default_category_id() == 1


def test_confirm_with_no_valid_rows(service, coordinator, previewed_session):
    for index in (0, 1, 2):
        service.skip_row(previewed_session.id, USER_ID, index, True)

    with pytest.raises(NoValidRowsError):
        coordinator.confirm(previewed_session.id, USER_ID)

    session = service.get_session(previewed_session.id, USER_ID)
    assert session.status == "preview"
    assert coordinator.list_history(USER_ID) == []


def test_confirm_requires_preview(service, coordinator):
    upload = service.upload_csv(USER_ID, "sample.csv", SAMPLE_CSV)
    with pytest.raises(SessionNotActiveError):
        coordinator.confirm(upload.session.id, USER_ID)


def test_confirm_after_back_to_mapping_is_rejected(service, coordinator, previewed_session):
    service.back_to_mapping(previewed_session.id, USER_ID)
    with pytest.raises(SessionNotActiveError):
        coordinator.confirm(previewed_session.id, USER_ID)


def test_confirm_unknown_or_foreign_session(coordinator, previewed_session):
    with pytest.raises(SessionNotFoundError):
        coordinator.confirm(previewed_session.id, OTHER_USER_ID)


def test_confirm_twice_is_rejected(service, coordinator, previewed_session, expense_store):
    coordinator.confirm(previewed_session.id, USER_ID)
    with pytest.raises(SessionNotActiveError):
        coordinator.confirm(previewed_session.id, USER_ID)
    assert len(expense_store.list_expenses(USER_ID)) == 3
    assert len(coordinator.list_history(USER_ID)) == 1


def test_confirm_on_cancelled_session(service, coordinator, previewed_session):
    service.cancel_session(previewed_session.id, USER_ID)
    with pytest.raises(SessionNotActiveError):
        coordinator.confirm(previewed_session.id, USER_ID)


def test_confirm_without_parsed_rows(db, service, coordinator, previewed_session):
    with db.transaction() as conn:
        conn.execute("UPDATE import_sessions SET parsed_rows = NULL WHERE id = ?", (previewed_session.id,))
    with pytest.raises(NoParsedRowsError):
        coordinator.confirm(previewed_session.id, USER_ID)


def test_failed_insert_rolls_back_everything(db, settings, service, category_store, expense_store, previewed_session):
    failing = FailingExpenseStore(expense_store, fail_on=2)
    coordinator = CommitCoordinator(
        db=db,
        category_store=category_store,
        expense_store=failing,
        settings=settings
    )

    with pytest.raises(ImportCommitError):
        coordinator.confirm(previewed_session.id, USER_ID)

    assert failing.calls == 2
    assert expense_store.list_expenses(USER_ID) == []
    assert coordinator.list_history(USER_ID) == []
    session = service.get_session(previewed_session.id, USER_ID)
    assert session.status == "preview"
    assert session.imported_expense_count == 0


def test_completed_session_frees_active_slot(service, coordinator, previewed_session):
    coordinator.confirm(previewed_session.id, USER_ID)
    assert service.get_active_session(USER_ID) is None


def test_history_newest_first(service, coordinator, mapping):
    session_ids = []
    for name in ("first.csv", "second.csv"):
        upload = service.upload_csv(USER_ID, name, SAMPLE_CSV)
        service.save_mapping(upload.session.id, USER_ID, mapping)
        coordinator.confirm(upload.session.id, USER_ID)
        session_ids.append(upload.session.id)

    history = coordinator.list_history(USER_ID)
    assert [h.file_name for h in history] == ["second.csv", "first.csv"]
    assert [h.session_id for h in history] == list(reversed(session_ids))
    assert coordinator.list_history(OTHER_USER_ID) == []
