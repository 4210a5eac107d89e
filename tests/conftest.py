"""
Shared fixtures: a fresh SQLite database per test with the default categories.
"""
import pytest
from fastapi.testclient import TestClient

from core.config import Settings
from core.db import Database
from core.stores import SqliteCategoryStore, SqliteExpenseStore
from services.commit_service import CommitCoordinator
from services.import_service import ImportSessionService

from tests.helpers import SAMPLE_CSV, USER_ID


@pytest.fixture
def settings(tmp_path):
    return Settings(DATABASE_PATH=str(tmp_path / "import.db"))


@pytest.fixture
def db(settings):
    database = Database(settings=settings)
    database.init_db()
    return database


@pytest.fixture
def category_store(db):
    return SqliteCategoryStore(db)


@pytest.fixture
def expense_store(db):
    return SqliteExpenseStore(db)


@pytest.fixture
def service(db, settings, category_store):
    return ImportSessionService(db=db, category_store=category_store, settings=settings)


@pytest.fixture
def coordinator(db, settings, category_store, expense_store):
    return CommitCoordinator(
        db=db,
        category_store=category_store,
        expense_store=expense_store,
        settings=settings
    )


@pytest.fixture
def mapping():
    return {"date": "Date", "amount": "Amount", "description": "Description", "category": "Category"}


@pytest.fixture
def previewed_session(service, mapping):
    """Session in preview status built from SAMPLE_CSV."""
    upload = service.upload_csv(USER_ID, "sample.csv", SAMPLE_CSV)
    result = service.save_mapping(upload.session.id, USER_ID, mapping)
    return result.session


@pytest.fixture
def client(service, coordinator):
    from app.api import app, get_commit_coordinator, get_import_service

    app.dependency_overrides[get_import_service] = lambda: service
    app.dependency_overrides[get_commit_coordinator] = lambda: coordinator
    yield TestClient(app)
    app.dependency_overrides.clear()
