"""
FastAPI routes for the CSV import workflow.
The authenticated user id arrives in the X-User-Id header; authentication
itself happens upstream.
"""
import time
from contextlib import asynccontextmanager
from typing import Dict, List, Type

from fastapi import Depends, FastAPI, File, Header, HTTPException, Request, Response, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from core.config import get_settings
from core.db import get_db
from core.exceptions import (
    FileTooLargeError,
    ImportCommitError,
    ImportEngineException,
    NoActiveSessionError,
    RowNotFoundError,
    SessionNotFoundError,
)
from core.logger import format_context, setup_logger
from core.schema import (
    ImportHistory,
    ImportResult,
    MappingRequest,
    MappingResult,
    SkipRowRequest,
    UpdateRowRequest,
    UploadRequest,
    UploadResult,
)
from services.commit_service import CommitCoordinator
from services.import_service import ImportSessionService

logger = setup_logger(__name__)
settings = get_settings()

ALLOWED_EXTENSIONS = (".csv", ".txt")

ERROR_STATUS: Dict[Type[ImportEngineException], int] = {
    SessionNotFoundError: 404,
    NoActiveSessionError: 404,
    RowNotFoundError: 404,
    FileTooLargeError: 413,
    ImportCommitError: 500,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    get_db().init_db()
    yield


# Initialize FastAPI app
app = FastAPI(
    title="CSV Expense Import",
    description="Upload, map, review and commit CSV expense imports",
    version="1.0.0",
    lifespan=lifespan
)


def get_import_service() -> ImportSessionService:
    return ImportSessionService()


def get_commit_coordinator() -> CommitCoordinator:
    return CommitCoordinator()


def get_user_id(x_user_id: int = Header(..., alias="X-User-Id")) -> int:
    """User id supplied by the upstream auth layer."""
    return x_user_id


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    duration_ms = (time.perf_counter() - start) * 1000
    logger.info(f"{request.method} {request.url.path} {response.status_code} ({duration_ms:.0f}ms)")
    return response


@app.exception_handler(ImportEngineException)
async def engine_error_handler(request: Request, exc: ImportEngineException):
    status_code = next(
        (code for error_type, code in ERROR_STATUS.items() if isinstance(exc, error_type)),
        400
    )
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message} {format_context(**exc.details)}")
    else:
        logger.info(f"{request.method} {request.url.path} rejected: {exc.message}")
    return JSONResponse(status_code=status_code, content={"error": exc.message, "details": exc.details})


@app.get("/api/health")
def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "service": "expense_import",
        "version": "1.0.0"
    }


@app.get("/api/import/session")
def get_active_session(
    user_id: int = Depends(get_user_id),
    service: ImportSessionService = Depends(get_import_service)
):
    """Active session for resuming the wizard, with parsed rows once mapping is saved."""
    session = service.require_active_session(user_id)
    parsed_rows = None
    if session.status in ("mapping", "preview") and session.parsed_rows is not None:
        parsed_rows = [row.model_dump(by_alias=True) for row in session.parsed_rows]
    return {"session": session.model_dump(by_alias=True, mode="json"), "parsedRows": parsed_rows}


@app.post("/api/import/session", status_code=201)
def create_session(
    user_id: int = Depends(get_user_id),
    service: ImportSessionService = Depends(get_import_service)
):
    session = service.create_session(user_id)
    return {"session": session.model_dump(by_alias=True, mode="json")}


@app.delete("/api/import/session/{session_id}", status_code=204)
def cancel_session(
    session_id: int,
    user_id: int = Depends(get_user_id),
    service: ImportSessionService = Depends(get_import_service)
):
    if not service.cancel_session(session_id, user_id):
        raise HTTPException(status_code=404, detail="Session not found or already completed")
    return Response(status_code=204)


@app.post("/api/import/upload", status_code=201, response_model=UploadResult)
def upload_csv(
    body: UploadRequest,
    user_id: int = Depends(get_user_id),
    service: ImportSessionService = Depends(get_import_service)
):
    return service.upload_csv(user_id, body.file_name, body.csv_content)


def validate_file_extension(filename: str) -> None:
    """
    Validate file has a CSV extension.

    Raises:
        HTTPException: If file extension is invalid
    """
    if not filename or not filename.lower().endswith(ALLOWED_EXTENSIONS):
        raise HTTPException(
            status_code=400,
            detail=f"Invalid file type: {filename}. Only .csv files are supported."
        )


@app.post("/api/import/upload/file", status_code=201, response_model=UploadResult)
async def upload_csv_file(
    file: UploadFile = File(...),
    user_id: int = Depends(get_user_id),
    service: ImportSessionService = Depends(get_import_service)
):
    """Multipart variant of the upload endpoint."""
    validate_file_extension(file.filename)

    content = await file.read()
    if len(content) > settings.max_upload_bytes:
        raise FileTooLargeError(
            "CSV file is too large",
            details={"size": len(content), "max_bytes": settings.max_upload_bytes}
        )

    try:
        text = content.decode("utf-8-sig")
    except UnicodeDecodeError:
        raise HTTPException(status_code=400, detail="CSV file must be UTF-8 encoded")

    return await run_in_threadpool(service.upload_csv, user_id, file.filename, text)


@app.post("/api/import/session/{session_id}/mapping", response_model=MappingResult)
def save_mapping(
    session_id: int,
    body: MappingRequest,
    user_id: int = Depends(get_user_id),
    service: ImportSessionService = Depends(get_import_service)
):
    return service.save_mapping(
        session_id,
        user_id,
        body.column_mapping,
        preserve_decisions=body.preserve_decisions
    )


@app.post("/api/import/session/{session_id}/back")
def back_to_mapping(
    session_id: int,
    user_id: int = Depends(get_user_id),
    service: ImportSessionService = Depends(get_import_service)
):
    session = service.back_to_mapping(session_id, user_id)
    return {"session": session.model_dump(by_alias=True, mode="json")}


@app.get("/api/import/session/{session_id}/rows")
def get_parsed_rows(
    session_id: int,
    user_id: int = Depends(get_user_id),
    service: ImportSessionService = Depends(get_import_service)
):
    rows = service.get_parsed_rows(session_id, user_id)
    return {"rows": [row.model_dump(by_alias=True) for row in rows]}


@app.patch("/api/import/session/{session_id}/row")
def update_row(
    session_id: int,
    body: UpdateRowRequest,
    user_id: int = Depends(get_user_id),
    service: ImportSessionService = Depends(get_import_service)
):
    row = service.update_row(session_id, user_id, body.row_index, body.updates)
    return {"row": row.model_dump(by_alias=True)}


@app.post("/api/import/session/{session_id}/skip")
def skip_row(
    session_id: int,
    body: SkipRowRequest,
    user_id: int = Depends(get_user_id),
    service: ImportSessionService = Depends(get_import_service)
):
    row = service.skip_row(session_id, user_id, body.row_index, body.skip)
    return {"row": row.model_dump(by_alias=True)}


@app.post("/api/import/session/{session_id}/confirm", response_model=ImportResult)
def confirm_import(
    session_id: int,
    user_id: int = Depends(get_user_id),
    coordinator: CommitCoordinator = Depends(get_commit_coordinator)
):
    result = coordinator.confirm(session_id, user_id)
    logger.info(f"Import confirmed {format_context(user_id=user_id, session_id=session_id, imported=result.imported_count)}")
    return result


@app.get("/api/import/history", response_model=List[ImportHistory])
def list_history(
    user_id: int = Depends(get_user_id),
    coordinator: CommitCoordinator = Depends(get_commit_coordinator)
):
    return coordinator.list_history(user_id)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=settings.host, port=settings.port)
