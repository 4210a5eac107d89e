"""
Pydantic schemas for import sessions, parsed rows and API bodies.
Field names are snake_case in Python and camelCase on the wire.
"""
from datetime import datetime
from typing import Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator
from pydantic.alias_generators import to_camel


SessionStatus = Literal["upload", "mapping", "preview", "completed", "cancelled"]

ACTIVE_STATUSES = ("upload", "mapping", "preview")


class CamelModel(BaseModel):
    """Base model that serializes with camelCase aliases."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Category(CamelModel):
    """Expense category as supplied by the category store."""
    id: int
    name: str


class Expense(CamelModel):
    """Persisted expense record."""
    id: int
    user_id: int
    category_id: int
    amount: float
    description: str
    date: str
    created_at: Optional[datetime] = None


class ColumnMapping(CamelModel):
    """User-chosen CSV header for each target field."""
    date: str = Field(..., min_length=1)
    amount: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    category: Optional[str] = None

    @field_validator("category")
    @classmethod
    def blank_category_is_unset(cls, v):
        """An empty category header means the column is not mapped."""
        if v is not None and not v.strip():
            return None
        return v


class SuggestedMapping(CamelModel):
    """Partial mapping proposed from header names; unmatched fields stay None."""
    date: Optional[str] = None
    amount: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None


class RowValidationError(CamelModel):
    """A single field-level validation failure."""
    field: str
    message: str


class ParsedRow(CamelModel):
    """One CSV data row after mapping, normalization and validation."""
    row_index: int = Field(..., ge=0)
    original_data: Dict[str, str] = Field(default_factory=dict)
    date: Optional[str] = None
    amount: Optional[float] = None
    description: Optional[str] = None
    category: Optional[str] = None
    category_id: Optional[int] = None
    errors: List[RowValidationError] = Field(default_factory=list)
    skipped: bool = False

    @property
    def is_importable(self) -> bool:
        """Neither skipped nor invalid."""
        return not self.skipped and not self.errors


class RowCounts(CamelModel):
    """Derived classification counts over a parsed-row set."""
    valid: int = 0
    invalid: int = 0
    skipped: int = 0

    @property
    def total(self) -> int:
        return self.valid + self.invalid + self.skipped


class ImportSession(CamelModel):
    """A user's import session from upload to commit or cancellation."""
    id: int
    user_id: int
    status: SessionStatus = "upload"
    file_name: Optional[str] = None
    file_size: Optional[int] = None
    # Internal state; kept out of API payloads
    raw_csv_data: Optional[str] = Field(default=None, exclude=True)
    column_mapping: Optional[ColumnMapping] = None
    parsed_rows: Optional[List[ParsedRow]] = Field(default=None, exclude=True)
    valid_row_count: int = 0
    invalid_row_count: int = 0
    skipped_row_count: int = 0
    imported_expense_count: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ImportHistory(CamelModel):
    """Append-only record of a completed import."""
    id: int
    user_id: int
    session_id: int
    file_name: str
    total_rows: int
    imported_rows: int
    skipped_rows: int
    created_at: Optional[datetime] = None


class CsvStructure(CamelModel):
    """Detected structure of an uploaded CSV file."""
    headers: List[str]
    delimiter: str
    row_count: int
    sample_rows: List[List[str]]
    suggested_mapping: SuggestedMapping


class UploadResult(CamelModel):
    session: ImportSession
    structure: CsvStructure


class MappingResult(CamelModel):
    session: ImportSession
    parsed_rows: List[ParsedRow]
    valid_count: int
    invalid_count: int


class ImportResult(CamelModel):
    imported_count: int
    skipped_count: int
    history: ImportHistory


# Request bodies

class UploadRequest(CamelModel):
    file_name: str = Field(..., min_length=1)
    csv_content: str = Field(..., min_length=1)


class MappingRequest(CamelModel):
    column_mapping: ColumnMapping
    preserve_decisions: bool = False


class RowUpdate(CamelModel):
    """Partial field updates for a parsed row; only provided keys are applied."""
    date: Optional[str] = None
    amount: Optional[Union[float, str]] = None
    description: Optional[str] = None
    category: Optional[str] = None


class UpdateRowRequest(CamelModel):
    row_index: int = Field(..., ge=0)
    updates: RowUpdate


class SkipRowRequest(CamelModel):
    row_index: int = Field(..., ge=0)
    skip: bool


# Storage boundary adapters
PARSED_ROWS_ADAPTER = TypeAdapter(List[ParsedRow])
