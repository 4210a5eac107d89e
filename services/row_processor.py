"""
Row processing: maps raw CSV rows through the field interpreters into
validated ParsedRow records.
"""
from typing import Any, Dict, List, Mapping, Optional, Sequence

from core.logger import setup_logger
from core.matching import match_category
from core.normalize import parse_amount, parse_date
from core.schema import Category, ColumnMapping, ParsedRow, RowCounts, RowValidationError

logger = setup_logger(__name__)


def validate_row(row: ParsedRow) -> List[RowValidationError]:
    """
    Validate the normalized fields of a row.

    Args:
        row: Parsed row with current field values

    Returns:
        One error per failing field, empty when the row is valid
    """
    errors: List[RowValidationError] = []

    if not row.date:
        errors.append(RowValidationError(field="date", message="Date is required and must be in a valid format"))

    if row.amount is None:
        errors.append(RowValidationError(field="amount", message="Amount is required and must be a number"))
    elif row.amount <= 0:
        errors.append(RowValidationError(field="amount", message="Amount must be greater than zero"))

    if not row.description or not row.description.strip():
        errors.append(RowValidationError(field="description", message="Description is required"))

    return errors


def count_rows(rows: Sequence[ParsedRow]) -> RowCounts:
    """Count rows as skipped, else invalid, else valid."""
    counts = RowCounts()
    for row in rows:
        if row.skipped:
            counts.skipped += 1
        elif row.errors:
            counts.invalid += 1
        else:
            counts.valid += 1
    return counts


class RowProcessor:
    """
    Turns raw CSV rows into ParsedRow records for one category list.

    Args:
        categories: Live category list used for matching
        aliases: Canonical category name -> keyword list
    """

    def __init__(
        self,
        categories: Sequence[Category],
        aliases: Optional[Mapping[str, Sequence[str]]] = None
    ):
        self.categories = list(categories)
        self.aliases = dict(aliases or {})

    def resolve_category(self, text: Optional[str]) -> Optional[Category]:
        return match_category(text, self.categories, self.aliases)

    def process_row(
        self,
        row_index: int,
        headers: Sequence[str],
        cells: Sequence[str],
        mapping: ColumnMapping
    ) -> ParsedRow:
        """
        Build a validated ParsedRow from one data row.

        Args:
            row_index: 0-based position among data rows
            headers: CSV header row
            cells: Raw cells for this row (may be shorter than headers)
            mapping: Column mapping to apply

        Returns:
            ParsedRow with errors computed from its field values
        """
        # Later duplicate headers win, matching the original-data snapshot
        header_index = {header: idx for idx, header in enumerate(headers)}

        def cell(header: Optional[str]) -> str:
            if not header or header not in header_index:
                return ""
            idx = header_index[header]
            return cells[idx] if idx < len(cells) else ""

        original_data = {header: (cells[idx] if idx < len(cells) else "") for idx, header in enumerate(headers)}
        category = self.resolve_category(cell(mapping.category)) if mapping.category else None

        row = ParsedRow(
            row_index=row_index,
            original_data=original_data,
            date=parse_date(cell(mapping.date)),
            amount=parse_amount(cell(mapping.amount)),
            description=cell(mapping.description).strip(),
            category=category.name if category else None,
            category_id=category.id if category else None,
        )
        row.errors = validate_row(row)
        return row

    def process_rows(
        self,
        headers: Sequence[str],
        data_rows: Sequence[Sequence[str]],
        mapping: ColumnMapping
    ) -> List[ParsedRow]:
        """Process every data row under the mapping."""
        rows = [self.process_row(idx, headers, cells, mapping) for idx, cells in enumerate(data_rows)]
        counts = count_rows(rows)
        logger.debug(f"Processed {len(rows)} rows: {counts.valid} valid, {counts.invalid} invalid")
        return rows

    def apply_updates(self, row: ParsedRow, updates: Dict[str, Any]) -> ParsedRow:
        """
        Apply user edits to a row and re-validate it.

        Only keys present in ``updates`` change. Text values go back through
        the interpreters; numeric amounts are taken as-is.

        Args:
            row: Row to update
            updates: Subset of date / amount / description / category

        Returns:
            A new ParsedRow; the input row is not modified
        """
        updated = row.model_copy(deep=True)

        if "date" in updates:
            updated.date = parse_date(updates["date"])

        if "amount" in updates:
            updated.amount = parse_amount(updates["amount"])

        if "description" in updates:
            description = updates["description"]
            updated.description = description.strip() if description is not None else None

        if "category" in updates:
            category = self.resolve_category(updates["category"])
            updated.category = category.name if category else None
            updated.category_id = category.id if category else None

        updated.errors = validate_row(updated)
        return updated
