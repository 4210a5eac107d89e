"""
CSV tokenizing for uploaded transaction files.
Handles delimiter detection and quoted fields with doubled-quote escapes.
"""
import re
from typing import List, Tuple

from core.exceptions import MalformedInputError
from core.logger import setup_logger

logger = setup_logger(__name__)

# Candidate delimiters in tie-break order
DELIMITERS: Tuple[str, ...] = (",", ";", "\t")

_LINE_SPLIT = re.compile(r"\r?\n")


def detect_delimiter(text: str) -> str:
    """
    Detect the delimiter from the first line of CSV text.

    Args:
        text: Raw CSV text

    Returns:
        The candidate with the highest count on the first line, or "," on a tie or no occurrences
    """
    first_line = text.split("\n", 1)[0] if text else ""

    detected = ","
    max_count = 0
    for delimiter in DELIMITERS:
        count = first_line.count(delimiter)
        if count > max_count:
            max_count = count
            detected = delimiter

    return detected


def parse_line(line: str, delimiter: str) -> List[str]:
    """
    Split a single CSV line into trimmed fields.

    A quote toggles the quoted state; a doubled quote inside a quoted
    field emits one literal quote. Delimiters only split outside quotes.

    Args:
        line: One line of CSV text, without the line terminator
        delimiter: Field delimiter

    Returns:
        List of field values
    """
    fields: List[str] = []
    current: List[str] = []
    in_quotes = False
    i = 0
    length = len(line)

    while i < length:
        char = line[i]
        if char == '"':
            if in_quotes and i + 1 < length and line[i + 1] == '"':
                current.append('"')
                i += 1
            else:
                in_quotes = not in_quotes
        elif char == delimiter and not in_quotes:
            fields.append("".join(current).strip())
            current = []
        else:
            current.append(char)
        i += 1

    fields.append("".join(current).strip())
    return fields


def parse_csv(text: str, delimiter: str) -> List[List[str]]:
    """
    Parse CSV text into rows of fields.

    Args:
        text: Raw CSV text
        delimiter: Field delimiter

    Returns:
        One list of fields per non-blank line, header first

    Raises:
        MalformedInputError: If there is no header plus at least one data row
    """
    lines = [line for line in _LINE_SPLIT.split(text or "") if line.strip()]

    if len(lines) < 2:
        raise MalformedInputError(
            "CSV must have at least a header row and one data row",
            details={"non_blank_lines": len(lines)}
        )

    rows = [parse_line(line, delimiter) for line in lines]
    logger.debug(f"Tokenized {len(rows)} lines with delimiter {delimiter!r}")
    return rows


def split_header(rows: List[List[str]]) -> Tuple[List[str], List[List[str]]]:
    """
    Separate the header row from the data rows.

    Args:
        rows: Output of parse_csv

    Returns:
        Tuple of (headers, data_rows)
    """
    return rows[0], rows[1:]
