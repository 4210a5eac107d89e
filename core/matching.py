"""
Matching of free text against categories and of CSV headers against target fields.

Category resolution order: exact name, substring either direction,
alias keywords, then the "Other" fallback.
"""
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from core.logger import setup_logger
from core.schema import Category, SuggestedMapping

logger = setup_logger(__name__)

FALLBACK_CATEGORY_NAME = "Other"

# Header keywords per target field; first header containing any keyword wins
MAPPING_KEYWORDS: Dict[str, List[str]] = {
    "date": ["date", "time", "when", "day"],
    "amount": ["amount", "price", "cost", "total", "value", "sum"],
    "description": ["description", "desc", "note", "notes", "memo", "item", "name", "details"],
    "category": ["category", "type", "group", "class"],
}


def normalize_string(text: Optional[str]) -> str:
    """
    Normalize string for matching: lowercase and trim.

    Args:
        text: Input string

    Returns:
        Normalized string ("" for None or non-string input)
    """
    if not text or not isinstance(text, str):
        return ""
    return text.strip().lower()


def _contains_either_way(a: str, b: str) -> bool:
    return a in b or b in a


def find_category_by_name(categories: Iterable[Category], name: str) -> Optional[Category]:
    """Case-insensitive exact lookup by category name."""
    wanted = normalize_string(name)
    for category in categories:
        if normalize_string(category.name) == wanted:
            return category
    return None


def fallback_category(categories: Sequence[Category]) -> Optional[Category]:
    """
    Category used when nothing else matches.

    Returns:
        The category named "Other", else the first category, else None
    """
    other = find_category_by_name(categories, FALLBACK_CATEGORY_NAME)
    if other is not None:
        return other
    return categories[0] if categories else None


def match_category(
    text: Optional[str],
    categories: Sequence[Category],
    aliases: Optional[Mapping[str, Sequence[str]]] = None
) -> Optional[Category]:
    """
    Resolve free text to one of the known categories.

    Args:
        text: Category text from the CSV or a row edit
        categories: Live category list
        aliases: Canonical category name -> lower-case keyword list

    Returns:
        Matched category, or None when the input is empty
    """
    needle = normalize_string(text)
    if not needle:
        return None

    # 1. Exact name
    exact = find_category_by_name(categories, needle)
    if exact is not None:
        return exact

    # 2. Substring either direction
    for category in categories:
        name = normalize_string(category.name)
        if name and _contains_either_way(needle, name):
            return category

    # 3. Alias keywords
    for canonical, keywords in (aliases or {}).items():
        if any(keyword and _contains_either_way(needle, keyword) for keyword in keywords):
            matched = find_category_by_name(categories, canonical)
            if matched is not None:
                logger.debug(f"Category '{text}' matched alias for {canonical}")
                return matched

    # 4. Fallback
    return fallback_category(categories)


def suggest_mapping(headers: Sequence[str]) -> SuggestedMapping:
    """
    Suggest a column mapping from header names.

    Args:
        headers: CSV header row

    Returns:
        Partial mapping; fields with no matching header are left unset
    """
    lowered = [normalize_string(header) for header in headers]
    suggestion: Dict[str, str] = {}

    for field, keywords in MAPPING_KEYWORDS.items():
        for header, folded in zip(headers, lowered):
            if any(keyword in folded for keyword in keywords):
                suggestion[field] = header
                break

    logger.debug(f"Suggested mapping: {suggestion}")
    return SuggestedMapping(**suggestion)
