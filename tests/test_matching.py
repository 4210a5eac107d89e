"""
Unit tests for category matching and column-mapping suggestions.
"""
import pytest

from core.config import DEFAULT_CATEGORY_ALIASES
from core.matching import fallback_category, match_category, normalize_string, suggest_mapping
from core.schema import Category

CATEGORIES = [
    Category(id=1, name="Food"),
    Category(id=2, name="Transport"),
    Category(id=3, name="Entertainment"),
    Category(id=4, name="Shopping"),
    Category(id=5, name="Bills"),
    Category(id=6, name="Other"),
]


def _match(text, categories=CATEGORIES):
    return match_category(text, categories, DEFAULT_CATEGORY_ALIASES)


def test_normalize_string():
    assert normalize_string("  FooD ") == "food"
    assert normalize_string(None) == ""


def test_exact_match_is_case_insensitive():
    assert _match("food").id == 1
    assert _match("BILLS").id == 5


def test_substring_match_either_direction():
    assert _match("Food & Drinks").id == 1
    assert _match("shop").id == 4


def test_alias_match():
    assert _match("Groceries").id == 1
    assert _match("uber").id == 2
    assert _match("Netflix subscription").id == 3
    assert _match("electricity").id == 5


def test_unmatched_falls_back_to_other():
    assert _match("xyzzy").name == "Other"


def test_fallback_uses_first_category_without_other():
    categories = [Category(id=7, name="Rent"), Category(id=8, name="Fun")]
    assert _match("xyzzy", categories).id == 7


@pytest.mark.parametrize("text", ["", "   ", None])
def test_empty_input_is_no_match(text):
    assert _match(text) is None


def test_alias_for_missing_canonical_category_is_skipped():
    categories = [Category(id=1, name="Other"), Category(id=2, name="Misc stuff")]
    # "uber" is a Transport alias, but there is no Transport category
    assert _match("uber", categories).id == 1


def test_aliases_are_injected():
    custom = {"Bills": ["landlord"]}
    assert match_category("landlord", CATEGORIES, custom).id == 5
    assert match_category("landlord", CATEGORIES, {}).name == "Other"


def test_fallback_category_empty_list():
    assert fallback_category([]) is None


def test_suggest_mapping_first_match_wins():
    headers = ["Transaction Date", "Posted Date", "Amount", "Memo", "Type"]
    suggestion = suggest_mapping(headers)
    assert suggestion.date == "Transaction Date"
    assert suggestion.amount == "Amount"
    assert suggestion.description == "Memo"
    assert suggestion.category == "Type"


def test_suggest_mapping_leaves_unmatched_unset():
    suggestion = suggest_mapping(["when", "foo", "bar"])
    assert suggestion.date == "when"
    assert suggestion.amount is None
    assert suggestion.description is None
    assert suggestion.category is None
