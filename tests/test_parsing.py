"""
Unit tests for CSV tokenizing.
"""
import pytest

from core.exceptions import MalformedInputError
from core.parsing import detect_delimiter, parse_csv, parse_line, split_header


@pytest.mark.parametrize("text, expected", [
    ("a;b;c", ";"),
    ("a,b,c", ","),
    ("a\tb\tc", "\t"),
    ("single", ","),
    ("", ","),
    ("a,b;c", ","),          # tie resolves to comma
    ("a;b;c,d\n1,2,3,4,5,6", ";"),  # only the first line counts
])
def test_detect_delimiter(text, expected):
    assert detect_delimiter(text) == expected


def test_parse_line_quoted_delimiter():
    assert parse_line('"a,b",c', ",") == ["a,b", "c"]


def test_parse_line_escaped_quotes():
    assert parse_line('"say ""hi""",x', ",") == ['say "hi"', "x"]


def test_parse_line_trims_fields():
    assert parse_line("  a ,  b  ,c ", ",") == ["a", "b", "c"]


def test_parse_line_empty_fields():
    assert parse_line("a,,c,", ",") == ["a", "", "c", ""]


def test_parse_line_semicolon_keeps_commas():
    assert parse_line("2026-01-15;1,50;Coffee", ";") == ["2026-01-15", "1,50", "Coffee"]


def test_parse_csv_one_row_per_non_blank_line():
    text = "h1,h2\r\n1,2\n\n   \n3,4\r\n"
    rows = parse_csv(text, ",")
    assert rows == [["h1", "h2"], ["1", "2"], ["3", "4"]]


def test_parse_csv_requires_header_and_data():
    with pytest.raises(MalformedInputError) as exc_info:
        parse_csv("only,a,header\n\n", ",")
    assert exc_info.value.details["non_blank_lines"] == 1


def test_parse_csv_empty_text():
    with pytest.raises(MalformedInputError):
        parse_csv("", ",")


def test_split_header():
    headers, data = split_header([["a", "b"], ["1", "2"], ["3", "4"]])
    assert headers == ["a", "b"]
    assert data == [["1", "2"], ["3", "4"]]
