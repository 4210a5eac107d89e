"""Shared constants for the test suite."""

USER_ID = 1
OTHER_USER_ID = 2

# 3 valid rows and one with an unparsable date
SAMPLE_CSV = (
    "Date,Amount,Description,Category\n"
    "2026-01-15,$12.50,Lunch at cafe,Food\n"
    "01/16/2026,\"1,200.00\",Monthly rent,Bills\n"
    "17-01-2026,45.00,Uber ride,taxi\n"
    "not-a-date,10.00,Broken date row,Food\n"
)
