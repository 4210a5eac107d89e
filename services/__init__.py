"""
Service layer for business logic.

This package contains the import session state machine, the row
processor that normalizes and validates CSV rows, and the commit
coordinator that turns accepted rows into expenses.
"""
