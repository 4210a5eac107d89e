"""
Core modules for the CSV expense import engine.

This package contains:
- config: Application configuration and settings
- db: SQLite schema and session/history persistence
- exceptions: Custom exception classes
- logger: Logging configuration
- matching: Category matching and column-mapping suggestions
- normalize: Date and amount interpreters
- parsing: CSV tokenizing
- schema: Pydantic models for sessions, rows and API bodies
- stores: Category and expense stores
"""
