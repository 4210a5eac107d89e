"""HTTP layer for the import workflow."""
