"""
Table Migration Tool

Migrates rows from a source table to a destination table over the table API.

Supports:
- Column mapping by name with type coercion and named transforms
- Attachment columns converted to a single PDF and uploaded to object storage
- Chunked inserts with per-row results
- A failure ledger and a recovery run that retries only the failed rows
"""

__version__ = "0.1.0"
