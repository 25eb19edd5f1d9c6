from __future__ import annotations


class NameLedgerError(Exception):
    """Base error for nameledger."""


class LegacyStoreError(NameLedgerError):
    """Legacy flat file is unreadable or is not a JSON array of records."""


class RecordTransformError(NameLedgerError):
    """A single legacy record cannot be turned into a valid relational record."""
