"""distillate artifact ledger."""

from distillate.store.ledger import (
    ArtifactLedger,
    ArtifactNotFoundError,
    DuplicateArtifactError,
    InMemoryArtifactLedger,
    LedgerError,
    SQLiteArtifactLedger,
)

__all__ = [
    "ArtifactLedger",
    "ArtifactNotFoundError",
    "DuplicateArtifactError",
    "InMemoryArtifactLedger",
    "LedgerError",
    "SQLiteArtifactLedger",
]
