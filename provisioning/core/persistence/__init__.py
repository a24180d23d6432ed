"""Persistence — profile store and transaction ledger."""

from provisioning.core.persistence.audit import LedgerEntry, TransactionLedger
from provisioning.core.persistence.profile_store import (
    FileProfileStore,
    MemoryProfileStore,
    ProfileExistsError,
    ProfileStore,
    ProfileStoreError,
    UnknownProfileError,
)

__all__ = [
    "FileProfileStore",
    "LedgerEntry",
    "MemoryProfileStore",
    "ProfileExistsError",
    "ProfileStore",
    "ProfileStoreError",
    "TransactionLedger",
    "UnknownProfileError",
]
