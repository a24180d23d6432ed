"""
Transaction ledger — append-only log of engine transactions.

Every committed or rolled-back transaction writes one entry to an NDJSON
(newline-delimited JSON) file. This is the installation's provisioning
history, useful for debugging and for understanding what changed when.

The ledger is append-only: entries are never modified or deleted.
"""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

DEFAULT_LEDGER_FILE = "ledger.ndjson"


class LedgerEntry(BaseModel):
    """A single ledger entry."""

    timestamp: str = Field(default_factory=lambda: datetime.now(UTC).isoformat())
    transaction_id: str = ""
    profile_id: str = ""
    phase_set: str = ""

    # What happened
    outcome: str = ""              # committed, rolled_back
    severity: str = ""             # OK, INFO, WARNING, ERROR, CANCEL
    operands: list[str] = Field(default_factory=list)

    # Errors (if any)
    errors: list[str] = Field(default_factory=list)

    context: dict[str, Any] = Field(default_factory=dict)


class TransactionLedger:
    """Append-only ledger writer.

    Each call to write() appends a single JSON line to the ledger file.
    The file is created if it doesn't exist.
    """

    def __init__(self, path: Path | None = None, data_root: Path | None = None):
        if path is not None:
            self._path = path
        elif data_root is not None:
            self._path = data_root / DEFAULT_LEDGER_FILE
        else:
            self._path = Path(DEFAULT_LEDGER_FILE)

    @property
    def path(self) -> Path:
        return self._path

    def write(self, entry: LedgerEntry) -> None:
        """Append an entry to the ledger."""
        self._path.parent.mkdir(parents=True, exist_ok=True)

        data = entry.model_dump(mode="json")
        line = json.dumps(data, ensure_ascii=False) + "\n"

        try:
            with self._path.open("a", encoding="utf-8") as f:
                f.write(line)
            logger.debug("Ledger entry written: %s/%s", entry.outcome, entry.transaction_id)
        except OSError as e:
            logger.error("Failed to write ledger entry: %s", e)

    def read_all(self) -> list[LedgerEntry]:
        """Read all entries, oldest first."""
        if not self._path.is_file():
            return []

        entries = []
        try:
            with self._path.open("r", encoding="utf-8") as f:
                for line_num, line in enumerate(f, start=1):
                    line = line.strip()
                    if not line:
                        continue
                    try:
                        entries.append(LedgerEntry.model_validate(json.loads(line)))
                    except Exception as e:
                        logger.warning("Skipping corrupt ledger entry at line %d: %s", line_num, e)
        except OSError as e:
            logger.error("Failed to read ledger: %s", e)

        return entries

    def read_recent(self, n: int = 20) -> list[LedgerEntry]:
        return self.read_all()[-n:]

    def for_profile(self, profile_id: str) -> list[LedgerEntry]:
        return [e for e in self.read_all() if e.profile_id == profile_id]

    def entry_count(self) -> int:
        """Count entries without parsing them."""
        if not self._path.is_file():
            return 0
        try:
            with self._path.open("r", encoding="utf-8") as f:
                return sum(1 for line in f if line.strip())
        except OSError:
            return 0
