"""
Process context — where this process keeps provisioning data.

The data root holds the profile store (``profiles/``) and the
transaction ledger. It is set ONCE at startup by the entry point:

    - CLI:    main.py  → context.set_data_root(config.data_root)
    - Tests:  conftest → context.set_data_root(tmp_path)

Module-level state, not a class. ``get_data_root()`` returns None when
unset; callers that need it raise their own error.
"""

from __future__ import annotations

from pathlib import Path

_data_root: Path | None = None


def set_data_root(root: Path | None) -> None:
    """Register the data root for the current process (None clears it)."""
    global _data_root
    _data_root = root


def get_data_root() -> Path | None:
    """Return the current data root, or None if not yet set."""
    return _data_root


def profiles_dir() -> Path | None:
    """Directory of the file profile store under the data root."""
    return _data_root / "profiles" if _data_root is not None else None
