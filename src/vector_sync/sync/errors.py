"""Exception types for the sync engine.

Convention:
- ``SyncError`` subclasses are *fatal*: they abort a run before any remote
  mutation and propagate to the driver.
- Per-file failures are never raised; the engine records them in
  ``SyncResult.failed``.
- Degraded conditions (unreadable history state, corrupt state document)
  are logged as warnings and absorbed by the state store.
"""

from __future__ import annotations


class SyncError(Exception):
    """Base class for fatal sync errors."""


class StoreUnavailableError(SyncError):
    """The remote store cannot be reached, listed, or created."""


class ScanError(SyncError):
    """The local root directory cannot be listed at all."""
