"""Directory-to-vector-store reconciliation.

Modules:

- ``engine``   -- ``SyncEngine``: orchestrates one sync run.
- ``scanner``  -- ``ContentScanner``: selects and fingerprints local files.
- ``state``    -- ``StateStore`` contract, ``FileStateStore``, shared
  ``compare()`` and the ``create_state_store`` factory.
- ``history``  -- git-notes and git-branch state stores with file fallback.
- ``models``   -- pydantic data contracts.
- ``reporter`` -- human-readable and JSON output.

Usage example
-------------
::

    from vector_sync.providers.memory import InMemoryAdapter
    from vector_sync.sync import SyncEngine, create_state_store

    engine = SyncEngine(
        adapter=InMemoryAdapter(),
        state_store=create_state_store("file", state_file="state.json"),
    )
    result = engine.run("docs", dry_run=True)
    print(result.summary())
"""

from .engine import EngineSettings, SyncEngine, SyncPhase
from .errors import ScanError, StoreUnavailableError, SyncError
from .models import (
    FileRecord,
    RemoteEntry,
    StateDocument,
    SyncAction,
    SyncEntry,
    SyncFailure,
    SyncPlan,
    SyncResult,
)
from .reporter import (
    format_plan_preview,
    format_state_summary,
    format_sync_report,
    result_to_json,
)
from .scanner import ContentScanner
from .state import FileStateStore, StateStore, create_state_store

__all__ = [
    "ContentScanner",
    "EngineSettings",
    "FileRecord",
    "FileStateStore",
    "RemoteEntry",
    "ScanError",
    "StateDocument",
    "StateStore",
    "StoreUnavailableError",
    "SyncAction",
    "SyncEngine",
    "SyncEntry",
    "SyncError",
    "SyncFailure",
    "SyncPhase",
    "SyncPlan",
    "SyncResult",
    "create_state_store",
    "format_plan_preview",
    "format_state_summary",
    "format_sync_report",
    "result_to_json",
]
