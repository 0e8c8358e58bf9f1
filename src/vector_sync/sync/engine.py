"""Reconciliation engine: bring a remote vector store in line with a directory.

The ``SyncEngine`` ties the scanner, the remote adapter and the state store
into one run:

1. Fetch and load the persisted state, verify (or create) the remote store.
2. Scan the local directory.
3. List the remote store and classify every path with ``compare()``.
4. Execute adds, then updates, then deletes.  Remote calls within a group
   run concurrently, bounded by ``max_concurrent``.
5. Save the state exactly once and push it.

Fatal errors (``StoreUnavailableError``, ``ScanError``) abort the run before
any remote mutation.  Failures of a single path are recorded in
``SyncResult.failed`` and never abort the run.

State mutations happen only on the event loop thread, in plan order, after
each group's remote calls have completed.  The adapter's blocking methods
run in worker threads.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable

from vector_sync.constants import DEFAULT_MAX_CONCURRENT
from vector_sync.core.async_utils import (
    gather_limited,
    make_semaphore,
    run_sync,
    run_sync_limited,
)
from vector_sync.sync.errors import StoreUnavailableError
from vector_sync.sync.models import (
    FileRecord,
    PlannedDelete,
    PlannedUpdate,
    RemoteEntry,
    SyncAction,
    SyncEntry,
    SyncFailure,
    SyncPlan,
    SyncResult,
)
from vector_sync.sync.scanner import ContentScanner
from vector_sync.sync.state import StateStore, utc_now

if TYPE_CHECKING:
    from vector_sync.config import Config
    from vector_sync.providers.base import ProgressCallback, RemoteAdapter

logger = logging.getLogger(__name__)


class SyncPhase(str, Enum):
    """Lifecycle of one engine run."""

    IDLE = "idle"
    VERIFYING_STORE = "verifying_store"
    SCANNING = "scanning"
    DIFFING = "diffing"
    EXECUTING = "executing"
    PERSISTING = "persisting"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class EngineSettings:
    """Knobs for one engine.

    Attributes:
        max_concurrent: Remote calls allowed in flight at once.
        create_store_name: Create a store with this name if none exists.
        push_state: Push the state ref after saving.
        prune_stale: Drop entries whose remote object is gone after a
            run without failures.
    """

    max_concurrent: int = DEFAULT_MAX_CONCURRENT
    create_store_name: str | None = None
    push_state: bool = True
    prune_stale: bool = False

    @classmethod
    def from_config(cls, config: Config) -> EngineSettings:
        return cls(
            max_concurrent=config.max_concurrent,
            create_store_name=config.create_store_name,
            push_state=config.push_state,
            prune_stale=config.prune_stale,
        )


class SyncEngine:
    """Run one-way reconciliation from a directory to a remote store.

    Args:
        adapter: Remote store adapter.
        state_store: Persisted ``path -> SyncEntry`` mapping.
        scanner: Content scanner; defaults to the standard patterns.
        settings: Engine settings; defaults to ``EngineSettings()``.
        on_progress: Forwarded to every upload/update.
    """

    def __init__(
        self,
        adapter: RemoteAdapter,
        state_store: StateStore,
        scanner: ContentScanner | None = None,
        settings: EngineSettings | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> None:
        self.adapter = adapter
        self.state_store = state_store
        self.scanner = scanner or ContentScanner()
        self.settings = settings or EngineSettings()
        self.on_progress = on_progress
        self._phase = SyncPhase.IDLE
        self.plan: SyncPlan | None = None

    @property
    def phase(self) -> SyncPhase:
        """Current lifecycle phase."""
        return self._phase

    def _set_phase(self, phase: SyncPhase) -> None:
        logger.debug("Sync phase: %s -> %s", self._phase.value, phase.value)
        self._phase = phase

    # ------------------------------------------------------------------
    # Main entry points
    # ------------------------------------------------------------------

    def run(self, directory: Path | str, dry_run: bool = False) -> SyncResult:
        """Blocking wrapper around ``sync()``."""
        return asyncio.run(self.sync(directory, dry_run=dry_run))

    async def sync(
        self, directory: Path | str, dry_run: bool = False
    ) -> SyncResult:
        """Execute a full sync cycle.

        Args:
            directory: Root directory to scan.
            dry_run: If ``True``, plan only: no remote mutation, no state
                mutation, no save, no push.

        Returns:
            A ``SyncResult``.  In dry-run mode its path lists hold the
            planned paths.

        Raises:
            StoreUnavailableError: The store is missing and cannot be
                created, or cannot be verified or listed.
            ScanError: The directory cannot be listed.
        """
        started = time.monotonic()
        started_at = utc_now()
        try:
            store_ready = await self._prepare(dry_run)

            self._set_phase(SyncPhase.SCANNING)
            records = await run_sync(self.scanner.scan, Path(directory))

            self._set_phase(SyncPhase.DIFFING)
            remote = await self._list_remote() if store_ready else []
            plan = self.state_store.compare(records, remote)
            self.plan = plan
            counts = plan.counts()
            logger.info(
                "Plan: %d to add, %d to update, %d to delete, %d unchanged",
                counts["add"],
                counts["update"],
                counts["delete"],
                counts["unchanged"],
            )

            if dry_run:
                result = self._planned_result(plan)
            else:
                self._set_phase(SyncPhase.EXECUTING)
                result = await self._execute(plan, records)
                await self._persist()
        except Exception:
            self._set_phase(SyncPhase.FAILED)
            raise

        result.dry_run = dry_run
        result.started_at = started_at
        result.completed_at = utc_now()
        result.duration = time.monotonic() - started
        self._set_phase(SyncPhase.DONE)
        logger.info("%s in %.2fs", result.summary(), result.duration)
        return result

    # ------------------------------------------------------------------
    # Phases
    # ------------------------------------------------------------------

    async def _prepare(self, dry_run: bool) -> bool:
        """Load state and make sure the remote store exists.

        Returns:
            ``True`` if the store exists; ``False`` only in dry-run mode
            when the store would be created.
        """
        self._set_phase(SyncPhase.VERIFYING_STORE)
        await run_sync(self.state_store.fetch)
        document = await run_sync(self.state_store.load)

        if await self._verify_store():
            return True

        # A store created by an earlier run is recorded in the state
        saved_id = document.remote_store_id
        if saved_id:
            await run_sync(self.adapter.use_store, saved_id)
            if await self._verify_store():
                logger.info("Using store %s recorded in sync state", saved_id)
                return True
            logger.warning("Store %s recorded in sync state is gone", saved_id)

        name = self.settings.create_store_name
        if not name:
            raise StoreUnavailableError(
                f"{self.adapter.name} store does not exist. "
                "Configure a store id or pass --create-store NAME."
            )
        if dry_run:
            logger.info("Dry run: would create store '%s'", name)
            return False

        try:
            store_id = await run_sync(self.adapter.create_store, name)
        except Exception as exc:
            raise StoreUnavailableError(
                f"Could not create {self.adapter.name} store '{name}': {exc}"
            ) from exc
        self.state_store.remote_store_id = store_id
        logger.info("Created store '%s' (%s)", name, store_id)
        return True

    async def _verify_store(self) -> bool:
        try:
            return await run_sync(self.adapter.verify_store)
        except Exception as exc:
            raise StoreUnavailableError(
                f"Could not verify {self.adapter.name} store: {exc}"
            ) from exc

    async def _list_remote(self) -> list[RemoteEntry]:
        try:
            return await run_sync(self.adapter.list_entries)
        except Exception as exc:
            raise StoreUnavailableError(
                f"Could not list {self.adapter.name} store: {exc}"
            ) from exc

    @staticmethod
    def _planned_result(plan: SyncPlan) -> SyncResult:
        return SyncResult(
            added=[p.path for p in plan.to_add],
            updated=[p.path for p in plan.to_update],
            deleted=sorted(p.path for p in plan.to_delete),
            unchanged=[p.path for p in plan.unchanged],
        )

    async def _execute(
        self, plan: SyncPlan, records: list[FileRecord]
    ) -> SyncResult:
        semaphore = make_semaphore(self.settings.max_concurrent)
        by_path = {r.path: r for r in records}
        result = SyncResult(unchanged=[p.path for p in plan.unchanged])

        # Adds
        outcomes = await gather_limited(
            [
                self._guarded(
                    semaphore,
                    SyncAction.ADD,
                    p.path,
                    self._add_blocking,
                    by_path[p.path],
                    p.metadata,
                )
                for p in plan.to_add
            ]
        )
        for planned, (value, failure) in zip(plan.to_add, outcomes):
            if failure is not None:
                result.failed.append(failure)
                continue
            remote_id, metadata = value
            self.state_store.set_entry(
                planned.path,
                SyncEntry(
                    remote_id=remote_id,
                    metadata=metadata,
                    uploaded_at=utc_now(),
                    version=1,
                ),
            )
            result.added.append(planned.path)

        # Updates
        outcomes = await gather_limited(
            [
                self._guarded(
                    semaphore,
                    SyncAction.UPDATE,
                    p.path,
                    self._update_blocking,
                    by_path[p.path],
                    p,
                )
                for p in plan.to_update
            ]
        )
        for planned, (value, failure) in zip(plan.to_update, outcomes):
            if failure is not None:
                result.failed.append(failure)
                continue
            remote_id, metadata = value
            previous = self.state_store.get_entry(planned.path)
            self.state_store.set_entry(
                planned.path,
                SyncEntry(
                    remote_id=remote_id,
                    metadata=metadata,
                    uploaded_at=utc_now(),
                    version=previous.version + 1 if previous else 1,
                ),
            )
            result.updated.append(planned.path)

        # Deletes
        outcomes = await gather_limited(
            [
                self._guarded(
                    semaphore,
                    SyncAction.DELETE,
                    p.path,
                    self.adapter.delete,
                    p.remote_id,
                )
                for p in plan.to_delete
            ]
        )
        for planned, (_value, failure) in zip(plan.to_delete, outcomes):
            if failure is not None:
                result.failed.append(failure)
                continue
            self._forget(planned)
            result.deleted.append(planned.path)
        result.deleted.sort()

        if self.settings.prune_stale and result.success:
            await self._prune()
        return result

    async def _persist(self) -> None:
        self._set_phase(SyncPhase.PERSISTING)
        await run_sync(self.state_store.save)
        if self.settings.push_state:
            await run_sync(self.state_store.push)

    # ------------------------------------------------------------------
    # Per-item work (runs in worker threads)
    # ------------------------------------------------------------------

    async def _guarded(
        self,
        semaphore: asyncio.Semaphore,
        action: SyncAction,
        path: str,
        func: Callable[..., Any],
        *args: Any,
    ) -> tuple[Any, SyncFailure | None]:
        """Run one remote operation, turning any exception into a failure."""
        try:
            value = await run_sync_limited(semaphore, func, *args)
        except Exception as exc:
            logger.error("Failed to %s %s: %s", action.value, path, exc)
            return None, SyncFailure(path=path, action=action, error=str(exc))
        logger.debug("%s %s", action.value, path)
        return value, None

    def _add_blocking(
        self, record: FileRecord, base_metadata: dict[str, Any]
    ) -> tuple[str, dict[str, Any]]:
        metadata = self.adapter.enrich_metadata(
            record.path, record.content, base_metadata
        )
        remote_id = self.adapter.upload(
            record.path, record.content, metadata, self.on_progress
        )
        return remote_id, metadata

    def _update_blocking(
        self, record: FileRecord, planned: PlannedUpdate
    ) -> tuple[str, dict[str, Any]]:
        metadata = self.adapter.enrich_metadata(
            record.path, record.content, planned.metadata
        )
        new_id = self.adapter.update(
            planned.remote_id, record.content, metadata, self.on_progress
        )
        return new_id or planned.remote_id, metadata

    # ------------------------------------------------------------------
    # State helpers (event loop thread only)
    # ------------------------------------------------------------------

    def _forget(self, planned: PlannedDelete) -> None:
        """Drop the entry that pointed at a deleted remote object.

        The planned path may come from remote metadata; an entry for the
        same path that points at another object is kept.
        """
        entry = self.state_store.get_entry(planned.path)
        if entry is not None and entry.remote_id == planned.remote_id:
            self.state_store.remove_entry(planned.path)

    async def _prune(self) -> None:
        try:
            remote = await run_sync(self.adapter.list_entries)
        except Exception as exc:
            logger.warning("Skipping stale-entry pruning: %s", exc)
            return
        self.state_store.prune_stale(remote)
