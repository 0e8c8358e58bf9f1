"""Command-line driver for vector-sync.

Commands:

- ``sync``          -- reconcile a directory with the remote store.
- ``list``          -- list the objects held by the remote store.
- ``create-store``  -- create a remote store and print its id.
- ``show-state``    -- print the persisted sync state.
- ``prune-state``   -- drop state entries whose remote object is gone.
- ``init``          -- write a starter config file.

Exit codes: 0 on success, 1 if any file failed to sync, 2 on a fatal or
configuration error.
"""

import argparse
import json
import logging
import sys
from typing import Any

from dotenv import load_dotenv
from pydantic import ValidationError

from vector_sync import __version__
from vector_sync.config import (
    Config,
    load_config,
    provider_env_name,
)
from vector_sync.config_loader import (
    ensure_config,
    load_hierarchical_config,
)
from vector_sync.config_schema import (
    ProviderConfig,
    UnifiedConfig,
    build_config,
)
from vector_sync.constants import (
    ENV_STORE_ID_SUFFIX,
    STORAGE_GIT_NOTES,
    STORAGE_TYPES,
)
from vector_sync.logger import setup_logging
from vector_sync.providers import (
    ProviderError,
    RemoteAdapter,
    provider_registry,
)
from vector_sync.sync.engine import EngineSettings, SyncEngine
from vector_sync.sync.errors import SyncError
from vector_sync.sync.reporter import (
    format_plan_preview,
    format_state_summary,
    format_sync_report,
    result_to_json,
)
from vector_sync.sync.scanner import ContentScanner
from vector_sync.sync.state import (
    StateStore,
    create_state_store,
    serialize_document,
)

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_PARTIAL = 1
EXIT_FATAL = 2


# ---------------------------------------------------------------------------
# Component construction
# ---------------------------------------------------------------------------


def create_adapter(config: Config) -> RemoteAdapter:
    """Build the adapter named by ``config.provider``.

    Raises:
        ValueError: If the provider is unknown or misconfigured.
    """
    settings = ProviderConfig(
        name=config.provider,
        api_key=config.api_key,
        store_id=config.store_id,
        base_url=config.base_url,
        chunk_size=config.chunk_size,
    )
    return provider_registry.create(config.provider, settings)


def create_store_for(config: Config) -> StateStore:
    """Build the state store selected by ``config.storage``."""
    return create_state_store(
        config.storage,
        state_file=config.state_file,
        repo_root=config.directory,
        branch=config.branch,
        notes_ref=config.notes_ref,
        remote=config.remote,
    )


def _log_progress(current: int, total: int, message: str) -> None:
    logger.debug("[%d/%d] %s", current, total, message)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def cmd_sync(config: Config, args: argparse.Namespace) -> int:
    adapter = create_adapter(config)
    try:
        engine = SyncEngine(
            adapter=adapter,
            state_store=create_store_for(config),
            scanner=ContentScanner(config.include, config.exclude),
            settings=EngineSettings.from_config(config),
            on_progress=_log_progress,
        )
        result = engine.run(config.directory, dry_run=args.dry_run)
    finally:
        adapter.cleanup()

    if args.json:
        print(json.dumps(result_to_json(result), indent=2))
    elif args.dry_run and engine.plan is not None:
        print(format_plan_preview(engine.plan))
    else:
        print(format_sync_report(result))

    return EXIT_OK if result.success else EXIT_PARTIAL


def cmd_list(config: Config, args: argparse.Namespace) -> int:
    adapter = create_adapter(config)
    try:
        entries = adapter.list_entries()
    finally:
        adapter.cleanup()

    if args.json:
        payload = [e.model_dump() for e in entries]
        print(json.dumps(payload, indent=2, default=str))
        return EXIT_OK

    if not entries:
        print("No files in vector store.")
        return EXIT_OK
    for entry in sorted(entries, key=lambda e: e.path or ""):
        meta = entry.metadata
        print(
            f"{entry.path or '(unknown)'}\t{meta.get('size', '?')}\t"
            f"{meta.get('last_modified', '')}\t{entry.remote_id}"
        )
    print(f"\n{len(entries)} files")
    return EXIT_OK


def cmd_create_store(config: Config, args: argparse.Namespace) -> int:
    adapter = create_adapter(config)
    try:
        store_id = adapter.create_store(args.name)
    finally:
        adapter.cleanup()
    print(f"Created vector store '{args.name}': {store_id}")
    env_name = provider_env_name(config.provider, ENV_STORE_ID_SUFFIX)
    print("Export it for later runs:")
    print(f"  export {env_name}={store_id}")
    return EXIT_OK


def cmd_show_state(config: Config, args: argparse.Namespace) -> int:
    store = create_store_for(config)
    if args.commit:
        if store.name != STORAGE_GIT_NOTES:
            raise ValueError("--commit requires --storage git-notes")
        document = store.load_for_commit(args.commit)  # type: ignore[attr-defined]
        if document is None:
            print(f"No sync state recorded on {args.commit}", file=sys.stderr)
            return EXIT_PARTIAL
    else:
        document = store.load()

    if args.summary:
        print(format_state_summary(document))
    else:
        print(serialize_document(document), end="")
    return EXIT_OK


def cmd_prune_state(config: Config, args: argparse.Namespace) -> int:
    adapter = create_adapter(config)
    try:
        remote = adapter.list_entries()
    finally:
        adapter.cleanup()

    store = create_store_for(config)
    store.fetch()
    store.load()
    removed = store.prune_stale(remote)
    if not removed:
        print("No stale entries.")
        return EXIT_OK
    if not args.dry_run:
        store.save()
        if config.push_state:
            store.push()
    verb = "Would remove" if args.dry_run else "Removed"
    print(f"{verb} {len(removed)} stale entries:")
    for path in removed:
        print(f"  {path}")
    return EXIT_OK


def cmd_init(config: Config, args: argparse.Namespace) -> int:
    path = ensure_config()
    print(f"Config file: {path}")
    return EXIT_OK


_COMMANDS = {
    "sync": cmd_sync,
    "list": cmd_list,
    "create-store": cmd_create_store,
    "show-state": cmd_show_state,
    "prune-state": cmd_prune_state,
    "init": cmd_init,
}


# ---------------------------------------------------------------------------
# Argument parsing
# ---------------------------------------------------------------------------


def _add_common(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-d",
        "--directory",
        help="Directory to sync (default: current directory)",
    )
    parser.add_argument(
        "-p",
        "--provider",
        help="Vector store provider (default: openai; env VECTOR_SYNC_PROVIDER)",
    )
    parser.add_argument(
        "--api-key",
        help="Provider API key (prefer the <PROVIDER>_API_KEY env var)",
    )
    parser.add_argument("--store-id", help="Vector store id")
    parser.add_argument(
        "--storage",
        choices=STORAGE_TYPES,
        help="Where sync state is kept (default: git-branch)",
    )
    parser.add_argument(
        "--state-file",
        help="State file path, also the local mirror of the git backends",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="vector-sync",
        description="Keep a remote vector store in sync with a directory",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Preview what would change
  vector-sync sync -d docs --dry-run

  # Sync Markdown and text files, creating the store on first run
  vector-sync sync -d docs --create-store my-docs

  # Keep state in a plain file instead of git
  vector-sync sync --storage file --state-file .vector_sync/state.json
        """,
    )
    parser.add_argument("--debug", action="store_true", help="Debug logging")
    parser.add_argument("--log-file", help="Also write logs to this file")
    parser.add_argument(
        "--log-format",
        choices=("text", "json"),
        help="Log record format (default: text)",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"vector-sync version {__version__}",
    )

    sub = parser.add_subparsers(dest="command", required=True)

    sync = sub.add_parser("sync", help="Reconcile a directory with the store")
    _add_common(sync)
    sync.add_argument(
        "--include", nargs="+", metavar="PATTERN", help="Include globs"
    )
    sync.add_argument(
        "--exclude", nargs="+", metavar="PATTERN", help="Extra exclude globs"
    )
    sync.add_argument("--dry-run", action="store_true", help="Plan only")
    sync.add_argument(
        "--create-store",
        metavar="NAME",
        help="Create a store with this name if none exists",
    )
    sync.add_argument(
        "--max-concurrent", type=int, help="Concurrent remote calls (1-64)"
    )
    sync.add_argument(
        "--prune",
        action="store_true",
        help="Drop state entries whose remote object is gone",
    )
    sync.add_argument(
        "--no-push", action="store_true", help="Do not push the state ref"
    )
    sync.add_argument("--json", action="store_true", help="JSON output")

    listing = sub.add_parser("list", help="List files in the store")
    _add_common(listing)
    listing.add_argument("--json", action="store_true", help="JSON output")

    create = sub.add_parser("create-store", help="Create a vector store")
    _add_common(create)
    create.add_argument("name", help="Store name")

    show = sub.add_parser("show-state", help="Print the sync state")
    _add_common(show)
    show.add_argument(
        "--summary", action="store_true", help="Summary instead of JSON"
    )
    show.add_argument(
        "--commit", help="State recorded on this commit (git-notes only)"
    )

    prune = sub.add_parser("prune-state", help="Drop stale state entries")
    _add_common(prune)
    prune.add_argument("--dry-run", action="store_true", help="Report only")
    prune.add_argument(
        "--no-push", action="store_true", help="Do not push the state ref"
    )

    sub.add_parser("init", help="Write a starter config file")
    return parser


def _config_from_args(
    args: argparse.Namespace, unified: UnifiedConfig
) -> Config:
    def opt(name: str) -> Any:
        return getattr(args, name, None)

    return load_config(
        provider=opt("provider"),
        api_key=opt("api_key"),
        store_id=opt("store_id"),
        directory=opt("directory"),
        include=opt("include"),
        exclude=opt("exclude"),
        storage=opt("storage"),
        state_file=opt("state_file"),
        max_concurrent=opt("max_concurrent"),
        create_store_name=opt("create_store"),
        prune_stale=bool(opt("prune")),
        no_push=bool(opt("no_push")),
        debug=args.debug,
        unified=unified,
    )


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    # .env first so ${VAR} references in YAML can use its values
    load_dotenv()
    try:
        unified = build_config(load_hierarchical_config())
    except (OSError, ValueError, ValidationError) as exc:
        print(f"Error: invalid configuration: {exc}", file=sys.stderr)
        return EXIT_FATAL

    setup_logging(
        mode="cli",
        debug=args.debug,
        log_file=args.log_file or unified.logging.file,
        log_format=args.log_format or unified.logging.format,
        level=unified.logging.level,
    )

    try:
        config = _config_from_args(args, unified)
        return _COMMANDS[args.command](config, args)
    except (SyncError, ProviderError, ValueError) as exc:
        logger.debug("Command %s failed", args.command, exc_info=True)
        print(f"Error: {exc}", file=sys.stderr)
        return EXIT_FATAL
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        return EXIT_FATAL


def run() -> None:
    """Console script entry point."""
    sys.exit(main())


if __name__ == "__main__":
    run()
