"""Runtime configuration for the sync drivers.

Combines CLI args, environment variables, .env files and the YAML config
file into one flat ``Config``.

Precedence (highest to lowest):
    CLI args > Environment variables > .env file > YAML config > Built-in defaults

Environment variables:
    VECTOR_SYNC_PROVIDER: Provider name (default: openai)
    <PROVIDER>_API_KEY: API key, e.g. OPENAI_API_KEY
    <PROVIDER>_STORE_ID: Vector store id, e.g. OPENAI_STORE_ID
    VECTOR_SYNC_STORAGE: State backend (file, git-notes, git-branch)
    VECTOR_SYNC_STATE_FILE: State file / local mirror path
    VECTOR_SYNC_BRANCH: Orphan branch used by the git-branch backend
    VECTOR_SYNC_MAX_CONCURRENT: Concurrent remote calls (1-64)
"""

import logging
import os
from dataclasses import dataclass, field

from vector_sync.config_schema import UnifiedConfig
from vector_sync.constants import (
    ENV_API_KEY_SUFFIX,
    ENV_MAX_CONCURRENT,
    ENV_PROVIDER,
    ENV_STATE_BRANCH,
    ENV_STATE_FILE,
    ENV_STORAGE,
    ENV_STORE_ID_SUFFIX,
    STORAGE_TYPES,
)

logger = logging.getLogger(__name__)

MAX_CONCURRENT_LIMIT = 64


@dataclass
class Config:
    provider: str
    directory: str
    storage: str
    state_file: str
    notes_ref: str
    branch: str
    remote: str
    include: list[str] = field(default_factory=list)
    exclude: list[str] = field(default_factory=list)
    api_key: str | None = None
    store_id: str | None = None
    base_url: str | None = None
    chunk_size: int | None = None
    max_concurrent: int = 4
    push_state: bool = True
    prune_stale: bool = False
    create_store_name: str | None = None
    debug: bool = False


def provider_env_name(provider: str, suffix: str) -> str:
    """Return the env var holding a provider setting, e.g. ``OPENAI_API_KEY``."""
    return provider.upper().replace("-", "_") + suffix


def validate_config(config: Config) -> None:
    """Validate configuration values and raise ValueError if invalid.

    Raises:
        ValueError: If a value is out of range or unknown.
    """
    config.provider = config.provider.strip().lower()
    if not config.provider:
        raise ValueError(
            f"Provider name cannot be empty. Set {ENV_PROVIDER} or pass --provider."
        )

    if config.storage not in STORAGE_TYPES:
        raise ValueError(
            f"Invalid storage '{config.storage}': must be one of "
            f"{', '.join(STORAGE_TYPES)}"
        )

    if not (1 <= config.max_concurrent <= MAX_CONCURRENT_LIMIT):
        raise ValueError(
            f"Invalid max_concurrent {config.max_concurrent}: "
            f"must be a number between 1 and {MAX_CONCURRENT_LIMIT}"
        )

    if not config.include:
        raise ValueError(
            "No include patterns configured. Pass --include or set "
            "'sync.include' in the config file."
        )

    if not config.directory.strip():
        raise ValueError("Sync directory cannot be empty.")


def load_config(
    provider: str | None = None,
    api_key: str | None = None,
    store_id: str | None = None,
    directory: str | None = None,
    include: list[str] | None = None,
    exclude: list[str] | None = None,
    storage: str | None = None,
    state_file: str | None = None,
    max_concurrent: int | None = None,
    create_store_name: str | None = None,
    prune_stale: bool = False,
    no_push: bool = False,
    debug: bool = False,
    unified: UnifiedConfig | None = None,
) -> Config:
    """Load configuration with unified precedence.

    Resolution order for each field (highest to lowest):
        CLI arg > env var / .env > YAML config > built-in default

    The caller is responsible for calling ``load_dotenv()`` before this
    function so that .env values are available via ``os.getenv()``.

    Args:
        provider: Provider name override.
        api_key: API key override.
        store_id: Vector store id override.
        directory: Directory to sync.
        include: Include patterns (replace the configured ones).
        exclude: Extra exclude patterns (added to the configured ones).
        storage: State backend override.
        state_file: State file / mirror path override.
        max_concurrent: Concurrency override.
        create_store_name: Create a store with this name if none exists.
        prune_stale: CLI flag; enables stale-entry pruning.
        no_push: CLI flag; disables pushing the state ref.
        debug: Enable debug logging (CLI flag).
        unified: Parsed YAML config; defaults when ``None``.

    Returns:
        Validated Config instance.

    Raises:
        ValueError: If a value is invalid after checking all sources.
    """
    yaml_cfg = unified or UnifiedConfig()
    prov, sync = yaml_cfg.provider, yaml_cfg.sync

    final_provider = provider or os.getenv(ENV_PROVIDER) or prov.name

    # Credentials are per provider: OPENAI_API_KEY, OPENAI_STORE_ID, ...
    # The YAML values only apply to the provider they were written for.
    same_provider = final_provider.strip().lower() == prov.name
    final_api_key = (
        api_key
        or os.getenv(provider_env_name(final_provider, ENV_API_KEY_SUFFIX))
        or (prov.api_key if same_provider else None)
    )
    final_store_id = (
        store_id
        or os.getenv(provider_env_name(final_provider, ENV_STORE_ID_SUFFIX))
        or (prov.store_id if same_provider else None)
    )

    max_concurrent_raw = os.getenv(ENV_MAX_CONCURRENT)
    if max_concurrent is not None:
        final_max_concurrent = max_concurrent
    elif max_concurrent_raw is not None:
        try:
            final_max_concurrent = int(max_concurrent_raw)
        except ValueError:
            raise ValueError(
                f"Invalid {ENV_MAX_CONCURRENT} '{max_concurrent_raw}': "
                f"must be a number between 1 and {MAX_CONCURRENT_LIMIT}"
            ) from None
    else:
        final_max_concurrent = sync.max_concurrent

    config = Config(
        provider=final_provider,
        api_key=final_api_key,
        store_id=final_store_id,
        base_url=prov.base_url if same_provider else None,
        chunk_size=prov.chunk_size if same_provider else None,
        directory=directory or sync.directory,
        include=list(include) if include else list(sync.include),
        exclude=[*sync.exclude, *(exclude or [])],
        storage=storage or os.getenv(ENV_STORAGE) or sync.storage,
        state_file=state_file or os.getenv(ENV_STATE_FILE) or sync.state_file,
        notes_ref=sync.notes_ref,
        branch=os.getenv(ENV_STATE_BRANCH) or sync.branch,
        remote=sync.remote,
        max_concurrent=final_max_concurrent,
        push_state=sync.push_state and not no_push,
        prune_stale=prune_stale or sync.prune_stale,
        create_store_name=create_store_name or sync.create_store_name,
        debug=debug,
    )

    validate_config(config)

    return config
