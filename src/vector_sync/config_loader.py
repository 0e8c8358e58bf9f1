"""
YAML configuration discovery and loading for vector_sync.

Looks for config files in conventional locations, resolves ``!include``
directives, expands ``${VAR}`` / ``${VAR:-default}`` references and merges
the files with "project wins" semantics.

Usage:
    from vector_sync.config_loader import load_hierarchical_config

    raw = load_hierarchical_config()
"""

import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml

from vector_sync.constants import ENV_CONFIG_PATH

logger = logging.getLogger(__name__)

PROJECT_CONFIG_DIR = ".vector_sync"
GLOBAL_CONFIG_DIR = Path(".config") / "vector_sync"

# ---------------------------------------------------------------------------
# Env var interpolation
# ---------------------------------------------------------------------------

# ${VAR} or ${VAR:-default}
_ENV_REF = re.compile(r"\$\{([^}:]+?)(?::-(.*?))?\}")


def interpolate_env_vars(value: str) -> str:
    """Expand ``${VAR}`` and ``${VAR:-default}`` references in *value*.

    An unset or empty variable expands to its default, or to ``""`` when no
    default is given.  An unterminated ``${`` is left as is.
    """

    def _expand(match: re.Match) -> str:
        current = os.environ.get(match.group(1))
        if current:
            return current
        return match.group(2) or ""

    return _ENV_REF.sub(_expand, value)


def _interpolate_tree(node: Any) -> Any:
    if isinstance(node, str):
        return interpolate_env_vars(node)
    if isinstance(node, dict):
        return {key: _interpolate_tree(val) for key, val in node.items()}
    if isinstance(node, list):
        return [_interpolate_tree(item) for item in node]
    return node


# ---------------------------------------------------------------------------
# YAML !include
# ---------------------------------------------------------------------------


class ConfigLoader(yaml.SafeLoader):
    """SafeLoader subclass that understands ``!include``.

    The constructor is registered on this subclass only, so the global
    ``yaml.SafeLoader`` stays untouched.
    """


def _include_constructor(loader: ConfigLoader, node: yaml.ScalarNode) -> Any:
    """Load the file named by ``!include <path>``, relative to the includer."""
    raw_path = Path(loader.construct_scalar(node))
    source = Path(loader.name).resolve()
    target = (
        raw_path if raw_path.is_absolute() else source.parent / raw_path
    ).resolve()

    stack: list[Path] = getattr(loader, "_include_stack", [])
    if target in stack:
        chain = " -> ".join(str(p) for p in [*stack, target])
        raise ValueError(f"Circular include detected: {chain}")
    if not target.exists():
        raise FileNotFoundError(
            f"Include file not found: {target} (referenced from {source})"
        )
    return load_yaml_file(target, _include_stack=[*stack, target])


ConfigLoader.add_constructor("!include", _include_constructor)


def load_yaml_file(
    path: Path,
    *,
    _include_stack: list[Path] | None = None,
) -> Any:
    """Parse one YAML file with ``!include`` support."""
    path = Path(path).resolve()
    with open(path, "r", encoding="utf-8") as fh:
        loader = ConfigLoader(fh)
        loader._include_stack = _include_stack or [path]  # type: ignore[attr-defined]
        try:
            return loader.get_single_data()
        finally:
            loader.dispose()


# ---------------------------------------------------------------------------
# Discovery
# ---------------------------------------------------------------------------


def discover_config_files() -> list[Path]:
    """Return existing config files, highest precedence first.

    Candidates:
        1. The file named by ``VECTOR_SYNC_CONFIG``.
        2. ``.vector_sync/config.yml`` in the current directory.
        3. ``.vector_sync/config.yaml`` in the current directory.
        4. ``~/.config/vector_sync/config.yml``.
    """
    candidates: list[Path] = []

    explicit = os.environ.get(ENV_CONFIG_PATH)
    if explicit:
        candidates.append(Path(explicit).expanduser().resolve())

    project_dir = Path.cwd() / PROJECT_CONFIG_DIR
    candidates.append(project_dir / "config.yml")
    candidates.append(project_dir / "config.yaml")
    candidates.append(Path.home() / GLOBAL_CONFIG_DIR / "config.yml")

    return [p for p in candidates if p.exists()]


_STARTER_CONFIG = """\
# vector-sync configuration
#
# Values may reference environment variables: ${VAR} or ${VAR:-default}.
# Provider credentials are usually supplied through the environment:
#   OPENAI_API_KEY, OPENAI_STORE_ID
#
# provider:
#   name: openai
#   api_key: ${OPENAI_API_KEY}
#   store_id: ${OPENAI_STORE_ID}
#
# sync:
#   directory: docs
#   include: ["**/*.md", "**/*.mdx", "**/*.txt"]
#   exclude: ["drafts/**"]
#   storage: git-branch        # file | git-notes | git-branch
#   branch: vector-sync-state
#   max_concurrent: 4
#
# logging:
#   level: INFO
#   file: null
#   format: text               # text | json
"""


def resolve_config_path() -> Path:
    """Return the active config file, or the default project path if none exists."""
    existing = discover_config_files()
    if existing:
        return existing[0]
    return Path.cwd() / PROJECT_CONFIG_DIR / "config.yml"


def ensure_config(target: Path | None = None) -> Path:
    """Return the active config file, writing a commented starter if none exists.

    Args:
        target: Where to write the starter file.  Defaults to
            ``resolve_config_path()``.
    """
    existing = discover_config_files()
    if existing:
        logger.debug("Config file already exists: %s", existing[0])
        return existing[0]

    config_path = target or resolve_config_path()
    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_path.write_text(_STARTER_CONFIG, encoding="utf-8")
    logger.info("Created starter config: %s", config_path)
    return config_path


# ---------------------------------------------------------------------------
# Merge
# ---------------------------------------------------------------------------


def load_hierarchical_config() -> dict[str, Any]:
    """Load and merge every discovered config file.

    Files are applied from lowest to highest precedence; a top-level key in
    a higher-precedence file replaces the whole section from a lower one.
    Env var references are expanded after the merge.

    Returns an empty dict when no config file exists.
    """
    paths = discover_config_files()
    if not paths:
        logger.debug("No config files found, using defaults")
        return {}

    merged: dict[str, Any] = {}
    for path in reversed(paths):
        logger.debug("Loading config: %s", path)
        try:
            data = load_yaml_file(path)
        except Exception:
            logger.exception("Failed to load config file %s", path)
            raise

        if isinstance(data, dict):
            merged.update(data)
        elif data is not None:
            logger.warning(
                "Config file %s has non-dict root (%s), skipping",
                path,
                type(data).__name__,
            )

    return _interpolate_tree(merged)
