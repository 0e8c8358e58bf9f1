"""Default values shared by the drivers, config layer and sync engine."""

# Content selection
DEFAULT_INCLUDE: tuple[str, ...] = ("**/*.md", "**/*.mdx", "**/*.txt")
DEFAULT_EXCLUDE: tuple[str, ...] = (
    "node_modules/**",
    ".git/**",
    "dist/**",
    "*.log",
)

# State storage
STORAGE_FILE = "file"
STORAGE_GIT_NOTES = "git-notes"
STORAGE_GIT_BRANCH = "git-branch"
STORAGE_TYPES: tuple[str, ...] = (
    STORAGE_FILE,
    STORAGE_GIT_NOTES,
    STORAGE_GIT_BRANCH,
)
DEFAULT_STORAGE = STORAGE_GIT_BRANCH

DEFAULT_STATE_FILE = ".vector_sync/state.json"
DEFAULT_STATE_BRANCH = "vector-sync-state"
DEFAULT_STATE_BRANCH_FILE = "state.json"
DEFAULT_NOTES_REF = "refs/notes/vector-sync"
DEFAULT_GIT_REMOTE = "origin"
DEFAULT_GIT_AUTHOR_NAME = "vector-sync"
DEFAULT_GIT_AUTHOR_EMAIL = "vector-sync@localhost"

# Remote
DEFAULT_PROVIDER = "openai"
DEFAULT_MAX_CONCURRENT = 4

# Environment variable names
ENV_PROVIDER = "VECTOR_SYNC_PROVIDER"
ENV_STORAGE = "VECTOR_SYNC_STORAGE"
ENV_STATE_FILE = "VECTOR_SYNC_STATE_FILE"
ENV_STATE_BRANCH = "VECTOR_SYNC_BRANCH"
ENV_MAX_CONCURRENT = "VECTOR_SYNC_MAX_CONCURRENT"
ENV_CONFIG_PATH = "VECTOR_SYNC_CONFIG"
ENV_API_KEY_SUFFIX = "_API_KEY"
ENV_STORE_ID_SUFFIX = "_STORE_ID"
