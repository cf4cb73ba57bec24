import json
import os
from pathlib import Path

from dotenv import dotenv_values

VOLKEEPCONFIG = ".volkeepconfig"
ENV_FILE = ".volkeep.env"
GLOBAL_CONFIG_FILE = Path.home() / ".volkeep" / "config.json"

# Knobs the calling scripts hand us as plain strings
ENV_KNOBS = (
    "VOLKEEP_VOLUME_PATH",
    "VOLKEEP_DATA_PATH",
    "VOLKEEP_OWNER",
    "VOLKEEP_CONTAINER",
    "VOLKEEP_STOP_COMMAND",
    "VOLKEEP_COMMIT_MESSAGE",
)

DEFAULT_CONFIG = {
    "data_dir": "data",
    "branch": "main",
    "remote": "origin",
    "author_name": "Volkeep Bot",
    "author_email": "bot@volkeep.local",
    "lfs_threshold": 52_428_800,  # 50 MiB
    "push_retries": 3,
    "retry_delay": 2,
    "settle_delay": 2,
    "message_prefix": "chore(volumes): ",
}

INT_KEYS = {"lfs_threshold", "push_retries"}
NUMBER_KEYS = {"retry_delay", "settle_delay"}


def load_global_config():
    """Load ~/.volkeep/config.json: machine-wide defaults."""
    if GLOBAL_CONFIG_FILE.exists():
        try:
            return json.loads(GLOBAL_CONFIG_FILE.read_text())
        except (json.JSONDecodeError, OSError):
            pass
    return {}


def find_config(start=None):
    """Walk up from start (default cwd) to find .volkeepconfig, like git finds .git."""
    current = Path(start).resolve() if start else Path.cwd()
    for parent in [current, *current.parents]:
        config_path = parent / VOLKEEPCONFIG
        if config_path.exists():
            return config_path
    return None


def _validate(config, source):
    for key in INT_KEYS:
        if not isinstance(config.get(key), int) or isinstance(config.get(key), bool):
            raise ValueError(f"{key} in {source} must be an integer, got {config.get(key)!r}")
    for key in NUMBER_KEYS:
        value = config.get(key)
        if not isinstance(value, (int, float)) or isinstance(value, bool) or value < 0:
            raise ValueError(f"{key} in {source} must be a non-negative number, got {value!r}")
    if config["push_retries"] < 1:
        raise ValueError(f"push_retries in {source} must be at least 1")
    if not str(config.get("branch", "")).strip():
        raise ValueError(f"branch in {source} must not be empty")


def load_config(start=None):
    # Merge order: defaults → global config → project .volkeepconfig
    config = {**DEFAULT_CONFIG, **load_global_config()}
    source = str(GLOBAL_CONFIG_FILE)

    config_path = find_config(start)
    if config_path:
        try:
            raw = json.loads(config_path.read_text())
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in {config_path}: {e}")
        if not isinstance(raw, dict):
            raise ValueError(f"{config_path} must contain a JSON object")
        config.update(raw)
        source = str(config_path)

    _validate(config, source)
    return config


def init_config(path=None):
    """Create a .volkeepconfig with defaults in the given directory."""
    target = Path(path) if path else Path.cwd()
    config_path = target / VOLKEEPCONFIG
    config_path.write_text(json.dumps(DEFAULT_CONFIG, indent=2) + "\n")
    return config_path


def load_env_knobs(start=None):
    """Load VOLKEEP_* knobs from .volkeep.env into os.environ.

    The file sits next to .volkeepconfig (or in the cwd when there is none).
    Variables already exported by the caller win over the file.
    Returns the knobs read from the file.
    """
    config_path = find_config(start)
    base = config_path.parent if config_path else (Path(start) if start else Path.cwd())
    env_file = base / ENV_FILE
    if not env_file.exists():
        return {}

    knobs = {}
    for key, value in dotenv_values(env_file).items():
        if key not in ENV_KNOBS or value is None:
            continue
        knobs[key] = value
        if key not in os.environ:
            os.environ[key] = value
    return knobs
