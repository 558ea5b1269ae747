"""
Config loader for the EduSphere client.
Reads config.yaml once and caches it. All other modules import from here.

The config path can be overridden with EDUSPHERE_CONFIG. Values of the form
${ENV_VAR} are resolved from the environment (after loading .env), and any
key left missing or empty falls back to DEFAULTS.
"""

import copy
import logging
import os
import re
from pathlib import Path

import yaml
from dotenv import load_dotenv

load_dotenv()

_CONFIG_PATH = Path(__file__).parent.parent / "config.yaml"

DEFAULTS: dict = {
    "api": {
        "base_url": "http://localhost:8080/api",
        "timeout": 480,
        "download_pattern": "/download",
        "stream_path": "/chat/stream",
    },
    "storage": {
        "path": "~/.edusphere/state.yaml",
    },
    "logging": {
        "level": "INFO",
        "file": None,
    },
}

_config: dict | None = None
_ENV_REF = re.compile(r"\$\{(\w+)\}")


def _resolve_env_vars(value: str) -> str:
    """
    Expand ${VAR} references, e.g. api.base_url: ${EDUSPHERE_API_URL}.
    Unset vars expand to empty strings.
    """
    return _ENV_REF.sub(lambda m: os.environ.get(m.group(1), ""), value)


def _walk_and_resolve(obj):
    """Expand env references in every string of the loaded YAML tree."""
    if isinstance(obj, dict):
        return {k: _walk_and_resolve(v) for k, v in obj.items()}
    elif isinstance(obj, list):
        return [_walk_and_resolve(v) for v in obj]
    elif isinstance(obj, str):
        return _resolve_env_vars(obj)
    return obj


def _merge_defaults(defaults: dict, loaded: dict) -> dict:
    """Overlay loaded values on defaults. Empty values keep the default."""
    merged = copy.deepcopy(defaults)
    for key, value in loaded.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge_defaults(merged[key], value)
        elif value is None or value == "":
            merged.setdefault(key, value)
        else:
            merged[key] = value
    return merged


def _default_path() -> Path:
    override = os.environ.get("EDUSPHERE_CONFIG")
    return Path(override) if override else _CONFIG_PATH


def load_config(path: Path | None = None) -> dict:
    """
    Load and cache config from YAML file.
    A missing file is not an error: the client runs on DEFAULTS alone.
    """
    global _config
    if _config is not None and path is None:
        return _config

    config_path = Path(path) if path else _default_path()
    raw: dict = {}
    if config_path.exists():
        with open(config_path) as f:
            raw = yaml.safe_load(f) or {}
    else:
        logging.getLogger(__name__).debug("Config %s not found, using defaults", config_path)

    _config = _merge_defaults(DEFAULTS, _walk_and_resolve(raw))
    return _config


def get_config() -> dict:
    """Return cached config, loading if necessary."""
    if _config is None:
        return load_config()
    return _config


def reset_config():
    """Drop the cached config so the next get_config() reloads it."""
    global _config
    _config = None


def setup_logging(cfg: dict):
    log_cfg = cfg.get("logging", {})
    level = getattr(logging, str(log_cfg.get("level") or "INFO").upper(), logging.INFO)
    log_file = log_cfg.get("file")

    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        Path(log_file).expanduser().parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(Path(log_file).expanduser()))

    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=handlers,
    )
