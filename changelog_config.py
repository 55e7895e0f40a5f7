"""
changelog_config.py
===================
Loads config.json and applies environment overrides.

    {
      "username": "Bot@Changelogged",
      "password": "...",
      "api_url": "https://mcnations.wiki.gg/api.php",
      "columns": 3,
      "max_page_length": 26
    }

WIKI_USERNAME, WIKI_PASSWORD and WIKI_API_URL take precedence over the file.
"""

import json
import os
from dataclasses import dataclass, fields

from history_splicer import CHANGE_ORDERS, DEFAULT_TABLE_TITLE, OLDEST_FIRST

DEFAULT_CONFIG_FILE = "config.json"
DEFAULT_API_URL     = "https://mcnations.wiki.gg/api.php"
DEFAULT_USER_AGENT  = "Changelogged/0.2 ([https://github.com/EpicPuppy613/changelogged])"

ENV_OVERRIDES = {
    "WIKI_USERNAME": "username",
    "WIKI_PASSWORD": "password",
    "WIKI_API_URL": "api_url",
}


class ConfigError(RuntimeError):
    pass


@dataclass(frozen=True)
class Config:
    username: str
    password: str
    api_url: str = DEFAULT_API_URL
    user_agent: str = DEFAULT_USER_AGENT
    columns: int = 3
    max_page_length: int = 26
    force_update: bool = False
    max_workers: int = 4
    request_interval: float = 0.5
    batch_size: int = 50
    change_order: str = OLDEST_FIRST
    table_title: str = DEFAULT_TABLE_TITLE


def read_config_file(path):
    if not os.path.exists(path):
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigError(f"{path} is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"{path} must contain a JSON object")
    return data


def load_config(path=DEFAULT_CONFIG_FILE, environ=None, **overrides):
    """Build a validated Config from *path*, the environment and *overrides*.

    Keyword overrides whose value is None are ignored, so argparse results
    can be passed straight through.
    """
    environ = os.environ if environ is None else environ
    data = read_config_file(path)

    known = {f.name for f in fields(Config)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigError(f"Unknown config keys in {path}: {', '.join(unknown)}")

    for var, key in ENV_OVERRIDES.items():
        if environ.get(var):
            data[key] = environ[var]
    data.update({k: v for k, v in overrides.items() if v is not None})

    if not data.get("username") or not data.get("password"):
        raise ConfigError(
            f"Config is incomplete! Create '{path}' (or set WIKI_USERNAME/WIKI_PASSWORD) "
            "and provide a bot 'username' and 'password'."
        )
    return validate(Config(**data))


def validate(cfg):
    for name in ("columns", "max_page_length", "max_workers", "batch_size"):
        value = getattr(cfg, name)
        if not isinstance(value, int) or isinstance(value, bool) or value < 1:
            raise ConfigError(f"'{name}' must be a positive integer, got {value!r}")
    if not isinstance(cfg.request_interval, (int, float)) or cfg.request_interval < 0:
        raise ConfigError(f"'request_interval' must be >= 0, got {cfg.request_interval!r}")
    if not isinstance(cfg.force_update, bool):
        raise ConfigError(f"'force_update' must be true or false, got {cfg.force_update!r}")
    if cfg.change_order not in CHANGE_ORDERS:
        raise ConfigError(
            f"'change_order' must be one of {', '.join(CHANGE_ORDERS)}, got {cfg.change_order!r}"
        )
    if not cfg.api_url.endswith("api.php"):
        raise ConfigError(f"'api_url' must point at api.php, got {cfg.api_url!r}")
    return cfg
