"""directory_etl.config

Run configuration loaded from a YAML file.

Every key is optional; absent keys keep their defaults.  Secrets never live
in the file: it only names the environment variables that hold them.

Example::

    affiliation_match_threshold: 65
    contact_store:
      base_url: https://www.wixapis.com
      timeout_seconds: 30
      token_refresh_margin_seconds: 60
      app_id_env: WIX_APP_ID
      app_secret_env: WIX_APP_SECRET
      instance_id_env: WIX_INSTANCE_ID
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from directory_etl.affiliation import DEFAULT_MATCH_THRESHOLD
from directory_etl.contacts import DEFAULT_BASE_URL

KNOWN_TOP_LEVEL_KEYS = frozenset({"affiliation_match_threshold", "contact_store"})
KNOWN_CONTACT_STORE_KEYS = frozenset({
    "base_url",
    "timeout_seconds",
    "token_refresh_margin_seconds",
    "app_id_env",
    "app_secret_env",
    "instance_id_env",
})


class ConfigValidationError(ValueError):
    """Raised when a YAML config file fails validation."""


@dataclass(frozen=True)
class ContactStoreConfig:
    base_url: str = DEFAULT_BASE_URL
    timeout_seconds: int = 30
    token_refresh_margin_seconds: float = 60.0
    app_id_env: str = "WIX_APP_ID"
    app_secret_env: str = "WIX_APP_SECRET"
    instance_id_env: str = "WIX_INSTANCE_ID"


@dataclass(frozen=True)
class DirectoryConfig:
    affiliation_match_threshold: float = DEFAULT_MATCH_THRESHOLD
    contact_store: ContactStoreConfig = field(default_factory=ContactStoreConfig)


def load_config(path: Path | None) -> DirectoryConfig:
    """Load and validate a config file; None returns the defaults.

    Raises:
        ConfigValidationError: unknown keys or out-of-range values.
        FileNotFoundError: the file does not exist.
    """
    if path is None:
        return DirectoryConfig()
    data = yaml.safe_load(path.read_text(encoding="utf-8"))
    if data is None:
        return DirectoryConfig()
    return parse_config(data)


def parse_config(data: Any) -> DirectoryConfig:
    if not isinstance(data, dict):
        raise ConfigValidationError("YAML root must be a mapping.")

    unknown = set(data) - KNOWN_TOP_LEVEL_KEYS
    if unknown:
        raise ConfigValidationError(f"Unknown config keys: {sorted(unknown)}")

    threshold = _number(data, "affiliation_match_threshold", DEFAULT_MATCH_THRESHOLD)
    if not (0.0 <= threshold <= 100.0):
        raise ConfigValidationError(
            f"affiliation_match_threshold {threshold} must be in [0, 100]."
        )

    store = data.get("contact_store") or {}
    if not isinstance(store, dict):
        raise ConfigValidationError("'contact_store' must be a mapping.")
    unknown = set(store) - KNOWN_CONTACT_STORE_KEYS
    if unknown:
        raise ConfigValidationError(f"Unknown contact_store keys: {sorted(unknown)}")

    defaults = ContactStoreConfig()
    timeout = _number(store, "timeout_seconds", defaults.timeout_seconds)
    margin = _number(store, "token_refresh_margin_seconds", defaults.token_refresh_margin_seconds)
    if timeout <= 0:
        raise ConfigValidationError(f"timeout_seconds {timeout} must be > 0.")
    if margin < 0:
        raise ConfigValidationError(f"token_refresh_margin_seconds {margin} must be >= 0.")

    return DirectoryConfig(
        affiliation_match_threshold=threshold,
        contact_store=ContactStoreConfig(
            base_url=str(store.get("base_url") or defaults.base_url),
            timeout_seconds=int(timeout),
            token_refresh_margin_seconds=margin,
            app_id_env=str(store.get("app_id_env") or defaults.app_id_env),
            app_secret_env=str(store.get("app_secret_env") or defaults.app_secret_env),
            instance_id_env=str(store.get("instance_id_env") or defaults.instance_id_env),
        ),
    )


def _number(data: dict[str, Any], key: str, default: float) -> float:
    val = data.get(key, default)
    try:
        return float(val)
    except (TypeError, ValueError):
        raise ConfigValidationError(f"'{key}' value '{val}' is not numeric.")
