"""
Configuration loader — reads app.yaml and the user config into models.

This is the primary entry point for loading configuration. It reads
YAML, validates against Pydantic schemas, and returns typed objects.
``build_settings`` then folds flags, ``KUBESHIP_*`` environment variables
and the user config into the one immutable ``Settings`` value every
component receives.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from pathlib import Path

import yaml
from pydantic import ValidationError

from kubeship.core.errors import ConfigError
from kubeship.core.models.app import App
from kubeship.core.models.config import Flags, RegistryConfig, Settings, UserConfig

logger = logging.getLogger(__name__)

APP_CONFIG_FILE = "app.yaml"

USER_CONFIG_ENV = "KUBESHIP_CONFIG"


def find_app_file(start_dir: Path | None = None) -> Path | None:
    """Search for app.yaml starting from the given directory, walking up.

    Args:
        start_dir: Directory to start searching from (default: cwd).

    Returns:
        Path to app.yaml, or None if not found.
    """
    current = (start_dir or Path.cwd()).resolve()

    for _ in range(20):  # safety limit
        candidate = current / APP_CONFIG_FILE
        if candidate.is_file():
            return candidate
        parent = current.parent
        if parent == current:
            break
        current = parent

    return None


def _read_yaml_mapping(path: Path) -> dict:
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")
    return data


def load_app(path: Path | None = None) -> App:
    """Load and validate the app definition.

    Args:
        path: Explicit path to app.yaml (or the directory holding it).
            If None, searches upward from the working directory.

    Raises:
        ConfigError: If the file is missing or invalid.
    """
    if path is not None and path.is_dir():
        path = path / APP_CONFIG_FILE
    if path is None:
        path = find_app_file()

    if path is None:
        raise ConfigError(
            f"No {APP_CONFIG_FILE} found. Run from inside an app directory, or specify --app."
        )
    if not path.is_file():
        raise ConfigError(f"App definition not found: {path}")

    logger.debug("Loading app definition from %s", path)
    data = _read_yaml_mapping(path)

    try:
        app = App.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid app definition in {path}: {e}") from e

    logger.info("Loaded app '%s'", app.name)
    return app


def app_root(config_path: Path) -> Path:
    """Get the app root directory from an app.yaml path."""
    return config_path.parent.resolve()


# ── User config ─────────────────────────────────────────────────


def default_user_config_path(env: Mapping[str, str] | None = None) -> Path:
    """``$KUBESHIP_CONFIG``, else ``~/.config/kubeship/config.yaml``."""
    env = os.environ if env is None else env
    override = env.get(USER_CONFIG_ENV)
    if override:
        return Path(override).expanduser()
    return Path.home() / ".config" / "kubeship" / "config.yaml"


def load_user_config(path: Path | None = None) -> UserConfig:
    """Load the user config; a missing file yields defaults."""
    path = path or default_user_config_path()
    if not path.is_file():
        logger.debug("No user config at %s, using defaults", path)
        return UserConfig()

    data = _read_yaml_mapping(path)
    try:
        return UserConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid user config in {path}: {e}") from e


def save_user_config(config: UserConfig, path: Path | None = None) -> Path:
    """Write *config* back to disk (creating parent directories)."""
    path = path or default_user_config_path()
    data = config.model_dump(by_alias=True)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(yaml.safe_dump(data, sort_keys=False), encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot write {path}: {e}") from e
    # Holds a registry token.
    path.chmod(0o600)
    logger.info("Saved user config to %s", path)
    return path


# ── Settings ────────────────────────────────────────────────────


def build_settings(
    *,
    repo_path: Path,
    app_path: Path,
    app: App,
    user_config: UserConfig,
    flags: Flags,
    registry_address: str = "",
    registry_username: str = "",
    registry_token: str = "",
    user_config_path: Path | None = None,
    env: Mapping[str, str] | None = None,
) -> Settings:
    """Fold every configuration layer into one immutable ``Settings``.

    Registry coordinates resolve as: explicit argument >
    ``KUBESHIP_REGISTRY_*`` env var > ``app.yaml`` > user config.
    """
    env = os.environ if env is None else env
    stored = user_config.container_registry

    registry = RegistryConfig(
        address=(
            registry_address
            or env.get("KUBESHIP_REGISTRY_ADDRESS", "")
            or app.container_registry
            or stored.address
        ),
        username=registry_username or env.get("KUBESHIP_REGISTRY_USERNAME", "") or stored.username,
        token=registry_token or env.get("KUBESHIP_REGISTRY_TOKEN", "") or stored.token,
    )

    return Settings(
        repo_path=repo_path.resolve(),
        app_path=app_path.resolve(),
        registry=registry,
        platform=user_config.platform,
        kind=user_config.kind,
        flags=flags,
        user_config_path=user_config_path,
    )
