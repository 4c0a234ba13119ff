"""Configuration management for Config Diff."""

import json
import os
from pathlib import Path
from typing import Literal, get_args

from pydantic import BaseModel, Field

from . import CD_DIR, CONFIG_FILE

HashAlgorithm = Literal["sha256", "sha1", "sha512", "blake2b", "md5"]
DigestOrderSetting = Literal["insertion", "sorted"]


class DiffConfig(BaseModel):
    """Configuration for the differencing engine and watch loop."""

    version: int = 1
    discriminator_field: str = Field(default="type", min_length=1)
    hash_algorithm: HashAlgorithm = "sha256"
    # "insertion" keeps digests compatible with trees updated in place;
    # "sorted" makes updated trees match freshly built ones.
    digest_order: DigestOrderSetting = "insertion"
    watch_debounce_ms: int = Field(default=500, ge=0)


def get_cd_dir(project_root: Path) -> Path:
    """Get the .config-diff directory path."""
    return project_root / CD_DIR


def get_config_path(project_root: Path) -> Path:
    """Get the config file path."""
    return get_cd_dir(project_root) / CONFIG_FILE


def load_config(project_root: Path) -> DiffConfig:
    """Load configuration from the project's config file.

    Falls back to defaults if file doesn't exist.
    Environment variables can override config values.
    """
    config_path = get_config_path(project_root)

    if config_path.exists():
        with open(config_path) as f:
            data = json.load(f)
        config = DiffConfig.model_validate(data)
    else:
        config = DiffConfig()

    # Apply environment variable overrides
    config = _apply_env_overrides(config)

    return config


def save_config(config: DiffConfig, project_root: Path) -> None:
    """Save configuration to the project's config file."""
    config_path = get_config_path(project_root)
    config_path.parent.mkdir(parents=True, exist_ok=True)

    with open(config_path, "w") as f:
        json.dump(config.model_dump(), f, indent=2)


def create_default_config(digest_order: DigestOrderSetting = "insertion") -> DiffConfig:
    """Create a default configuration with the specified digest order."""
    return DiffConfig(digest_order=digest_order)


def _apply_env_overrides(config: DiffConfig) -> DiffConfig:
    """Apply environment variable overrides to config."""
    data = config.model_dump()

    # CDIFF_DIGEST_ORDER
    if order := os.environ.get("CDIFF_DIGEST_ORDER"):
        if order in get_args(DigestOrderSetting):
            data["digest_order"] = order

    # CDIFF_HASH_ALGORITHM
    if algorithm := os.environ.get("CDIFF_HASH_ALGORITHM"):
        if algorithm in get_args(HashAlgorithm):
            data["hash_algorithm"] = algorithm

    # CDIFF_DISCRIMINATOR_FIELD
    if discriminator := os.environ.get("CDIFF_DISCRIMINATOR_FIELD"):
        data["discriminator_field"] = discriminator

    return DiffConfig.model_validate(data)
