"""Baseline file management for Config Diff."""

import json
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from pydantic import BaseModel

from . import BASELINE_FILE, CD_DIR
from .config import DiffConfig, DigestOrderSetting, HashAlgorithm
from .merkle import HashNode


class Baseline(BaseModel):
    """A stored hash tree plus the settings it was built with."""

    version: int = 1
    created_at: datetime
    updated_at: datetime
    source: str = ""
    digest_order: DigestOrderSetting = "insertion"
    hash_algorithm: HashAlgorithm = "sha256"
    discriminator_field: str = "type"
    tree: dict[str, Any] | None = None  # Hash tree (None initially)

    def root(self) -> HashNode | None:
        """Deserialize the stored tree."""
        if self.tree is None:
            return None
        return HashNode.from_dict(self.tree)

    def matches(self, config: DiffConfig) -> bool:
        """Check whether digests in this baseline are comparable under *config*."""
        return (
            self.digest_order == config.digest_order
            and self.hash_algorithm == config.hash_algorithm
            and self.discriminator_field == config.discriminator_field
        )


def get_baseline_path(project_root: Path) -> Path:
    """Get the default baseline file path."""
    return project_root / CD_DIR / BASELINE_FILE


def load_baseline(path: Path) -> Baseline | None:
    """Load a baseline from *path*.

    Returns None if file doesn't exist.
    """
    if not path.exists():
        return None

    with open(path) as f:
        data = json.load(f)

    return Baseline.model_validate(data)


def save_baseline(baseline: Baseline, path: Path) -> None:
    """Save a baseline to *path*."""
    path.parent.mkdir(parents=True, exist_ok=True)

    # Update the updated_at timestamp
    baseline.updated_at = datetime.now(UTC)

    with open(path, "w") as f:
        json.dump(baseline.model_dump(mode="json"), f, indent=2, default=str)


def create_baseline(
    source: str,
    root: HashNode | None,
    config: DiffConfig | None = None,
) -> Baseline:
    """Create a new baseline for *source* holding *root*."""
    config = config or DiffConfig()
    now = datetime.now(UTC)
    return Baseline(
        created_at=now,
        updated_at=now,
        source=source,
        digest_order=config.digest_order,
        hash_algorithm=config.hash_algorithm,
        discriminator_field=config.discriminator_field,
        tree=root.to_dict() if root is not None else None,
    )
