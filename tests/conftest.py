"""Shared test fixtures for config-diff."""

import hashlib
from pathlib import Path

import pytest
from click.testing import CliRunner

from config_diff.config import DiffConfig, save_config


class CountingHasher:
    """SHA-256 hasher that counts how often it is called."""

    def __init__(self):
        self.calls = 0

    def __call__(self, text: str) -> str:
        self.calls += 1
        return hashlib.sha256(text.encode("utf-8")).hexdigest()

    def reset(self) -> None:
        self.calls = 0


@pytest.fixture
def cli_runner():
    """Click CLI test runner."""
    return CliRunner()


@pytest.fixture
def counting_hasher() -> CountingHasher:
    """Instrumented hasher for pruning tests."""
    return CountingHasher()


@pytest.fixture
def snapshots_dir():
    """Path to the fixture snapshot files."""
    return Path(__file__).parent / "fixtures" / "snapshots"


def setup_cd_project(project_root: Path, config: DiffConfig | None = None) -> DiffConfig:
    """Write a config-diff config at the given path.

    Args:
        project_root: Path to the project root
        config: Optional config to use (defaults to DiffConfig())

    Returns:
        The config that was saved
    """
    if config is None:
        config = DiffConfig()
    save_config(config, project_root)
    return config


@pytest.fixture
def sorted_project(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """A temporary project configured with sorted digest order, used as cwd."""
    setup_cd_project(tmp_path, DiffConfig(digest_order="sorted"))
    monkeypatch.chdir(tmp_path)
    return tmp_path


@pytest.fixture(autouse=True)
def _clear_env_overrides(monkeypatch: pytest.MonkeyPatch):
    for name in ("CDIFF_DIGEST_ORDER", "CDIFF_HASH_ALGORITHM", "CDIFF_DISCRIMINATOR_FIELD"):
        monkeypatch.delenv(name, raising=False)
