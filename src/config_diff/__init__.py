"""Config Diff - incremental change detection for nested config values."""

__version__ = "0.1.0"

# Directory and file constants
CD_DIR = ".config-diff"
CONFIG_FILE = "config.json"
BASELINE_FILE = "baseline.json"


class ConfigDiffError(Exception):
    """Base class for errors raised by config-diff."""
