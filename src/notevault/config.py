"""Configuration module for the note vault."""

import logging
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, model_validator

from notevault import __version__
from notevault.exceptions import ConfigurationError

# Load environment variables from the project root .env file.
# Anchored to __file__ so it works regardless of the process CWD.
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
load_dotenv(_PROJECT_ROOT / ".env")

# User-level config, lives alongside the default vault
_USER_ENV = Path.home() / ".notevault" / ".env"
load_dotenv(_USER_ENV)


logger = logging.getLogger(__name__)

_TRUTHY = ("true", "1", "yes")


def _env_float(name: str, default: str) -> float:
    raw = os.getenv(name, default)
    try:
        return float(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number", config_key=name, value=raw)


class VaultConfig(BaseModel):
    """Configuration for the note vault."""

    # Base directory that relative paths are resolved against
    base_dir: Path = Field(
        default_factory=lambda: Path(os.getenv("NOTEVAULT_BASE_DIR", "."))
    )
    # Root directory holding the note files
    vault_dir: Path = Field(
        default_factory=lambda: Path(os.getenv("NOTEVAULT_VAULT_DIR", "notes"))
    )
    # Only files with this extension are treated as notes
    note_extension: str = Field(
        default_factory=lambda: os.getenv("NOTEVAULT_NOTE_EXTENSION", ".md")
    )
    # Seconds between two reconciliation passes of the file sync watcher
    sync_interval: float = Field(
        default_factory=lambda: _env_float("NOTEVAULT_SYNC_INTERVAL", "2.0")
    )
    # Pull #hashtags and a "# Heading" title out of files without frontmatter
    extract_hashtags: bool = Field(
        default_factory=lambda: os.getenv("NOTEVAULT_EXTRACT_HASHTAGS", "true").lower()
        in _TRUTHY
    )
    # Create a "Welcome" note on startup when the vault is empty
    seed_welcome_note: bool = Field(
        default_factory=lambda: os.getenv("NOTEVAULT_SEED_WELCOME_NOTE", "false").lower()
        in _TRUTHY
    )
    # Logging configuration
    log_dir: Optional[Path] = Field(
        default_factory=lambda: (
            Path(os.getenv("NOTEVAULT_LOG_DIR"))
            if os.getenv("NOTEVAULT_LOG_DIR")
            else None
        )
    )
    log_level: str = Field(
        default_factory=lambda: os.getenv("NOTEVAULT_LOG_LEVEL", "INFO").upper()
    )
    version: str = Field(default=__version__)

    @model_validator(mode="after")
    def _validate_settings(self) -> "VaultConfig":
        """Reject settings the store and watcher cannot work with.

        Raises ConfigurationError, which pydantic passes through unwrapped.
        """
        if self.sync_interval <= 0:
            raise ConfigurationError(
                "sync_interval must be > 0",
                config_key="sync_interval",
                value=self.sync_interval,
            )
        if not self.note_extension.startswith(".") or len(self.note_extension) < 2:
            raise ConfigurationError(
                "note_extension must look like '.md'",
                config_key="note_extension",
                value=self.note_extension,
            )
        if self.sync_interval < 0.5:
            logger.warning(
                "sync_interval=%.2fs rescans the whole vault very often; "
                "large vaults may see high disk activity.",
                self.sync_interval,
            )
        return self

    def get_absolute_path(self, path: Path) -> Path:
        """Convert a relative path to an absolute path based on base_dir."""
        if path.is_absolute():
            return path
        return self.base_dir / path

    def get_vault_path(self) -> Path:
        """Get the absolute path to the vault root directory."""
        return self.get_absolute_path(self.vault_dir)


# Create a global config instance
config = VaultConfig()
