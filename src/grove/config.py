"""Configuration management for Grove."""

import json
from pathlib import Path
from typing import Any

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .models import WorkspaceContext
from .naming import DEFAULT_BRANCH_TEMPLATE


class Config(BaseSettings):
    """Configuration settings for Grove.

    Every field can be set from a ``GROVE_<FIELD>`` environment variable or a
    .env file; the storage root is read from ``GROVE_FOLDER``. Keyword
    arguments take precedence over the environment.
    """

    # Storage settings
    grove_folder: Path = Field(default_factory=lambda: Path.home() / ".grove",
                               validation_alias=AliasChoices("grove_folder", "GROVE_FOLDER"))
    working_folder: Path | None = Field(default=None)

    # Naming settings
    default_branch_template: str = Field(default=DEFAULT_BRANCH_TEMPLATE)

    # Execution settings
    init_action_timeout: float | None = Field(default=None)  # seconds
    git_timeout: float | None = Field(default=None)  # seconds
    progress_queue_size: int = Field(default=100)

    # Logging settings
    log_level: str = Field(default="INFO")
    log_file: Path | None = Field(default=None)

    model_config = SettingsConfigDict(
        env_prefix="GROVE_",
        env_file=".env",
        env_ignore_empty=True,
        extra="ignore",
        populate_by_name=True,
        validate_assignment=True,
    )

    @field_validator("grove_folder", "working_folder", "log_file", mode="before")
    @classmethod
    def resolve_path(cls, v: Any) -> Path | None:
        """Expand ~ and make paths absolute."""
        if v is None or v == "":
            return None
        path = Path(v) if not isinstance(v, Path) else v
        return path.expanduser().resolve()

    @field_validator("default_branch_template")
    @classmethod
    def check_template(cls, v: str) -> str:
        if "${GROVE_NAME}" not in v:
            raise ValueError("default_branch_template must contain ${GROVE_NAME}")
        return v

    @field_validator("log_level")
    @classmethod
    def normalize_level(cls, v: str) -> str:
        return v.upper()

    def ensure_directories(self) -> None:
        """Ensure required directories exist."""
        self.grove_folder.mkdir(parents=True, exist_ok=True)
        if self.log_file:
            self.log_file.parent.mkdir(parents=True, exist_ok=True)

    @classmethod
    def from_env(cls, **overrides: Any) -> "Config":
        """Build configuration from the environment, with non-None overrides on top."""
        return cls(**{k: v for k, v in overrides.items() if v is not None})

    @classmethod
    def load_from_file(cls, config_path: Path | None = None) -> "Config":
        """Load configuration from a JSON file, on top of the environment."""
        if config_path and config_path.exists():
            data = json.loads(config_path.read_text(encoding="utf-8"))
            return cls(**data)
        return cls()

    def for_context(self, context: WorkspaceContext) -> "Config":
        """Configuration with storage locations taken from a workspace context."""
        if context.type == "global":
            return self
        update: dict[str, Any] = {"grove_folder": context.grove_folder}
        if context.groves_folder and self.working_folder is None:
            update["working_folder"] = context.groves_folder
        return self.model_copy(update=update)

    def to_dict(self) -> dict[str, Any]:
        """Convert configuration to dictionary."""
        return self.model_dump(mode="json")
