"""Data models for Grove.

Persisted models serialize with camelCase keys (``worktreePath``,
``initActionsStatus`` ...) and omit unset optional fields, so the JSON
documents on disk stay readable by other grove tooling.
"""

import datetime
from enum import Enum
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .errors import PartialGroveError


def utcnow() -> datetime.datetime:
    """Current time as an aware UTC datetime."""
    return datetime.datetime.now(datetime.timezone.utc)


class GroveModel(BaseModel):
    """Base for models stored in JSON documents."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# Repositories

class Repository(GroveModel):
    """A registered source repository."""
    path: str
    name: str
    registered_at: datetime.datetime = Field(default_factory=utcnow)
    is_monorepo: bool = False


class RepositoriesData(GroveModel):
    """Contents of repositories.json."""
    repositories: list[Repository] = []


class RepositorySelection(BaseModel):
    """A repository, optionally narrowed to a monorepo project folder."""
    repository: Repository
    project_path: str | None = None

    @property
    def display_name(self) -> str:
        if self.project_path:
            return f"{self.repository.name}/{self.project_path}"
        return self.repository.name


# Repository configuration (.grove.json)

FileCopyMode = Literal["copy", "link"]
FileCopyPattern = str | tuple[str, FileCopyMode]


def pattern_text(entry: FileCopyPattern) -> str:
    """Glob text of a copy pattern entry."""
    return entry if isinstance(entry, str) else entry[0]


def pattern_mode(entry: FileCopyPattern) -> FileCopyMode:
    """Copy mode of a copy pattern entry."""
    return "copy" if isinstance(entry, str) else entry[1]


class IDEConfig(GroveModel):
    """Inline IDE command, ``{path}`` in args is replaced by the target folder."""
    command: str
    args: list[str] = []


class GroveRepoConfig(GroveModel):
    """Raw configuration as found in a single .grove.json / .grove.local.json."""
    branch_name_template: str | None = None
    file_copy_patterns: list[FileCopyPattern] | None = None
    init_actions: list[str] | None = None
    ide: str | IDEConfig | None = None


class MergedGroveConfig(GroveModel):
    """Configuration resolved for one repository selection."""
    branch_name_template: str | None = None
    root_file_copy_patterns: list[FileCopyPattern] = []
    project_file_copy_patterns: list[FileCopyPattern] = []
    root_init_actions: list[str] = []
    project_init_actions: list[str] = []
    ide: str | IDEConfig | None = None

    @property
    def init_actions(self) -> list[str]:
        """All init actions in execution order, root before project."""
        return [*self.root_init_actions, *self.project_init_actions]


# Groves

class InitActionsStatus(GroveModel):
    """Outcome of running a worktree's init actions."""
    executed: bool
    success: bool
    executed_at: datetime.datetime
    log_file: str
    total_actions: int
    successful_actions: int
    error_message: str | None = None


class Worktree(GroveModel):
    """A git worktree that belongs to a grove."""
    name: str | None = None
    repository_name: str
    repository_path: str
    worktree_path: str
    branch: str
    project_path: str | None = None
    init_actions_status: InitActionsStatus | None = None
    closed: bool | None = None
    closed_at: datetime.datetime | None = None

    @property
    def folder_name(self) -> str:
        return Path(self.worktree_path).name

    @property
    def display_name(self) -> str:
        return self.name or self.repository_name


class GroveMetadata(GroveModel):
    """Contents of <grove>/grove.json."""
    id: str
    name: str
    identifier: str | None = None
    worktrees: list[Worktree] = []
    created_at: datetime.datetime
    updated_at: datetime.datetime

    @property
    def open_worktrees(self) -> list[Worktree]:
        return [wt for wt in self.worktrees if not wt.closed]


class GroveReference(GroveModel):
    """Catalog entry for a grove in groves.json."""
    id: str
    name: str
    path: str
    created_at: datetime.datetime
    updated_at: datetime.datetime


class GrovesIndex(GroveModel):
    """Contents of groves.json."""
    groves: list[GroveReference] = []


class Settings(GroveModel):
    """Contents of settings.json."""
    working_folder: str = Field(default_factory=lambda: str(Path.home() / "grove-worktrees"))


# Workspaces

class WorkspaceConfig(GroveModel):
    """Contents of .grove.workspace.json."""
    name: str
    version: str = "1.0.0"
    groves_folder: str = "./groves"


class WorkspaceReference(GroveModel):
    """A workspace known to the global storage root."""
    name: str
    path: str
    last_used_at: datetime.datetime = Field(default_factory=utcnow)


class WorkspacesData(GroveModel):
    """Contents of ~/.grove/workspaces.json."""
    workspaces: list[WorkspaceReference] = []


class WorkspaceContext(BaseModel):
    """Storage locations resolved for the current working directory."""
    type: Literal["workspace", "global"]
    grove_folder: Path
    groves_folder: Path | None = None
    workspace_path: Path | None = None
    config: WorkspaceConfig | None = None


# Collaborator and operation results

class CommandResult(BaseModel):
    """Outcome of a subprocess (git or shell)."""
    success: bool
    stdout: str = ""
    stderr: str = ""
    exit_code: int | None = None


GitResult = CommandResult


class WorktreeInfo(BaseModel):
    """One entry of ``git worktree list --porcelain``."""
    path: str
    commit: str
    branch: str = "detached"


class FileCopyResult(BaseModel):
    """Outcome of copying files matched by glob patterns."""
    success: bool
    copied_files: list[str] = []
    linked_files: list[str] = []
    errors: list[str] = []


class CreateStatus(str, Enum):
    """Outcome of grove creation."""
    SUCCESS = "success"
    PARTIAL_SUCCESS = "partial_success"


class CreateGroveResult(BaseModel):
    """Result of creating a grove; total failure raises instead."""
    status: CreateStatus
    path: str
    metadata: GroveMetadata
    errors: list[str] = []

    @property
    def is_partial(self) -> bool:
        return self.status is CreateStatus.PARTIAL_SUCCESS

    def raise_for_status(self) -> None:
        """Raise PartialGroveError if some selections failed."""
        if self.is_partial:
            raise PartialGroveError(len(self.metadata.worktrees), self.errors)


class CloseGroveResult(BaseModel):
    """Result of closing a whole grove."""
    success: bool
    errors: list[str] = []
    message: str | None = None


class CloseWorktreeResult(BaseModel):
    """Result of closing one worktree inside a grove."""
    success: bool
    errors: list[str] = []
    message: str | None = None


class GroveListEntry(BaseModel):
    """A catalog entry joined with its grove's worktrees."""
    reference: GroveReference
    worktrees: list[Worktree] = []
    metadata_found: bool = True
