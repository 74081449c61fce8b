"""
Grove - Manage named collections of git worktrees.

A grove is a folder holding one worktree per selected repository (or monorepo
project), each on its own branch, prepared by copying configured files and
running init actions. Groves are tracked in JSON documents under a global or
workspace-scoped storage root.
"""

from .config import Config
from .errors import (
    GroveCreationError,
    GroveError,
    PartialGroveError,
    WorktreeCreationError,
)
from .events import ProgressEvent, ProgressLevel
from .grove_config import GroveConfigResolver
from .models import (
    CreateGroveResult,
    CreateStatus,
    GroveMetadata,
    Repository,
    RepositorySelection,
    Worktree,
)
from .orchestrator import GroveOrchestrator, create_orchestrator
from .utils import FileUtils, GitUtils
from .workspace import WorkspaceResolver
from .worktree import WorktreeManager

__version__ = "0.1.0"

__all__ = [
    "Config",
    "CreateGroveResult",
    "CreateStatus",
    "FileUtils",
    "GitUtils",
    "GroveConfigResolver",
    "GroveCreationError",
    "GroveError",
    "GroveMetadata",
    "GroveOrchestrator",
    "PartialGroveError",
    "ProgressEvent",
    "ProgressLevel",
    "Repository",
    "RepositorySelection",
    "WorkspaceResolver",
    "Worktree",
    "WorktreeCreationError",
    "WorktreeManager",
    "create_orchestrator",
]
