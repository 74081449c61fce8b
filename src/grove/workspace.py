"""Workspace discovery: project-scoped storage roots vs. the global one."""

import logging
from pathlib import Path

from pydantic import ValidationError

from .errors import GroveError
from .models import (
    GrovesIndex,
    RepositoriesData,
    Settings,
    WorkspaceConfig,
    WorkspaceContext,
    WorkspaceReference,
    WorkspacesData,
    utcnow,
)
from .storage import StoragePaths
from .store import JsonStore, dump_model

logger = logging.getLogger(__name__)

WORKSPACE_CONFIG_FILENAME = ".grove.workspace.json"
WORKSPACE_GROVE_FOLDER = ".grove"
GLOBAL_WORKSPACES_FILENAME = "workspaces.json"


def default_global_folder() -> Path:
    return Path.home() / ".grove"


class WorkspaceResolver:
    """Finds the storage root that applies to a working directory."""

    def __init__(self, global_folder: str | Path | None = None):
        """Initialize the resolver.

        Args:
            global_folder: Storage root used outside workspaces (default ~/.grove)
        """
        self.global_folder = Path(global_folder) if global_folder else default_global_folder()
        self._workspaces = JsonStore(
            lambda: self.global_folder / GLOBAL_WORKSPACES_FILENAME,
            WorkspacesData,
            label="global workspaces",
            create_on_first_read=False,
        )

    @staticmethod
    def is_workspace_root(directory: str | Path) -> bool:
        return (Path(directory) / WORKSPACE_CONFIG_FILENAME).is_file()

    def discover(self, start_dir: str | Path) -> Path | None:
        """Walk up from start_dir to the nearest folder with .grove.workspace.json."""
        current = Path(start_dir).resolve()
        for directory in (current, *current.parents):
            if self.is_workspace_root(directory):
                return directory
        return None

    def read_workspace_config(self, workspace_path: str | Path) -> WorkspaceConfig:
        path = Path(workspace_path) / WORKSPACE_CONFIG_FILENAME
        try:
            return WorkspaceConfig.model_validate_json(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            raise GroveError(f"Workspace configuration not found at {path}")
        except (OSError, ValueError, ValidationError) as e:
            raise GroveError(f"Invalid workspace configuration at {path}: {e}")

    def write_workspace_config(self, workspace_path: str | Path, config: WorkspaceConfig) -> None:
        path = Path(workspace_path) / WORKSPACE_CONFIG_FILENAME
        path.write_text(dump_model(config), encoding="utf-8")

    @staticmethod
    def resolve_groves_folder(workspace_path: Path, groves_folder: str) -> Path:
        folder = Path(groves_folder).expanduser()
        return folder if folder.is_absolute() else (workspace_path / folder).resolve()

    def init_workspace(self, workspace_path: str | Path, name: str,
                       groves_folder: str = "./groves") -> WorkspaceContext:
        """Create .grove.workspace.json and the workspace storage root.

        Existing documents in the storage root are left untouched.
        """
        workspace_path = Path(workspace_path).resolve()
        config = WorkspaceConfig(name=name, groves_folder=groves_folder)
        self.write_workspace_config(workspace_path, config)

        paths = StoragePaths(workspace_path / WORKSPACE_GROVE_FOLDER)
        absolute_groves = self.resolve_groves_folder(workspace_path, groves_folder)
        for path, model, default in (
            (paths.repositories_path, RepositoriesData, RepositoriesData()),
            (paths.groves_index_path, GrovesIndex, GrovesIndex()),
            (paths.settings_path, Settings, Settings(working_folder=str(absolute_groves))),
        ):
            store = JsonStore(path, model, label=path.name)
            if not store.exists():
                store.write(default)

        absolute_groves.mkdir(parents=True, exist_ok=True)
        self.add_to_global_tracking(WorkspaceReference(name=name, path=str(workspace_path)))
        logger.info(f"Initialized workspace {name} at {workspace_path}")

        return self._workspace_context(workspace_path, config)

    def resolve_context(self, cwd: str | Path | None = None) -> WorkspaceContext:
        """Workspace context if cwd is inside a workspace, else the global one."""
        workspace_path = self.discover(cwd or Path.cwd())
        if workspace_path is None:
            return WorkspaceContext(type="global", grove_folder=self.global_folder)

        config = self.read_workspace_config(workspace_path)
        self.update_last_used(workspace_path)
        return self._workspace_context(workspace_path, config)

    def _workspace_context(self, workspace_path: Path, config: WorkspaceConfig) -> WorkspaceContext:
        return WorkspaceContext(
            type="workspace",
            grove_folder=workspace_path / WORKSPACE_GROVE_FOLDER,
            groves_folder=self.resolve_groves_folder(workspace_path, config.groves_folder),
            workspace_path=workspace_path,
            config=config,
        )

    # Global tracking

    def list_workspaces(self) -> list[WorkspaceReference]:
        return self._workspaces.read().workspaces

    def add_to_global_tracking(self, reference: WorkspaceReference) -> None:
        def upsert(data: WorkspacesData) -> WorkspacesData:
            data.workspaces = [ws for ws in data.workspaces if ws.path != reference.path]
            data.workspaces.append(reference)
            return data

        try:
            self._workspaces.update(upsert)
        except OSError as e:
            logger.warning(f"Could not track workspace {reference.path}: {e}")

    def update_last_used(self, workspace_path: str | Path) -> None:
        if not self._workspaces.exists():
            return
        target = str(workspace_path)
        data = self._workspaces.read()
        for ws in data.workspaces:
            if ws.path == target:
                ws.last_used_at = utcnow()
                try:
                    self._workspaces.write(data)
                except OSError as e:
                    logger.debug(f"Could not update workspace usage: {e}")
                return

    def remove_from_global_tracking(self, workspace_path: str | Path) -> None:
        target = str(workspace_path)
        self._workspaces.update(
            lambda data: data.model_copy(
                update={"workspaces": [ws for ws in data.workspaces if ws.path != target]}
            )
        )
