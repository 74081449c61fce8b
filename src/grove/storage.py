"""Persistent catalogs for repositories, groves and settings."""

import datetime
import logging
from pathlib import Path

from .errors import RepositoryAlreadyRegisteredError, RepositoryNotFoundError
from .models import (
    GroveMetadata,
    GroveReference,
    GrovesIndex,
    RepositoriesData,
    Repository,
    Settings,
    utcnow,
)
from .store import JsonStore

logger = logging.getLogger(__name__)

SETTINGS_FILENAME = "settings.json"
REPOSITORIES_FILENAME = "repositories.json"
GROVES_INDEX_FILENAME = "groves.json"
GROVE_METADATA_FILENAME = "grove.json"


class StoragePaths:
    """Locations of the documents under a storage root (.grove folder)."""

    def __init__(self, grove_folder: str | Path):
        self.grove_folder = Path(grove_folder)

    @property
    def settings_path(self) -> Path:
        return self.grove_folder / SETTINGS_FILENAME

    @property
    def repositories_path(self) -> Path:
        return self.grove_folder / REPOSITORIES_FILENAME

    @property
    def groves_index_path(self) -> Path:
        return self.grove_folder / GROVES_INDEX_FILENAME

    def __repr__(self) -> str:
        return f"StoragePaths(grove_folder='{self.grove_folder}')"


class SettingsStore:
    """User settings stored in settings.json."""

    def __init__(self, paths: StoragePaths, working_folder: str | Path | None = None):
        """Initialize settings store.

        Args:
            paths: Storage locations
            working_folder: Fixed working folder that overrides the stored one
        """
        self.paths = paths
        self.working_folder_override = Path(working_folder) if working_folder else None
        self._store = JsonStore(
            lambda: self.paths.settings_path,
            Settings,
            label="settings",
            after_read=lambda data, defaults: defaults.model_copy(
                update=data.model_dump(exclude_unset=True)
            ),
        )

    def read(self) -> Settings:
        settings = self._store.read()
        if self.working_folder_override:
            settings = settings.model_copy(
                update={"working_folder": str(self.working_folder_override)}
            )
        return settings

    def write(self, settings: Settings) -> None:
        self._store.write(settings)

    def update(self, **changes) -> Settings:
        return self._store.update(lambda current: current.model_copy(update=changes))

    @property
    def working_folder(self) -> Path:
        return Path(self.read().working_folder).expanduser()


class RepositoryStore:
    """Registered repositories stored in repositories.json."""

    def __init__(self, paths: StoragePaths):
        self.paths = paths
        self._store = JsonStore(
            lambda: self.paths.repositories_path,
            RepositoriesData,
            label="repositories",
        )

    def list_repositories(self) -> list[Repository]:
        return self._store.read().repositories

    def is_registered(self, repo_path: str | Path) -> bool:
        return self.get_by_path(repo_path) is not None

    def get_by_path(self, repo_path: str | Path) -> Repository | None:
        target = str(repo_path)
        for repo in self.list_repositories():
            if repo.path == target:
                return repo
        return None

    def get_by_name(self, name: str) -> Repository | None:
        """Case-insensitive lookup by display name."""
        wanted = name.lower()
        for repo in self.list_repositories():
            if repo.name.lower() == wanted:
                return repo
        return None

    def add(self, repo_path: str | Path, is_monorepo: bool = False) -> Repository:
        """Register a repository.

        Raises:
            RepositoryAlreadyRegisteredError: If the path is already registered
        """
        repo_path = str(repo_path)
        data = self._store.read()
        if any(repo.path == repo_path for repo in data.repositories):
            raise RepositoryAlreadyRegisteredError(f"Repository already registered: {repo_path}")

        repository = Repository(path=repo_path, name=Path(repo_path).name,
                                is_monorepo=is_monorepo)
        data.repositories.append(repository)
        self._store.write(data)
        logger.info(f"Registered repository {repository.name} at {repo_path}")
        return repository

    def remove(self, repo_path: str | Path) -> bool:
        repo_path = str(repo_path)
        data = self._store.read()
        remaining = [repo for repo in data.repositories if repo.path != repo_path]
        if len(remaining) == len(data.repositories):
            return False
        data.repositories = remaining
        self._store.write(data)
        return True

    def set_monorepo(self, repo_path: str | Path, is_monorepo: bool) -> Repository:
        """Change the only mutable field of a repository."""
        repo_path = str(repo_path)
        data = self._store.read()
        for repo in data.repositories:
            if repo.path == repo_path:
                repo.is_monorepo = is_monorepo
                self._store.write(data)
                return repo
        raise RepositoryNotFoundError(f"Repository not registered: {repo_path}")


class GroveStore:
    """The groves catalog (groves.json) and per-grove metadata (grove.json)."""

    def __init__(self, paths: StoragePaths):
        self.paths = paths
        self._index = JsonStore(
            lambda: self.paths.groves_index_path,
            GrovesIndex,
            label="groves index",
        )

    @staticmethod
    def metadata_path(grove_path: str | Path) -> Path:
        return Path(grove_path) / GROVE_METADATA_FILENAME

    def _metadata_store(self, grove_path: str | Path) -> JsonStore[GroveMetadata]:
        return JsonStore(
            self.metadata_path(grove_path),
            GroveMetadata,
            label="grove metadata",
            create_on_first_read=False,
        )

    # Catalog

    def list_groves(self) -> list[GroveReference]:
        return self._index.read().groves

    def get_grove_by_id(self, grove_id: str) -> GroveReference | None:
        for ref in self.list_groves():
            if ref.id == grove_id:
                return ref
        return None

    def add_grove_to_index(self, grove_ref: GroveReference) -> None:
        index = self._index.read()
        index.groves.append(grove_ref)
        self._index.write(index)

    def remove_grove_from_index(self, grove_id: str) -> GroveReference | None:
        """Drop a grove from the catalog and return its former entry."""
        index = self._index.read()
        removed = None
        remaining = []
        for ref in index.groves:
            if ref.id == grove_id and removed is None:
                removed = ref
            else:
                remaining.append(ref)

        if removed is None:
            return None

        index.groves = remaining
        self._index.write(index)
        return removed

    def update_grove_in_index(self, grove_id: str, *,
                              name: str | None = None,
                              updated_at: datetime.datetime | None = None) -> bool:
        index = self._index.read()
        for ref in index.groves:
            if ref.id == grove_id:
                if name is not None:
                    ref.name = name
                if updated_at is not None:
                    ref.updated_at = updated_at
                self._index.write(index)
                return True
        return False

    # Metadata

    def read_grove_metadata(self, grove_path: str | Path) -> GroveMetadata | None:
        return self._metadata_store(grove_path).load()

    def write_grove_metadata(self, grove_path: str | Path, metadata: GroveMetadata) -> None:
        """Persist grove.json and mirror name/updatedAt into the catalog.

        ``updated_at`` is always refreshed here and never moves backwards.
        Catalog sync failures are logged, not raised.
        """
        previous = metadata.updated_at
        if previous.tzinfo is None:
            previous = previous.replace(tzinfo=datetime.timezone.utc)
        metadata.updated_at = max(utcnow(), previous)
        self._metadata_store(grove_path).write(metadata)

        try:
            self.update_grove_in_index(metadata.id, name=metadata.name,
                                       updated_at=metadata.updated_at)
        except OSError as e:
            logger.warning(f"Failed to sync groves index for {metadata.id}: {e}")

    def is_orphaned(self, grove_ref: GroveReference) -> bool:
        """True if the catalog entry has no matching grove folder."""
        metadata = self.read_grove_metadata(grove_ref.path)
        return metadata is None or metadata.id != grove_ref.id
