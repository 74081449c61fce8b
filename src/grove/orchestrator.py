"""Grove lifecycle orchestration: create, extend and close groves."""

import asyncio
import logging
import shutil
import uuid
from collections.abc import Sequence
from pathlib import Path

from .config import Config
from .context import ContextWriter
from .errors import (
    DuplicateWorktreeError,
    GroveCreationError,
    GroveError,
    GroveFolderExistsError,
    GroveMetadataNotFoundError,
    GroveNotFoundError,
    WorktreeCreationError,
)
from .events import ProgressQueue, ProgressReporter
from .grove_config import GroveConfigResolver
from .init_actions import InitActionRunner
from .models import (
    CloseGroveResult,
    CloseWorktreeResult,
    CreateGroveResult,
    CreateStatus,
    GroveListEntry,
    GroveMetadata,
    GroveReference,
    Repository,
    RepositorySelection,
    utcnow,
)
from .naming import (
    build_branch_name,
    generate_grove_identifier,
    normalize_grove_name,
    slugify,
    split_grove_folder_name,
    unique_name,
    worktree_folder_name,
)
from .storage import GroveStore, RepositoryStore, SettingsStore, StoragePaths
from .utils import GitUtils
from .workspace import WorkspaceResolver
from .worktree import WorktreeManager

logger = logging.getLogger(__name__)


class GroveOrchestrator:
    """High-level engine for grove lifecycle operations.

    Selections are processed one at a time. A failing selection never aborts
    the others; its error is collected and reported with the result.
    """

    def __init__(self,
                 config: Config | None = None,
                 *,
                 settings: SettingsStore | None = None,
                 repositories: RepositoryStore | None = None,
                 groves: GroveStore | None = None,
                 config_resolver: GroveConfigResolver | None = None,
                 worktree_manager: WorktreeManager | None = None,
                 context_writer: ContextWriter | None = None):
        """Initialize the orchestrator.

        Args:
            config: Configuration settings
            settings: Settings store (working folder)
            repositories: Registered repositories catalog
            groves: Groves catalog and metadata store
            config_resolver: Resolver for .grove.json layers
            worktree_manager: Worktree provisioning
            context_writer: CONTEXT.md writer
        """
        self.config = config or Config()
        paths = StoragePaths(self.config.grove_folder)

        self.settings = settings or SettingsStore(paths, self.config.working_folder)
        self.repositories = repositories or RepositoryStore(paths)
        self.groves = groves or GroveStore(paths)
        self.config_resolver = config_resolver or GroveConfigResolver(
            self.config.default_branch_template
        )
        self.worktree_manager = worktree_manager or WorktreeManager(
            git=GitUtils(timeout=self.config.git_timeout),
            init_runner=InitActionRunner(timeout=self.config.init_action_timeout),
        )
        self.context_writer = context_writer or ContextWriter()

        logger.debug(f"Initialized orchestrator with storage root: {paths.grove_folder}")

    def new_progress_queue(self) -> ProgressQueue:
        return asyncio.Queue(maxsize=self.config.progress_queue_size)

    # Repositories

    def register_repository(self, path: str | Path, is_monorepo: bool = False) -> Repository:
        """Register the repository containing ``path``.

        Raises:
            InvalidRepositoryError: If path is not a main git checkout
            RepositoryAlreadyRegisteredError: If the repository is already known
        """
        root = GitUtils.verify_valid_repository(path)
        return self.repositories.add(root, is_monorepo=is_monorepo)

    # Grove creation

    def _existing_identifiers(self) -> set[str]:
        identifiers = set()
        for ref in self.groves.list_groves():
            _, identifier = split_grove_folder_name(Path(ref.path).name)
            if identifier:
                identifiers.add(identifier)
        return identifiers

    def _branch_for(self, selection: RepositorySelection, normalized_name: str) -> tuple:
        repo_path = selection.repository.path
        merged = self.config_resolver.resolve(repo_path, selection.project_path)
        template = self.config_resolver.branch_template_for(merged, repo_path)
        return merged, build_branch_name(template, normalized_name, selection.project_path)

    async def create_grove(self, name: str,
                           selections: Sequence[RepositorySelection],
                           progress: ProgressQueue | None = None) -> CreateGroveResult:
        """Create a grove with one worktree per selection.

        Args:
            name: Human-readable grove name
            selections: Repositories (and monorepo projects) to check out
            progress: Optional queue receiving progress events

        Returns:
            CreateGroveResult with status ``success`` or ``partial_success``

        Raises:
            GroveFolderExistsError: If the grove folder already exists
            GroveCreationError: If selections were given and none succeeded
        """
        reporter = ProgressReporter(progress)

        identifier = generate_grove_identifier(name, self._existing_identifiers())
        normalized_name = normalize_grove_name(name, identifier)
        grove_path = self.settings.working_folder / normalized_name

        if grove_path.exists():
            raise GroveFolderExistsError(grove_path)

        grove_path.mkdir(parents=True)
        created_at = utcnow()
        self.context_writer.write(grove_path, name,
                                  [selection.repository for selection in selections],
                                  created_at)

        worktrees = []
        errors: list[str] = []
        taken_names: set[str] = set()

        for selection in selections:
            await reporter.info(f"Creating worktree for {selection.display_name}...")
            folder = unique_name(
                worktree_folder_name(selection.repository.name, selection.project_path,
                                     identifier),
                taken_names,
            )
            display_name = name if len(selections) == 1 else selection.display_name
            try:
                merged, branch = self._branch_for(selection, normalized_name)
                worktree = await self.worktree_manager.provision(
                    grove_path=grove_path,
                    selection=selection,
                    worktree_folder=folder,
                    branch=branch,
                    display_name=display_name,
                    merged=merged,
                    progress=reporter,
                )
            except (GroveError, OSError) as e:
                errors.append(f"{selection.display_name}: {e}")
                await reporter.error(f"Failed to create worktree for {selection.display_name}: {e}")
                continue
            worktrees.append(worktree)

        if selections and not worktrees:
            shutil.rmtree(grove_path, ignore_errors=True)
            raise GroveCreationError(errors)

        metadata = GroveMetadata(
            id=uuid.uuid4().hex,
            name=name,
            identifier=identifier,
            worktrees=worktrees,
            created_at=created_at,
            updated_at=created_at,
        )
        self.groves.write_grove_metadata(grove_path, metadata)
        self.groves.add_grove_to_index(GroveReference(
            id=metadata.id,
            name=name,
            path=str(grove_path),
            created_at=metadata.created_at,
            updated_at=metadata.updated_at,
        ))

        status = CreateStatus.PARTIAL_SUCCESS if errors else CreateStatus.SUCCESS
        logger.info(f"Created grove {name} ({metadata.id}) with {len(worktrees)} worktree(s)")
        return CreateGroveResult(status=status, path=str(grove_path),
                                 metadata=metadata, errors=errors)

    async def add_worktree_to_grove(self, grove_id: str,
                                    selection: RepositorySelection,
                                    worktree_name: str,
                                    progress: ProgressQueue | None = None) -> GroveMetadata:
        """Add one worktree with a custom name to an existing grove.

        Raises:
            GroveNotFoundError: If the grove is not indexed
            GroveMetadataNotFoundError: If the grove has no grove.json
            DuplicateWorktreeError: If the normalized name is already used
            WorktreeCreationError: If the worktree could not be created
        """
        reporter = ProgressReporter(progress)

        grove_ref = self.groves.get_grove_by_id(grove_id)
        if grove_ref is None:
            raise GroveNotFoundError(grove_id)

        grove_path = Path(grove_ref.path)
        metadata = self.groves.read_grove_metadata(grove_path)
        if metadata is None:
            raise GroveMetadataNotFoundError(grove_path)

        if not metadata.identifier:
            metadata.identifier = generate_grove_identifier(metadata.name)
            self.groves.write_grove_metadata(grove_path, metadata)

        folder = f"{slugify(worktree_name, fallback='worktree')}-{metadata.identifier}"
        if any(wt.folder_name == folder for wt in metadata.worktrees):
            raise DuplicateWorktreeError(
                f'A worktree named "{folder}" already exists in this grove'
            )

        await reporter.info(f"Creating worktree for {selection.display_name}...")
        try:
            merged, branch = self._branch_for(selection, folder)
            worktree = await self.worktree_manager.provision(
                grove_path=grove_path,
                selection=selection,
                worktree_folder=folder,
                branch=branch,
                display_name=worktree_name,
                merged=merged,
                progress=reporter,
            )
        except (GroveError, OSError) as e:
            raise WorktreeCreationError(
                f"Failed to add worktree for {selection.display_name}: {e}"
            ) from e

        metadata.worktrees.append(worktree)
        self.groves.write_grove_metadata(grove_path, metadata)
        logger.info(f"Added worktree {folder} to grove {metadata.name}")
        return metadata

    # Closing

    async def close_grove(self, grove_id: str) -> CloseGroveResult:
        """Remove a grove from the index, then its worktrees and folder.

        The index entry is removed first and is never restored, even when
        later steps fail.
        """
        grove_ref = self.groves.remove_grove_from_index(grove_id)
        if grove_ref is None:
            return CloseGroveResult(success=False, message="Grove not found")

        errors = []
        metadata = self.groves.read_grove_metadata(grove_ref.path)
        if metadata:
            for worktree in metadata.open_worktrees:
                try:
                    result = await self.worktree_manager.remove_worktree(worktree)
                except OSError as e:
                    errors.append(f"Error removing worktree {worktree.repository_name}: {e}")
                    continue
                if not result.success:
                    errors.append(
                        f"Failed to remove worktree {worktree.repository_name}: {result.stderr.strip()}"
                    )

        grove_path = Path(grove_ref.path)
        if grove_path.exists():
            try:
                shutil.rmtree(grove_path)
            except OSError as e:
                errors.append(f"Failed to delete grove folder: {e}")
                return CloseGroveResult(success=False, errors=errors)

        if errors:
            logger.warning(f"Grove {grove_ref.name} closed with errors: {errors}")
            return CloseGroveResult(success=False, errors=errors,
                                    message="Grove closed with some errors")

        logger.info(f"Closed grove {grove_ref.name} ({grove_id})")
        return CloseGroveResult(success=True, message="Grove closed successfully")

    async def close_worktree(self, grove_id: str, worktree_path: str | Path) -> CloseWorktreeResult:
        """Remove one worktree and mark it closed; the grove keeps its entry."""
        grove_ref = self.groves.get_grove_by_id(grove_id)
        if grove_ref is None:
            return CloseWorktreeResult(success=False, message="Grove not found")

        metadata = self.groves.read_grove_metadata(grove_ref.path)
        if metadata is None:
            return CloseWorktreeResult(success=False, message="Grove metadata not found")

        target = Path(worktree_path).resolve()
        worktree = next(
            (wt for wt in metadata.worktrees if Path(wt.worktree_path).resolve() == target), None
        )
        if worktree is None:
            return CloseWorktreeResult(success=False, message="Worktree not found in grove")
        if worktree.closed:
            return CloseWorktreeResult(success=False, message="Worktree is already closed")

        errors = []
        try:
            result = await self.worktree_manager.remove_worktree(worktree)
            if not result.success:
                errors.append(f"Failed to remove worktree: {result.stderr.strip()}")
        except OSError as e:
            errors.append(f"Error removing worktree: {e}")

        if target.exists():
            try:
                shutil.rmtree(target)
            except OSError as e:
                errors.append(f"Failed to delete worktree folder: {e}")

        worktree.closed = True
        worktree.closed_at = utcnow()
        self.groves.write_grove_metadata(grove_ref.path, metadata)

        if errors:
            return CloseWorktreeResult(success=False, errors=errors,
                                       message="Worktree closed with some errors")
        return CloseWorktreeResult(success=True, message="Worktree closed successfully")

    # Listing and maintenance

    def list_groves(self, include_closed: bool = False) -> list[GroveListEntry]:
        """Catalog entries joined with their worktrees."""
        entries = []
        for ref in self.groves.list_groves():
            metadata = self.groves.read_grove_metadata(ref.path)
            if metadata is None:
                entries.append(GroveListEntry(reference=ref, metadata_found=False))
                continue
            worktrees = metadata.worktrees if include_closed else metadata.open_worktrees
            entries.append(GroveListEntry(reference=ref, worktrees=worktrees))
        return entries

    def find_orphaned_groves(self) -> list[GroveReference]:
        return [ref for ref in self.groves.list_groves() if self.groves.is_orphaned(ref)]

    def prune_orphaned_groves(self) -> list[GroveReference]:
        """Drop catalog entries whose grove folder or metadata is gone."""
        pruned = []
        for ref in self.find_orphaned_groves():
            if self.groves.remove_grove_from_index(ref.id):
                pruned.append(ref)
                logger.info(f"Pruned orphaned grove {ref.name} ({ref.id})")
        return pruned

    async def prune_stale_worktrees(self) -> list[str]:
        """Run ``git worktree prune`` in every registered repository.

        Returns:
            Error messages for repositories that could not be pruned
        """
        errors = []
        for repo in self.repositories.list_repositories():
            result = await self.worktree_manager.prune_repository(repo.path)
            if not result.success:
                errors.append(f"{repo.name}: {result.stderr.strip()}")
        return errors


def create_orchestrator(config: Config | None = None,
                        cwd: str | Path | None = None) -> GroveOrchestrator:
    """Build an orchestrator for the storage root that applies to ``cwd``.

    Inside a workspace (a folder tree with .grove.workspace.json) the
    workspace's own storage root and groves folder are used; otherwise the
    configured global root.
    """
    config = config or Config.from_env()
    resolver = WorkspaceResolver(global_folder=config.grove_folder)
    context = resolver.resolve_context(cwd)
    config = config.for_context(context)
    config.ensure_directories()
    logger.debug(f"Using {context.type} storage root {config.grove_folder}")
    return GroveOrchestrator(config)
