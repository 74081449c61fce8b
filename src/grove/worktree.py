"""Git worktree provisioning for groves."""

import asyncio
import logging
from pathlib import Path

from pydantic import BaseModel

from .errors import WorktreeCreationError
from .events import ProgressReporter
from .init_actions import InitActionRunner
from .models import (
    FileCopyPattern,
    FileCopyResult,
    GitResult,
    MergedGroveConfig,
    RepositorySelection,
    Worktree,
)
from .utils import FileUtils, GitUtils

logger = logging.getLogger(__name__)


class FreshnessPlan(BaseModel):
    """What the source checkout allows before a worktree is branched off it."""
    main_branch: str | None
    needs_reset: bool


class WorktreeManager:
    """Creates and removes the worktrees that make up a grove.

    ``provision`` runs the whole per-selection pipeline: freshness check,
    ``git worktree add``, optional reset to the remote main branch, file
    copies and init actions. Only the ``git worktree add`` step is fatal;
    everything after it is best effort.
    """

    def __init__(self, git: GitUtils | None = None,
                 init_runner: InitActionRunner | None = None):
        """Initialize worktree manager.

        Args:
            git: Git collaborator
            init_runner: Init action runner
        """
        self.git = git or GitUtils()
        self.init_runner = init_runner or InitActionRunner()

    async def ensure_repo_up_to_date(self, repo_path: str | Path,
                                     progress: ProgressReporter) -> FreshnessPlan:
        """Update the source repository in place when that is safe.

        A checkout that is on its main branch and clean is fetched and
        pulled. Anything else is left untouched and the new worktree is reset
        to ``origin/<main>`` instead.
        """
        main_branch = await self.git.detect_main_branch(repo_path)
        await progress.info(f"Detected main branch: {main_branch}")

        current_branch = await self.git.get_current_branch(repo_path)
        has_changes = await self.git.has_uncommitted_changes(repo_path)

        if main_branch and current_branch == main_branch and not has_changes:
            await progress.info(
                f"Repository is on {main_branch} with no uncommitted changes, updating..."
            )
            fetch = await self.git.fetch(repo_path)
            if not fetch.success:
                await progress.warning(f"Failed to fetch from remote: {fetch.stderr.strip()}")
            pull = await self.git.pull(repo_path)
            if not pull.success:
                await progress.warning(f"Failed to pull latest changes: {pull.stderr.strip()}")
            return FreshnessPlan(main_branch=main_branch, needs_reset=False)

        if current_branch != main_branch:
            await progress.info(
                f"Repository is on {current_branch}, will reset worktree to latest {main_branch}"
            )
        else:
            await progress.info(
                f"Repository has uncommitted changes, will reset worktree to latest {main_branch}"
            )
        return FreshnessPlan(main_branch=main_branch, needs_reset=main_branch is not None)

    async def reset_to_remote_main(self, worktree_path: Path, main_branch: str,
                                   progress: ProgressReporter) -> bool:
        """Hard-reset a fresh worktree to ``origin/<main_branch>``."""
        await progress.info(f"Resetting worktree to latest {main_branch}...")

        fetch = await self.git.fetch(worktree_path)
        if not fetch.success:
            await progress.warning(f"Failed to fetch in worktree: {fetch.stderr.strip()}")

        target = await self.git.rev_parse(worktree_path, f"origin/{main_branch}")
        if not target:
            await progress.warning(f"Failed to resolve origin/{main_branch}")
            return False

        reset = await self.git.reset(worktree_path, target, hard=True)
        if not reset.success:
            await progress.warning(f"Failed to reset worktree: {reset.stderr.strip()}")
            return False

        await progress.info(f"Worktree reset to latest {main_branch} ({target[:7]})")
        return True

    async def copy_files(self, source: Path, dest: Path,
                         patterns: list[FileCopyPattern], label: str,
                         progress: ProgressReporter) -> FileCopyResult:
        result = await asyncio.to_thread(FileUtils.copy_files_from_patterns, source, dest, patterns)
        if result.errors:
            await progress.warning(
                f"Failed to copy some files from {label}:\n" + "\n".join(result.errors)
            )
        copied = len(result.copied_files) + len(result.linked_files)
        if copied:
            await progress.info(f"Copied {copied} file(s) from {label}")
        return result

    async def provision(self, *,
                        grove_path: Path,
                        selection: RepositorySelection,
                        worktree_folder: str,
                        branch: str,
                        display_name: str,
                        merged: MergedGroveConfig,
                        progress: ProgressReporter | None = None) -> Worktree:
        """Create one worktree inside a grove and prepare it.

        Args:
            grove_path: Grove folder
            selection: Repository (and project) to check out
            worktree_folder: Folder name of the worktree inside the grove
            branch: New branch to create from HEAD
            display_name: Name recorded on the worktree
            merged: Resolved configuration for the selection
            progress: Optional progress reporter

        Returns:
            The worktree record to store in grove metadata

        Raises:
            WorktreeCreationError: If ``git worktree add`` fails
        """
        progress = (progress or ProgressReporter()).for_worktree(worktree_folder)
        repo = selection.repository
        repo_path = Path(repo.path)
        worktree_path = grove_path / worktree_folder

        plan = await self.ensure_repo_up_to_date(repo_path, progress)

        await progress.info(f"Creating worktree on branch {branch}")
        result: GitResult = await self.git.add_worktree(repo_path, worktree_path, branch, "HEAD")
        if not result.success:
            raise WorktreeCreationError(result.stderr.strip() or "Failed to create worktree")

        if plan.needs_reset and plan.main_branch:
            await self.reset_to_remote_main(worktree_path, plan.main_branch, progress)

        if merged.root_file_copy_patterns:
            await self.copy_files(repo_path, worktree_path, merged.root_file_copy_patterns,
                                  f"{repo.name} root", progress)

        if selection.project_path and merged.project_file_copy_patterns:
            await self.copy_files(repo_path / selection.project_path,
                                  worktree_path / selection.project_path,
                                  merged.project_file_copy_patterns,
                                  selection.display_name, progress)

        init_status = None
        if merged.init_actions:
            init_status = await self.init_runner.run(
                merged.init_actions,
                grove_path=grove_path,
                worktree_name=worktree_folder,
                worktree_path=worktree_path,
                project_path=selection.project_path,
                progress=progress,
            )
            if not init_status.success:
                await progress.warning(
                    f"InitActions failed for {selection.display_name}: {init_status.error_message}"
                )

        return Worktree(
            name=display_name,
            repository_name=repo.name,
            repository_path=repo.path,
            worktree_path=str(worktree_path),
            branch=branch,
            project_path=selection.project_path,
            init_actions_status=init_status,
        )

    async def remove_worktree(self, worktree: Worktree) -> GitResult:
        """Force-remove a worktree from its source repository."""
        return await self.git.remove_worktree(
            worktree.repository_path, worktree.worktree_path, force=True
        )

    async def prune_repository(self, repo_path: str | Path) -> GitResult:
        """Drop worktree entries whose folders no longer exist."""
        return await self.git.prune_worktrees(repo_path)
