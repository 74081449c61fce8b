"""Git, file and process collaborators for Grove."""

import asyncio
import glob
import logging
import os
import shutil
from collections.abc import Sequence
from pathlib import Path

from git import Repo
from git.exc import GitCommandError, InvalidGitRepositoryError, NoSuchPathError

from .errors import InvalidRepositoryError
from .models import (
    CommandResult,
    FileCopyPattern,
    FileCopyResult,
    GitResult,
    WorktreeInfo,
    pattern_mode,
    pattern_text,
)

logger = logging.getLogger(__name__)

MAIN_BRANCH_CANDIDATES = ("master", "main")

# Top-level folders that are never monorepo projects
IGNORED_DIRECTORIES = frozenset({
    ".git", ".github", ".vscode", ".idea", "node_modules", "dist", "build",
    "out", "coverage", ".cache", ".turbo", ".next", ".nuxt", "__pycache__",
    ".pytest_cache", "vendor", "target",
})


class GitUtils:
    """Git utility functions.

    Subprocess-backed operations are async and return a ``GitResult``; they
    never raise for a failing git invocation. Repository inspection helpers
    are static and use GitPython.
    """

    def __init__(self, timeout: float | None = None):
        """Initialize git utilities.

        Args:
            timeout: Seconds before a git subprocess is killed (None waits forever)
        """
        self.timeout = timeout

    async def run_git_command(self, repo_path: str | Path,
                              command: list[str]) -> GitResult:
        """Run a git command asynchronously."""
        cmd = ["git", "-C", str(repo_path)] + command
        logger.debug(f"Running {' '.join(cmd)}")
        return await ProcessUtils.run_command(cmd, timeout=self.timeout)

    async def add_worktree(self, repo_path: str | Path, path: str | Path,
                           branch: str | None = None,
                           commitish: str | None = None) -> GitResult:
        """Create a worktree, optionally on a new branch."""
        command = ["worktree", "add"]
        if branch:
            command += ["-b", branch]
        command.append(str(path))
        if commitish:
            command.append(commitish)
        return await self.run_git_command(repo_path, command)

    async def remove_worktree(self, repo_path: str | Path, path: str | Path,
                              force: bool = False) -> GitResult:
        command = ["worktree", "remove"]
        if force:
            command.append("--force")
        command.append(str(path))
        return await self.run_git_command(repo_path, command)

    async def list_worktrees(self, repo_path: str | Path) -> list[WorktreeInfo]:
        result = await self.run_git_command(repo_path, ["worktree", "list", "--porcelain"])
        if not result.success:
            return []
        return self.parse_worktree_list(result.stdout)

    @staticmethod
    def parse_worktree_list(porcelain_output: str) -> list[WorktreeInfo]:
        """Parse ``git worktree list --porcelain`` output.

        Entries without a path or HEAD are skipped; a missing branch line
        means a detached HEAD.
        """
        worktrees = []
        current: dict[str, str] = {}

        def flush():
            if current.get("path") and current.get("commit"):
                worktrees.append(WorktreeInfo(**current))
            current.clear()

        for line in porcelain_output.splitlines():
            if line.startswith("worktree "):
                current["path"] = line[len("worktree "):]
            elif line.startswith("HEAD "):
                current["commit"] = line[len("HEAD "):]
            elif line.startswith("branch "):
                current["branch"] = line[len("branch "):]
            elif not line:
                flush()
        flush()

        return worktrees

    async def prune_worktrees(self, repo_path: str | Path) -> GitResult:
        return await self.run_git_command(repo_path, ["worktree", "prune"])

    async def fetch(self, repo_path: str | Path, remote: str = "origin") -> GitResult:
        return await self.run_git_command(repo_path, ["fetch", remote])

    async def pull(self, repo_path: str | Path) -> GitResult:
        return await self.run_git_command(repo_path, ["pull"])

    async def reset(self, repo_path: str | Path, ref: str, hard: bool = True) -> GitResult:
        command = ["reset"]
        if hard:
            command.append("--hard")
        command.append(ref)
        return await self.run_git_command(repo_path, command)

    async def rev_parse(self, repo_path: str | Path, ref: str) -> str | None:
        """Resolve a ref to a commit SHA, or None if it does not resolve."""
        result = await self.run_git_command(repo_path, ["rev-parse", ref])
        return result.stdout.strip() if result.success else None

    async def get_current_branch(self, repo_path: str | Path) -> str | None:
        result = await self.run_git_command(repo_path, ["rev-parse", "--abbrev-ref", "HEAD"])
        return result.stdout.strip() if result.success else None

    async def has_uncommitted_changes(self, repo_path: str | Path) -> bool:
        """Check if the working tree has staged, unstaged or untracked changes."""
        result = await self.run_git_command(repo_path, ["status", "--porcelain"])
        return result.success and bool(result.stdout.strip())

    async def branch_exists(self, repo_path: str | Path, branch: str) -> bool:
        result = await self.run_git_command(
            repo_path, ["show-ref", "--verify", "--quiet", f"refs/heads/{branch}"]
        )
        return result.success

    async def detect_main_branch(self, repo_path: str | Path) -> str | None:
        """The first of master/main that exists locally, else the current branch."""
        for candidate in MAIN_BRANCH_CANDIDATES:
            if await self.branch_exists(repo_path, candidate):
                return candidate
        return await self.get_current_branch(repo_path)

    # GitPython helpers

    @staticmethod
    def is_git_repo(path: str | Path) -> bool:
        """Check if path is inside a git repository."""
        try:
            Repo(path, search_parent_directories=True)
            return True
        except (InvalidGitRepositoryError, NoSuchPathError):
            return False

    @staticmethod
    def is_git_worktree(path: str | Path) -> bool:
        """Check if path is a linked worktree rather than a main checkout."""
        try:
            repo = Repo(path, search_parent_directories=True)
        except (InvalidGitRepositoryError, NoSuchPathError):
            return False
        git_file = Path(repo.working_tree_dir or path) / ".git"
        if git_file.is_file():
            return True
        return f"{os.sep}worktrees{os.sep}" in str(Path(repo.git_dir).resolve())

    @staticmethod
    def get_git_root(path: str | Path) -> Path | None:
        try:
            root = Repo(path, search_parent_directories=True).git.rev_parse("--show-toplevel")
            return Path(root)
        except (InvalidGitRepositoryError, NoSuchPathError, GitCommandError):
            return None

    @staticmethod
    def verify_valid_repository(path: str | Path) -> Path:
        """Return the repository root of ``path``.

        Raises:
            InvalidRepositoryError: If path is not a repository, or is a worktree
        """
        if not GitUtils.is_git_repo(path):
            raise InvalidRepositoryError(f"Not a git repository: {path}")
        if GitUtils.is_git_worktree(path):
            raise InvalidRepositoryError(
                "Cannot register a worktree. Please navigate to the main repository folder."
            )
        root = GitUtils.get_git_root(path)
        if root is None:
            raise InvalidRepositoryError(f"Could not determine git repository root for {path}")
        return root

    @staticmethod
    def list_monorepo_projects(repo_path: str | Path) -> list[str]:
        """Top-level folders of a repository that could be monorepo projects."""
        try:
            entries = list(Path(repo_path).iterdir())
        except OSError:
            return []
        return sorted(
            entry.name for entry in entries
            if entry.is_dir()
            and not entry.name.startswith(".")
            and entry.name not in IGNORED_DIRECTORIES
        )


class FileUtils:
    """File system utility functions."""

    @staticmethod
    def match_pattern(source_dir: Path, pattern: str) -> list[str]:
        """Files (hidden ones included) under source_dir matching a glob."""
        matches = glob.glob(pattern, root_dir=source_dir, recursive=True, include_hidden=True)
        return sorted(match for match in matches if not (source_dir / match).is_dir())

    @staticmethod
    def copy_file(source_dir: Path, dest_dir: Path, relative_path: str) -> None:
        """Copy one file preserving its relative location."""
        dest = dest_dir / relative_path
        dest.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(source_dir / relative_path, dest)

    @staticmethod
    def link_file(source_dir: Path, dest_dir: Path, relative_path: str) -> None:
        """Symlink one file to its absolute source path."""
        dest = dest_dir / relative_path
        dest.parent.mkdir(parents=True, exist_ok=True)
        dest.symlink_to((source_dir / relative_path).resolve())

    @staticmethod
    def copy_files_from_patterns(source_dir: str | Path, dest_dir: str | Path,
                                 patterns: Sequence[FileCopyPattern]) -> FileCopyResult:
        """Copy or symlink every file matched by the patterns.

        Best effort: a failing pattern or file is recorded in ``errors`` and
        the remaining files are still processed.

        Args:
            source_dir: Directory the patterns are relative to
            dest_dir: Directory receiving the files
            patterns: Glob strings, or (glob, "copy"|"link") pairs

        Returns:
            FileCopyResult listing copied files, linked files and errors
        """
        result = FileCopyResult(success=True)
        if not patterns:
            return result

        source_dir = Path(source_dir)
        dest_dir = Path(dest_dir)
        dest_dir.mkdir(parents=True, exist_ok=True)

        for entry in patterns:
            pattern = pattern_text(entry)
            mode = pattern_mode(entry)
            try:
                matches = FileUtils.match_pattern(source_dir, pattern)
            except (OSError, ValueError) as e:
                result.errors.append(f'Pattern "{pattern}": {e}')
                continue

            for relative_path in matches:
                try:
                    if mode == "link":
                        FileUtils.link_file(source_dir, dest_dir, relative_path)
                        result.linked_files.append(relative_path)
                    else:
                        FileUtils.copy_file(source_dir, dest_dir, relative_path)
                        result.copied_files.append(relative_path)
                except OSError as e:
                    result.errors.append(f'Failed to {mode} "{relative_path}": {e}')

        result.success = not result.errors
        return result


class ProcessUtils:
    """Process utility functions."""

    @staticmethod
    async def run_command(command: list[str], cwd: Path | None = None,
                          timeout: float | None = None) -> CommandResult:
        """Run a command asynchronously.

        Commands never read the caller's stdin. A command that cannot be
        started, or that outlives ``timeout`` (it is killed), yields a failed
        result with exit code -1.
        """
        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=cwd
            )
        except OSError as e:
            return CommandResult(success=False, stderr=str(e), exit_code=-1)

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            return CommandResult(success=False,
                                 stderr=f"Command timed out after {timeout}s",
                                 exit_code=-1)

        return CommandResult(
            success=process.returncode == 0,
            stdout=stdout.decode(errors="replace"),
            stderr=stderr.decode(errors="replace"),
            exit_code=process.returncode,
        )

    @staticmethod
    async def run_shell(command: str, cwd: Path,
                        timeout: float | None = None) -> CommandResult:
        """Run a shell command line with ``bash -c``."""
        return await ProcessUtils.run_command(["bash", "-c", command], cwd=cwd, timeout=timeout)
