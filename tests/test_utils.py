"""Tests for git, file and process utilities."""

import os

import pytest

from grove.errors import InvalidRepositoryError
from grove.utils import FileUtils, GitUtils, ProcessUtils

from conftest import git, init_repo

PORCELAIN = """worktree /code/repo
HEAD 1111111111111111111111111111111111111111
branch refs/heads/main

worktree /groves/demo/repo-ab1cd
HEAD 2222222222222222222222222222222222222222
detached

worktree /groves/broken
"""


class TestGitUtilsParsing:
    """Test cases for porcelain parsing."""

    def test_parse_worktree_list(self):
        worktrees = GitUtils.parse_worktree_list(PORCELAIN)

        assert [wt.path for wt in worktrees] == ["/code/repo", "/groves/demo/repo-ab1cd"]
        assert worktrees[0].branch == "refs/heads/main"
        assert worktrees[1].branch == "detached"
        assert worktrees[1].commit.startswith("2222")

    def test_parse_without_trailing_newline(self):
        output = "worktree /code/repo\nHEAD abc\nbranch refs/heads/main"
        assert len(GitUtils.parse_worktree_list(output)) == 1

    def test_parse_empty(self):
        assert GitUtils.parse_worktree_list("") == []


@pytest.mark.asyncio
class TestGitUtilsCommands:
    """Test cases for async git commands against a real repository."""

    async def test_worktree_lifecycle(self, temp_repo, temp_dir):
        """Worktrees can be added, listed and removed."""
        utils = GitUtils()
        worktree_path = temp_dir / "wt"

        result = await utils.add_worktree(temp_repo, worktree_path, "grove/demo", "HEAD")
        assert result.success, result.stderr
        assert (worktree_path / "README.md").exists()
        assert await utils.branch_exists(temp_repo, "grove/demo")

        listed = await utils.list_worktrees(temp_repo)
        assert str(worktree_path) in [wt.path for wt in listed]

        removed = await utils.remove_worktree(temp_repo, worktree_path, force=True)
        assert removed.success
        assert not worktree_path.exists()

    async def test_add_worktree_failure_reports_stderr(self, temp_repo, temp_dir):
        utils = GitUtils()
        await utils.add_worktree(temp_repo, temp_dir / "one", "dup", "HEAD")

        result = await utils.add_worktree(temp_repo, temp_dir / "two", "dup", "HEAD")

        assert not result.success
        assert "dup" in result.stderr

    async def test_branch_inspection(self, temp_repo):
        utils = GitUtils()

        assert await utils.get_current_branch(temp_repo) == "main"
        assert await utils.detect_main_branch(temp_repo) == "main"
        assert not await utils.has_uncommitted_changes(temp_repo)

        (temp_repo / "new.txt").write_text("x")
        assert await utils.has_uncommitted_changes(temp_repo)

    async def test_detect_prefers_master(self, temp_dir):
        repo = init_repo(temp_dir / "legacy", branch="master")
        git(repo, "checkout", "-b", "feature")

        assert await GitUtils().detect_main_branch(repo) == "master"

    async def test_detect_falls_back_to_current(self, temp_dir):
        repo = init_repo(temp_dir / "trunk", branch="trunk")

        assert await GitUtils().detect_main_branch(repo) == "trunk"

    async def test_rev_parse(self, temp_repo):
        utils = GitUtils()
        sha = await utils.rev_parse(temp_repo, "HEAD")

        assert sha == git(temp_repo, "rev-parse", "HEAD").strip()
        assert await utils.rev_parse(temp_repo, "origin/main") is None

    async def test_fetch_without_remote_fails_softly(self, temp_repo):
        result = await GitUtils().fetch(temp_repo)

        assert not result.success
        assert result.exit_code != 0

    async def test_missing_directory(self, temp_dir):
        result = await GitUtils().run_git_command(temp_dir / "missing", ["status"])
        assert not result.success


class TestGitUtilsRepositories:
    """Test cases for GitPython-backed repository helpers."""

    def test_is_git_repo(self, temp_repo, temp_dir):
        assert GitUtils.is_git_repo(temp_repo)
        assert not GitUtils.is_git_repo(temp_dir / "nope")

    def test_worktree_detection(self, temp_repo, temp_dir):
        worktree_path = temp_dir / "linked"
        git(temp_repo, "worktree", "add", "-b", "linked", str(worktree_path))

        assert not GitUtils.is_git_worktree(temp_repo)
        assert GitUtils.is_git_worktree(worktree_path)

    def test_verify_valid_repository(self, temp_repo, temp_dir):
        """A subfolder resolves to the repository root."""
        sub = temp_repo / "pkg"
        sub.mkdir()

        assert GitUtils.verify_valid_repository(sub) == temp_repo

    def test_verify_rejects_worktree(self, temp_repo, temp_dir):
        worktree_path = temp_dir / "linked"
        git(temp_repo, "worktree", "add", "-b", "linked", str(worktree_path))

        with pytest.raises(InvalidRepositoryError, match="Cannot register a worktree"):
            GitUtils.verify_valid_repository(worktree_path)

    def test_verify_rejects_plain_folder(self, temp_dir):
        plain = temp_dir / "plain"
        plain.mkdir()

        with pytest.raises(InvalidRepositoryError, match="Not a git repository"):
            GitUtils.verify_valid_repository(plain)

    def test_list_monorepo_projects(self, temp_repo):
        for name in ("web", "api", "node_modules", ".cache", ".hidden"):
            (temp_repo / name).mkdir()
        (temp_repo / "file.txt").write_text("")

        assert GitUtils.list_monorepo_projects(temp_repo) == ["api", "web"]


class TestFileUtils:
    """Test cases for pattern-based file copies."""

    @pytest.fixture
    def source(self, temp_dir):
        src = temp_dir / "src"
        (src / "config").mkdir(parents=True)
        (src / ".env").write_text("SECRET=1")
        (src / "config" / "app.json").write_text("{}")
        (src / "config" / "nested").mkdir()
        (src / "config" / "nested" / "deep.json").write_text("{}")
        return src

    def test_copy_includes_hidden_files(self, source, temp_dir):
        dest = temp_dir / "dest"
        result = FileUtils.copy_files_from_patterns(source, dest, [".env*", "config/*.json"])

        assert result.success
        assert sorted(result.copied_files) == [".env", os.path.join("config", "app.json")]
        assert (dest / ".env").read_text() == "SECRET=1"

    def test_recursive_glob_skips_directories(self, source, temp_dir):
        result = FileUtils.copy_files_from_patterns(source, temp_dir / "dest", ["config/**"])

        assert sorted(result.copied_files) == [
            os.path.join("config", "app.json"),
            os.path.join("config", "nested", "deep.json"),
        ]

    def test_link_mode(self, source, temp_dir):
        dest = temp_dir / "dest"
        result = FileUtils.copy_files_from_patterns(source, dest, [(".env", "link")])

        assert result.linked_files == [".env"]
        assert (dest / ".env").is_symlink()
        assert os.readlink(dest / ".env") == str((source / ".env").resolve())

    def test_errors_are_collected(self, source, temp_dir):
        """A failing file does not stop the remaining copies."""
        dest = temp_dir / "dest"
        dest.mkdir()
        (dest / ".env").write_text("existing")

        result = FileUtils.copy_files_from_patterns(
            source, dest, [(".env", "link"), "config/app.json"]
        )

        assert not result.success
        assert result.errors[0].startswith('Failed to link ".env"')
        assert result.copied_files == [os.path.join("config", "app.json")]

    def test_no_patterns(self, temp_dir):
        result = FileUtils.copy_files_from_patterns(temp_dir, temp_dir / "dest", [])

        assert result.success
        assert not (temp_dir / "dest").exists()


@pytest.mark.asyncio
class TestProcessUtils:
    """Test cases for subprocess helpers."""

    async def test_run_shell(self, temp_dir):
        result = await ProcessUtils.run_shell("echo out; echo err >&2; pwd", cwd=temp_dir)

        assert result.success
        assert result.exit_code == 0
        assert result.stdout.splitlines() == ["out", str(temp_dir)]
        assert result.stderr.strip() == "err"

    async def test_run_shell_failure(self, temp_dir):
        result = await ProcessUtils.run_shell("exit 3", cwd=temp_dir)

        assert not result.success
        assert result.exit_code == 3

    async def test_timeout_kills_process(self, temp_dir):
        result = await ProcessUtils.run_shell("sleep 5", cwd=temp_dir, timeout=0.2)

        assert not result.success
        assert result.exit_code == -1
        assert "timed out" in result.stderr

    async def test_missing_executable(self, temp_dir):
        result = await ProcessUtils.run_command(["definitely-not-a-command-xyz"], cwd=temp_dir)

        assert not result.success
        assert result.exit_code == -1
