"""Shared fixtures for Grove tests."""

import logging
import subprocess
import tempfile
from pathlib import Path

import pytest

from grove.models import Repository


def git(repo_path: Path, *args: str) -> str:
    """Run a git command in a test repository and return its stdout."""
    result = subprocess.run(["git", *args], cwd=repo_path, check=True,
                            capture_output=True, text=True)
    return result.stdout


def init_repo(repo_path: Path, branch: str = "main") -> Path:
    """Initialize a git repository with one commit on ``branch``."""
    repo_path.mkdir(parents=True, exist_ok=True)
    git(repo_path, "init")
    git(repo_path, "symbolic-ref", "HEAD", f"refs/heads/{branch}")
    git(repo_path, "config", "user.name", "Test")
    git(repo_path, "config", "user.email", "test@test.com")
    git(repo_path, "config", "commit.gpgsign", "false")

    (repo_path / "README.md").write_text("# Test Repository")
    git(repo_path, "add", "README.md")
    git(repo_path, "commit", "-m", "Initial commit")
    return repo_path


@pytest.fixture(autouse=True)
def reset_grove_logger():
    """Undo CLI logging setup so caplog sees grove records."""
    yield
    logger = logging.getLogger("grove")
    logger.handlers.clear()
    logger.setLevel(logging.NOTSET)
    logger.propagate = True


@pytest.fixture
def temp_dir():
    """Create a temporary directory for testing."""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield Path(temp_dir).resolve()


@pytest.fixture
def temp_repo(temp_dir):
    """Create a temporary git repository for testing."""
    yield init_repo(temp_dir / "test_repo")


@pytest.fixture
def repository(temp_repo):
    """Registered-repository record for the temporary repository."""
    return Repository(path=str(temp_repo), name=temp_repo.name)
