"""Tests for layered grove configuration."""

import json
import logging

import pytest

from grove.grove_config import (
    CONFIG_FILENAME,
    LOCAL_CONFIG_FILENAME,
    GroveConfigResolver,
    merge_layers,
)
from grove.models import GroveRepoConfig, IDEConfig
from grove.naming import DEFAULT_BRANCH_TEMPLATE


def write_json(path, data):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data))


@pytest.fixture
def resolver():
    return GroveConfigResolver()


@pytest.fixture
def monorepo(temp_dir):
    """A repository folder with root and project configuration."""
    repo = temp_dir / "mono"
    write_json(repo / CONFIG_FILENAME, {
        "branchNameTemplate": "team/${GROVE_NAME}",
        "fileCopyPatterns": [".env", "config/*.json"],
        "initActions": ["npm install"],
    })
    write_json(repo / LOCAL_CONFIG_FILENAME, {
        "fileCopyPatterns": [".env", ".env.local"],
        "initActions": ["echo local"],
        "ide": "@vscode",
    })
    write_json(repo / "web" / CONFIG_FILENAME, {
        "fileCopyPatterns": [".env", ["secrets.json", "link"]],
        "initActions": ["npm run build"],
    })
    write_json(repo / "web" / LOCAL_CONFIG_FILENAME, {
        "branchNameTemplate": "",
        "initActions": ["echo web-local"],
    })
    (repo / "api").mkdir()
    return repo


class TestReadConfigFile:
    """Test cases for reading single config files."""

    def test_missing_file(self, resolver, temp_dir):
        assert resolver.read_config_file(temp_dir / CONFIG_FILENAME) == GroveRepoConfig()

    def test_invalid_json(self, resolver, temp_dir, caplog):
        """Invalid JSON is treated as an empty config with a warning."""
        path = temp_dir / CONFIG_FILENAME
        path.write_text("{oops")

        with caplog.at_level(logging.WARNING):
            assert resolver.read_config_file(path) == GroveRepoConfig()
        assert "Ignoring invalid grove config" in caplog.text

    def test_invalid_shape(self, resolver, temp_dir, caplog):
        path = temp_dir / CONFIG_FILENAME
        write_json(path, {"initActions": "not-a-list"})

        assert resolver.read_config_file(path) == GroveRepoConfig()
        assert "Ignoring invalid grove config" in caplog.text

    def test_unknown_keys_ignored(self, resolver, temp_dir):
        path = temp_dir / CONFIG_FILENAME
        write_json(path, {"initActions": ["make"], "somethingElse": True})

        assert resolver.read_config_file(path).init_actions == ["make"]


class TestMergeLayers:
    """Test cases for the per-field merge strategies."""

    def test_replace_skips_unset(self):
        merged = merge_layers([
            GroveRepoConfig(branch_name_template="a/${GROVE_NAME}"),
            GroveRepoConfig(branch_name_template=""),
            GroveRepoConfig(),
        ])
        assert merged.branch_name_template == "a/${GROVE_NAME}"

    def test_union_keeps_first_occurrence(self):
        merged = merge_layers([
            GroveRepoConfig(file_copy_patterns=[".env", "a"]),
            GroveRepoConfig(file_copy_patterns=[(".env", "link"), "b"]),
        ])
        assert merged.file_copy_patterns == [".env", "a", "b"]

    def test_concatenate(self):
        merged = merge_layers([
            GroveRepoConfig(init_actions=["one"]),
            GroveRepoConfig(init_actions=["one", "two"]),
        ])
        assert merged.init_actions == ["one", "one", "two"]

    def test_empty(self):
        assert merge_layers([]) == GroveRepoConfig()


class TestResolve:
    """Test cases for resolving a selection's configuration."""

    def test_root_only(self, resolver, monorepo):
        merged = resolver.resolve(monorepo)

        assert merged.branch_name_template == "team/${GROVE_NAME}"
        assert merged.root_file_copy_patterns == [".env", "config/*.json", ".env.local"]
        assert merged.project_file_copy_patterns == []
        assert merged.root_init_actions == ["npm install", "echo local"]
        assert merged.ide == "@vscode"

    def test_project_patterns_stay_separate(self, resolver, monorepo):
        """Identical globs at root and project level are both kept."""
        merged = resolver.resolve(monorepo, "web")

        assert ".env" in merged.root_file_copy_patterns
        assert merged.project_file_copy_patterns == [".env", ("secrets.json", "link")]

    def test_init_actions_root_before_project(self, resolver, monorepo):
        merged = resolver.resolve(monorepo, "web")

        assert merged.init_actions == [
            "npm install", "echo local", "npm run build", "echo web-local"
        ]

    def test_empty_template_does_not_override(self, resolver, monorepo):
        assert resolver.resolve(monorepo, "web").branch_name_template == "team/${GROVE_NAME}"

    def test_project_without_config(self, resolver, monorepo):
        merged = resolver.resolve(monorepo, "api")

        assert merged.project_file_copy_patterns == []
        assert merged.project_init_actions == []

    def test_deepest_template_wins(self, resolver, monorepo):
        write_json(monorepo / "api" / CONFIG_FILENAME, {"branchNameTemplate": "api/${GROVE_NAME}"})

        assert resolver.resolve(monorepo, "api").branch_name_template == "api/${GROVE_NAME}"

    def test_read_level(self, resolver, monorepo):
        level = resolver.read_level(monorepo / "web")

        assert level.init_actions == ["npm run build", "echo web-local"]
        assert level.branch_name_template is None


class TestBranchNames:
    """Test cases for branch naming from configuration."""

    def test_branch_for_project(self, resolver, monorepo):
        assert resolver.get_branch_name_for_selection(monorepo, "demo-ab1cd", "web") == \
            "team/demo-ab1cd-web"

    def test_default_template(self, resolver, temp_dir):
        assert resolver.get_branch_name_for_selection(temp_dir, "demo-ab1cd") == \
            "grove/demo-ab1cd"

    def test_invalid_template_falls_back(self, resolver, temp_dir, caplog):
        """A template without ${GROVE_NAME} is replaced by the default."""
        write_json(temp_dir / CONFIG_FILENAME, {"branchNameTemplate": "fixed-branch"})

        merged = resolver.resolve(temp_dir)

        assert resolver.branch_template_for(merged) == DEFAULT_BRANCH_TEMPLATE
        assert "does not contain ${GROVE_NAME}" in caplog.text


class TestIDEConfig:
    """Test cases for IDE configuration."""

    def test_reference(self, resolver, monorepo):
        assert resolver.get_ide_config_for_selection(monorepo) == "vscode"

    def test_inline(self, resolver, temp_dir):
        write_json(temp_dir / CONFIG_FILENAME,
                   {"ide": {"command": "code", "args": ["--new-window", "{path}"]}})

        ide = resolver.get_ide_config_for_selection(temp_dir)

        assert ide == IDEConfig(command="code", args=["--new-window", "{path}"])

    def test_unset(self, resolver, temp_dir):
        assert resolver.get_ide_config_for_selection(temp_dir) is None


class TestWriteConfig:
    """Test cases for writing configuration and discovering projects."""

    def test_write_and_read_back(self, resolver, temp_dir):
        config = GroveRepoConfig(file_copy_patterns=[".env", ("node_modules/**", "link")])

        path = resolver.write_config(temp_dir, config, local=True)

        assert path.name == LOCAL_CONFIG_FILENAME
        assert json.loads(path.read_text()) == {
            "fileCopyPatterns": [".env", ["node_modules/**", "link"]]
        }
        assert resolver.read_level(temp_dir) == config

    def test_projects_with_config(self, resolver, monorepo):
        assert resolver.projects_with_config(monorepo) == ["web"]
