"""Tests for Grove configuration."""

import json
import os
from pathlib import Path
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from grove.config import Config
from grove.models import WorkspaceConfig, WorkspaceContext
from grove.naming import DEFAULT_BRANCH_TEMPLATE


class TestConfig:
    """Test cases for Config."""

    def test_defaults(self):
        with patch.dict(os.environ, {}, clear=True):
            config = Config.from_env()
            home = Path.home()

        assert config.grove_folder == home / ".grove"
        assert config.working_folder is None
        assert config.default_branch_template == DEFAULT_BRANCH_TEMPLATE
        assert config.init_action_timeout is None
        assert config.git_timeout is None
        assert config.progress_queue_size == 100
        assert config.log_level == "INFO"

    def test_paths_are_resolved(self, temp_dir):
        config = Config(grove_folder=str(temp_dir / "a" / ".." / "store"), log_file="")

        assert config.grove_folder == temp_dir / "store"
        assert config.log_file is None

    def test_template_must_contain_placeholder(self):
        with pytest.raises(ValidationError):
            Config(default_branch_template="static-branch")

    def test_log_level_uppercased(self):
        assert Config(log_level="debug").log_level == "DEBUG"

    def test_from_env(self, temp_dir):
        env = {
            "GROVE_FOLDER": str(temp_dir / "store"),
            "GROVE_WORKING_FOLDER": str(temp_dir / "groves"),
            "GROVE_INIT_ACTION_TIMEOUT": "30",
            "GROVE_LOG_LEVEL": "warning",
        }
        with patch.dict(os.environ, env, clear=True):
            config = Config.from_env(git_timeout=5)

        assert config.grove_folder == temp_dir / "store"
        assert config.working_folder == temp_dir / "groves"
        assert config.init_action_timeout == 30.0
        assert config.git_timeout == 5
        assert config.log_level == "WARNING"

    def test_load_from_file(self, temp_dir):
        path = temp_dir / "grove-config.json"
        path.write_text(json.dumps({"grove_folder": str(temp_dir / "fromfile"),
                                    "progress_queue_size": 10}))

        with patch.dict(os.environ, {"GROVE_FOLDER": str(temp_dir / "env")}, clear=True):
            config = Config.load_from_file(path)

        assert config.grove_folder == temp_dir / "fromfile"
        assert config.progress_queue_size == 10

    def test_every_field_reads_the_environment(self, temp_dir):
        """Every field has a GROVE_<FIELD> variable."""
        env = {
            "GROVE_FOLDER": str(temp_dir / "store"),
            "GROVE_PROGRESS_QUEUE_SIZE": "7",
            "GROVE_DEFAULT_BRANCH_TEMPLATE": "work/${GROVE_NAME}",
            "GROVE_LOG_FILE": "",
        }
        with patch.dict(os.environ, env, clear=True):
            config = Config()

        assert config.grove_folder == temp_dir / "store"
        assert config.progress_queue_size == 7
        assert config.default_branch_template == "work/${GROVE_NAME}"
        assert config.log_file is None

    def test_invalid_environment_value(self):
        with patch.dict(os.environ, {"GROVE_PROGRESS_QUEUE_SIZE": "many"}, clear=True):
            with pytest.raises(ValidationError):
                Config.from_env()

    def test_ensure_directories(self, temp_dir):
        config = Config(grove_folder=temp_dir / "store", log_file=temp_dir / "logs" / "grove.log")

        config.ensure_directories()

        assert config.grove_folder.is_dir()
        assert (temp_dir / "logs").is_dir()

    def test_for_global_context(self, temp_dir):
        config = Config(grove_folder=temp_dir / "store")
        context = WorkspaceContext(type="global", grove_folder=temp_dir / "other")

        assert config.for_context(context) is config

    def test_for_workspace_context(self, temp_dir):
        config = Config(grove_folder=temp_dir / "store")
        context = WorkspaceContext(
            type="workspace",
            grove_folder=temp_dir / "ws" / ".grove",
            groves_folder=temp_dir / "ws" / "groves",
            workspace_path=temp_dir / "ws",
            config=WorkspaceConfig(name="ws"),
        )

        scoped = config.for_context(context)

        assert scoped.grove_folder == temp_dir / "ws" / ".grove"
        assert scoped.working_folder == temp_dir / "ws" / "groves"
        assert config.grove_folder == temp_dir / "store"

    def test_explicit_working_folder_wins(self, temp_dir):
        config = Config(grove_folder=temp_dir / "store", working_folder=temp_dir / "mine")
        context = WorkspaceContext(type="workspace", grove_folder=temp_dir / "ws" / ".grove",
                                   groves_folder=temp_dir / "ws" / "groves")

        assert config.for_context(context).working_folder == temp_dir / "mine"

    def test_to_dict(self, temp_dir):
        data = Config(grove_folder=temp_dir / "store").to_dict()

        assert data["grove_folder"] == str(temp_dir / "store")
        assert data["working_folder"] is None
