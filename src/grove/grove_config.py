"""Layered repository configuration (.grove.json / .grove.local.json).

A selection's configuration comes from up to four layers, shallowest first::

    <repo>/.grove.json
    <repo>/.grove.local.json
    <repo>/<project>/.grove.json
    <repo>/<project>/.grove.local.json

Each field has exactly one merge strategy (see ``FIELD_STRATEGIES``). Copy
patterns and init actions are merged per level, because root patterns are
relative to the repository root and project patterns to the project folder.
"""

import json
import logging
from collections.abc import Sequence
from enum import Enum
from pathlib import Path

from pydantic import ValidationError

from .models import (
    FileCopyPattern,
    GroveRepoConfig,
    IDEConfig,
    MergedGroveConfig,
    pattern_text,
)
from .naming import (
    DEFAULT_BRANCH_TEMPLATE,
    build_branch_name,
    validate_branch_name_template,
)
from .store import dump_model

logger = logging.getLogger(__name__)

CONFIG_FILENAME = ".grove.json"
LOCAL_CONFIG_FILENAME = ".grove.local.json"


class MergeStrategy(str, Enum):
    """How a later layer combines with earlier ones."""
    REPLACE = "replace"
    UNION = "union"
    CONCATENATE = "concatenate"


FIELD_STRATEGIES: dict[str, MergeStrategy] = {
    "branch_name_template": MergeStrategy.REPLACE,
    "ide": MergeStrategy.REPLACE,
    "file_copy_patterns": MergeStrategy.UNION,
    "init_actions": MergeStrategy.CONCATENATE,
}


def union_patterns(*groups: Sequence[FileCopyPattern]) -> list[FileCopyPattern]:
    """Order-preserving union keyed by glob text; first occurrence wins."""
    seen: set[str] = set()
    merged: list[FileCopyPattern] = []
    for group in groups:
        for entry in group:
            key = pattern_text(entry)
            if key not in seen:
                seen.add(key)
                merged.append(entry)
    return merged


def _is_unset(value) -> bool:
    return value is None or value == ""


def merge_layers(layers: Sequence[GroveRepoConfig]) -> GroveRepoConfig:
    """Merge config layers, shallowest first, using ``FIELD_STRATEGIES``."""
    merged: dict = {}
    for layer in layers:
        for field, strategy in FIELD_STRATEGIES.items():
            value = getattr(layer, field)
            if _is_unset(value):
                continue
            if field not in merged or strategy is MergeStrategy.REPLACE:
                merged[field] = list(value) if isinstance(value, list) else value
            elif strategy is MergeStrategy.UNION:
                merged[field] = union_patterns(merged[field], value)
            else:
                merged[field] = [*merged[field], *value]
    return GroveRepoConfig(**merged)


class GroveConfigResolver:
    """Reads and merges grove configuration for repository selections."""

    def __init__(self, default_branch_template: str = DEFAULT_BRANCH_TEMPLATE):
        self.default_branch_template = default_branch_template

    def read_config_file(self, path: Path) -> GroveRepoConfig:
        """Read one config file; missing or invalid files yield an empty config."""
        if not path.is_file():
            return GroveRepoConfig()
        try:
            return GroveRepoConfig.model_validate_json(path.read_text(encoding="utf-8"))
        except (OSError, ValueError, ValidationError) as e:
            logger.warning(f"Ignoring invalid grove config {path}: {e}")
            return GroveRepoConfig()

    def read_layers(self, directory: str | Path) -> tuple[GroveRepoConfig, GroveRepoConfig]:
        """The (shared, local) config pair of one directory."""
        directory = Path(directory)
        return (self.read_config_file(directory / CONFIG_FILENAME),
                self.read_config_file(directory / LOCAL_CONFIG_FILENAME))

    def read_level(self, directory: str | Path) -> GroveRepoConfig:
        """One directory's .grove.json with its .grove.local.json applied."""
        return merge_layers(self.read_layers(directory))

    def resolve(self, repository_path: str | Path,
                project_path: str | None = None) -> MergedGroveConfig:
        """Merge the configuration that applies to a repository selection."""
        repository_path = Path(repository_path)
        root_layers = self.read_layers(repository_path)
        project_layers: tuple[GroveRepoConfig, ...] = ()
        if project_path:
            project_layers = self.read_layers(repository_path / project_path)

        root = merge_layers(root_layers)
        project = merge_layers(project_layers)
        overall = merge_layers([*root_layers, *project_layers])

        return MergedGroveConfig(
            branch_name_template=overall.branch_name_template,
            root_file_copy_patterns=root.file_copy_patterns or [],
            project_file_copy_patterns=project.file_copy_patterns or [],
            root_init_actions=root.init_actions or [],
            project_init_actions=project.init_actions or [],
            ide=overall.ide,
        )

    def branch_template_for(self, merged: MergedGroveConfig, source: str = "") -> str:
        """The usable branch template, falling back to the default."""
        template = merged.branch_name_template
        if not template:
            return self.default_branch_template
        if not validate_branch_name_template(template):
            logger.warning(
                f'Branch template "{template}" {("in " + source + " ") if source else ""}'
                f"does not contain ${{GROVE_NAME}}. Using default."
            )
            return self.default_branch_template
        return template

    def get_branch_name_for_selection(self, repository_path: str | Path, grove_name: str,
                                      project_path: str | None = None) -> str:
        """Branch name for a selection given a normalized grove name."""
        merged = self.resolve(repository_path, project_path)
        template = self.branch_template_for(merged, str(repository_path))
        return build_branch_name(template, grove_name, project_path)

    @staticmethod
    def is_ide_reference(ide) -> bool:
        return isinstance(ide, str) and ide.startswith("@")

    @staticmethod
    def parse_ide_reference(reference: str) -> str:
        return reference[1:]

    def get_ide_config_for_selection(self, repository_path: str | Path,
                                     project_path: str | None = None) -> str | IDEConfig | None:
        """IDE type name for ``@type`` references, or the inline IDE config."""
        ide = self.resolve(repository_path, project_path).ide
        if ide is None:
            return None
        if self.is_ide_reference(ide):
            return self.parse_ide_reference(ide)
        if isinstance(ide, str):
            logger.warning(f'Ignoring IDE setting "{ide}": references must start with "@"')
            return None
        return ide

    def write_config(self, directory: str | Path, config: GroveRepoConfig,
                     local: bool = False) -> Path:
        """Write a config file (.grove.json, or .grove.local.json if ``local``)."""
        path = Path(directory) / (LOCAL_CONFIG_FILENAME if local else CONFIG_FILENAME)
        path.write_text(dump_model(config, indent=2) + "\n", encoding="utf-8")
        return path

    def projects_with_config(self, repository_path: str | Path) -> list[str]:
        """Top-level project folders that carry their own .grove.json."""
        repository_path = Path(repository_path)
        if not repository_path.is_dir():
            return []
        return sorted(
            child.name for child in repository_path.iterdir()
            if child.is_dir() and (child / CONFIG_FILENAME).is_file()
        )


def describe_config(merged: MergedGroveConfig) -> str:
    """Pretty JSON of a merged config, used by the CLI."""
    return json.dumps(merged.model_dump(mode="json", by_alias=True, exclude_none=True), indent=2)
