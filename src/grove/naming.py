"""Name normalization and identifier generation for groves, worktrees and branches."""

import base64
import hashlib
import re
from collections.abc import Collection

GROVE_NAME_PLACEHOLDER = "${GROVE_NAME}"
DEFAULT_BRANCH_TEMPLATE = f"grove/{GROVE_NAME_PLACEHOLDER}"
IDENTIFIER_LENGTH = 5
MAX_NAME_LENGTH = 40


def slugify(name: str, max_length: int = MAX_NAME_LENGTH, fallback: str = "grove") -> str:
    """Reduce a name to lowercase letters, digits and single hyphens.

    Args:
        name: Human-readable name
        max_length: Maximum slug length
        fallback: Used when nothing survives normalization

    Returns:
        Slug safe for folder names and git branch names
    """
    slug = name.lower()
    slug = re.sub(r"[\s_]+", "-", slug)
    slug = re.sub(r"[^a-z0-9-]", "", slug)
    slug = re.sub(r"-+", "-", slug).strip("-")

    if len(slug) > max_length:
        slug = slug[:max_length].rstrip("-")

    return slug or fallback


def _hash_identifier(value: str) -> str:
    digest = hashlib.sha256(value.encode("utf-8")).digest()
    return base64.urlsafe_b64encode(digest).decode("ascii")[:IDENTIFIER_LENGTH].lower()


def generate_grove_identifier(name: str, existing: Collection[str] = ()) -> str:
    """Derive a short stable identifier from a grove name.

    The identifier is deterministic for a given name. When it collides with
    one in ``existing`` the name is re-hashed with a counter until it does not.
    """
    identifier = _hash_identifier(name)
    counter = 1
    while identifier in existing:
        identifier = _hash_identifier(f"{name}#{counter}")
        counter += 1
    return identifier


def normalize_grove_name(name: str, identifier: str) -> str:
    """Folder name for a grove: ``<slug>-<identifier>``."""
    return f"{slugify(name)}-{identifier}"


def split_grove_folder_name(folder_name: str) -> tuple[str, str]:
    """Split a grove folder name into (display slug, identifier)."""
    cut = IDENTIFIER_LENGTH + 1
    if len(folder_name) > cut and folder_name[-cut] == "-":
        return folder_name[:-cut], folder_name[-IDENTIFIER_LENGTH:]
    return folder_name, ""


def validate_branch_name_template(template: str) -> bool:
    return GROVE_NAME_PLACEHOLDER in template


def apply_branch_name_template(template: str, grove_name: str) -> str:
    """Substitute every ``${GROVE_NAME}`` with an already normalized name."""
    return template.replace(GROVE_NAME_PLACEHOLDER, grove_name)


def build_branch_name(template: str, grove_name: str, project_path: str | None = None) -> str:
    """Branch for a selection: template output plus ``-<project>``, lowercased."""
    branch = apply_branch_name_template(template, grove_name)
    if project_path:
        branch = f"{branch}-{project_path}"
    return branch.lower()


def worktree_folder_name(repository_name: str, project_path: str | None, identifier: str) -> str:
    """Folder name for a worktree created with a grove."""
    base = f"{repository_name}-{project_path}" if project_path else repository_name
    base = re.sub(r"[\\/]+", "-", base.lower())
    return f"{base}-{identifier}" if identifier else base


def unique_name(base: str, taken: set[str]) -> str:
    """Return ``base`` or ``base-N``, and reserve it in ``taken``."""
    name = base
    counter = 1
    while name in taken:
        name = f"{base}-{counter}"
        counter += 1
    taken.add(name)
    return name
