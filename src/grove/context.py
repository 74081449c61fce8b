"""CONTEXT.md written into every new grove folder."""

import datetime
from collections.abc import Sequence
from pathlib import Path

from .models import Repository

CONTEXT_FILENAME = "CONTEXT.md"


class ContextWriter:
    """Writes the human-readable description of a grove."""

    def render(self, grove_name: str, repositories: Sequence[Repository],
               created_at: datetime.datetime) -> str:
        lines = [
            f"# {grove_name}",
            "",
            f"Created: {created_at.isoformat()}",
            "",
            "## Purpose",
            "",
            "<!-- Describe what this grove is for -->",
            "",
            "## Repositories",
            "",
        ]
        seen = set()
        for repo in repositories:
            if repo.path in seen:
                continue
            seen.add(repo.path)
            lines.append(f"- {repo.name}: {repo.path}")
        lines += ["", "## Notes", "", "<!-- Add any additional context here -->", ""]
        return "\n".join(lines)

    def write(self, grove_path: str | Path, grove_name: str,
              repositories: Sequence[Repository],
              created_at: datetime.datetime) -> Path:
        """Write CONTEXT.md, listing each repository once."""
        path = Path(grove_path) / CONTEXT_FILENAME
        path.write_text(self.render(grove_name, repositories, created_at), encoding="utf-8")
        return path
