"""Exception hierarchy for Grove."""


class GroveError(Exception):
    """Base class for all Grove errors."""


class GroveFolderExistsError(GroveError, ValueError):
    """Raised when a grove folder already exists at the target path."""

    def __init__(self, path):
        super().__init__(f"Grove folder already exists: {path}")
        self.path = path


class GroveNotFoundError(GroveError, ValueError):
    """Raised when a grove id is not present in the index."""

    def __init__(self, grove_id: str):
        super().__init__(f"Grove not found: {grove_id}")
        self.grove_id = grove_id


class GroveMetadataNotFoundError(GroveError, ValueError):
    """Raised when a grove folder has no readable grove.json."""

    def __init__(self, path):
        super().__init__(f"Grove metadata not found: {path}")
        self.path = path


class RepositoryNotFoundError(GroveError, ValueError):
    """Raised when a repository is not registered."""


class RepositoryAlreadyRegisteredError(GroveError, ValueError):
    """Raised when registering a repository path twice."""


class InvalidRepositoryError(GroveError, ValueError):
    """Raised when a path is not a usable git repository."""


class DuplicateWorktreeError(GroveError, ValueError):
    """Raised when a worktree name collides with one already in the grove."""


class WorktreeCreationError(GroveError, RuntimeError):
    """Raised when git fails to create a worktree."""


class GroveCreationError(GroveError):
    """Raised when a grove could not be created with any of its worktrees."""

    def __init__(self, errors: list[str]):
        super().__init__("Failed to create any worktrees:\n" + "\n".join(errors))
        self.errors = errors


class PartialGroveError(GroveError):
    """Raised on demand when a grove was created but some selections failed."""

    def __init__(self, created: int, errors: list[str]):
        super().__init__(
            f"Grove created with {created} worktree(s), but {len(errors)} failed:\n"
            + "\n".join(errors)
        )
        self.created = created
        self.errors = errors
