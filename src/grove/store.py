"""Generic JSON document store backed by pydantic models."""

import json
import logging
import os
import tempfile
from collections.abc import Callable
from pathlib import Path
from typing import Generic, TypeVar

from pydantic import BaseModel, ValidationError

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


def dump_model(data: BaseModel, indent: str | int = "\t") -> str:
    """Serialize a model the way every Grove document is written."""
    payload = data.model_dump(mode="json", by_alias=True, exclude_none=True)
    return json.dumps(payload, indent=indent, ensure_ascii=False)


class JsonStore(Generic[ModelT]):
    """A single JSON document with typed read/write/update.

    ``read()`` never raises for a missing or corrupt file: it logs and falls
    back to ``default_factory()``. ``load()`` does the same but returns None,
    for documents that have no sensible default.
    """

    def __init__(self,
                 path: Path | Callable[[], Path],
                 model: type[ModelT],
                 *,
                 label: str,
                 default_factory: Callable[[], ModelT] | None = None,
                 indent: str | int = "\t",
                 create_on_first_read: bool = True,
                 after_read: Callable[[ModelT, ModelT], ModelT] | None = None,
                 before_write: Callable[[ModelT], ModelT] | None = None,
                 silent_write_errors: bool = False):
        """Initialize the store.

        Args:
            path: Document path, or a callable returning it on each access
            model: Pydantic model describing the document
            label: Name used in log messages (e.g. "settings")
            default_factory: Builds the default document (defaults to ``model()``)
            indent: JSON indentation
            create_on_first_read: Persist the default when the file is missing
            after_read: Hook applied to parsed data, receives (data, defaults)
            before_write: Hook applied to data right before it is serialized
            silent_write_errors: Log write failures instead of raising
        """
        self._path = path
        self.model = model
        self.label = label
        self._default_factory = default_factory or model
        self.indent = indent
        self.create_on_first_read = create_on_first_read
        self.after_read = after_read
        self.before_write = before_write
        self.silent_write_errors = silent_write_errors

    @property
    def path(self) -> Path:
        return Path(self._path() if callable(self._path) else self._path)

    def defaults(self) -> ModelT:
        return self._default_factory()

    def exists(self) -> bool:
        return self.path.is_file()

    def load(self) -> ModelT | None:
        """Parse the document, or None if it is absent or unreadable."""
        path = self.path
        if not path.exists():
            return None

        try:
            data = self.model.model_validate_json(path.read_text(encoding="utf-8"))
        except (OSError, ValueError, ValidationError) as e:
            logger.warning(f"Error reading {self.label} from {path}: {e}")
            return None

        if self.after_read:
            data = self.after_read(data, self.defaults())
        return data

    def read(self) -> ModelT:
        """Parse the document, falling back to defaults."""
        if not self.path.exists():
            defaults = self.defaults()
            if self.create_on_first_read:
                self.write(defaults)
            return defaults

        data = self.load()
        return data if data is not None else self.defaults()

    def write(self, data: ModelT) -> None:
        """Write the document, creating parent directories on demand.

        The content goes to a sibling temporary file first and is moved into
        place, so readers never see a half-written document.
        """
        path = self.path
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            to_write = self.before_write(data) if self.before_write else data
            content = dump_model(to_write, self.indent)

            fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=path.parent)
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    handle.write(content)
                os.replace(tmp_name, path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            if self.silent_write_errors:
                logger.debug(f"Ignoring error writing {self.label}: {e}")
                return
            logger.error(f"Error writing {self.label} to {path}: {e}")
            raise

    def update(self, mutator: Callable[[ModelT], ModelT]) -> ModelT:
        """Read, apply ``mutator``, write and return the result."""
        updated = mutator(self.read())
        self.write(updated)
        return updated
