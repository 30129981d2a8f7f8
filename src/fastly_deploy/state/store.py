"""JSON file store for the records handed back between host calls."""

import json
from pathlib import Path
from typing import Type, TypeVar

from pydantic import BaseModel, ValidationError

from fastly_deploy.utils.errors import StateLoadError, WorkspaceError
from fastly_deploy.utils.logging import get_logger

logger = get_logger(__name__)

RecordT = TypeVar('RecordT', bound=BaseModel)


class RecordStore:
    """Loads and saves one record (binary, artifact, deployment or release)."""

    def __init__(self, path: str):
        """
        Initialize RecordStore.

        Args:
            path: Path to the record file
        """
        self.path = Path(path)

    def exists(self) -> bool:
        return self.path.exists()

    def load(self, model: Type[RecordT]) -> RecordT:
        """
        Load a record from file.

        Args:
            model: Record model to validate the file against

        Raises:
            StateLoadError: If the file is missing, not JSON, or not a valid record
        """
        if not self.path.exists():
            raise StateLoadError(f"Record file not found: {self.path}")

        try:
            with open(self.path, "r") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise StateLoadError(f"Failed to parse record file {self.path}: {e}", cause=e) from e
        except OSError as e:
            raise StateLoadError(f"Failed to read record file {self.path}: {e}", cause=e) from e

        try:
            record = model.model_validate(data)
        except ValidationError as e:
            raise StateLoadError(
                f"Record file {self.path} is not a valid {model.__name__}: {e}", cause=e
            ) from e

        logger.debug(f"Loaded {model.__name__} from {self.path}")
        return record

    def save(self, record: BaseModel) -> None:
        """
        Save a record to file.

        Raises:
            WorkspaceError: If the record cannot be written
        """
        self.path.parent.mkdir(parents=True, exist_ok=True)

        try:
            # Write to temporary file first
            temp_path = self.path.with_suffix(self.path.suffix + ".tmp")
            with open(temp_path, "w") as f:
                f.write(record.model_dump_json(indent=2))

            # Atomic rename
            temp_path.replace(self.path)
        except OSError as e:
            raise WorkspaceError(f"Failed to save record file {self.path}: {e}", cause=e) from e

        logger.debug(f"Saved {type(record).__name__} to {self.path}")
