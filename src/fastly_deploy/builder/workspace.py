"""Copy a source tree into an isolated scratch workspace."""

import shutil
from pathlib import Path
from typing import Iterable, Optional, Union

from fastly_deploy.utils.errors import SourceNotADirectoryError, WorkspaceError
from fastly_deploy.utils.logging import get_logger

logger = get_logger(__name__)


def stage_workspace(
    source: Union[str, Path],
    destination: Union[str, Path],
    exclude: Iterable[str] = (),
    skip_paths: Optional[Iterable[Union[str, Path]]] = None
) -> Path:
    """Recursively copy ``source`` into ``destination``.

    Directories are recreated and every regular file is copied by content;
    symlinks are followed, never reproduced. The destination may already
    exist. A failure leaves the destination in an unspecified state.

    Args:
        source: Directory to copy
        destination: Directory to copy into
        exclude: Glob patterns (matched on names) to leave out
        skip_paths: Locations left out when they fall inside the source tree

    Returns:
        The destination path

    Raises:
        SourceNotADirectoryError: If source is not a directory
        WorkspaceError: If any read, write or copy fails
    """
    source = Path(source)
    destination = Path(destination)

    if not source.is_dir():
        raise SourceNotADirectoryError(f"{source} is not a directory")

    patterns = list(exclude)
    by_name = shutil.ignore_patterns(*patterns) if patterns else None
    skipped = {Path(p).resolve() for p in skip_paths or ()}

    def ignore(directory, names):
        ignored = set(by_name(directory, names)) if by_name else set()
        if skipped:
            ignored.update(n for n in names if (Path(directory) / n).resolve() in skipped)
        return ignored

    logger.debug(f"Staging {source} into {destination}")
    try:
        shutil.copytree(
            source,
            destination,
            symlinks=False,
            ignore=ignore,
            dirs_exist_ok=True,
        )
    except shutil.Error as e:
        # copytree collects per-file failures as (src, dst, reason) tuples
        failures = e.args[0] if e.args else []
        first = failures[0] if failures and isinstance(failures, list) else e
        raise WorkspaceError(
            f"Failed to copy {source} to {destination}: {first}",
            cause=e
        ) from e
    except OSError as e:
        raise WorkspaceError(
            f"Failed to copy {source} to {destination}: {e}",
            cause=e
        ) from e

    return destination
