"""Local registry that packages build outputs into deployable artifacts."""

import hashlib
import os
import tarfile
import tempfile
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from fastly_deploy.builder.builder import Binary
from fastly_deploy.config.models import RegistryConfig
from fastly_deploy.config.parser import parse_section
from fastly_deploy.context import OperationContext
from fastly_deploy.utils.errors import ConfigInvalidError, WorkspaceError
from fastly_deploy.utils.logging import get_logger

logger = get_logger(__name__)


class Artifact(BaseModel):
    """A pushed, deployable package."""

    model_config = ConfigDict(frozen=True)

    name: str
    version: str
    location: str = Field(..., description="Path of the package archive")
    digest: str = Field(..., description="sha256 of the package archive")


class Registry:
    """Pushes binaries into a directory-backed registry."""

    def __init__(self, config: Optional[RegistryConfig] = None):
        self._config = config

    def config(self) -> Optional[RegistryConfig]:
        return self._config

    def config_set(self, data: Any) -> RegistryConfig:
        """Validate and store registry configuration.

        Raises:
            ConfigInvalidError: If the configuration is invalid
        """
        self._config = parse_section(RegistryConfig, data, "registry")
        return self._config

    def push(self, ctx: OperationContext, binary: Binary) -> Artifact:
        """Package a binary and store it in the registry.

        The archive holds the binary under ``<name>/`` and is written to
        ``<path>/<name>/<name>-<version>.tar.gz``. Pushing the same name and
        version again replaces the archive.

        Raises:
            ConfigInvalidError: If the registry is not configured
            WorkspaceError: If the binary is missing or the archive cannot be written
        """
        if self._config is None:
            raise ConfigInvalidError(
                "Registry is not configured",
                [{"loc": ["registry", "name"], "msg": "Field required"}],
            )
        config = self._config

        status = ctx.ui.status()
        try:
            status.update("Pushing binary to registry")

            source = Path(binary.location)
            if not source.is_file():
                raise WorkspaceError(f"Binary not found: {source}")

            target_dir = Path(config.path) / config.name
            target = target_dir / f"{config.name}-{config.version}.tar.gz"
            ctx.raise_if_cancelled("packaging")
            self._package(source, target, config.name)
            digest = self._digest(target)

            logger.info(f"Pushed {config.name}:{config.version} ({digest[:12]}) to {target}")
            status.step(f"Pushed {config.name}:{config.version}")

            return Artifact(
                name=config.name,
                version=config.version,
                location=str(target.resolve()),
                digest=digest,
            )
        finally:
            status.close()

    @staticmethod
    def _package(source: Path, target: Path, name: str) -> None:
        """Write the archive next to the target, then rename it into place."""
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(suffix='.tar.gz', dir=target.parent)
            os.close(fd)
            try:
                with tarfile.open(tmp_path, 'w:gz') as archive:
                    archive.add(source, arcname=f"{name}/{source.name}")
                Path(tmp_path).replace(target)
            finally:
                if os.path.exists(tmp_path):
                    os.unlink(tmp_path)
        except (OSError, tarfile.TarError) as e:
            raise WorkspaceError(f"Failed to package {source}: {e}", cause=e) from e

    @staticmethod
    def _digest(path: Path) -> str:
        sha = hashlib.sha256()
        with open(path, 'rb') as f:
            for chunk in iter(lambda: f.read(65536), b''):
                sha.update(chunk)
        return sha.hexdigest()
