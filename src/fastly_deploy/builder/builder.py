"""Build pipeline: stage the source tree, install dependencies, build."""

import shutil
import tempfile
import uuid
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from fastly_deploy.config.models import STATE_DIR, BuildConfig
from fastly_deploy.config.parser import parse_section
from fastly_deploy.context import OperationContext
from fastly_deploy.utils.errors import BuildFailedError, CommandFailedError, ErrorContext, WorkspaceError
from fastly_deploy.utils.logging import LogContext, get_logger
from .process import run_command
from .workspace import stage_workspace

logger = get_logger(__name__)

SCRATCH_PREFIX = "fastly-deploy-build-"


class Binary(BaseModel):
    """Local build output produced by the build pipeline."""

    model_config = ConfigDict(frozen=True)

    location: str = Field(..., description="Path of the build output")
    build_id: str = Field(..., description="Unique id of the build that produced it")
    source_directory: str = Field(..., description="Source tree the build ran on")


class Builder:
    """Builds an application from a source directory."""

    def __init__(self, config: Optional[BuildConfig] = None):
        self._config = config or BuildConfig()

    def config(self) -> BuildConfig:
        return self._config

    def config_set(self, data: Any) -> BuildConfig:
        """Validate and store build configuration.

        Raises:
            ConfigInvalidError: If the configuration is invalid
        """
        self._config = parse_section(BuildConfig, data, "build")
        return self._config

    def build(self, ctx: OperationContext) -> Binary:
        """Run the build pipeline.

        The source tree is copied into a fresh scratch directory so the
        build tooling never touches the original. The tool's own state
        directory and earlier build outputs are left out of the copy. The
        scratch directory is removed on every exit path; the build output
        is copied to ``output_dir`` first so the returned Binary stays valid.

        Args:
            ctx: Operation context

        Returns:
            Binary pointing at the durable build output

        Raises:
            SourceNotADirectoryError: If the source directory is not a directory
            WorkspaceError: If staging or copying the output fails
            BuildFailedError: If the install or build stage fails
        """
        config = self._config
        source = Path(config.directory or ".").resolve()
        build_id = uuid.uuid4().hex[:12]

        status = ctx.ui.status()
        try:
            status.update("Building application")

            with tempfile.TemporaryDirectory(prefix=SCRATCH_PREFIX) as scratch:
                scratch_dir = Path(scratch)
                logger.info(f"Build {build_id}: staging {source} into {scratch_dir}")

                ctx.raise_if_cancelled("staging")
                stage_workspace(
                    source,
                    scratch_dir,
                    config.exclude,
                    skip_paths=[STATE_DIR, config.output_dir],
                )
                status.step(f"Copied source from {source}")

                self._run_stage("install", config.install_command, scratch_dir, ctx)
                status.step("Installed dependencies")

                self._run_stage("build", config.build_command, scratch_dir, ctx)
                status.step("Built application")

                output = scratch_dir / config.output_path
                if not output.is_file():
                    raise BuildFailedError(
                        f"Build finished but produced no {config.output_path}",
                        stage="build",
                        context=ErrorContext(operation="build")
                    )

                binary_path = self._persist_output(output, build_id)

            status.update("Application built")
            logger.info(f"Build {build_id} complete: {binary_path}")
            return Binary(
                location=str(binary_path),
                build_id=build_id,
                source_directory=str(source),
            )
        finally:
            status.close()

    def _run_stage(self, stage: str, cmd: list, cwd: Path, ctx: OperationContext) -> None:
        """Run one build stage, tagging command failures with the stage."""
        ctx.raise_if_cancelled(stage)
        with LogContext(logger, stage=stage):
            logger.info(f"Running {stage} stage: {' '.join(cmd)}")
            try:
                run_command(cmd, cwd, ctx)
            except CommandFailedError as e:
                raise BuildFailedError(
                    f"Build stage '{stage}' failed: {e.message}",
                    stage=stage,
                    context=ErrorContext(operation=stage),
                    cause=e,
                    suggestions=[f"Run '{' '.join(cmd)}' in {self._config.directory or '.'} to reproduce"]
                ) from e

    def _persist_output(self, output: Path, build_id: str) -> Path:
        """Copy the build output out of the scratch directory."""
        destination = Path(self._config.output_dir).resolve() / build_id / self._config.output_path
        try:
            destination.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(output, destination)
        except OSError as e:
            raise WorkspaceError(
                f"Failed to keep build output {output}: {e}",
                cause=e
            ) from e
        return destination
