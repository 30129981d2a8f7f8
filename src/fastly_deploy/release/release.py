"""Release manager: activates a deployment's service version."""

from typing import Any, Optional

from pydantic import BaseModel, Field

from fastly_deploy.config.models import FastlySettings, ReleaseConfig
from fastly_deploy.config.parser import parse_section
from fastly_deploy.context import OperationContext
from fastly_deploy.platform.platform import (
    ClientFactory,
    Deployment,
    default_client_factory,
    require_settings,
)
from fastly_deploy.resources.base import Resource
from fastly_deploy.resources.manager import ResourceManager
from fastly_deploy.resources.models import (
    CategoryDisplayHint,
    DeclaredResources,
    HealthCheck,
    ResourceHealth,
    ResourceState,
    StatusReport,
)
from fastly_deploy.utils.errors import ErrorContext, ResourceNotFoundError, StateLoadError
from fastly_deploy.utils.fastly_client import FastlyClient
from fastly_deploy.utils.logging import LogContext, get_logger

logger = get_logger(__name__)


class Release(BaseModel):
    """Record of one release, persisted by the host between calls."""

    id: str = Field("", description="Fastly service id")
    name: str = ""
    version: int = Field(0, ge=0)
    url: str = ""
    active: bool = False
    resource_state: Optional[ResourceState] = None


class ReleaseState(BaseModel):
    """Persisted state of a release."""

    service_id: str = Field(..., min_length=1)
    version: int = Field(..., ge=1)
    activated: bool = Field(False, description="Whether this release activated the version")


class ReleaseResource(Resource):
    """Activation of one service version."""

    kind = "fastly.release"
    category = CategoryDisplayHint.ROUTER
    state_model = ReleaseState

    def __init__(self, settings: FastlySettings, active: bool = False, name: str = "release"):
        super().__init__(name)
        self.settings = settings
        self.active = active

    def create(self, ctx: OperationContext, conn: FastlyClient, artifact: Any, result: Any) -> None:
        deployment: Deployment = artifact
        if not deployment.id or not deployment.version:
            raise StateLoadError(
                "Deployment has no service id or version to release",
                context=ErrorContext(resource_id=self.name, operation='create'),
                suggestions=['Release the record written by a successful deploy'],
            )

        activated = False
        if self.active:
            ctx.raise_if_cancelled("activating version")
            logger.info(f"Activating version {deployment.version} of service {deployment.id}")
            conn.activate_version(deployment.id, deployment.version)
            activated = True
        else:
            logger.info(f"Release is inactive; version {deployment.version} left staged")

        self.set_state(ReleaseState(
            service_id=deployment.id,
            version=deployment.version,
            activated=activated,
        ))

        result.id = deployment.id
        result.name = deployment.name
        result.version = deployment.version
        result.active = activated
        result.url = f"https://{self.settings.domain}" if self.settings.domain else deployment.url

    def destroy(self, ctx: OperationContext, conn: FastlyClient) -> None:
        state: ReleaseState = self.get_state()
        version = conn.get_version(state.service_id, state.version)

        if not state.activated:
            logger.info(f"Release did not activate version {state.version}; nothing to undo")
            return
        if not version.get('active'):
            logger.info(f"Version {state.version} is already inactive")
            return
        conn.deactivate_version(state.service_id, state.version)
        logger.info(f"Deactivated version {state.version} of service {state.service_id}")

    def status(self, ctx: OperationContext, conn: FastlyClient) -> HealthCheck:
        state: ReleaseState = self.get_state()
        try:
            version = conn.get_version(state.service_id, state.version)
        except ResourceNotFoundError:
            return HealthCheck(health=ResourceHealth.MISSING, message="version not found")

        if version.get('active'):
            return HealthCheck(health=ResourceHealth.READY, message=f"version {state.version} is active")
        return HealthCheck(health=ResourceHealth.DOWN, message=f"version {state.version} is not active")


class ReleaseManager:
    """Releases deployments by activating their service version."""

    def __init__(
        self,
        config: Optional[ReleaseConfig] = None,
        settings: Optional[FastlySettings] = None,
        client_factory: Optional[ClientFactory] = None
    ):
        self._config = config
        self.settings = settings
        self.client_factory = client_factory or default_client_factory

    def config(self) -> Optional[ReleaseConfig]:
        return self._config

    def config_set(self, data: Any) -> ReleaseConfig:
        """Validate and store release configuration.

        Raises:
            ConfigInvalidError: If the configuration is invalid
        """
        self._config = parse_section(ReleaseConfig, data, "release")
        return self._config

    def resource_manager(self, declared: Optional[DeclaredResources] = None) -> ResourceManager:
        settings = require_settings(self.settings)
        active = self._config.active if self._config is not None else False
        return ResourceManager(
            [ReleaseResource(settings, active=active)],
            value_provider=lambda: self.client_factory(settings),
            declared_resources=declared,
        )

    def release(
        self,
        ctx: OperationContext,
        deployment: Deployment,
        declared: Optional[DeclaredResources] = None
    ) -> Release:
        """Release a deployment.

        Raises:
            DeploymentError: If the version cannot be activated
        """
        manager = self.resource_manager(declared)
        release = Release()

        status = ctx.ui.status()
        try:
            status.update(f"Releasing version {deployment.version} of {deployment.name or deployment.id}")
            with LogContext(logger, operation='release'):
                manager.create_all(ctx, deployment, release)
            status.step("Version activated" if release.active else "Release recorded")
        except Exception:
            status.step("Release failed", success=False)
            raise
        finally:
            status.close()

        release.resource_state = manager.state()
        return release

    def status(self, ctx: OperationContext, release: Release) -> StatusReport:
        manager = self.resource_manager()
        self._restore(manager, release)
        return manager.status_report(ctx)

    def destroy(self, ctx: OperationContext, release: Release) -> None:
        """Undo a release.

        Raises:
            DestroyFailedError: If the version could not be deactivated
        """
        manager = self.resource_manager()
        self._restore(manager, release)

        status = ctx.ui.status()
        try:
            status.update(f"Destroying release of version {release.version}")
            with LogContext(logger, operation='destroy'):
                manager.destroy_all(ctx)
            status.step("Release destroyed")
        except Exception:
            status.step("Release destroy failed", success=False)
            raise
        finally:
            status.close()

    @staticmethod
    def _restore(manager: ResourceManager, release: Release) -> None:
        """Load persisted state, seeding it from the record for older releases."""
        if release.resource_state is not None:
            manager.load_state(release.resource_state)
            return
        if not release.id or not release.version:
            logger.warning("Release has no resource state and no version; nothing to restore")
            return

        logger.info(f"Release has no resource state, seeding version {release.version}")
        manager.resource("release").set_state(ReleaseState(
            service_id=release.id,
            version=release.version,
            activated=release.active,
        ))
