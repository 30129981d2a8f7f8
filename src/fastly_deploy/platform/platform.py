"""Platform: deploys an artifact as a set of Fastly resources."""

from typing import Any, Callable, List, Optional

from pydantic import BaseModel, Field

from fastly_deploy.config.models import DeployConfig, FastlySettings
from fastly_deploy.config.parser import parse_section
from fastly_deploy.context import OperationContext
from fastly_deploy.registry.registry import Artifact
from fastly_deploy.resources.base import Resource
from fastly_deploy.resources.manager import ResourceManager
from fastly_deploy.resources.models import DeclaredResources, ResourceState, StatusReport
from fastly_deploy.utils.errors import ConfigInvalidError, DeploymentError
from fastly_deploy.utils.fastly_client import FastlyClient
from fastly_deploy.utils.logging import LogContext, get_logger
from .resources import (
    BackendResource,
    DomainResource,
    PackageResource,
    ServiceResource,
    ServiceState,
)

logger = get_logger(__name__)

ClientFactory = Callable[[FastlySettings], Any]

# Key under which a failed deploy attaches the partially created record
PARTIAL_DEPLOYMENT = "partial_deployment"


def default_client_factory(settings: FastlySettings) -> FastlyClient:
    return FastlyClient(settings.api_token, settings.api_url)


def require_settings(settings: Optional[FastlySettings]) -> FastlySettings:
    """Return settings or fail the way a missing environment would."""
    if settings is None:
        raise ConfigInvalidError(
            "Fastly settings are not configured",
            [{"loc": ["env", var], "msg": "Field required"}
             for var in ("FASTLY_API_TOKEN", "FASTLY_SERVICE_NAME")],
        )
    return settings


class Deployment(BaseModel):
    """Record of one deployment, persisted by the host between calls."""

    id: str = Field("", description="Fastly service id")
    name: str = ""
    version: int = Field(0, ge=0, description="Service version the deployment lives on")
    url: str = ""
    resource_state: Optional[ResourceState] = None


class Platform:
    """Deploys artifacts to Fastly Compute.

    A deployment is the ordered resource set service, backend, domain and
    package. The backend and domain are only declared when the settings
    name them or, for status and destroy, when the persisted state holds
    them, so the state can always be matched back by resource name.
    """

    def __init__(
        self,
        config: Optional[DeployConfig] = None,
        settings: Optional[FastlySettings] = None,
        client_factory: Optional[ClientFactory] = None
    ):
        """Initialize platform.

        Args:
            config: Deploy configuration
            settings: Fastly settings, resolved once by the caller
            client_factory: Builds the client shared by every resource
        """
        self._config = config
        self.settings = settings
        self.client_factory = client_factory or default_client_factory

    def config(self) -> Optional[DeployConfig]:
        return self._config

    def config_set(self, data: Any) -> DeployConfig:
        """Validate and store deploy configuration.

        Raises:
            ConfigInvalidError: If the configuration is invalid
        """
        self._config = parse_section(DeployConfig, data, "deploy")
        return self._config

    def resource_manager(
        self,
        declared: Optional[DeclaredResources] = None,
        recorded: Optional[ResourceState] = None
    ) -> ResourceManager:
        """Build a manager over a fresh copy of the declared resources.

        Args:
            declared: Collects the resources as they are created
            recorded: State of an existing deployment; optional resources it
                holds are declared even when the settings no longer name them
        """
        settings = require_settings(self.settings)
        return ResourceManager(
            self._declare_resources(recorded),
            value_provider=lambda: self.client_factory(settings),
            declared_resources=declared,
        )

    def _declare_resources(self, recorded: Optional[ResourceState] = None) -> List[Resource]:
        settings = require_settings(self.settings)
        resources: List[Resource] = [ServiceResource(settings)]
        if settings.backend_name or (recorded is not None and recorded.get("backend")):
            resources.append(BackendResource(settings))
        if settings.domain or (recorded is not None and recorded.get("domain")):
            resources.append(DomainResource(settings))
        resources.append(PackageResource("package"))
        return resources

    def deploy(
        self,
        ctx: OperationContext,
        artifact: Artifact,
        declared: Optional[DeclaredResources] = None
    ) -> Deployment:
        """Create every declared resource for the artifact.

        Raises:
            ConfigInvalidError: If the platform is not configured
            DeploymentError: If a resource fails to be created
        """
        config = self._require_config()
        manager = self.resource_manager(declared)
        deployment = Deployment()

        status = ctx.ui.status()
        try:
            status.update(f"Deploying {artifact.name}:{artifact.version} ({config.region})")
            with LogContext(logger, operation='deploy'):
                manager.create_all(ctx, artifact, deployment)
            status.step(f"Deployed {len(manager.state())} resource(s)")
        except DeploymentError as e:
            status.step("Deployment failed", success=False)
            # Keep what was created so it can still be inspected and destroyed
            deployment.resource_state = manager.state()
            info = dict(e.context.additional_info or {})
            info[PARTIAL_DEPLOYMENT] = deployment.model_dump(mode="json")
            e.context.additional_info = info
            raise
        finally:
            status.close()

        deployment.resource_state = manager.state()
        logger.info(f"Deployment complete: service {deployment.id} version {deployment.version}")
        return deployment

    def status(self, ctx: OperationContext, deployment: Deployment) -> StatusReport:
        """Report the health of a deployment's resources.

        Raises:
            StateLoadError: If the recorded state does not match the resources
        """
        manager = self.resource_manager(recorded=deployment.resource_state)
        self._restore(manager, deployment)
        return manager.status_report(ctx)

    def destroy(self, ctx: OperationContext, deployment: Deployment) -> None:
        """Destroy a deployment's resources.

        Raises:
            StateLoadError: If the recorded state does not match the resources
            DestroyFailedError: If any resource failed to be destroyed
        """
        manager = self.resource_manager(recorded=deployment.resource_state)
        self._restore(manager, deployment)

        status = ctx.ui.status()
        try:
            status.update(f"Destroying deployment {deployment.id or deployment.name}")
            with LogContext(logger, operation='destroy'):
                manager.destroy_all(ctx)
            status.step("Deployment destroyed")
        except Exception:
            status.step("Destroy failed", success=False)
            raise
        finally:
            status.close()

    def _restore(self, manager: ResourceManager, deployment: Deployment) -> None:
        """Load persisted state, seeding the service for older records."""
        if deployment.resource_state is not None:
            manager.load_state(deployment.resource_state)
            return

        settings = require_settings(self.settings)
        service_id = deployment.id or settings.service_id
        if not service_id:
            logger.warning("Deployment has no resource state and no service id; nothing to restore")
            return

        logger.info(f"Deployment has no resource state, seeding service {service_id}")
        manager.resource("service").set_state(ServiceState(
            service_id=service_id,
            name=deployment.name or settings.service_name,
            version=deployment.version or 1,
        ))

    def _require_config(self) -> DeployConfig:
        if self._config is None:
            raise ConfigInvalidError(
                "Platform is not configured",
                [{"loc": ["deploy", "region"], "msg": "Field required"}],
            )
        return self._config
