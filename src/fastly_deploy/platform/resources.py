"""Fastly resource kinds declared by the platform."""

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from fastly_deploy.config.models import FastlySettings
from fastly_deploy.context import OperationContext
from fastly_deploy.resources.base import Resource
from fastly_deploy.resources.models import CategoryDisplayHint, HealthCheck, ResourceHealth
from fastly_deploy.utils.errors import ErrorContext, ResourceNotFoundError
from fastly_deploy.utils.fastly_client import FastlyClient
from fastly_deploy.utils.logging import get_logger

logger = get_logger(__name__)

SERVICE_COMMENT = "Managed by fastly-deploy"


class ServiceState(BaseModel):
    """Persisted state of a Fastly Compute service."""

    service_id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    version: int = Field(1, ge=1)


class BackendState(BaseModel):
    """Persisted state of a backend on a service version."""

    service_id: str = Field(..., min_length=1)
    version: int = Field(..., ge=1)
    name: str = Field(..., min_length=1)
    address: str
    port: int = 443


class DomainState(BaseModel):
    """Persisted state of a domain on a service version."""

    service_id: str = Field(..., min_length=1)
    version: int = Field(..., ge=1)
    name: str = Field(..., min_length=1)


class PackageState(BaseModel):
    """Persisted state of an uploaded Compute package."""

    service_id: str = Field(..., min_length=1)
    version: int = Field(..., ge=1)
    package_id: Optional[str] = None
    digest: Optional[str] = Field(None, description="sha256 of the uploaded archive")


def _service_version(result: Any, resource: str) -> tuple:
    """Read the service id and version that the service resource recorded."""
    service_id = getattr(result, 'id', None)
    version = getattr(result, 'version', None)
    if not service_id or not version:
        raise ResourceNotFoundError(
            f"No service recorded before creating {resource}",
            context=ErrorContext(resource_id=resource, operation='create'),
            suggestions=['Declare the service resource before resources that live on it'],
        )
    return service_id, version


def _latest_version(service: Dict[str, Any]) -> int:
    numbers = [v.get('number') for v in service.get('versions') or [] if v.get('number')]
    return max(numbers) if numbers else 1


def _active_version(details: Dict[str, Any]) -> Optional[int]:
    """Number of the active version in a service details response, if any."""
    active = details.get('active_version')
    if isinstance(active, dict):
        return active.get('number')
    for version in details.get('versions') or []:
        if version.get('active'):
            return version.get('number')
    return None


class ServiceResource(Resource):
    """The Fastly Compute service every other resource lives on."""

    kind = "fastly.service"
    category = CategoryDisplayHint.INSTANCE_MANAGER
    state_model = ServiceState

    def __init__(self, settings: FastlySettings, name: str = "service"):
        super().__init__(name)
        self.settings = settings

    def create(self, ctx: OperationContext, conn: FastlyClient, artifact: Any, result: Any) -> None:
        logger.info(f"Creating Fastly service: {self.settings.service_name}")
        service = conn.create_service(self.settings.service_name, 'compute', SERVICE_COMMENT)

        state = ServiceState(
            service_id=service['id'],
            name=service.get('name') or self.settings.service_name,
            version=_latest_version(service),
        )
        self.set_state(state)

        result.id = state.service_id
        result.name = state.name
        result.version = state.version

    def destroy(self, ctx: OperationContext, conn: FastlyClient) -> None:
        state: ServiceState = self.get_state()
        details = self._lookup(conn, state)
        service_id = details['id']
        active = _active_version(details)
        if active:
            logger.info(f"Deactivating version {active} of service {service_id}")
            conn.deactivate_version(service_id, active)

        conn.delete_service(service_id)
        logger.info(f"Deleted Fastly service: {state.name} ({service_id})")

    def status(self, ctx: OperationContext, conn: FastlyClient) -> HealthCheck:
        state: ServiceState = self.get_state()
        try:
            details = conn.get_service_details(state.service_id)
        except ResourceNotFoundError:
            return HealthCheck(health=ResourceHealth.MISSING, message="service not found")

        active = _active_version(details)
        if active:
            return HealthCheck(health=ResourceHealth.READY, message=f"version {active} is active")
        return HealthCheck(health=ResourceHealth.DOWN, message="no active version")

    @staticmethod
    def _lookup(conn: FastlyClient, state: ServiceState) -> Dict[str, Any]:
        """Fetch service details, by name when the recorded id is gone."""
        try:
            return conn.get_service_details(state.service_id)
        except ResourceNotFoundError:
            logger.debug(f"Service id {state.service_id} not found, looking up {state.name}")
        service = conn.find_service_by_name(state.name)
        return conn.get_service_details(service['id'])


class _VersionedResource(Resource):
    """Resource that lives on a single service version."""

    def _is_locked(self, conn: FastlyClient, service_id: str, version: int) -> bool:
        return bool(conn.get_version(service_id, version).get('locked'))


class BackendResource(_VersionedResource):
    """The origin the Compute service forwards to."""

    kind = "fastly.backend"
    category = CategoryDisplayHint.ROUTER
    state_model = BackendState

    def __init__(self, settings: FastlySettings, name: str = "backend"):
        super().__init__(name)
        self.settings = settings

    def create(self, ctx: OperationContext, conn: FastlyClient, artifact: Any, result: Any) -> None:
        service_id, version = _service_version(result, self.name)
        settings = self.settings

        logger.info(f"Creating backend {settings.backend_name} -> {settings.backend_address}:{settings.backend_port}")
        backend = conn.create_backend(
            service_id, version, settings.backend_name, settings.backend_address, settings.backend_port
        )
        self.set_state(BackendState(
            service_id=service_id,
            version=version,
            name=backend.get('name') or settings.backend_name,
            address=backend.get('address') or settings.backend_address,
            port=int(backend.get('port') or settings.backend_port),
        ))

    def destroy(self, ctx: OperationContext, conn: FastlyClient) -> None:
        state: BackendState = self.get_state()
        conn.get_backend(state.service_id, state.version, state.name)

        if self._is_locked(conn, state.service_id, state.version):
            logger.info(f"Version {state.version} is locked; backend {state.name} goes with the service")
            return
        conn.delete_backend(state.service_id, state.version, state.name)
        logger.info(f"Deleted backend: {state.name}")

    def status(self, ctx: OperationContext, conn: FastlyClient) -> HealthCheck:
        state: BackendState = self.get_state()
        try:
            backend = conn.get_backend(state.service_id, state.version, state.name)
        except ResourceNotFoundError:
            return HealthCheck(health=ResourceHealth.MISSING, message="backend not found")
        return HealthCheck(
            health=ResourceHealth.ALIVE,
            message=f"{backend.get('address', state.address)}:{backend.get('port', state.port)}",
        )


class DomainResource(_VersionedResource):
    """The public domain the service answers on."""

    kind = "fastly.domain"
    category = CategoryDisplayHint.ROUTER
    state_model = DomainState

    def __init__(self, settings: FastlySettings, name: str = "domain"):
        super().__init__(name)
        self.settings = settings

    def create(self, ctx: OperationContext, conn: FastlyClient, artifact: Any, result: Any) -> None:
        service_id, version = _service_version(result, self.name)
        logger.info(f"Creating domain: {self.settings.domain}")
        domain = conn.create_domain(service_id, version, self.settings.domain)

        state = DomainState(
            service_id=service_id,
            version=version,
            name=domain.get('name') or self.settings.domain,
        )
        self.set_state(state)
        result.url = f"https://{state.name}"

    def destroy(self, ctx: OperationContext, conn: FastlyClient) -> None:
        state: DomainState = self.get_state()
        conn.get_domain(state.service_id, state.version, state.name)

        if self._is_locked(conn, state.service_id, state.version):
            logger.info(f"Version {state.version} is locked; domain {state.name} goes with the service")
            return
        conn.delete_domain(state.service_id, state.version, state.name)
        logger.info(f"Deleted domain: {state.name}")

    def status(self, ctx: OperationContext, conn: FastlyClient) -> HealthCheck:
        state: DomainState = self.get_state()
        try:
            conn.get_domain(state.service_id, state.version, state.name)
        except ResourceNotFoundError:
            return HealthCheck(health=ResourceHealth.MISSING, message="domain not found")
        return HealthCheck(health=ResourceHealth.ALIVE, message=state.name)


class PackageResource(Resource):
    """The Compute package built from the artifact."""

    kind = "fastly.package"
    category = CategoryDisplayHint.FUNCTION
    state_model = PackageState

    def create(self, ctx: OperationContext, conn: FastlyClient, artifact: Any, result: Any) -> None:
        service_id, version = _service_version(result, self.name)

        ctx.raise_if_cancelled("uploading package")
        logger.info(f"Uploading package {artifact.location} to version {version}")
        package = conn.upload_package(service_id, version, artifact.location)

        metadata = package.get('metadata') or {}
        self.set_state(PackageState(
            service_id=service_id,
            version=version,
            package_id=package.get('id'),
            digest=metadata.get('hashsum') or getattr(artifact, 'digest', None),
        ))

    def destroy(self, ctx: OperationContext, conn: FastlyClient) -> None:
        # Packages cannot be deleted on their own; they are removed with the service.
        state: PackageState = self.get_state()
        conn.get_service_details(state.service_id)
        logger.debug(f"Package on version {state.version} is removed with service {state.service_id}")

    def status(self, ctx: OperationContext, conn: FastlyClient) -> HealthCheck:
        state: PackageState = self.get_state()
        try:
            package = conn.get_package(state.service_id, state.version)
        except ResourceNotFoundError:
            return HealthCheck(health=ResourceHealth.MISSING, message="package not found")

        metadata = package.get('metadata') or {}
        size = metadata.get('size')
        message = f"{metadata.get('name', 'package')} ({size} bytes)" if size else "package uploaded"
        return HealthCheck(health=ResourceHealth.READY, message=message)
