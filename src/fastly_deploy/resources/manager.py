"""Resource manager: ordered create, destroy, status and state replay."""

from typing import Any, Callable, Dict, Iterable, List, Optional, Union

from pydantic import ValidationError

from fastly_deploy.context import OperationContext
from fastly_deploy.utils.errors import (
    DeploymentError,
    DestroyFailedError,
    ErrorContext,
    OperationCancelledError,
    StateLoadError,
    error_handler,
)
from fastly_deploy.utils.logging import LogContext, get_logger
from .base import Resource
from .models import (
    DeclaredResource,
    DeclaredResources,
    HealthCheck,
    ResourceHealth,
    ResourceState,
    ResourceStateEntry,
    ResourceStatus,
    StatusReport,
)

logger = get_logger(__name__)

# Produces the connection value shared by every resource of a manager
ValueProvider = Callable[[], Any]

_UNSET = object()


class ResourceManager:
    """Owns an ordered set of resources and drives them as a unit.

    Resources are created in declared order and destroyed in reverse
    declared order. Nothing is rolled back automatically: a failure leaves
    the already-applied resources in place, visible through
    ``status_report`` and ``state``.
    """

    def __init__(
        self,
        resources: Iterable[Resource],
        value_provider: Optional[ValueProvider] = None,
        declared_resources: Optional[DeclaredResources] = None
    ):
        """Initialize resource manager.

        Args:
            resources: Resources in declared order; names must be unique
            value_provider: Called once, lazily, to build the shared connection
            declared_resources: Optional accumulator reported back to the host

        Raises:
            ValueError: If two resources share a name
        """
        self._resources: List[Resource] = list(resources)
        self._by_name: Dict[str, Resource] = {}
        for resource in self._resources:
            if resource.name in self._by_name:
                raise ValueError(f"Duplicate resource name: {resource.name}")
            self._by_name[resource.name] = resource

        self._value_provider = value_provider
        self._value: Any = _UNSET
        self.declared_resources = declared_resources
        self.logger = logger

    @property
    def resources(self) -> List[Resource]:
        return list(self._resources)

    def resource(self, name: str) -> Resource:
        """Get a declared resource by name.

        Used to seed state by hand when a record predates persisted
        resource state.

        Raises:
            StateLoadError: If no resource with that name is declared
        """
        try:
            return self._by_name[name]
        except KeyError:
            raise StateLoadError(
                f"Resource '{name}' is not declared (declared: {', '.join(self._by_name)})"
            ) from None

    def create_all(self, ctx: OperationContext, artifact: Any, result: Any) -> None:
        """Create every resource in declared order.

        The first failure stops the sequence and is raised with the failing
        resource's name in its context. Later resources are not touched and
        earlier ones are not destroyed.

        Args:
            ctx: Operation context
            artifact: Artifact handed to each create handler
            result: Mutable record handed to each create handler
        """
        conn = self._connection()

        for resource in self._resources:
            ctx.raise_if_cancelled(f"creating {resource.name}")
            self.logger.info(f"Creating resource: {resource.name}")

            with LogContext(self.logger, resource_id=resource.name, operation='create'):
                try:
                    resource.create(ctx, conn, artifact, result)
                except Exception as e:
                    error = self._annotate(e, resource, 'create')
                    self.logger.error(f"Failed to create resource {resource.name}: {error.message}")
                    if error is e:
                        raise
                    raise error from e

            if not resource.is_managed:
                self.logger.warning(f"Resource {resource.name} recorded no state after create")
            self._declare(resource)
            self.logger.info(f"Created resource: {resource.name}")

    def destroy_all(self, ctx: OperationContext) -> None:
        """Destroy every managed resource in reverse declared order.

        Resources without state are skipped. Every managed resource is
        attempted even after a failure; failures are raised together.

        Raises:
            DestroyFailedError: If any destroy handler failed
            OperationCancelledError: If the context is cancelled
        """
        targets = [r for r in reversed(self._resources) if r.is_managed]
        skipped = [r.name for r in self._resources if not r.is_managed]
        if skipped:
            self.logger.debug(f"Skipping unmanaged resources: {', '.join(skipped)}")
        if not targets:
            self.logger.info("No managed resources to destroy")
            return

        conn = self._connection()
        errors: Dict[str, DeploymentError] = {}

        for resource in targets:
            ctx.raise_if_cancelled(f"destroying {resource.name}")
            self.logger.info(f"Destroying resource: {resource.name}")

            with LogContext(self.logger, resource_id=resource.name, operation='destroy'):
                try:
                    resource.destroy(ctx, conn)
                except OperationCancelledError:
                    raise
                except Exception as e:
                    errors[resource.name] = self._annotate(e, resource, 'destroy')
                    self.logger.warning(
                        f"Failed to destroy resource {resource.name}: {errors[resource.name].message}"
                    )
                    continue

            resource.mark_destroyed()
            self.logger.info(f"Destroyed resource: {resource.name}")

        if errors:
            raise DestroyFailedError(
                f"Failed to destroy {len(errors)} of {len(targets)} resource(s): "
                f"{', '.join(errors)}",
                errors=errors,
                context=ErrorContext(operation='destroy'),
            )

    def status_report(self, ctx: OperationContext) -> StatusReport:
        """Check every managed resource and aggregate the result.

        Resources without state are reported with unknown health and their
        handler is not called. The overall health stays unknown unless a
        handler reports something explicit.

        Raises:
            DeploymentError: If a status handler fails
        """
        conn = self._connection() if any(r.is_managed for r in self._resources) else None
        statuses: List[ResourceStatus] = []

        for resource in self._resources:
            if not resource.is_managed:
                statuses.append(self._resource_status(resource, HealthCheck(message="not created")))
                continue

            ctx.raise_if_cancelled(f"checking {resource.name}")
            with LogContext(self.logger, resource_id=resource.name, operation='status'):
                try:
                    check = resource.status(ctx, conn) or HealthCheck()
                except Exception as e:
                    error = self._annotate(e, resource, 'status')
                    self.logger.error(f"Status check failed for {resource.name}: {error.message}")
                    if error is e:
                        raise
                    raise error from e

            statuses.append(self._resource_status(resource, check))

        health, message = self._overall_health(statuses)
        return StatusReport(health=health, health_message=message, resources=statuses)

    def state(self) -> ResourceState:
        """Snapshot the state of every managed resource, in declared order."""
        entries = []
        for resource in self._resources:
            if not resource.is_managed:
                continue
            state = resource.get_state()
            entries.append(ResourceStateEntry(
                name=resource.name,
                kind=resource.kind,
                state_type=type(state).__name__,
                data=state.model_dump(mode='json'),
            ))
        return ResourceState(entries=entries)

    def load_state(self, blob: Union[ResourceState, Dict[str, Any], None]) -> None:
        """Restore resource state from a snapshot produced by ``state``.

        Declared resources without an entry stay unmanaged.

        Raises:
            StateLoadError: If the snapshot is malformed, names an undeclared
                resource, repeats a name, or carries state of the wrong type
        """
        if blob is None:
            return
        if not isinstance(blob, ResourceState):
            try:
                blob = ResourceState.model_validate(blob)
            except ValidationError as e:
                raise StateLoadError(f"Malformed resource state: {e}", cause=e) from e

        seen = set()
        for entry in blob.entries:
            if entry.name in seen:
                raise StateLoadError(f"Resource state lists '{entry.name}' more than once")
            seen.add(entry.name)

            resource = self._by_name.get(entry.name)
            if resource is None:
                raise StateLoadError(
                    f"Resource state has an entry for undeclared resource '{entry.name}'",
                    context=ErrorContext(resource_id=entry.name, operation='load_state'),
                )

            expected = resource.state_model.__name__
            if entry.state_type != expected:
                raise StateLoadError(
                    f"Resource '{entry.name}' expects {expected} state, found {entry.state_type}",
                    context=ErrorContext(resource_id=entry.name, operation='load_state'),
                )

            try:
                resource.set_state(resource.state_model.model_validate(entry.data))
            except ValidationError as e:
                raise StateLoadError(
                    f"Invalid state for resource '{entry.name}': {e}",
                    context=ErrorContext(resource_id=entry.name, operation='load_state'),
                    cause=e,
                ) from e

            self._declare(resource)
            self.logger.debug(f"Loaded state for resource: {entry.name}")

    def _connection(self) -> Any:
        """Return the shared connection, building it on first use."""
        if self._value is _UNSET:
            if self._value_provider is None:
                self._value = None
            else:
                try:
                    self._value = self._value_provider()
                except Exception as e:
                    error = error_handler.handle_exception(e, ErrorContext(operation='connect'))
                    if error is e:
                        raise
                    raise error from e
        return self._value

    def _annotate(self, error: Exception, resource: Resource, operation: str) -> DeploymentError:
        """Convert an error and attach the resource it came from."""
        context = ErrorContext(
            resource_id=resource.name,
            resource_type=resource.kind,
            operation=operation,
        )
        converted = error_handler.handle_exception(error, context)
        if converted.context.resource_id is None:
            converted.context.resource_id = resource.name
            converted.context.resource_type = resource.kind
        if converted.context.operation is None:
            converted.context.operation = operation
        return converted

    def _declare(self, resource: Resource) -> None:
        if self.declared_resources is None:
            return
        state = resource.get_state()
        self.declared_resources.append(DeclaredResource(
            name=resource.name,
            kind=resource.kind,
            platform=resource.platform,
            category=resource.category,
            state=state.model_dump(mode='json') if state is not None else {},
        ))

    @staticmethod
    def _resource_status(resource: Resource, check: HealthCheck) -> ResourceStatus:
        return ResourceStatus(
            name=resource.name,
            kind=resource.kind,
            platform=resource.platform,
            category=resource.category,
            health=check.health,
            message=check.message,
        )

    @staticmethod
    def _overall_health(statuses: List[ResourceStatus]) -> tuple:
        """Combine per-resource health into one value and a summary."""
        explicit = {s.health for s in statuses if s.health != ResourceHealth.UNKNOWN}
        if not explicit:
            return ResourceHealth.UNKNOWN, "No resource reported its health"
        if len(explicit) == 1:
            health = explicit.pop()
            count = sum(1 for s in statuses if s.health == health)
            return health, f"{count} of {len(statuses)} resource(s) {health.value}"
        summary = ", ".join(
            f"{s.name}={s.health.value}" for s in statuses if s.health != ResourceHealth.UNKNOWN
        )
        return ResourceHealth.PARTIAL, summary
