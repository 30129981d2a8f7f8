"""Base resource interface."""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Optional, Type

from pydantic import BaseModel

from fastly_deploy.context import OperationContext
from .models import CategoryDisplayHint, HealthCheck


class ResourceLifecycle(Enum):
    """Lifecycle of a resource within one deployment record."""
    UNMANAGED = "unmanaged"
    CREATED = "created"
    DESTROYED = "destroyed"


class Resource(ABC):
    """A named unit of external infrastructure.

    Subclasses form a closed set of resource kinds. Each declares the
    pydantic model of its persisted state in ``state_model`` and records
    that state with ``set_state`` when ``create`` succeeds. The manager
    never edits the state itself.

    The ``conn`` argument of every behaviour is the value produced by the
    manager's value provider, shared by all resources of one manager.
    """

    kind: str = "resource"
    platform: str = "fastly"
    category: CategoryDisplayHint = CategoryDisplayHint.OTHER
    state_model: Type[BaseModel]

    def __init__(self, name: str):
        """Initialize resource.

        Args:
            name: Name, unique within its manager
        """
        if not name:
            raise ValueError("Resource name must not be empty")
        self.name = name
        self.lifecycle = ResourceLifecycle.UNMANAGED
        self._state: Optional[BaseModel] = None

    @abstractmethod
    def create(self, ctx: OperationContext, conn: Any, artifact: Any, result: Any) -> None:
        """Create the resource.

        Args:
            ctx: Operation context
            conn: Shared connection value from the manager
            artifact: Artifact being deployed or released
            result: Mutable record the handler may fill in
        """

    @abstractmethod
    def destroy(self, ctx: OperationContext, conn: Any) -> None:
        """Destroy the resource described by the current state."""

    def status(self, ctx: OperationContext, conn: Any) -> HealthCheck:
        """Report health without changing the lifecycle.

        The default reports unknown health.
        """
        return HealthCheck()

    def get_state(self) -> Optional[BaseModel]:
        return self._state

    def set_state(self, state: Any) -> None:
        """Replace the resource state.

        Args:
            state: An instance of ``state_model`` or a mapping to validate

        Raises:
            TypeError: If state is neither
            pydantic.ValidationError: If a mapping does not validate
        """
        if isinstance(state, dict):
            state = self.state_model.model_validate(state)
        if not isinstance(state, self.state_model):
            raise TypeError(
                f"Resource {self.name} expects {self.state_model.__name__}, "
                f"got {type(state).__name__}"
            )
        self._state = state
        self.lifecycle = ResourceLifecycle.CREATED

    @property
    def is_managed(self) -> bool:
        """Whether the resource currently holds state for existing infrastructure."""
        return self.lifecycle == ResourceLifecycle.CREATED and self._state is not None

    def mark_destroyed(self) -> None:
        self.lifecycle = ResourceLifecycle.DESTROYED

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, lifecycle={self.lifecycle.value})"
