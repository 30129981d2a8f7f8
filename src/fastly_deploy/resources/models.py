"""Persisted resource state, status reports and declared-resource records."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class ResourceHealth(str, Enum):
    """Health reported by a resource status check."""
    UNKNOWN = "unknown"
    ALIVE = "alive"
    READY = "ready"
    DOWN = "down"
    PARTIAL = "partial"
    MISSING = "missing"


class CategoryDisplayHint(str, Enum):
    """Hint for how a UI should present a resource."""
    OTHER = "other"
    INSTANCE = "instance"
    INSTANCE_MANAGER = "instance_manager"
    ROUTER = "router"
    POLICY = "policy"
    CONFIG = "config"
    FUNCTION = "function"
    STORAGE = "storage"


class HealthCheck(BaseModel):
    """Result of one resource status handler."""

    health: ResourceHealth = ResourceHealth.UNKNOWN
    message: str = ""


class ResourceStateEntry(BaseModel):
    """Persisted state of a single resource."""

    name: str = Field(..., description="Resource name, the join key with the declared resource")
    kind: str = Field(..., description="Resource kind (e.g. fastly.service)")
    state_type: str = Field(..., description="Name of the state model the data validates against")
    data: Dict[str, Any] = Field(default_factory=dict)


class ResourceState(BaseModel):
    """Ordered state of every resource in a manager."""

    entries: List[ResourceStateEntry] = Field(default_factory=list)

    def get(self, name: str) -> Optional[ResourceStateEntry]:
        """Get an entry by resource name."""
        for entry in self.entries:
            if entry.name == name:
                return entry
        return None

    def names(self) -> List[str]:
        return [entry.name for entry in self.entries]

    def __len__(self) -> int:
        return len(self.entries)


class ResourceStatus(BaseModel):
    """Status of one resource inside a report."""

    name: str
    kind: str
    platform: str
    category: CategoryDisplayHint = CategoryDisplayHint.OTHER
    health: ResourceHealth = ResourceHealth.UNKNOWN
    message: str = ""


class StatusReport(BaseModel):
    """Aggregated status of every resource in a manager."""

    health: ResourceHealth = ResourceHealth.UNKNOWN
    health_message: str = ""
    resources: List[ResourceStatus] = Field(default_factory=list)
    generated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class DeclaredResource(BaseModel):
    """A resource the manager has touched, reported back to the host."""

    name: str
    kind: str
    platform: str
    category: CategoryDisplayHint = CategoryDisplayHint.OTHER
    state: Dict[str, Any] = Field(default_factory=dict)


class DeclaredResources:
    """Write-only accumulator of declared resources.

    The resource manager appends to it as resources are created or loaded;
    only the host reads it back.
    """

    def __init__(self):
        self._resources: List[DeclaredResource] = []

    def append(self, resource: DeclaredResource) -> None:
        self._resources.append(resource)

    @property
    def resources(self) -> List[DeclaredResource]:
        return list(self._resources)

    def __len__(self) -> int:
        return len(self._resources)
