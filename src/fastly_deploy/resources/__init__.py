"""Declarative resources and the manager that drives them."""

from .base import Resource, ResourceLifecycle
from .manager import ResourceManager
from .models import (
    CategoryDisplayHint,
    DeclaredResource,
    DeclaredResources,
    HealthCheck,
    ResourceHealth,
    ResourceState,
    ResourceStateEntry,
    ResourceStatus,
    StatusReport,
)

__all__ = [
    'CategoryDisplayHint',
    'DeclaredResource',
    'DeclaredResources',
    'HealthCheck',
    'Resource',
    'ResourceHealth',
    'ResourceLifecycle',
    'ResourceManager',
    'ResourceState',
    'ResourceStateEntry',
    'ResourceStatus',
    'StatusReport',
]
