"""Fastly platform integration."""

from .platform import (
    PARTIAL_DEPLOYMENT,
    Deployment,
    Platform,
    default_client_factory,
    require_settings,
)
from .resources import (
    BackendResource,
    BackendState,
    DomainResource,
    DomainState,
    PackageResource,
    PackageState,
    ServiceResource,
    ServiceState,
)

__all__ = [
    'BackendResource',
    'BackendState',
    'Deployment',
    'DomainResource',
    'DomainState',
    'PackageResource',
    'PackageState',
    'PARTIAL_DEPLOYMENT',
    'Platform',
    'ServiceResource',
    'ServiceState',
    'default_client_factory',
    'require_settings',
]
