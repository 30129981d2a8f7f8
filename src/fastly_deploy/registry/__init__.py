"""Registry for packaged build artifacts."""

from .registry import Artifact, Registry

__all__ = ['Artifact', 'Registry']
