"""Release management: activating deployed service versions."""

from .release import Release, ReleaseManager, ReleaseResource, ReleaseState

__all__ = ['Release', 'ReleaseManager', 'ReleaseResource', 'ReleaseState']
