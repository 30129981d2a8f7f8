"""Build pipeline: workspace staging and external build tooling."""

from .builder import Binary, Builder
from .process import run_command
from .workspace import stage_workspace

__all__ = [
    'Binary',
    'Builder',
    'run_command',
    'stage_workspace',
]
