"""Utility modules for logging, errors, terminal output and the Fastly API client."""

from fastly_deploy.utils.errors import (
    ErrorCategory,
    ErrorSeverity,
    ErrorContext,
    DeploymentError,
    ConfigInvalidError,
    WorkspaceError,
    SourceNotADirectoryError,
    CommandFailedError,
    BuildFailedError,
    ExternalAPIError,
    ResourceNotFoundError,
    StateLoadError,
    OperationCancelledError,
    DestroyFailedError,
    ErrorHandler,
    error_handler
)
from fastly_deploy.utils.fastly_client import FastlyClient
from fastly_deploy.utils.logging import get_logger, setup_logging, LogContext
from fastly_deploy.utils.terminal import UI, StatusSink, ConsoleUI

__all__ = [
    # Fastly client
    'FastlyClient',

    # Errors
    'ErrorCategory',
    'ErrorSeverity',
    'ErrorContext',
    'DeploymentError',
    'ConfigInvalidError',
    'WorkspaceError',
    'SourceNotADirectoryError',
    'CommandFailedError',
    'BuildFailedError',
    'ExternalAPIError',
    'ResourceNotFoundError',
    'StateLoadError',
    'OperationCancelledError',
    'DestroyFailedError',
    'ErrorHandler',
    'error_handler',

    # Logging
    'get_logger',
    'setup_logging',
    'LogContext',

    # Terminal
    'UI',
    'StatusSink',
    'ConsoleUI',
]
