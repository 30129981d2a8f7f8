"""Error handling framework for build and deployment operations."""

from typing import Optional, Dict, Any, List
from enum import Enum
from dataclasses import dataclass

import requests

from fastly_deploy.utils.logging import get_logger

logger = get_logger(__name__)


class ErrorCategory(Enum):
    """Categories of errors that can occur during a lifecycle operation."""
    CONFIGURATION = "configuration"
    WORKSPACE = "workspace"
    COMMAND = "command"
    BUILD = "build"
    EXTERNAL_API = "external_api"
    RESOURCE_NOT_FOUND = "resource_not_found"
    STATE = "state"
    PROVISIONING = "provisioning"
    CANCELLED = "cancelled"
    UNKNOWN = "unknown"


class ErrorSeverity(Enum):
    """Severity levels for errors."""
    CRITICAL = "critical"  # Operation cannot continue
    ERROR = "error"  # Resource failed
    WARNING = "warning"  # Non-fatal issue
    INFO = "info"  # Informational message


@dataclass
class ErrorContext:
    """Context information for an error."""
    resource_id: Optional[str] = None
    resource_type: Optional[str] = None
    operation: Optional[str] = None
    http_method: Optional[str] = None
    http_path: Optional[str] = None
    request_id: Optional[str] = None
    additional_info: Optional[Dict[str, Any]] = None


class DeploymentError(Exception):
    """Base exception for every fastly-deploy error."""

    def __init__(
        self,
        message: str,
        category: ErrorCategory = ErrorCategory.UNKNOWN,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        context: Optional[ErrorContext] = None,
        cause: Optional[Exception] = None,
        suggestions: Optional[List[str]] = None
    ):
        """Initialize deployment error.

        Args:
            message: Human-readable error message
            category: Error category
            severity: Error severity
            context: Additional context about the error
            cause: Original exception that caused this error
            suggestions: List of suggested fixes
        """
        super().__init__(message)
        self.message = message
        self.category = category
        self.severity = severity
        self.context = context or ErrorContext()
        self.cause = cause
        self.suggestions = suggestions or []

    def to_user_message(self) -> str:
        """Convert error to user-friendly message.

        Returns:
            Formatted error message for display to user
        """
        lines = [f"✗ {self.severity.value.upper()}: {self.message}"]

        if self.context.resource_id:
            lines.append(f"   Resource: {self.context.resource_id}")
        if self.context.operation:
            lines.append(f"   Operation: {self.context.operation}")

        if self.cause:
            lines.append(f"   Cause: {self.cause}")

        if self.suggestions:
            lines.append("\nSuggested fixes:")
            for i, suggestion in enumerate(self.suggestions, 1):
                lines.append(f"   {i}. {suggestion}")

        return "\n".join(lines)

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        return {
            'type': type(self).__name__,
            'message': self.message,
            'category': self.category.value,
            'severity': self.severity.value,
            'context': {
                'resource_id': self.context.resource_id,
                'resource_type': self.context.resource_type,
                'operation': self.context.operation,
                'http_method': self.context.http_method,
                'http_path': self.context.http_path,
                'request_id': self.context.request_id,
                'additional_info': self.context.additional_info
            },
            'cause': str(self.cause) if self.cause else None,
            'suggestions': self.suggestions
        }


class ConfigInvalidError(DeploymentError):
    """Configuration failed validation before any external action ran."""

    def __init__(self, message: str, errors: Optional[List[Dict[str, Any]]] = None, **kwargs):
        super().__init__(
            message,
            category=ErrorCategory.CONFIGURATION,
            severity=ErrorSeverity.CRITICAL,
            **kwargs
        )
        self.errors = errors or []

    def __str__(self) -> str:
        if not self.errors:
            return self.message

        error_lines = [self.message, ""]
        for error in self.errors:
            location = " -> ".join(str(loc) for loc in error.get("loc", []))
            msg = error.get("msg", "Unknown error")
            error_lines.append(f"  • {location}: {msg}")

        return "\n".join(error_lines)


class WorkspaceError(DeploymentError):
    """Filesystem failure while staging or packaging files."""

    def __init__(self, message: str, **kwargs):
        super().__init__(
            message,
            category=ErrorCategory.WORKSPACE,
            severity=ErrorSeverity.CRITICAL,
            **kwargs
        )


class SourceNotADirectoryError(WorkspaceError):
    """The source path handed to the workspace stager is not a directory."""


class CommandFailedError(DeploymentError):
    """An external command could not be started or exited non-zero."""

    def __init__(
        self,
        message: str,
        command: Optional[List[str]] = None,
        returncode: Optional[int] = None,
        **kwargs
    ):
        super().__init__(
            message,
            category=ErrorCategory.COMMAND,
            severity=ErrorSeverity.ERROR,
            **kwargs
        )
        self.command = list(command or [])
        self.returncode = returncode


class BuildFailedError(DeploymentError):
    """A build pipeline stage failed."""

    def __init__(self, message: str, stage: str, **kwargs):
        super().__init__(
            message,
            category=ErrorCategory.BUILD,
            severity=ErrorSeverity.CRITICAL,
            **kwargs
        )
        self.stage = stage


class ExternalAPIError(DeploymentError):
    """A platform API call failed."""

    def __init__(self, message: str, status_code: Optional[int] = None, **kwargs):
        kwargs.setdefault('category', ErrorCategory.EXTERNAL_API)
        kwargs.setdefault('severity', ErrorSeverity.ERROR)
        super().__init__(message, **kwargs)
        self.status_code = status_code


class ResourceNotFoundError(ExternalAPIError):
    """A named external resource could not be found."""

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault('status_code', 404)
        super().__init__(
            message,
            category=ErrorCategory.RESOURCE_NOT_FOUND,
            **kwargs
        )


class StateLoadError(DeploymentError):
    """Persisted resource state cannot be mapped onto the declared resources."""

    def __init__(self, message: str, **kwargs):
        super().__init__(
            message,
            category=ErrorCategory.STATE,
            severity=ErrorSeverity.CRITICAL,
            **kwargs
        )


class OperationCancelledError(DeploymentError):
    """The operation was cancelled through its context."""

    def __init__(self, message: str = "Operation cancelled", **kwargs):
        super().__init__(
            message,
            category=ErrorCategory.CANCELLED,
            severity=ErrorSeverity.CRITICAL,
            **kwargs
        )


class DestroyFailedError(DeploymentError):
    """One or more resources failed to be destroyed."""

    def __init__(self, message: str, errors: Dict[str, DeploymentError], **kwargs):
        super().__init__(
            message,
            category=ErrorCategory.PROVISIONING,
            severity=ErrorSeverity.ERROR,
            **kwargs
        )
        self.errors = errors

    def to_user_message(self) -> str:
        lines = [super().to_user_message()]
        for name, error in self.errors.items():
            lines.append(f"   - {name}: {error.message}")
        return "\n".join(lines)


class ErrorHandler:
    """Handles and categorizes errors from the Fastly API and other sources."""

    # Mapping of HTTP status codes to error classes and suggestions
    FASTLY_STATUS_MAPPING = {
        400: {
            'message': 'Fastly rejected the request',
            'suggestions': [
                'Check the values in your Fastly settings',
                'A locked service version cannot be edited; clone it first',
            ]
        },
        401: {
            'message': 'Fastly API token is missing or invalid',
            'suggestions': [
                'Set FASTLY_API_TOKEN to a valid API token',
                'Verify the token has not expired or been revoked',
            ]
        },
        403: {
            'message': 'Fastly API token lacks permission',
            'suggestions': [
                'Use a token with the global engineer scope',
                'Verify the token is allowed to manage this service',
            ]
        },
        404: {
            'message': 'Resource not found',
            'suggestions': [
                'Check whether the resource was deleted outside of fastly-deploy',
                'Verify the service id recorded in the deployment',
            ]
        },
        409: {
            'message': 'Conflicting Fastly resource',
            'suggestions': [
                'A resource with this name already exists',
                'Delete the existing resource or pick another name',
            ]
        },
        429: {
            'message': 'Fastly API rate limit exceeded',
            'suggestions': [
                'Wait before retrying the operation',
            ]
        },
    }

    def __init__(self):
        self.logger = get_logger(__name__)

    def handle_exception(
        self,
        error: Exception,
        context: Optional[ErrorContext] = None
    ) -> DeploymentError:
        """Handle an exception and convert to DeploymentError.

        Args:
            error: The exception to handle
            context: Additional context about where the error occurred

        Returns:
            DeploymentError with categorization and suggestions
        """
        context = context or ErrorContext()

        if isinstance(error, DeploymentError):
            return error

        if isinstance(error, requests.HTTPError):
            return self._handle_http_error(error, context)

        if isinstance(error, requests.RequestException):
            return self._handle_transport_error(error, context)

        return DeploymentError(
            message=str(error) or type(error).__name__,
            category=ErrorCategory.UNKNOWN,
            severity=ErrorSeverity.ERROR,
            context=context,
            cause=error,
            suggestions=['Check logs for more details']
        )

    def _handle_http_error(
        self,
        error: requests.HTTPError,
        context: ErrorContext
    ) -> ExternalAPIError:
        """Handle a non-2xx response from the Fastly API."""
        response = error.response
        status_code = response.status_code if response is not None else None
        detail = self._response_detail(response) or str(error)

        if response is not None:
            context.request_id = response.headers.get('Fastly-Request-Id') or context.request_id

        error_info = self.FASTLY_STATUS_MAPPING.get(status_code)
        if status_code == 404:
            return ResourceNotFoundError(
                message=f"{error_info['message']}: {detail}",
                context=context,
                cause=error,
                suggestions=error_info['suggestions']
            )

        if error_info:
            return ExternalAPIError(
                message=f"{error_info['message']}: {detail}",
                status_code=status_code,
                context=context,
                cause=error,
                suggestions=error_info['suggestions']
            )

        return ExternalAPIError(
            message=f"Fastly API error ({status_code}): {detail}",
            status_code=status_code,
            context=context,
            cause=error,
            suggestions=[
                'Check https://status.fastly.com for ongoing incidents',
                f'Fastly request id: {context.request_id}',
            ]
        )

    def _handle_transport_error(
        self,
        error: requests.RequestException,
        context: ErrorContext
    ) -> ExternalAPIError:
        """Handle connection failures and timeouts."""
        return ExternalAPIError(
            message=f"Could not reach the Fastly API: {error}",
            context=context,
            cause=error,
            suggestions=[
                'Check your network connectivity',
                'Verify FASTLY_API_URL if you override the API endpoint',
            ]
        )

    @staticmethod
    def _response_detail(response: Optional[requests.Response]) -> Optional[str]:
        """Extract the message Fastly puts in error bodies."""
        if response is None:
            return None
        try:
            body = response.json()
        except ValueError:
            return response.text or None
        if isinstance(body, dict):
            return body.get('detail') or body.get('msg') or body.get('message')
        return None

    def log_error(self, error: DeploymentError):
        """Log an error with appropriate level.

        Args:
            error: The error to log
        """
        log_message = error.to_user_message()

        if error.severity in (ErrorSeverity.CRITICAL, ErrorSeverity.ERROR):
            self.logger.error(log_message)
        elif error.severity == ErrorSeverity.WARNING:
            self.logger.warning(log_message)
        else:
            self.logger.info(log_message)

        self.logger.debug(f"Error details: {error.to_dict()}")


# Global error handler instance
error_handler = ErrorHandler()
