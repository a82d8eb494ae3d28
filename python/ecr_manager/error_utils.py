"""
Error types and actionable error messages for the ECR image manager.

Every failure the service reports falls into one of these buckets:

- RegistryError: a call to ECR failed (network, credentials, throttling...).
  Propagated immediately, never retried here.
- ImageFetchError: a RegistryError scoped to one repository's image listing.
  The global stats aggregation skips these; single-repository reads surface them.
- InvalidInputError: a request was rejected before any remote call was made.
"""

from enum import Enum
from typing import Any, Dict, List, Optional


class ErrorCategory(Enum):
    """Categories of errors for better error handling"""
    CONNECTION = "connection"
    AUTHENTICATION = "authentication"
    PERMISSION = "permission"
    RESOURCE = "resource"
    THROTTLING = "throttling"
    VALIDATION = "validation"
    UNKNOWN = "unknown"


class ActionableError(Exception):
    """Exception with actionable guidance for users"""

    def __init__(self, message: str, category: ErrorCategory = ErrorCategory.UNKNOWN,
                 suggestions: Optional[List[str]] = None, details: Optional[Dict[str, Any]] = None):
        """Initialize actionable error

        Args:
            message: Primary error message
            category: Error category for classification
            suggestions: List of suggested fixes
            details: Additional context information
        """
        self.message = message
        self.category = category
        self.suggestions = suggestions or []
        self.details = details or {}
        super().__init__(message)

    def format_message(self) -> str:
        """Format the complete error message with suggestions"""
        lines = [f"❌ {self.message}"]

        if self.suggestions:
            lines.append("\n💡 Suggested fixes:")
            for i, suggestion in enumerate(self.suggestions, 1):
                lines.append(f"   {i}. {suggestion}")

        if self.details:
            lines.append("\n📋 Additional details:")
            for key, value in self.details.items():
                lines.append(f"   {key}: {value}")

        return "\n".join(lines)


class RegistryError(ActionableError):
    """A call to the remote registry failed"""

    def __init__(self, message: str, operation: str = "", error_code: Optional[str] = None, **kwargs):
        self.operation = operation
        self.error_code = error_code
        kwargs.setdefault("category", ErrorCategory.CONNECTION)
        super().__init__(message, **kwargs)


class ImageFetchError(RegistryError):
    """Listing the images of one repository failed"""

    def __init__(self, repository: str, cause: Exception):
        self.repository = repository
        self.cause = cause
        if isinstance(cause, ActionableError):
            category, suggestions = cause.category, cause.suggestions
        else:
            category, suggestions = ErrorCategory.UNKNOWN, []
        super().__init__(
            f"failed to describe images for repo {repository}: {cause}",
            operation="describe_images",
            error_code=getattr(cause, "error_code", None),
            category=category,
            suggestions=suggestions,
            details={"repository": repository, "error_type": type(cause).__name__},
        )


class InvalidInputError(ActionableError):
    """A request violated a precondition and was rejected before any remote call"""

    def __init__(self, message: str, field: Optional[str] = None):
        self.field = field
        super().__init__(
            message,
            category=ErrorCategory.VALIDATION,
            details={"field": field} if field else None,
        )


_ACCESS_DENIED_CODES = {"AccessDeniedException", "AccessDenied", "UnauthorizedOperation"}
_THROTTLING_CODES = {"ThrottlingException", "TooManyRequestsException", "LimitExceededException"}
_CREDENTIAL_CODES = {"UnrecognizedClientException", "InvalidSignatureException", "ExpiredTokenException"}


def create_registry_error(operation: str, error: Exception, error_code: Optional[str] = None) -> RegistryError:
    """Create an actionable RegistryError for a failed ECR call

    Args:
        operation: ECR API operation name (e.g. "describe_images")
        error: The exception raised by the SDK
        error_code: AWS error code, when the SDK reported one
    """
    error_str = str(error).lower()
    category = ErrorCategory.CONNECTION
    suggestions = [
        "Check network connectivity to the ECR endpoint",
        "Verify the configured AWS region (AWS_REGION or aws.region in config.yaml)",
    ]

    if error_code in _ACCESS_DENIED_CODES:
        category = ErrorCategory.PERMISSION
        suggestions = [
            f"Grant ecr:{_iam_action(operation)} to the role or user running the service",
            "Check repository policies that may deny the call",
        ]
    elif error_code in _THROTTLING_CODES or "rate exceeded" in error_str:
        category = ErrorCategory.THROTTLING
        suggestions = [
            "Wait before retrying the operation",
            "Lower analysis.max_workers in config.yaml",
            "Raise registry.max_attempts so the SDK retries throttled calls",
        ]
    elif error_code == "RepositoryNotFoundException":
        category = ErrorCategory.RESOURCE
        suggestions = [
            "Verify the repository name spelling",
            "Check that the repository exists in the configured region and account",
        ]
    elif error_code in _CREDENTIAL_CODES or "credentials" in error_str:
        category = ErrorCategory.AUTHENTICATION
        suggestions = [
            "Configure AWS credentials (aws configure, or AWS_ACCESS_KEY_ID/AWS_SECRET_ACCESS_KEY)",
            "Refresh expired session credentials",
        ]

    return RegistryError(
        f"ECR {operation} failed: {error}",
        operation=operation,
        error_code=error_code,
        category=category,
        suggestions=suggestions,
        details={
            "operation": operation,
            "error_code": error_code,
            "error_type": type(error).__name__,
        },
    )


def _iam_action(operation: str) -> str:
    return "".join(part.capitalize() for part in operation.split("_"))
