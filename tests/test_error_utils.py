"""Unit tests for ecr_manager/error_utils.py"""

from botocore.exceptions import NoCredentialsError

from ecr_manager.error_utils import (
    ActionableError,
    ErrorCategory,
    ImageFetchError,
    InvalidInputError,
    RegistryError,
    create_registry_error,
)


class TestActionableError:
    def test_format_message_with_suggestions_and_details(self):
        error = ActionableError(
            "Something broke",
            suggestions=["Try this", "Then that"],
            details={"repository": "web"},
        )
        formatted = error.format_message()
        assert formatted.startswith("❌ Something broke")
        assert "   1. Try this" in formatted
        assert "   2. Then that" in formatted
        assert "   repository: web" in formatted

    def test_format_message_plain(self):
        assert ActionableError("plain").format_message() == "❌ plain"

    def test_str_is_message(self):
        assert str(ActionableError("plain")) == "plain"


class TestCreateRegistryError:
    """Tests for SDK error classification"""

    def test_access_denied(self):
        error = create_registry_error("describe_images", Exception("denied"), error_code="AccessDeniedException")
        assert error.category == ErrorCategory.PERMISSION
        assert any("ecr:DescribeImages" in s for s in error.suggestions)

    def test_throttling_by_code(self):
        error = create_registry_error("batch_delete_image", Exception("slow down"), error_code="ThrottlingException")
        assert error.category == ErrorCategory.THROTTLING

    def test_throttling_by_message(self):
        assert create_registry_error("describe_images", Exception("Rate exceeded")).category == ErrorCategory.THROTTLING

    def test_missing_repository(self):
        error = create_registry_error("describe_images", Exception("nope"), error_code="RepositoryNotFoundException")
        assert error.category == ErrorCategory.RESOURCE

    def test_missing_credentials(self):
        error = create_registry_error("describe_repositories", NoCredentialsError())
        assert error.category == ErrorCategory.AUTHENTICATION
        assert error.details["error_type"] == "NoCredentialsError"

    def test_unknown_failure_defaults_to_connection(self):
        error = create_registry_error("describe_repositories", Exception("reset by peer"))
        assert error.category == ErrorCategory.CONNECTION
        assert error.message == "ECR describe_repositories failed: reset by peer"
        assert error.operation == "describe_repositories"


class TestImageFetchError:
    def test_wraps_registry_error(self):
        cause = RegistryError("ECR describe_images failed: boom", error_code="ThrottlingException",
                              category=ErrorCategory.THROTTLING, suggestions=["wait"])
        error = ImageFetchError("web", cause)
        assert str(error) == "failed to describe images for repo web: ECR describe_images failed: boom"
        assert error.repository == "web"
        assert error.cause is cause
        assert error.category == ErrorCategory.THROTTLING
        assert error.suggestions == ["wait"]
        assert error.error_code == "ThrottlingException"
        assert isinstance(error, RegistryError)

    def test_wraps_plain_exception(self):
        error = ImageFetchError("web", KeyError("imagePushedAt"))
        assert error.category == ErrorCategory.UNKNOWN
        assert error.details["error_type"] == "KeyError"


class TestInvalidInputError:
    def test_category_and_field(self):
        error = InvalidInputError("daysOld is required", field="daysOld")
        assert error.category == ErrorCategory.VALIDATION
        assert error.field == "daysOld"
        assert error.details == {"field": "daysOld"}

    def test_without_field(self):
        assert InvalidInputError("bad").details == {}
