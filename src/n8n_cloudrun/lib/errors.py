"""Custom exception hierarchy for n8n-cloudrun configuration and deployments."""


class N8nCloudRunError(Exception):
    """Base exception for all n8n-cloudrun errors.

    All package-specific exceptions inherit from this class, enabling
    centralized exception handling in the CLI.
    """

    pass


class ConfigError(N8nCloudRunError):
    """Exception raised for configuration errors.

    Raised when the configuration file is missing, a required value cannot
    be resolved, or a resolved value fails validation.

    Attributes:
        field: The configuration field that caused the error
        message: Human-readable error message describing the issue
    """

    def __init__(self, field: str, message: str) -> None:
        """Initialize ConfigError with field and message.

        Args:
            field: Configuration field name where error occurred
            message: Descriptive error message
        """
        self.field = field
        self.message = message
        super().__init__(f"Configuration error in '{field}': {message}")


class PrerequisiteError(N8nCloudRunError):
    """Exception raised when a local prerequisite is missing.

    Prerequisite checks run before any cloud resource is touched, so this
    error always means nothing has been mutated yet.

    Attributes:
        requirement: Name of the missing prerequisite (e.g. docker)
        message: Human-readable error message with resolution guidance
    """

    def __init__(self, requirement: str, message: str) -> None:
        """Create a prerequisite error for a named requirement."""
        self.requirement = requirement
        self.message = message
        super().__init__(f"Missing prerequisite '{requirement}': {message}")


class DeploymentError(N8nCloudRunError):
    """Exception raised when a build, publish or provisioning step fails.

    Attributes:
        operation: The step that failed (e.g. build, push, apply)
        message: Human-readable error message
        resource: Optional identifier of the resource being provisioned
    """

    def __init__(
        self, operation: str, message: str, resource: str | None = None
    ) -> None:
        """Initialize DeploymentError with operation context.

        Args:
            operation: Name of the failing operation
            message: Descriptive error message
            resource: Identifier of the resource involved, if any
        """
        self.operation = operation
        self.message = message
        self.resource = resource
        prefix = f"{operation} failed"
        if resource:
            prefix = f"{prefix} for {resource}"
        super().__init__(f"{prefix}: {message}")


class DockerNotAvailableError(DeploymentError):
    """Error raised when the Docker daemon cannot be reached."""

    def __init__(self, operation: str = "init") -> None:
        """Create a Docker availability error for the given operation."""
        super().__init__(
            operation=operation,
            message=(
                "Docker daemon is not available.\n"
                "Ensure Docker is installed and running: docker info"
            ),
        )

