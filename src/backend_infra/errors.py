"""Exception hierarchy for backend-infra.

- BackendInfraError: base for every error raised by this package
- ConfigurationError: the model cannot be built from the given settings
- DeploymentError: an AWS call made by the deployment helpers failed
"""


class BackendInfraError(Exception):
    """Base exception for all backend-infra errors."""


class ConfigurationError(BackendInfraError):
    """Raised when required configuration is missing or inconsistent.

    Construction of stacks and pipelines fails fast with this error instead
    of emitting an incomplete template.
    """


class DeploymentError(BackendInfraError):
    """Raised when creating, updating or inspecting a stack fails."""

    def __init__(self, message: str, stack_name: str = None, status: str = None):
        super().__init__(message)
        self.stack_name = stack_name
        self.status = status
