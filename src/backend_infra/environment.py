"""Deployment tiers."""
from enum import Enum

APP_ENV_VARIABLE = "APP_ENV"


class Environment(str, Enum):
    """Deployment tier discriminator.

    The value is used verbatim as the suffix of every environment-scoped
    resource name (``BackendStackPPD``, ``TestBackendAPIEndpointPRD`` ...).
    """
    PPD = "PPD"
    PRD = "PRD"

    @property
    def label(self) -> str:
        return {
            Environment.PPD: "pre-production",
            Environment.PRD: "production",
        }[self]

    def __str__(self) -> str:
        return self.value


# Promotion order through the pipeline
ENVIRONMENTS = (Environment.PPD, Environment.PRD)
