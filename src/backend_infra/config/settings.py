# src/backend_infra/config/settings.py
import re
from functools import lru_cache
from typing import Dict, List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

STACK_NAME_PATTERN = re.compile(r"^[A-Za-z][A-Za-z0-9-]*$")
# Settings that shape the synthesized backend stacks
SYNTHESIS_FIELDS = ("app_name", "stack_name_prefix", "api_name", "lambda_runtime", "lambda_handler")
VALID_LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class Settings(BaseSettings):
    """
    Single source of truth for all synthesis and deployment settings.

    Configuration precedence:
    1. Environment variables (highest priority)
    2. .env file (if exists)
    3. Default values in this class (lowest priority)

    Usage:
        from backend_infra.config.settings import get_settings
        settings = get_settings()
        prefix = settings.stack_name_prefix
    """

    # Application Settings
    app_name: str = Field(
        default="test-backend",
        description="Project name used for resource tags"
    )

    # AWS Core Settings
    aws_region: str = Field(
        default="us-east-1",
        alias="AWS_DEFAULT_REGION"
    )

    aws_endpoint_url: Optional[str] = Field(
        default=None,
        alias="AWS_ENDPOINT_URL"
    )

    aws_profile: Optional[str] = Field(
        default=None,
        alias="AWS_PROFILE"
    )

    # Stack naming
    stack_name_prefix: str = Field(
        default="BackendStack",
        description="Prefix of every per-environment backend stack name"
    )

    pipeline_stack_name: str = Field(
        default="BackendCICDStack",
        description="Name of the stack holding the delivery pipeline"
    )

    pipeline_name: str = Field(
        default="BackendCICDPipeline",
        description="CodePipeline pipeline name"
    )

    # HTTP API / Lambda
    api_name: str = Field(
        default="test-backend-api",
        description="API Gateway HTTP API name"
    )

    lambda_runtime: str = Field(
        default="provided.al2023",
        description="Lambda runtime identifier for the backend binary"
    )

    lambda_handler: str = Field(
        default="bootstrap",
        description="Lambda handler (entry-point) name"
    )

    # Source repositories
    codestar_connection_arn: Optional[str] = Field(
        default=None,
        alias="CODESTAR_CONNECTION_ARN",
        description="CodeStar connection used by both source actions"
    )

    source_owner: str = Field(
        default="TestLambdaProjectOrg",
        description="Owner of both source repositories"
    )

    app_repository: str = Field(default="backend")
    app_branch: str = Field(default="main")
    infra_repository: str = Field(default="backend-devops")
    infra_branch: str = Field(default="main")

    # Build configuration
    app_build_image: str = Field(default="aws/codebuild/standard:7.0")
    infra_build_image: str = Field(default="aws/codebuild/standard:7.0")

    app_base_directory: str = Field(
        default=".",
        description="Directory of the Go module inside the application repository"
    )

    app_output_file_name: str = Field(
        default="bootstrap",
        description="Name of the compiled backend binary"
    )

    app_build_variables: Dict[str, str] = Field(
        default_factory=dict,
        description="Extra plaintext variables for application builds"
    )

    infra_install_commands: List[str] = Field(
        default_factory=lambda: ["pip install ."]
    )

    infra_build_commands: List[str] = Field(
        default_factory=lambda: ["backend-infra synth --environment {environment} -o {output_directory}"],
        description="Build commands; {environment} and {output_directory} are substituted"
    )

    infra_output_directory: str = Field(default="dist")

    # Approval gate
    approval_message: str = Field(default="Ready to deploy to Production?")

    link_approval_to_endpoint: bool = Field(
        default=False,
        description="Import the pre-production endpoint export as the approval review link"
    )

    # Deployment waiters
    deploy_poll_delay: int = Field(default=10, ge=1)
    deploy_max_attempts: int = Field(default=180, ge=1)

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level"
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Normalize and validate the logging level."""
        level = v.upper()
        if level not in VALID_LOG_LEVELS:
            raise ValueError(f"Invalid log_level: {v}. Must be one of {VALID_LOG_LEVELS}")
        return level

    @field_validator("stack_name_prefix", "pipeline_stack_name")
    @classmethod
    def validate_stack_name(cls, v: str) -> str:
        if not STACK_NAME_PATTERN.match(v):
            raise ValueError(
                f"Invalid stack name {v!r}: must start with a letter and contain only letters, digits and hyphens"
            )
        return v

    def synthesis_variables(self) -> Dict[str, str]:
        """Environment variables reproducing the synthesis settings in another process."""
        return {name.upper(): str(getattr(self, name)) for name in SYNTHESIS_FIELDS}

    def get_environment_dict(self) -> dict:
        """Get the configuration as a flat dictionary for display."""
        return {
            "AWS_DEFAULT_REGION": self.aws_region,
            "AWS_ENDPOINT_URL": self.aws_endpoint_url or "",
            "STACK_NAME_PREFIX": self.stack_name_prefix,
            "PIPELINE_STACK_NAME": self.pipeline_stack_name,
            "PIPELINE_NAME": self.pipeline_name,
            "LAMBDA_RUNTIME": self.lambda_runtime,
            "CODESTAR_CONNECTION_ARN": self.codestar_connection_arn or "",
            "APP_SOURCE": f"{self.source_owner}/{self.app_repository}@{self.app_branch}",
            "INFRA_SOURCE": f"{self.source_owner}/{self.infra_repository}@{self.infra_branch}",
            "LOG_LEVEL": self.log_level,
        }

    model_config = SettingsConfigDict(
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.
    This ensures we only create one Settings instance per process.
    """
    return Settings()
