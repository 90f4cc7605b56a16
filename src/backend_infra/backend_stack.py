"""
Backend stack: one HTTP API in front of one Lambda function per environment.

The function code is not known at synthesis time. It is declared through two
template parameters that the delivery pipeline fills in with the location of
the application build output (see PendingCode).
"""
import logging
from typing import List, Optional

import aws_cdk as cdk
from aws_cdk import aws_apigatewayv2 as apigwv2
from aws_cdk import aws_lambda as lambda_
from aws_cdk.aws_apigatewayv2_integrations import HttpLambdaIntegration
from constructs import Construct
from pydantic import BaseModel, ConfigDict

from backend_infra.artifacts import ExportedValue, PendingCode
from backend_infra.config.settings import Settings, get_settings
from backend_infra.environment import APP_ENV_VARIABLE, Environment

logger = logging.getLogger(__name__)

FUNCTION_BASE_NAME = "TestBackendHandler"
API_BASE_NAME = "BackendHttpAPI"
OUTPUT_BASE_NAME = "TestBackendAPI"
EXPORT_BASE_NAME = "TestBackendAPIEndpoint"

ROUTE_PATH = "/"
ROUTE_METHOD = apigwv2.HttpMethod.GET


def backend_stack_name(environment: Environment, settings: Optional[Settings] = None) -> str:
    """Stack name of the backend deployed to ``environment``."""
    settings = settings or get_settings()
    return f"{settings.stack_name_prefix}{environment.value}"


def endpoint_export_name(environment: Environment) -> str:
    return f"{EXPORT_BASE_NAME}{environment.value}"


def stack_synthesizer() -> cdk.IStackSynthesizer:
    """Synthesizer for stacks deployed without ``cdk bootstrap`` resources."""
    return cdk.DefaultStackSynthesizer(generate_bootstrap_version_rule=False)


class BackendStack(cdk.Stack):
    """Lambda function behind an HTTP API with a single ``GET /`` route."""

    def __init__(self, scope: Construct, construct_id: str, *,
                 app_env: Environment, settings: Settings, **kwargs) -> None:
        super().__init__(scope, construct_id, synthesizer=stack_synthesizer(), **kwargs)
        self.app_env = app_env
        env = app_env.value

        self.function_id = f"{FUNCTION_BASE_NAME}{env}"
        self.api_id = f"{API_BASE_NAME}{env}"

        # Code location is resolved by the pipeline at deploy time
        bucket_name_param = cdk.CfnParameter(
            self, f"{self.function_id}CodeBucketName",
            type="String",
            description=f"S3 bucket holding the {self.function_id} deployment package",
        )
        object_key_param = cdk.CfnParameter(
            self, f"{self.function_id}CodeObjectKey",
            type="String",
            description=f"S3 key of the {self.function_id} deployment package",
        )
        code = lambda_.Code.from_cfn_parameters(
            bucket_name_param=bucket_name_param,
            object_key_param=object_key_param,
        )
        self.pending_code = PendingCode(
            code,
            bucket_name_parameter=bucket_name_param.node.id,
            object_key_parameter=object_key_param.node.id,
        )

        self.function = lambda_.Function(
            self, self.function_id,
            runtime=lambda_.Runtime(settings.lambda_runtime, lambda_.RuntimeFamily.OTHER),
            handler=settings.lambda_handler,
            code=code,
            environment={APP_ENV_VARIABLE: env},
        )

        self.http_api = apigwv2.HttpApi(
            self, self.api_id,
            api_name=settings.api_name,
            cors_preflight=apigwv2.CorsPreflightOptions(
                allow_origins=["*"],
                allow_methods=[apigwv2.CorsHttpMethod.GET],
            ),
            create_default_stage=True,
        )

        # Proxy integration: request and response pass through unmodified
        routes = self.http_api.add_routes(
            path=ROUTE_PATH,
            methods=[ROUTE_METHOD],
            integration=HttpLambdaIntegration(f"{self.api_id}Integration", self.function),
        )
        self.route_keys: List[str] = [f"{ROUTE_METHOD.value} {ROUTE_PATH}" for _ in routes]

        self.endpoint_url = ExportedValue(
            output_id=f"{OUTPUT_BASE_NAME}{env}",
            export_name=endpoint_export_name(app_env),
        )
        self.cfn_output_api = cdk.CfnOutput(
            self, self.endpoint_url.output_id,
            value=self.http_api.url,
            export_name=self.endpoint_url.export_name,
            description=f"Endpoint URL of the {app_env.label} backend API",
        )

        cdk.Tags.of(self).add("Project", settings.app_name)
        cdk.Tags.of(self).add("Environment", env)


class DeploymentTarget(BaseModel):
    """Everything the pipeline needs to know about one environment's stack."""
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    environment: Environment
    stack_name: str
    stack: BackendStack
    pending_code: PendingCode
    endpoint_url: ExportedValue

    @property
    def routes(self) -> List[str]:
        return list(self.stack.route_keys)


def build_backend_stack(environment: Environment, settings: Optional[Settings] = None,
                        scope: Optional[Construct] = None) -> DeploymentTarget:
    """
    Declare the backend stack for one environment.

    Args:
        environment: Deployment tier the stack belongs to
        settings: Settings to use (defaults to the cached settings)
        scope: CDK app the stack is added to (a new one if omitted)

    Returns:
        DeploymentTarget exposing the stack, the pending code reference
        and the exported endpoint URL
    """
    settings = settings or get_settings()
    scope = scope or cdk.App(analytics_reporting=False)
    stack_name = backend_stack_name(environment, settings)

    stack = BackendStack(
        scope, stack_name,
        app_env=environment,
        settings=settings,
        description=f"Test backend HTTP API ({environment.label})",
    )
    logger.info(f"Declared {stack_name} ({environment.label})")

    return DeploymentTarget(
        environment=environment,
        stack_name=stack_name,
        stack=stack,
        pending_code=stack.pending_code,
        endpoint_url=stack.endpoint_url,
    )
