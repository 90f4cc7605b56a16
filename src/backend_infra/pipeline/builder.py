"""
Pipeline assembly.

Builds the task objects for each environment and wires them into the fixed
stage layout: Source, Build-PPD, Deploy-PPD (+ approval), Build-PRD,
Deploy-PRD.
"""
import logging
from typing import Any, Dict, Iterable, List, Optional

from pydantic import ValidationError

from backend_infra.artifacts import Artifact, ArtifactPath
from backend_infra.backend_stack import DeploymentTarget, backend_stack_name
from backend_infra.config.settings import Settings, get_settings
from backend_infra.environment import APP_ENV_VARIABLE, ENVIRONMENTS, Environment
from backend_infra.errors import ConfigurationError
from backend_infra.pipeline.buildspec import go_binary_build_spec, infrastructure_build_spec
from backend_infra.pipeline.models import (
    SOURCE_STAGE,
    ApprovalGate,
    BuildEnvironmentVariable,
    BuildTask,
    DeployTask,
    Pipeline,
    SourceAction,
    SourceReference,
    Stage,
    build_stage_name,
    deploy_stage_name,
)

logger = logging.getLogger(__name__)

APP_SOURCE_OUTPUT = "AppSourceOutput"
INFRA_SOURCE_OUTPUT = "InfraSourceOutput"
APPROVAL_ACTION_NAME = "DeployBackendToProductionApproval"
DEFAULT_FUNCTION_NAME = "TestBackend"

# Custom runtimes (provided.*) execute a file named "bootstrap"
CUSTOM_RUNTIME_PREFIX = "provided"
CUSTOM_RUNTIME_ENTRYPOINT = "bootstrap"

DEPLOY_ACTION_SUFFIX = {
    Environment.PPD: "Preproduction",
    Environment.PRD: "Production",
}


def _environment_variables(environment: Environment,
                           variables: Optional[Dict[str, Any]] = None) -> Dict[str, BuildEnvironmentVariable]:
    """Merge caller variables with APP_ENV; APP_ENV always wins."""
    merged: Dict[str, BuildEnvironmentVariable] = {}
    for name, value in (variables or {}).items():
        if name == APP_ENV_VARIABLE:
            logger.warning(f"Ignoring caller-supplied {APP_ENV_VARIABLE}; it is always {environment.value}")
            continue
        if not isinstance(value, BuildEnvironmentVariable):
            value = BuildEnvironmentVariable(value=str(value))
        merged[name] = value
    merged[APP_ENV_VARIABLE] = BuildEnvironmentVariable(value=environment.value)
    return merged


def template_file_name(environment: Environment, settings: Optional[Settings] = None) -> str:
    return f"{backend_stack_name(environment, settings)}.template.json"


def _build_task(**fields: Any) -> BuildTask:
    try:
        return BuildTask(**fields)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid build task {fields.get('name')}: {e}") from e


def build_infrastructure_task(environment: Environment, source_output: Artifact,
                              settings: Optional[Settings] = None) -> BuildTask:
    """Build task rendering the environment's backend stack template."""
    settings = settings or get_settings()
    env = environment.value
    try:
        build_commands = [
            command.format(environment=env, output_directory=settings.infra_output_directory)
            for command in settings.infra_build_commands
        ]
    except (KeyError, IndexError) as e:
        raise ConfigurationError(f"Invalid placeholder in infra_build_commands: {e}") from e

    build_spec = infrastructure_build_spec(
        template_file=template_file_name(environment, settings),
        install_commands=list(settings.infra_install_commands),
        build_commands=build_commands,
        output_directory=settings.infra_output_directory,
    )

    # The build container synthesizes with the same naming settings as this process
    return _build_task(
        name=f"Infra{env}_BuildAction",
        project_id=f"InfraBuildProject{env}",
        environment=environment,
        input=source_output,
        output_artifacts=[Artifact(name=f"InfraBuildOutput{env}")],
        build_spec=build_spec,
        build_image=settings.infra_build_image,
        environment_variables=_environment_variables(environment, settings.synthesis_variables()),
    )


def build_application_task(environment: Environment, source_output: Artifact,
                           base_directory: str, output_file_name: str,
                           settings: Optional[Settings] = None,
                           variables: Optional[Dict[str, Any]] = None,
                           function_name: str = DEFAULT_FUNCTION_NAME) -> BuildTask:
    """
    Build task compiling the backend binary for one environment.

    Args:
        environment: Environment the binary is built for (exported as APP_ENV)
        source_output: Application source artifact
        base_directory: Directory of the Go module
        output_file_name: Name of the single file in the output artifact
        settings: Settings to use (defaults to the cached settings)
        variables: Extra build environment variables; cannot override APP_ENV
        function_name: Function the binary belongs to, used in names

    Returns:
        BuildTask producing ``<function_name>BuildOutput<env>``
    """
    settings = settings or get_settings()
    if not output_file_name:
        raise ConfigurationError("output_file_name must not be empty")
    if not base_directory:
        raise ConfigurationError("base_directory must not be empty")
    if (settings.lambda_runtime.startswith(CUSTOM_RUNTIME_PREFIX)
            and output_file_name != CUSTOM_RUNTIME_ENTRYPOINT):
        raise ConfigurationError(
            f"Runtime {settings.lambda_runtime} runs a binary named {CUSTOM_RUNTIME_ENTRYPOINT!r}, "
            f"got output_file_name={output_file_name!r}"
        )
    env = environment.value

    return _build_task(
        name=f"{function_name}{env}_BuildAction",
        project_id=f"{function_name}{env}LambdaBuild",
        environment=environment,
        input=source_output,
        output_artifacts=[Artifact(name=f"{function_name}BuildOutput{env}")],
        build_spec=go_binary_build_spec(base_directory, output_file_name),
        build_image=settings.app_build_image,
        environment_variables=_environment_variables(environment, variables),
    )


def deploy_task(environment: Environment, template_path: ArtifactPath,
                extra_inputs: Iterable[Artifact], settings: Optional[Settings] = None,
                parameter_overrides: Optional[Dict[str, Any]] = None,
                run_order: int = 1) -> DeployTask:
    """Deploy task creating or updating ``<stack_name_prefix><env>``."""
    settings = settings or get_settings()
    try:
        return DeployTask(
            name=f"TestBackend_Cfn_Deploy_{DEPLOY_ACTION_SUFFIX[environment]}",
            environment=environment,
            stack_name=backend_stack_name(environment, settings),
            template_path=template_path,
            extra_inputs=list(extra_inputs),
            parameter_overrides=parameter_overrides or {},
            admin_permissions=True,
            run_order=run_order,
        )
    except ValidationError as e:
        raise ConfigurationError(f"Invalid deploy task for {environment.value}: {e}") from e


def _source_reference(repository: str, branch: str, settings: Settings) -> SourceReference:
    if not settings.codestar_connection_arn:
        raise ConfigurationError(
            "codestar_connection_arn is not set (CODESTAR_CONNECTION_ARN); "
            "the pipeline cannot fetch its sources"
        )
    return SourceReference(
        owner=settings.source_owner,
        repository=repository,
        branch=branch,
        connection_arn=settings.codestar_connection_arn,
    )


def _approval_gate(ppd_target: DeploymentTarget, settings: Settings, run_order: int) -> ApprovalGate:
    link = None
    if settings.link_approval_to_endpoint:
        link = ppd_target.endpoint_url.import_value()
    return ApprovalGate(
        name=APPROVAL_ACTION_NAME,
        message=settings.approval_message,
        external_entity_link=link,
        run_order=run_order,
    )


def _targets_by_environment(targets: Iterable[DeploymentTarget]) -> Dict[Environment, DeploymentTarget]:
    by_environment: Dict[Environment, DeploymentTarget] = {}
    for target in targets:
        if target.environment in by_environment:
            raise ConfigurationError(f"Duplicate deployment target for {target.environment.value}")
        by_environment[target.environment] = target
    missing = [env.value for env in ENVIRONMENTS if env not in by_environment]
    if missing:
        raise ConfigurationError(f"Missing deployment targets for: {', '.join(missing)}")
    return by_environment


def build_pipeline(targets: Iterable[DeploymentTarget], settings: Optional[Settings] = None) -> Pipeline:
    """
    Assemble the delivery pipeline for the given deployment targets.

    Args:
        targets: One DeploymentTarget per environment
        settings: Settings to use (defaults to the cached settings)

    Returns:
        Pipeline with the fixed five-stage layout

    Raises:
        ConfigurationError: if a source connection or a target is missing
    """
    settings = settings or get_settings()
    by_environment = _targets_by_environment(targets)

    app_source = SourceAction(
        name="CheckoutFromGithub",
        source=_source_reference(settings.app_repository, settings.app_branch, settings),
        output=Artifact(name=APP_SOURCE_OUTPUT),
    )
    infra_source = SourceAction(
        name="InfraCodeFromGithub",
        source=_source_reference(settings.infra_repository, settings.infra_branch, settings),
        output=Artifact(name=INFRA_SOURCE_OUTPUT),
    )

    stages: List[Stage] = [Stage(name=SOURCE_STAGE, actions=[app_source, infra_source])]

    for environment in ENVIRONMENTS:
        target = by_environment[environment]

        infra_build = build_infrastructure_task(environment, infra_source.output, settings)
        app_build = build_application_task(
            environment,
            app_source.output,
            settings.app_base_directory,
            settings.app_output_file_name,
            settings=settings,
            variables=settings.app_build_variables,
        )
        stages.append(Stage(name=build_stage_name(environment), actions=[infra_build, app_build]))

        # Template comes from the infrastructure build; the binary location
        # is bound to the stack's pending code parameters.
        infra_output = infra_build.outputs[0]
        app_output = app_build.outputs[0]
        deploy = deploy_task(
            environment,
            infra_output.at_path(template_file_name(environment, settings)),
            extra_inputs=[infra_output, app_output],
            settings=settings,
            parameter_overrides=target.pending_code.assign(app_output),
        )
        deploy_actions = [deploy]
        if environment is Environment.PPD:
            deploy_actions.append(_approval_gate(target, settings, run_order=deploy.run_order + 1))
        stages.append(Stage(name=deploy_stage_name(environment), actions=deploy_actions))

    try:
        pipeline = Pipeline(name=settings.pipeline_name, stages=stages)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid pipeline topology: {e}") from e

    logger.info(
        f"Pipeline {pipeline.name} assembled: {len(pipeline.stages)} stages, "
        f"{len(pipeline.actions())} actions"
    )
    return pipeline
