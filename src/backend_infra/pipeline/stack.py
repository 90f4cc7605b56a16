"""
CDK rendering of the delivery pipeline.

Turns the validated pipeline model into a CodePipeline pipeline: one
CodeBuild project per build task, CodeStar sources, CloudFormation deploy
actions and the manual approval.
"""
import logging
from typing import Dict, Optional

import aws_cdk as cdk
from aws_cdk import aws_codebuild as codebuild
from aws_cdk import aws_codepipeline as codepipeline
from aws_cdk import aws_codepipeline_actions as actions
from constructs import Construct

from backend_infra.artifacts import Artifact
from backend_infra.backend_stack import stack_synthesizer
from backend_infra.config.settings import Settings, get_settings
from backend_infra.errors import ConfigurationError
from backend_infra.pipeline.models import (
    ApprovalGate,
    BuildTask,
    DeployTask,
    Pipeline,
    SourceAction,
)

logger = logging.getLogger(__name__)

PIPELINE_ID = "BackendCICDPipeline"


class BackendPipelineStack(cdk.Stack):
    """Stack holding the CodePipeline pipeline described by a Pipeline model."""

    def __init__(self, scope: Construct, construct_id: str, *,
                 pipeline: Pipeline, **kwargs) -> None:
        super().__init__(scope, construct_id, synthesizer=stack_synthesizer(), **kwargs)
        self.model = pipeline
        self._artifacts: Dict[str, codepipeline.Artifact] = {}
        self.projects: Dict[str, codebuild.PipelineProject] = {}

        self.pipeline = codepipeline.Pipeline(
            self, PIPELINE_ID,
            pipeline_name=pipeline.name,
            cross_account_keys=False,
            restart_execution_on_update=False,
            stages=[
                codepipeline.StageProps(
                    stage_name=stage.name,
                    actions=[self.render_action(action) for action in stage.ordered_actions()],
                )
                for stage in pipeline.stages
            ],
        )

        cdk.CfnOutput(
            self, "PipelineName",
            value=self.pipeline.pipeline_name,
            description="Name of the delivery pipeline",
        )
        cdk.CfnOutput(self, "ArtifactsBucketName", value=self.pipeline.artifact_bucket.bucket_name)

    def artifact(self, artifact: Artifact) -> codepipeline.Artifact:
        """CDK artifact for a model artifact, one instance per name."""
        if artifact.name not in self._artifacts:
            self._artifacts[artifact.name] = codepipeline.Artifact(artifact.name)
        return self._artifacts[artifact.name]

    def build_project(self, task: BuildTask) -> codebuild.PipelineProject:
        project = codebuild.PipelineProject(
            self, task.project_id,
            build_spec=codebuild.BuildSpec.from_object(task.build_spec.to_dict()),
            environment=codebuild.BuildEnvironment(
                build_image=codebuild.LinuxBuildImage.from_code_build_image_id(task.build_image),
                environment_variables={
                    name: codebuild.BuildEnvironmentVariable(
                        value=variable.value,
                        type=codebuild.BuildEnvironmentVariableType[variable.type],
                    )
                    for name, variable in task.environment_variables.items()
                },
            ),
        )
        self.projects[task.project_id] = project
        return project

    def render_action(self, action) -> codepipeline.IAction:
        """Render one model action as a CodePipeline action."""
        if isinstance(action, SourceAction):
            return actions.CodeStarConnectionsSourceAction(
                action_name=action.name,
                connection_arn=action.source.connection_arn,
                owner=action.source.owner,
                repo=action.source.repository,
                branch=action.source.branch,
                output=self.artifact(action.output),
                run_order=action.run_order,
            )
        if isinstance(action, BuildTask):
            return actions.CodeBuildAction(
                action_name=action.name,
                project=self.build_project(action),
                input=self.artifact(action.input),
                outputs=[self.artifact(artifact) for artifact in action.outputs],
                run_order=action.run_order,
            )
        if isinstance(action, DeployTask):
            template_artifact = self.artifact(action.template_path.artifact)
            return actions.CloudFormationCreateUpdateStackAction(
                action_name=action.name,
                stack_name=action.stack_name,
                template_path=template_artifact.at_path(action.template_path.file_name),
                admin_permissions=action.admin_permissions,
                parameter_overrides=action.parameter_overrides or None,
                # inputs[0] is the template artifact, already bound by template_path
                extra_inputs=[self.artifact(artifact) for artifact in action.inputs[1:]],
                run_order=action.run_order,
            )
        if isinstance(action, ApprovalGate):
            return actions.ManualApprovalAction(
                action_name=action.name,
                additional_information=action.message,
                external_entity_link=action.external_entity_link,
                run_order=action.run_order,
            )
        raise ConfigurationError(f"Unsupported pipeline action: {action!r}")


def build_pipeline_stack(pipeline: Pipeline, settings: Optional[Settings] = None,
                         scope: Optional[Construct] = None) -> BackendPipelineStack:
    """
    Render the pipeline model as the pipeline stack.

    Args:
        pipeline: Assembled pipeline model
        settings: Settings to use (defaults to the cached settings)
        scope: CDK app the stack is added to (a new one if omitted)

    Returns:
        BackendPipelineStack named ``settings.pipeline_stack_name``
    """
    settings = settings or get_settings()
    scope = scope or cdk.App(analytics_reporting=False)
    stack = BackendPipelineStack(
        scope, settings.pipeline_stack_name,
        pipeline=pipeline,
        description="Continuous delivery pipeline for the test backend",
    )
    logger.info(
        f"Rendered {settings.pipeline_stack_name}: {len(stack.projects)} build projects, "
        f"{len(pipeline.stages)} stages"
    )
    return stack
