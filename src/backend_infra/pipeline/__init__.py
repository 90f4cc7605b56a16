"""
Delivery pipeline: model, assembly and CDK rendering.
"""
from backend_infra.pipeline.builder import (
    build_application_task,
    build_infrastructure_task,
    build_pipeline,
    deploy_task,
)
from backend_infra.pipeline.models import (
    STAGE_ORDER,
    ApprovalGate,
    BuildSpec,
    BuildTask,
    DeployTask,
    Pipeline,
    SourceAction,
    SourceReference,
    Stage,
)
from backend_infra.pipeline.stack import build_pipeline_stack

__all__ = [
    "STAGE_ORDER",
    "ApprovalGate",
    "BuildSpec",
    "BuildTask",
    "DeployTask",
    "Pipeline",
    "SourceAction",
    "SourceReference",
    "Stage",
    "build_application_task",
    "build_infrastructure_task",
    "build_pipeline",
    "build_pipeline_stack",
    "deploy_task",
]
