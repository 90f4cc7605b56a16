"""
Application entry point: synthesizes every stack of the project.

One backend stack per environment plus the delivery pipeline stack that
deploys them, all in one CDK app. Templates are written to the cloud
assembly directory as ``<StackName>.template.json``.
"""
import logging
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Union

import aws_cdk as cdk
from aws_cdk import cx_api

from backend_infra.backend_stack import DeploymentTarget, build_backend_stack
from backend_infra.config.settings import Settings, get_settings
from backend_infra.environment import ENVIRONMENTS, Environment
from backend_infra.pipeline.builder import build_pipeline
from backend_infra.pipeline.models import Pipeline
from backend_infra.pipeline.stack import BackendPipelineStack, build_pipeline_stack
from backend_infra.utils.decorators import log_operation

logger = logging.getLogger(__name__)


class BackendApp:
    """The deployment targets and the pipeline built from one Settings instance."""

    def __init__(self, settings: Optional[Settings] = None,
                 environments: Iterable[Environment] = ENVIRONMENTS,
                 outdir: Optional[Union[str, Path]] = None):
        self.settings = settings or get_settings()
        self.app = cdk.App(
            analytics_reporting=False,
            outdir=str(Path(outdir).resolve()) if outdir else None,
        )
        self.targets: Dict[Environment, DeploymentTarget] = {
            environment: build_backend_stack(environment, self.settings, scope=self.app)
            for environment in environments
        }
        self._pipeline: Optional[Pipeline] = None
        self._pipeline_stack: Optional[BackendPipelineStack] = None

    @property
    def pipeline(self) -> Pipeline:
        """Pipeline model, built on first access (needs the source connection)."""
        if self._pipeline is None:
            self._pipeline = build_pipeline(self.targets.values(), self.settings)
        return self._pipeline

    @property
    def pipeline_stack(self) -> BackendPipelineStack:
        if self._pipeline_stack is None:
            self._pipeline_stack = build_pipeline_stack(self.pipeline, self.settings, scope=self.app)
        return self._pipeline_stack

    def stacks(self, include_pipeline: bool = True) -> List[cdk.Stack]:
        stacks: List[cdk.Stack] = [target.stack for target in self.targets.values()]
        if include_pipeline:
            stacks.append(self.pipeline_stack)
        return stacks

    def synth(self) -> cx_api.CloudAssembly:
        return self.app.synth()


@log_operation("Synthesizing templates")
def synth(output_dir: Union[str, Path] = "dist", settings: Optional[Settings] = None,
          environment: Optional[Environment] = None) -> List[Path]:
    """
    Synthesize templates to ``output_dir``.

    Args:
        output_dir: Cloud assembly directory receiving the template files
        settings: Settings to use (defaults to the cached settings)
        environment: Only synthesize this environment's backend stack. The
            pipeline stack is skipped, so no source connection is required.

    Returns:
        Paths of the written templates
    """
    if environment is not None:
        app = BackendApp(settings, environments=[environment], outdir=output_dir)
    else:
        app = BackendApp(settings, outdir=output_dir)
        # Validates the pipeline before anything is written
        app.stacks(include_pipeline=True)

    assembly = app.synth()
    written = []
    for stack in assembly.stacks:
        path = Path(assembly.directory) / stack.template_file
        logger.info(f"Wrote {stack.stack_name} to {path}")
        written.append(path)
    return written
