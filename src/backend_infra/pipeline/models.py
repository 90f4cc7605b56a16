"""
Delivery pipeline model.

Provider-agnostic description of the pipeline: sources, build tasks, deploy
tasks and the approval gate, grouped in ordered stages. The CodePipeline
constructs are built in backend_infra.pipeline.stack.
"""
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator
from typing_extensions import Annotated, Self

from backend_infra.artifacts import Artifact, ArtifactPath
from backend_infra.environment import Environment

SOURCE_STAGE = "Source"

# Fixed stage order of the pipeline
STAGE_ORDER = (
    SOURCE_STAGE,
    f"Build-{Environment.PPD.value}",
    f"Deploy-{Environment.PPD.value}",
    f"Build-{Environment.PRD.value}",
    f"Deploy-{Environment.PRD.value}",
)


def build_stage_name(environment: Environment) -> str:
    return f"Build-{environment.value}"


def deploy_stage_name(environment: Environment) -> str:
    return f"Deploy-{environment.value}"


class SourceReference(BaseModel):
    """Where a source artifact comes from."""
    model_config = ConfigDict(frozen=True)

    owner: str = Field(min_length=1)
    repository: str = Field(min_length=1)
    branch: str = Field(min_length=1)
    connection_arn: str = Field(min_length=1)

    @property
    def full_repository_id(self) -> str:
        return f"{self.owner}/{self.repository}"


class BuildEnvironmentVariable(BaseModel):
    model_config = ConfigDict(frozen=True)

    value: str
    type: Literal["PLAINTEXT", "PARAMETER_STORE", "SECRETS_MANAGER"] = "PLAINTEXT"


class BuildSpec(BaseModel):
    """Scripted build: install commands, build commands and artifact selection."""
    model_config = ConfigDict(frozen=True)

    version: str = "0.2"
    install_commands: List[str] = Field(default_factory=list)
    build_commands: List[str] = Field(default_factory=list)
    base_directory: str = Field(min_length=1)
    files: List[str] = Field(min_length=1)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "phases": {
                "install": {"commands": list(self.install_commands)},
                "build": {"commands": list(self.build_commands)},
            },
            "artifacts": {
                "base-directory": self.base_directory,
                "files": list(self.files),
            },
        }


class SourceAction(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["source"] = "source"
    name: str
    source: SourceReference
    output: Artifact
    run_order: int = Field(default=1, ge=1)

    @property
    def inputs(self) -> List[Artifact]:
        return []

    @property
    def outputs(self) -> List[Artifact]:
        return [self.output]


class BuildTask(BaseModel):
    """One CodeBuild project run as a pipeline action."""
    model_config = ConfigDict(frozen=True)

    kind: Literal["build"] = "build"
    name: str
    project_id: str = Field(pattern=r"^[A-Za-z0-9]+$")
    environment: Environment
    input: Artifact
    output_artifacts: List[Artifact] = Field(min_length=1)
    build_spec: BuildSpec
    build_image: str
    environment_variables: Dict[str, BuildEnvironmentVariable] = Field(default_factory=dict)
    run_order: int = Field(default=1, ge=1)

    @property
    def inputs(self) -> List[Artifact]:
        return [self.input]

    @property
    def outputs(self) -> List[Artifact]:
        return list(self.output_artifacts)


class DeployTask(BaseModel):
    """Create or update one stack from a rendered template."""
    model_config = ConfigDict(frozen=True)

    kind: Literal["deploy"] = "deploy"
    name: str
    environment: Environment
    stack_name: str
    template_path: ArtifactPath
    extra_inputs: List[Artifact] = Field(default_factory=list)
    parameter_overrides: Dict[str, Any] = Field(default_factory=dict)
    admin_permissions: bool = True
    run_order: int = Field(default=1, ge=1)

    @property
    def inputs(self) -> List[Artifact]:
        # Template artifact first, then the auxiliary artifacts without duplicates
        artifacts = [self.template_path.artifact]
        for artifact in self.extra_inputs:
            if artifact not in artifacts:
                artifacts.append(artifact)
        return artifacts

    @property
    def outputs(self) -> List[Artifact]:
        return []


class ApprovalGate(BaseModel):
    """Manual checkpoint blocking promotion to the next environment."""
    model_config = ConfigDict(frozen=True)

    kind: Literal["approval"] = "approval"
    name: str
    message: str = Field(min_length=1)
    external_entity_link: Optional[str] = None
    run_order: int = Field(default=1, ge=1)

    @property
    def inputs(self) -> List[Artifact]:
        return []

    @property
    def outputs(self) -> List[Artifact]:
        return []


Action = Annotated[
    Union[SourceAction, BuildTask, DeployTask, ApprovalGate],
    Field(discriminator="kind"),
]


class Stage(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    actions: List[Action] = Field(min_length=1)

    @model_validator(mode="after")
    def check_unique_action_names(self) -> Self:
        names = [action.name for action in self.actions]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise ValueError(f"Duplicate action names in stage {self.name}: {', '.join(duplicates)}")
        return self

    def ordered_actions(self) -> List[Action]:
        """Actions sorted by run order (stable for equal run orders)."""
        return sorted(self.actions, key=lambda action: action.run_order)


class Pipeline(BaseModel):
    """Ordered stages of the delivery pipeline."""
    model_config = ConfigDict(frozen=True)

    name: str
    stages: List[Stage]

    @model_validator(mode="after")
    def check_stage_order(self) -> Self:
        names = tuple(stage.name for stage in self.stages)
        if names != STAGE_ORDER:
            raise ValueError(f"Stages must be {list(STAGE_ORDER)}, got {list(names)}")
        return self

    @model_validator(mode="after")
    def check_artifact_flow(self) -> Self:
        """Every consumed artifact must be produced earlier, and only once."""
        available = set()
        for stage in self.stages:
            for run_order in sorted({action.run_order for action in stage.actions}):
                batch = [action for action in stage.actions if action.run_order == run_order]
                for action in batch:
                    for artifact in action.inputs:
                        if artifact.name not in available:
                            raise ValueError(
                                f"Action {action.name} in stage {stage.name} consumes "
                                f"artifact {artifact.name} before it is produced"
                            )
                for action in batch:
                    for artifact in action.outputs:
                        if artifact.name in available:
                            raise ValueError(f"Artifact {artifact.name} is produced more than once")
                        available.add(artifact.name)
        return self

    def stage(self, name: str) -> Stage:
        for stage in self.stages:
            if stage.name == name:
                return stage
        raise KeyError(name)

    def actions(self) -> List[Action]:
        return [action for stage in self.stages for action in stage.ordered_actions()]

    def actions_of_kind(self, kind: str) -> List[Action]:
        return [action for action in self.actions() if action.kind == kind]
