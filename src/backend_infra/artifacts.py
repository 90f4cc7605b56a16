"""Pipeline artifacts and the pending-code handoff between stacks."""
from typing import Dict

import aws_cdk as cdk
from aws_cdk import aws_codepipeline as codepipeline
from aws_cdk import aws_lambda as lambda_
from aws_cdk import aws_s3 as s3
from pydantic import BaseModel, ConfigDict, Field

ARTIFACT_NAME_PATTERN = r"^[A-Za-z0-9_\-]{1,100}$"


class Artifact(BaseModel):
    """A named pipeline artifact produced by exactly one action."""
    model_config = ConfigDict(frozen=True)

    name: str = Field(pattern=ARTIFACT_NAME_PATTERN)

    def at_path(self, file_name: str) -> "ArtifactPath":
        return ArtifactPath(artifact=self, file_name=file_name)

    @property
    def s3_location(self) -> s3.Location:
        """Bucket and key of the artifact, resolved by CodePipeline at run time."""
        return codepipeline.Artifact.artifact(self.name).s3_location


class ArtifactPath(BaseModel):
    """A single file inside an artifact."""
    model_config = ConfigDict(frozen=True)

    artifact: Artifact
    file_name: str = Field(min_length=1)

    @property
    def location(self) -> str:
        """Location string understood by the CloudFormation deploy action."""
        return f"{self.artifact.name}::{self.file_name}"


class PendingCode:
    """Lambda code that the delivery pipeline supplies at deploy time.

    Wraps the ``CfnParametersCode`` of a backend stack: two template
    parameters (S3 bucket and object key) that ``assign`` binds to the
    location of a build output artifact.
    """

    def __init__(self, code: lambda_.CfnParametersCode,
                 bucket_name_parameter: str, object_key_parameter: str):
        self.code = code
        self.bucket_name_parameter = bucket_name_parameter
        self.object_key_parameter = object_key_parameter

    def assign(self, artifact: Artifact) -> Dict[str, str]:
        """Return CloudFormation parameter overrides locating ``artifact``."""
        location = artifact.s3_location
        return self.code.assign(bucket_name=location.bucket_name,
                                object_key=location.object_key,
                                object_version=location.object_version)


class ExportedValue(BaseModel):
    """A stack output published under an export name."""
    model_config = ConfigDict(frozen=True)

    output_id: str = Field(min_length=1)
    export_name: str = Field(min_length=1)

    def import_value(self) -> str:
        return cdk.Fn.import_value(self.export_name)
