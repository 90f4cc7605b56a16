import json

import pytest
from click.testing import CliRunner

from backend_infra.aws.pipeline_status import PipelineStatusMonitor
from backend_infra.aws.stack_deployer import StackDeployer
from backend_infra.cli import cli
from backend_infra.pipeline.models import STAGE_ORDER


@pytest.fixture
def runner():
    return CliRunner()


def test_show_config(runner, cli_env):
    result = runner.invoke(cli, ["show-config"])

    assert result.exit_code == 0
    assert "STACK_NAME_PREFIX: BackendStack" in result.output
    assert "APP_SOURCE: TestLambdaProjectOrg/backend@main" in result.output


def test_synth(runner, cli_env, tmp_path):
    result = runner.invoke(cli, ["synth", "-o", "out"])

    assert result.exit_code == 0, result.output
    assert sorted(path.name for path in (tmp_path / "out").glob("*.template.json")) == [
        "BackendCICDStack.template.json",
        "BackendStackPPD.template.json",
        "BackendStackPRD.template.json",
    ]


def test_synth_single_environment(runner, cli_env, monkeypatch, tmp_path):
    monkeypatch.delenv("CODESTAR_CONNECTION_ARN")

    result = runner.invoke(cli, ["synth", "--environment", "PPD"])

    assert result.exit_code == 0, result.output
    assert [path.name for path in (tmp_path / "dist").glob("*.template.json")] == ["BackendStackPPD.template.json"]
    assert result.output.strip().endswith("BackendStackPPD.template.json")


def test_synth_without_connection(runner, cli_env, monkeypatch):
    monkeypatch.delenv("CODESTAR_CONNECTION_ARN")

    result = runner.invoke(cli, ["synth"])

    assert result.exit_code == 1
    assert "codestar_connection_arn" in result.output


def test_invalid_settings_are_reported(runner, cli_env, monkeypatch):
    monkeypatch.setenv("LOG_LEVEL", "LOUD")

    result = runner.invoke(cli, ["show-config"])

    assert result.exit_code == 1
    assert "Invalid configuration" in result.output
    assert "LOUD" in result.output


def test_plan(runner, cli_env):
    result = runner.invoke(cli, ["plan"])

    assert result.exit_code == 0, result.output
    lines = result.output.splitlines()
    assert [line for line in lines if line in STAGE_ORDER] == list(STAGE_ORDER)
    assert "  [2] DeployBackendToProductionApproval (approval) - -> -" in lines
    assert (
        "  [1] TestBackend_Cfn_Deploy_Production (deploy) "
        "InfraBuildOutputPRD, TestBackendBuildOutputPRD -> -"
    ) in lines


def test_deploy_pipeline_sends_the_synthesized_stack(runner, cli_env, monkeypatch):
    deployed = {}

    def fake_deploy(self, stack_name, template, parameters=None, capabilities=None):
        deployed[stack_name] = template
        return {"stack_name": stack_name, "status": "CREATE_COMPLETE", "changed": True, "outputs": {}}

    monkeypatch.setattr(StackDeployer, "deploy", fake_deploy)

    result = runner.invoke(cli, ["deploy-pipeline"])

    assert result.exit_code == 0, result.output
    assert "BackendCICDStack: CREATE_COMPLETE (updated)" in result.output
    resources = deployed["BackendCICDStack"]["Resources"].values()
    assert [resource["Type"] for resource in resources].count("AWS::CodePipeline::Pipeline") == 1


def test_endpoints(runner, cli_env, mocked_aws):
    template = {
        "Resources": {"CodeBucket": {"Type": "AWS::S3::Bucket"}},
        "Outputs": {
            "TestBackendAPIPPD": {
                "Value": {"Ref": "CodeBucket"},
                "Export": {"Name": "TestBackendAPIEndpointPPD"},
            },
        },
    }
    StackDeployer().deploy("BackendStackPPD", template)

    result = runner.invoke(cli, ["endpoints", "--json"])

    assert result.exit_code == 0, result.output
    assert list(json.loads(result.output)) == ["TestBackendAPIEndpointPPD"]


def test_endpoints_before_first_deploy(runner, cli_env, mocked_aws):
    result = runner.invoke(cli, ["endpoints"])

    assert result.exit_code == 0, result.output
    assert "No backend endpoints exported yet" in result.output


def test_pipeline_status_shows_pending_approval(runner, cli_env, monkeypatch):
    status = {
        "pipeline": "BackendCICDPipeline",
        "timestamp": "2024-01-01T00:00:00+00:00",
        "stages": [{
            "name": "Deploy-PPD",
            "status": "InProgress",
            "actions": [
                {"name": "TestBackend_Cfn_Deploy_Preproduction", "status": "Succeeded", "summary": None},
                {"name": "DeployBackendToProductionApproval", "status": "InProgress", "summary": None},
            ],
        }],
        "pending_approval": {
            "stage": "Deploy-PPD",
            "action": "DeployBackendToProductionApproval",
            "token": "approval-token",
        },
    }
    monkeypatch.setattr(PipelineStatusMonitor, "get_status", lambda self, pipeline_name=None: status)

    result = runner.invoke(cli, ["pipeline-status"])

    assert result.exit_code == 0, result.output
    assert "Deploy-PPD: InProgress" in result.output
    assert "Waiting for approval: DeployBackendToProductionApproval in Deploy-PPD" in result.output


def test_destroy_requires_confirmation(runner, cli_env, monkeypatch):
    deleted = []
    monkeypatch.setattr(StackDeployer, "delete", lambda self, stack_name: deleted.append(stack_name))

    aborted = runner.invoke(cli, ["destroy", "--stack", "BackendStackPPD"], input="n\n")
    assert aborted.exit_code == 1
    assert deleted == []

    result = runner.invoke(cli, ["destroy", "--stack", "BackendStackPPD", "--yes"])
    assert result.exit_code == 0, result.output
    assert deleted == ["BackendStackPPD"]
