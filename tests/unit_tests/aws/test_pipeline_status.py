import boto3
import pytest
from botocore.stub import Stubber

from backend_infra.aws.pipeline_status import PipelineStatusMonitor
from backend_infra.errors import DeploymentError
from tests.consts import TEST_PIPELINE_NAME, TEST_REGION

PIPELINE_STATE = {
    "pipelineName": TEST_PIPELINE_NAME,
    "stageStates": [
        {
            "stageName": "Source",
            "latestExecution": {"pipelineExecutionId": "exec-1", "status": "Succeeded"},
            "actionStates": [
                {"actionName": "CheckoutFromGithub", "latestExecution": {"status": "Succeeded"}},
                {"actionName": "InfraCodeFromGithub", "latestExecution": {"status": "Succeeded"}},
            ],
        },
        {
            "stageName": "Deploy-PPD",
            "latestExecution": {"pipelineExecutionId": "exec-1", "status": "InProgress"},
            "actionStates": [
                {
                    "actionName": "TestBackend_Cfn_Deploy_Preproduction",
                    "latestExecution": {"status": "Succeeded", "summary": "Stack updated"},
                },
                {
                    "actionName": "DeployBackendToProductionApproval",
                    "latestExecution": {"status": "InProgress", "token": "approval-token"},
                },
            ],
        },
        {
            "stageName": "Deploy-PRD",
            "actionStates": [{"actionName": "TestBackend_Cfn_Deploy_Production"}],
        },
    ],
}

pytestmark = pytest.mark.aws


@pytest.fixture
def codepipeline_client(aws_credentials):
    client = boto3.client("codepipeline", region_name=TEST_REGION)
    with Stubber(client) as stubber:
        yield client, stubber
        stubber.assert_no_pending_responses()


def test_status_reports_pending_approval(codepipeline_client, settings):
    client, stubber = codepipeline_client
    stubber.add_response("get_pipeline_state", PIPELINE_STATE, {"name": TEST_PIPELINE_NAME})

    status = PipelineStatusMonitor(client=client, settings=settings).get_status()

    assert status["pipeline"] == TEST_PIPELINE_NAME
    assert [stage["name"] for stage in status["stages"]] == ["Source", "Deploy-PPD", "Deploy-PRD"]
    assert status["stages"][1]["actions"][0]["summary"] == "Stack updated"
    assert status["stages"][2] == {
        "name": "Deploy-PRD",
        "status": "NotStarted",
        "actions": [{"name": "TestBackend_Cfn_Deploy_Production", "status": "NotStarted", "summary": None}],
    }
    assert status["pending_approval"] == {
        "stage": "Deploy-PPD",
        "action": "DeployBackendToProductionApproval",
        "token": "approval-token",
    }


def test_missing_pipeline_is_a_deployment_error(codepipeline_client, settings):
    client, stubber = codepipeline_client
    stubber.add_client_error(
        "get_pipeline_state",
        service_error_code="PipelineNotFoundException",
        service_message="Pipeline not found",
        expected_params={"name": "Unknown"},
    )

    with pytest.raises(DeploymentError, match="Unknown"):
        PipelineStatusMonitor(client=client, settings=settings).get_status("Unknown")
