import boto3
import pytest
from moto import mock_aws

from backend_infra.aws.clients import reset_client_manager
from backend_infra.config.settings import Settings, get_settings
from tests.consts import TEST_CONNECTION_ARN, TEST_REGION
from tests.fixtures.pipeline_fixtures import cdk_app, pipeline, targets  # noqa: F401


@pytest.fixture(autouse=True)
def clear_settings_cache():
    get_settings.cache_clear()
    reset_client_manager()
    yield
    get_settings.cache_clear()
    reset_client_manager()


@pytest.fixture
def settings() -> Settings:
    """Settings isolated from the process environment and .env files."""
    return Settings(
        _env_file=None,
        aws_region=TEST_REGION,
        aws_endpoint_url=None,
        aws_profile=None,
        codestar_connection_arn=TEST_CONNECTION_ARN,
        deploy_poll_delay=1,
        deploy_max_attempts=5,
    )


@pytest.fixture
def settings_without_connection(settings) -> Settings:
    return settings.model_copy(update={"codestar_connection_arn": None})


@pytest.fixture
def aws_credentials(monkeypatch):
    """Fake credentials so boto3 never reaches a real account."""
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")
    monkeypatch.setenv("AWS_SECURITY_TOKEN", "testing")
    monkeypatch.setenv("AWS_SESSION_TOKEN", "testing")
    monkeypatch.setenv("AWS_DEFAULT_REGION", TEST_REGION)
    monkeypatch.delenv("AWS_PROFILE", raising=False)
    monkeypatch.delenv("AWS_ENDPOINT_URL", raising=False)


@pytest.fixture
def mocked_aws(aws_credentials):
    with mock_aws():
        yield


@pytest.fixture
def cloudformation_client(mocked_aws):
    return boto3.client("cloudformation", region_name=TEST_REGION)


@pytest.fixture
def cli_env(monkeypatch, tmp_path, aws_credentials):
    """Environment read by get_settings() inside CLI commands."""
    monkeypatch.setenv("CODESTAR_CONNECTION_ARN", TEST_CONNECTION_ARN)
    monkeypatch.chdir(tmp_path)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
