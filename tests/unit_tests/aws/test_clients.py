from backend_infra.aws.clients import (
    AWSClientManager,
    get_client_manager,
    get_cloudformation_client,
    reset_client_manager,
)


def test_clients_are_cached(aws_credentials, settings):
    manager = AWSClientManager(settings)

    client = manager.get_client("cloudformation")

    assert manager.get_client("cloudformation") is client
    assert client.meta.region_name == settings.aws_region

    manager.clear_clients()
    assert manager.get_client("cloudformation") is not client


def test_endpoint_url_is_applied(aws_credentials, settings):
    local = settings.model_copy(update={"aws_endpoint_url": "http://localhost:4566"})

    client = AWSClientManager(local).get_client("codepipeline")

    assert client.meta.endpoint_url == "http://localhost:4566"


def test_default_manager_is_shared(aws_credentials):
    manager = get_client_manager()

    assert get_client_manager() is manager
    assert get_cloudformation_client() is manager.get_client("cloudformation")

    reset_client_manager()
    assert get_client_manager() is not manager
