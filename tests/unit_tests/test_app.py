import json

import pytest

from backend_infra.app import BackendApp, synth
from backend_infra.environment import Environment
from backend_infra.errors import ConfigurationError


def test_app_declares_both_environments(settings):
    app = BackendApp(settings)

    assert list(app.targets) == [Environment.PPD, Environment.PRD]
    assert [stack.stack_name for stack in app.stacks()] == [
        "BackendStackPPD",
        "BackendStackPRD",
        "BackendCICDStack",
    ]


def test_pipeline_is_built_once(settings):
    app = BackendApp(settings)
    assert app.pipeline is app.pipeline


def test_synth_writes_every_stack(tmp_path, settings):
    paths = synth(tmp_path / "cdk.out", settings=settings)

    assert sorted(path.name for path in paths) == [
        "BackendCICDStack.template.json",
        "BackendStackPPD.template.json",
        "BackendStackPRD.template.json",
    ]
    document = json.loads((tmp_path / "cdk.out" / "BackendStackPPD.template.json").read_text())
    assert "TestBackendAPIPPD" in document["Outputs"]


def test_synth_single_environment_needs_no_connection(tmp_path, settings_without_connection):
    paths = synth(tmp_path / "cdk.out", settings=settings_without_connection, environment=Environment.PRD)

    assert [path.name for path in paths] == ["BackendStackPRD.template.json"]
    assert paths[0].is_file()


def test_synth_without_connection_fails(tmp_path, settings_without_connection):
    with pytest.raises(ConfigurationError):
        synth(tmp_path / "cdk.out", settings=settings_without_connection)

    assert list(tmp_path.rglob("*.json")) == []
