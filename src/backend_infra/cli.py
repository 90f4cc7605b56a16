# cli.py
import json
import logging

import click
from pydantic import ValidationError

from backend_infra.app import BackendApp, synth as synth_templates
from backend_infra.backend_stack import EXPORT_BASE_NAME
from backend_infra.config.settings import get_settings
from backend_infra.environment import Environment
from backend_infra.errors import BackendInfraError

# Configure logging
logger = logging.getLogger(__name__)

ENVIRONMENT_CHOICE = click.Choice([environment.value for environment in Environment])


@click.group()
@click.option("--verbose", is_flag=True, help="Verbose logging")
def cli(verbose):
    """Synthesize and deploy the test backend infrastructure"""
    try:
        settings = get_settings()
    except ValidationError as e:
        raise click.ClickException(f"Invalid configuration: {e}")

    log_level = logging.DEBUG if verbose else settings.log_level
    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


@cli.command()
def show_config():
    """Show current configuration"""
    settings = get_settings()

    click.echo("Current Configuration:")
    for key, value in settings.get_environment_dict().items():
        click.echo(f"  {key}: {value}")


@cli.command()
@click.option("-o", "--output", default="dist", show_default=True, help="Directory for the templates")
@click.option("--environment", type=ENVIRONMENT_CHOICE, default=None,
              help="Only synthesize this environment's backend stack")
def synth(output, environment):
    """Write CloudFormation templates"""
    try:
        paths = synth_templates(
            output_dir=output,
            environment=Environment(environment) if environment else None,
        )
    except BackendInfraError as e:
        raise click.ClickException(str(e))

    for path in paths:
        click.echo(str(path))


@cli.command()
def plan():
    """Show the pipeline stages and actions"""
    try:
        pipeline = BackendApp().pipeline
    except BackendInfraError as e:
        raise click.ClickException(str(e))

    click.echo(f"Pipeline: {pipeline.name}")
    for stage in pipeline.stages:
        click.echo(f"\n{stage.name}")
        for action in stage.ordered_actions():
            inputs = ", ".join(artifact.name for artifact in action.inputs) or "-"
            outputs = ", ".join(artifact.name for artifact in action.outputs) or "-"
            click.echo(f"  [{action.run_order}] {action.name} ({action.kind}) {inputs} -> {outputs}")


@cli.command()
def deploy_pipeline():
    """Create or update the pipeline stack"""
    from backend_infra.aws.stack_deployer import StackDeployer

    try:
        app = BackendApp()
        stack = app.pipeline_stack
        template = app.synth().get_stack_by_name(stack.stack_name).template
        result = StackDeployer().deploy(stack.stack_name, template)
    except BackendInfraError as e:
        raise click.ClickException(str(e))

    state = "updated" if result['changed'] else "unchanged"
    click.echo(f"{result['stack_name']}: {result['status']} ({state})")
    for key, value in result['outputs'].items():
        click.echo(f"  {key}: {value}")


@cli.command()
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def endpoints(as_json):
    """Show the exported backend API endpoints"""
    from backend_infra.aws.stack_deployer import StackDeployer

    try:
        exports = StackDeployer().list_exports(prefix=EXPORT_BASE_NAME)
    except BackendInfraError as e:
        raise click.ClickException(str(e))

    if as_json:
        click.echo(json.dumps(exports, indent=2))
        return
    if not exports:
        click.echo("No backend endpoints exported yet")
        return
    for name, url in sorted(exports.items()):
        click.echo(f"{name}: {url}")


@cli.command()
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def pipeline_status(as_json):
    """Show the state of the delivery pipeline"""
    from backend_infra.aws.pipeline_status import PipelineStatusMonitor

    try:
        status = PipelineStatusMonitor().get_status()
    except BackendInfraError as e:
        raise click.ClickException(str(e))

    if as_json:
        click.echo(json.dumps(status, indent=2, default=str))
        return

    click.echo(f"Pipeline: {status['pipeline']}")
    for stage in status['stages']:
        click.echo(f"\n{stage['name']}: {stage['status']}")
        for action in stage['actions']:
            line = f"  {action['name']}: {action['status']}"
            if action['summary']:
                line += f" - {action['summary']}"
            click.echo(line)

    approval = status['pending_approval']
    if approval:
        click.echo(f"\nWaiting for approval: {approval['action']} in {approval['stage']}")


@cli.command()
@click.option("--stack", "stack_name", required=True, help="Stack to delete")
@click.confirmation_option(prompt="Delete the stack and all of its resources?")
def destroy(stack_name):
    """Delete a deployed stack"""
    from backend_infra.aws.stack_deployer import StackDeployer

    try:
        StackDeployer().delete(stack_name)
    except BackendInfraError as e:
        raise click.ClickException(str(e))
    click.echo(f"Deleted {stack_name}")


if __name__ == "__main__":
    cli()
