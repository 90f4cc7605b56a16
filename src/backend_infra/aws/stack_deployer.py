"""
CloudFormation stack deployment.

Creates or updates a stack from a synthesized template, waits for the
operation to settle and reports the stack outputs. Used to bootstrap the
pipeline stack; the backend stacks are deployed by the pipeline itself.
"""
import json
import logging
from typing import Any, Dict, List, Optional, Union

from botocore.exceptions import ClientError, WaiterError

from backend_infra.aws.clients import get_cloudformation_client
from backend_infra.config.settings import Settings, get_settings
from backend_infra.errors import DeploymentError
from backend_infra.utils.decorators import log_operation

logger = logging.getLogger(__name__)

DEFAULT_CAPABILITIES = ["CAPABILITY_IAM", "CAPABILITY_NAMED_IAM"]
NO_UPDATES_MESSAGE = "No updates are to be performed"
FAILED_EVENT_SUFFIXES = ("_FAILED",)


class StackDeployer:
    """Deploys synthesized templates with the CloudFormation API."""

    def __init__(self, client=None, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.client = client or get_cloudformation_client()

    def describe_stack(self, stack_name: str) -> Optional[Dict[str, Any]]:
        """Return the stack description, or None if the stack does not exist."""
        try:
            response = self.client.describe_stacks(StackName=stack_name)
        except ClientError as e:
            if "does not exist" in e.response.get('Error', {}).get('Message', ''):
                return None
            raise DeploymentError(f"Failed to describe {stack_name}: {e}", stack_name=stack_name) from e
        stacks = response.get('Stacks', [])
        return stacks[0] if stacks else None

    def get_outputs(self, stack_name: str) -> Dict[str, str]:
        stack = self.describe_stack(stack_name)
        if stack is None:
            raise DeploymentError(f"Stack {stack_name} does not exist", stack_name=stack_name)
        return {
            output['OutputKey']: output['OutputValue']
            for output in stack.get('Outputs', [])
        }

    @log_operation("Deploying stack")
    def deploy(self, stack_name: str, template: Union[str, Dict[str, Any]],
               parameters: Optional[Dict[str, str]] = None,
               capabilities: Optional[List[str]] = None) -> Dict[str, Any]:
        """
        Create the stack if it is missing, update it otherwise.

        Args:
            stack_name: Stack to create or update
            template: Template body, as a dict or a JSON string
            parameters: Template parameter values
            capabilities: CloudFormation capabilities to acknowledge

        Returns:
            Dict with stack_name, stack_id, status, outputs and whether it changed

        Raises:
            DeploymentError: if the API call or the stack operation fails
        """
        stack_kwargs = {
            'StackName': stack_name,
            'TemplateBody': template if isinstance(template, str) else json.dumps(template),
            'Parameters': [
                {'ParameterKey': key, 'ParameterValue': value}
                for key, value in (parameters or {}).items()
            ],
            'Capabilities': capabilities or DEFAULT_CAPABILITIES,
        }

        existing = self.describe_stack(stack_name)
        if existing and existing['StackStatus'] == 'ROLLBACK_COMPLETE':
            # A stack that failed its first creation can only be deleted
            logger.warning(f"{stack_name} is in ROLLBACK_COMPLETE, deleting before re-creating")
            self.delete(stack_name)
            existing = None

        changed = True
        try:
            if existing is None:
                logger.info(f"Creating stack {stack_name}")
                self.client.create_stack(**stack_kwargs)
                self._wait(stack_name, 'stack_create_complete')
            else:
                logger.info(f"Updating stack {stack_name}")
                self.client.update_stack(**stack_kwargs)
                self._wait(stack_name, 'stack_update_complete')
        except ClientError as e:
            message = e.response.get('Error', {}).get('Message', '')
            if NO_UPDATES_MESSAGE not in message:
                raise DeploymentError(f"Failed to deploy {stack_name}: {message}", stack_name=stack_name) from e
            logger.info(f"{stack_name} is already up to date")
            changed = False

        stack = self.describe_stack(stack_name)
        return {
            'stack_name': stack_name,
            'stack_id': stack['StackId'],
            'status': stack['StackStatus'],
            'changed': changed,
            'outputs': {
                output['OutputKey']: output['OutputValue']
                for output in stack.get('Outputs', [])
            },
        }

    @log_operation("Deleting stack")
    def delete(self, stack_name: str) -> None:
        try:
            self.client.delete_stack(StackName=stack_name)
        except ClientError as e:
            raise DeploymentError(f"Failed to delete {stack_name}: {e}", stack_name=stack_name) from e
        self._wait(stack_name, 'stack_delete_complete')
        logger.info(f"Deleted stack {stack_name}")

    def list_exports(self, prefix: str = "") -> Dict[str, str]:
        """Exported stack outputs whose name starts with ``prefix``."""
        exports = {}
        try:
            paginator = self.client.get_paginator('list_exports')
            for page in paginator.paginate():
                for export in page.get('Exports', []):
                    if export['Name'].startswith(prefix):
                        exports[export['Name']] = export['Value']
        except ClientError as e:
            raise DeploymentError(f"Failed to list exports: {e}") from e
        return exports

    def _wait(self, stack_name: str, waiter_name: str) -> None:
        waiter = self.client.get_waiter(waiter_name)
        try:
            waiter.wait(
                StackName=stack_name,
                WaiterConfig={
                    'Delay': self.settings.deploy_poll_delay,
                    'MaxAttempts': self.settings.deploy_max_attempts,
                },
            )
        except WaiterError as e:
            reason = self._first_failure_reason(stack_name)
            stack = self.describe_stack(stack_name)
            status = stack['StackStatus'] if stack else None
            raise DeploymentError(
                f"{stack_name} did not reach the expected state ({status}): {reason or e}",
                stack_name=stack_name,
                status=status,
            ) from e

    def _first_failure_reason(self, stack_name: str) -> Optional[str]:
        """Reason of the oldest failed resource event, the usual root cause."""
        try:
            events = self.client.describe_stack_events(StackName=stack_name).get('StackEvents', [])
        except ClientError as e:
            logger.warning(f"Could not read events of {stack_name}: {e}")
            return None
        failed = [
            event for event in events
            if event.get('ResourceStatus', '').endswith(FAILED_EVENT_SUFFIXES)
        ]
        if not failed:
            return None
        # Events are returned newest first
        event = failed[-1]
        return f"{event.get('LogicalResourceId')}: {event.get('ResourceStatusReason', 'unknown reason')}"
