"""
Delivery pipeline status.

Reads the state of the pipeline's stages and actions and reports whether a
manual approval is waiting.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from botocore.exceptions import ClientError

from backend_infra.aws.clients import get_codepipeline_client
from backend_infra.config.settings import Settings, get_settings
from backend_infra.errors import DeploymentError

logger = logging.getLogger(__name__)


class PipelineStatusMonitor:
    """Summarize CodePipeline state for the CLI."""

    def __init__(self, client=None, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.client = client or get_codepipeline_client()

    def get_status(self, pipeline_name: Optional[str] = None) -> Dict[str, Any]:
        """
        Get the current status of every stage and action.

        Returns:
            Dict with the pipeline name, a timestamp, per-stage status and
            the pending approval (or None)
        """
        pipeline_name = pipeline_name or self.settings.pipeline_name
        try:
            state = self.client.get_pipeline_state(name=pipeline_name)
        except ClientError as e:
            raise DeploymentError(f"Failed to read state of pipeline {pipeline_name}: {e}") from e

        report = {
            'pipeline': pipeline_name,
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'stages': [],
            'pending_approval': None,
        }

        for stage in state.get('stageStates', []):
            stage_status = stage.get('latestExecution', {}).get('status', 'NotStarted')
            actions = []
            for action in stage.get('actionStates', []):
                execution = action.get('latestExecution', {})
                action_status = execution.get('status', 'NotStarted')
                actions.append({
                    'name': action['actionName'],
                    'status': action_status,
                    'summary': execution.get('summary'),
                })
                # A manual approval in progress carries a token
                if action_status == 'InProgress' and execution.get('token'):
                    report['pending_approval'] = {
                        'stage': stage['stageName'],
                        'action': action['actionName'],
                        'token': execution['token'],
                    }
            report['stages'].append({
                'name': stage['stageName'],
                'status': stage_status,
                'actions': actions,
            })

        logger.debug(f"Pipeline {pipeline_name}: {len(report['stages'])} stages")
        return report
