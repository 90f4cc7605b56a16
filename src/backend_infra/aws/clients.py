"""AWS client management."""
import logging
from typing import Any, Dict, Optional

import boto3

from backend_infra.config.settings import Settings, get_settings

logger = logging.getLogger(__name__)


class AWSClientManager:
    """Creates and caches boto3 clients configured from Settings."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.region = self.settings.aws_region
        self.endpoint_url = self.settings.aws_endpoint_url
        self._clients: Dict[str, Any] = {}
        self._session = None

        logger.debug(f"Initializing AWSClientManager (region: {self.region}, endpoint: {self.endpoint_url})")

    @property
    def session(self) -> boto3.session.Session:
        if self._session is None:
            if self.settings.aws_profile:
                self._session = boto3.session.Session(profile_name=self.settings.aws_profile)
                logger.debug(f"Using AWS profile: {self.settings.aws_profile}")
            else:
                self._session = boto3.session.Session()
        return self._session

    def get_client(self, service_name: str) -> Any:
        """Get or create an AWS service client."""
        # Return existing client if already created
        if service_name in self._clients:
            return self._clients[service_name]

        client_kwargs = {'region_name': self.region}
        if self.endpoint_url:
            client_kwargs['endpoint_url'] = self.endpoint_url

        client = self.session.client(service_name, **client_kwargs)
        self._clients[service_name] = client
        logger.debug(f"Created {service_name} client")
        return client

    def clear_clients(self):
        """Clear all cached clients."""
        self._clients.clear()
        logger.debug("Cleared all AWS clients")


_default_manager: Optional[AWSClientManager] = None


def get_client_manager() -> AWSClientManager:
    """Process-wide client manager built from the cached settings."""
    global _default_manager
    if _default_manager is None:
        _default_manager = AWSClientManager()
    return _default_manager


def reset_client_manager() -> None:
    global _default_manager
    _default_manager = None


# Convenience functions for common operations

def get_cloudformation_client():
    """Get the CloudFormation client."""
    return get_client_manager().get_client('cloudformation')


def get_codepipeline_client():
    """Get the CodePipeline client."""
    return get_client_manager().get_client('codepipeline')
