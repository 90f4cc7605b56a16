"""
Configuration management for backend-infra.

Contains the pydantic settings shared by stack synthesis, the delivery
pipeline model and the AWS deployment helpers.
"""
from backend_infra.config.settings import Settings, get_settings

__all__ = ["Settings", "get_settings"]
