"""
backend-infra: infrastructure for the test backend HTTP API and its delivery pipeline.
"""

__version__ = "0.1.0"
