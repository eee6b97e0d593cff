"""
External integrations for the self-assessment engine.

Modules:
- study_api_client: httpx client for question generation and evaluation
- study_api_schemas: camelCase wire models for the study API
"""
from .study_api_client import StudyApiClient

__all__ = ["StudyApiClient"]
