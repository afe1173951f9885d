"""LLM provider package."""
from mhub.providers.base import BaseProvider
from mhub.providers.mock_provider import MockProvider

__all__ = ["BaseProvider", "MockProvider"]
