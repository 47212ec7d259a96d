"""Analysis and chat service client."""

from .api_client import CindaApiClient

__all__ = ['CindaApiClient']
