"""Collaborator contracts and their HTTP implementations."""

from .base import ClassifierClient, FeedClient
from .mediawiki import MediaWikiFeedClient
from .ollama_client import OllamaClassifierClient

__all__ = [
    "ClassifierClient",
    "FeedClient",
    "MediaWikiFeedClient",
    "OllamaClassifierClient",
]
