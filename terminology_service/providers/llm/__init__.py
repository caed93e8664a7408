"""LLM providers used for mapping suggestions and search enhancement"""
from .base import LLMProvider
from .factory import LLMFactory

__all__ = ["LLMProvider", "LLMFactory"]
