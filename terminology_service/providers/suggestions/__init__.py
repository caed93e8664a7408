"""Mapping suggestion providers module"""
from .base import (
    MalformedResponse,
    MappingSuggestion,
    ProviderUnavailable,
    SearchEnhancer,
    SuggestionProvider,
    SuggestionProviderError,
)
from .factory import SuggestionFactory
from .llm import LLMSearchEnhancer, LLMSuggestionProvider
