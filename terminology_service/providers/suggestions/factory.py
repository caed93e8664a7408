from typing import Optional

from terminology_service.config import settings
from terminology_service.providers.llm.factory import LLMFactory
from .base import SearchEnhancer, SuggestionProvider
from .llm import LLMSearchEnhancer, LLMSuggestionProvider


class SuggestionFactory:
    """Creates suggestion providers and search enhancers from configuration"""

    @staticmethod
    def create_provider() -> Optional[SuggestionProvider]:
        """
        LLM suggestion provider, or None when AI suggestions are disabled
        or no LLM is configured.
        """
        if not settings.enable_ai_suggestions or not LLMFactory.is_configured():
            return None
        return LLMSuggestionProvider(LLMFactory.create())

    @staticmethod
    def create_enhancer() -> Optional[SearchEnhancer]:
        """LLM search enhancer, or None when enhancement is disabled."""
        if not settings.enable_search_enhancement or not LLMFactory.is_configured():
            return None
        return LLMSearchEnhancer(LLMFactory.create())
