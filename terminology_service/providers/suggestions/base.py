"""
Mapping Suggestion Provider contract.

A provider proposes target codes for a source term. It may fail with
``ProviderUnavailable`` (transport, auth, quota) or ``MalformedResponse``
(the reply could not be decoded); callers treat both as "no suggestions"
and may fall back to ``fallback()``.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional


class SuggestionProviderError(Exception):
    """Base error for suggestion providers."""


class ProviderUnavailable(SuggestionProviderError):
    """The provider could not be reached or refused the request."""


class MalformedResponse(SuggestionProviderError):
    """The provider answered with something that is not a suggestion list."""


@dataclass
class MappingSuggestion:
    """A candidate target code proposed for a source term."""
    target_code: str
    equivalence: str
    confidence: int
    target_display: str = ""
    rationale: str = ""


class SuggestionProvider(ABC):
    """Proposes target codes for a source terminology code"""

    @abstractmethod
    async def suggest(
        self,
        code: str,
        display: str,
        definition: Optional[str] = None,
        target_system: str = "ICD-11-TM2"
    ) -> List[MappingSuggestion]:
        """
        Propose mappings for a source code.

        Raises:
            ProviderUnavailable: If the provider cannot be reached
            MalformedResponse: If the reply cannot be decoded
        """
        pass

    def fallback(
        self,
        code: str,
        display: str,
        definition: Optional[str] = None,
        target_system: str = "ICD-11-TM2"
    ) -> List[MappingSuggestion]:
        """Suggestions to use when ``suggest`` fails. None by default."""
        return []

    @property
    def name(self) -> str:
        return type(self).__name__


class SearchEnhancer(ABC):
    """Reorders and annotates search results"""

    @abstractmethod
    async def enhance(self, query: str, results: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """
        Return results in preferred order, each item carrying at least
        ``system`` and ``code`` and optionally ``context``.
        """
        pass
