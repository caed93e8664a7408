"""
Concept Translation Resolver - answers ConceptMap $translate.

Resolution order:
1. Stored mappings for the source code in the target system, best
   confidence first
2. If none and the source is NAMASTE: ask the suggestion provider (bounded
   by a timeout), falling back to the provider's fallback set on failure
3. Persist fresh AI suggestions as ``ai-generated`` mappings; a failed
   write is logged and does not affect the answer

Provider trouble never fails a translation; it degrades to fewer matches.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

from terminology_service.providers.suggestions.base import MappingSuggestion, SuggestionProvider
from .repository import CodeRecord, CodeRepository, MappingRecord
from .systems import (
    CodeSystem,
    Equivalence,
    Provenance,
    is_valid_code,
    normalize_confidence,
    parse_equivalence,
)

logger = logging.getLogger(__name__)


@dataclass
class TranslationMatch:
    """One target concept in a translation answer."""
    target_code: str
    target_system: str
    target_display: str
    equivalence: str
    confidence: int = 0
    provenance: str = Provenance.MANUAL.value


def rank_matches(matches: Sequence[TranslationMatch]) -> List[TranslationMatch]:
    """Sort by confidence, highest first; equal confidences keep their order."""
    return sorted(matches, key=lambda m: -m.confidence)


class ConceptTranslationResolver:
    """
    Resolves source codes to target-system concepts.

    Usage:
        resolver = ConceptTranslationResolver(repository, provider)
        matches = await resolver.translate("AYU-DIG-001", "NAMASTE", "ICD-11-TM2")
    """

    def __init__(
        self,
        repository: CodeRepository,
        provider: Optional[SuggestionProvider] = None,
        timeout: float = 20.0
    ):
        self.repository = repository
        self.provider = provider
        self.timeout = timeout

    async def translate(
        self,
        source_code: str,
        source_system: str,
        target_system: str
    ) -> List[TranslationMatch]:
        """
        Translate a source code into the target system.

        Args:
            source_code: Code to translate
            source_system: System tag or URI of the source code
            target_system: System tag or URI to translate into

        Returns:
            Matches ordered by confidence (empty when nothing is known)

        Raises:
            ValueError: If either system is unknown
        """
        source = CodeSystem.resolve(source_system)
        target = CodeSystem.resolve(target_system)

        mappings = [
            m for m in await self.repository.find_mappings(source_code, source.value)
            if m.target_system == target.value and is_valid_code(m.target_code)
        ]
        if mappings:
            matches = [await self.from_mapping(m) for m in mappings]
            return rank_matches(matches)

        if source != CodeSystem.NAMASTE:
            return []

        record = await self.repository.find_code_by_key(source_code, source.value)
        if record is None:
            return []

        return await self.suggest_for(record, target.value)

    async def suggest_for(self, record: CodeRecord, target_system: str) -> List[TranslationMatch]:
        """
        Ask the suggestion provider for mappings of a code record.

        Fresh AI suggestions are persisted; fallback suggestions are only
        returned. Never raises because of the provider.
        """
        if self.provider is None:
            return []

        provenance = Provenance.AI_GENERATED
        try:
            suggestions = await asyncio.wait_for(
                self.provider.suggest(
                    record.code,
                    record.display,
                    record.definition,
                    target_system=target_system
                ),
                timeout=self.timeout
            )
        except asyncio.TimeoutError:
            logger.warning(
                "Suggestion provider %s timed out after %.1fs for %s",
                self.provider.name, self.timeout, record.code
            )
            suggestions = self._fallback(record, target_system)
            provenance = Provenance.FALLBACK
        except Exception as e:
            logger.warning(
                "Suggestion provider %s failed for %s: %s",
                self.provider.name, record.code, e
            )
            suggestions = self._fallback(record, target_system)
            provenance = Provenance.FALLBACK

        matches = []
        for suggestion in suggestions:
            if not is_valid_code(suggestion.target_code):
                logger.warning(
                    "Dropping suggestion with invalid target code %r for %s",
                    suggestion.target_code, record.code
                )
                continue
            matches.append(await self._from_suggestion(suggestion, target_system, provenance))
        matches = rank_matches(matches)

        if provenance == Provenance.AI_GENERATED:
            await self._persist(record, matches)

        return matches

    def _fallback(self, record: CodeRecord, target_system: str) -> List[MappingSuggestion]:
        try:
            return self.provider.fallback(
                record.code,
                record.display,
                record.definition,
                target_system=target_system
            )
        except Exception:
            logger.exception("Fallback suggestions failed for %s", record.code)
            return []

    async def _persist(self, record: CodeRecord, matches: Sequence[TranslationMatch]) -> None:
        for match in matches:
            try:
                await self.repository.insert_mapping(MappingRecord(
                    source_code=record.code,
                    source_system=record.system,
                    target_code=match.target_code,
                    target_system=match.target_system,
                    target_display=match.target_display or None,
                    equivalence=match.equivalence,
                    confidence=match.confidence,
                    provenance=Provenance.AI_GENERATED.value,
                ))
            except Exception:
                logger.exception(
                    "Failed to persist AI mapping %s -> %s",
                    record.code, match.target_code
                )

    async def _display_for(self, code: str, system: str) -> str:
        record = await self.repository.find_code_by_key(code, system)
        return record.display if record else ""

    async def from_mapping(self, mapping: MappingRecord) -> TranslationMatch:
        display = mapping.target_display or await self._display_for(
            mapping.target_code, mapping.target_system
        )
        return TranslationMatch(
            target_code=mapping.target_code,
            target_system=mapping.target_system,
            target_display=display,
            equivalence=mapping.equivalence,
            confidence=mapping.confidence,
            provenance=mapping.provenance,
        )

    async def _from_suggestion(
        self,
        suggestion: MappingSuggestion,
        target_system: str,
        provenance: Provenance
    ) -> TranslationMatch:
        display = suggestion.target_display or await self._display_for(
            suggestion.target_code, target_system
        )
        try:
            equivalence = parse_equivalence(suggestion.equivalence).value
        except ValueError:
            equivalence = Equivalence.INEXACT.value
        return TranslationMatch(
            target_code=suggestion.target_code,
            target_system=target_system,
            target_display=display,
            equivalence=equivalence,
            confidence=normalize_confidence(suggestion.confidence),
            provenance=provenance.value,
        )
