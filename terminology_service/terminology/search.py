"""
Terminology Search Orchestrator

Runs a repository text search across code systems, attaches stored
mappings to every hit, optionally enriches unmapped NAMASTE hits with AI
suggestions, and optionally lets an enhancer reorder the list.

Enrichment and enhancement are best-effort: a failing provider yields fewer
suggestions or the original order, never fewer rows.
"""
import asyncio
import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from terminology_service.providers.suggestions.base import SearchEnhancer
from .repository import CodeRepository
from .resolver import ConceptTranslationResolver, TranslationMatch, rank_matches
from .systems import CodeSystem

logger = logging.getLogger(__name__)


@dataclass
class SearchResult:
    code: str
    display: str
    system: str
    definition: Optional[str] = None
    mappings: List[TranslationMatch] = field(default_factory=list)
    context: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _result_key(system: Any, code: Any) -> Optional[tuple]:
    try:
        return (CodeSystem.resolve(str(system)).value, str(code))
    except ValueError:
        return None


def apply_enhancement(
    results: Sequence[SearchResult],
    enhanced: Sequence[Dict[str, Any]]
) -> List[SearchResult]:
    """
    Reorder results following the enhancer's list.

    Items the enhancer invented are ignored; results it left out keep their
    relative order after the ones it ranked.
    """
    by_key = {(r.system, r.code): r for r in results}
    ordered: List[SearchResult] = []
    placed = set()

    for item in enhanced:
        key = _result_key(item.get("system"), item.get("code"))
        if key is None or key not in by_key or key in placed:
            continue
        result = by_key[key]
        if item.get("context"):
            result.context = item["context"]
        ordered.append(result)
        placed.add(key)

    ordered.extend(r for r in results if (r.system, r.code) not in placed)
    return ordered


class TerminologySearchOrchestrator:
    """
    Searches NAMASTE and ICD-11 codes.

    Usage:
        orchestrator = TerminologySearchOrchestrator(repository, resolver)
        results = await orchestrator.search("digestive", systems=["NAMASTE"])
    """

    def __init__(
        self,
        repository: CodeRepository,
        resolver: ConceptTranslationResolver,
        enhancer: Optional[SearchEnhancer] = None,
        enhancement_timeout: float = 10.0
    ):
        self.repository = repository
        self.resolver = resolver
        self.enhancer = enhancer
        self.enhancement_timeout = enhancement_timeout

    async def search(
        self,
        query: str,
        systems: Optional[Sequence[str]] = None,
        include_suggestions: bool = False
    ) -> List[SearchResult]:
        """
        Search codes by display, code or definition.

        Args:
            query: Search text (at least 2 characters, checked by the caller)
            systems: Optional system tags or URIs to restrict to (any of them)
            include_suggestions: Attach AI mapping candidates to unmapped NAMASTE hits

        Raises:
            ValueError: If a system filter names an unknown system
        """
        system_filter = [CodeSystem.resolve(s).value for s in systems] if systems else None
        codes = await self.repository.find_codes_by_text(query, system_filter)

        results = []
        for code in codes:
            stored = await self.repository.find_mappings(code.code, code.system)
            mappings = rank_matches([await self.resolver.from_mapping(m) for m in stored])

            if (
                include_suggestions
                and not stored
                and code.system == CodeSystem.NAMASTE.value
            ):
                mappings = await self.resolver.suggest_for(code, CodeSystem.ICD11_TM2.value)

            results.append(SearchResult(
                code=code.code,
                display=code.display,
                system=code.system,
                definition=code.definition,
                mappings=mappings,
            ))

        if self.enhancer and results:
            results = await self._enhance(query, results)

        logger.info("Search %r matched %d code(s)", query, len(results))
        return results

    async def _enhance(self, query: str, results: List[SearchResult]) -> List[SearchResult]:
        try:
            enhanced = await asyncio.wait_for(
                self.enhancer.enhance(query, [r.to_dict() for r in results]),
                timeout=self.enhancement_timeout
            )
            return apply_enhancement(results, enhanced)
        except Exception as e:
            logger.warning("Search enhancement failed, keeping repository order: %s", e)
            return results
