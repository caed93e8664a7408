"""
Tests for the concept translation resolver

Uses the in-memory repository and hand-written suggestion providers so
every path (stored mappings, AI suggestions, fallback, persistence) is
exercised without a database or a live LLM.
"""
import asyncio
import json
import logging
import pytest
from unittest.mock import AsyncMock, patch

from terminology_service.fhir.mappers import build_translation_parameters
from terminology_service.providers.llm.base import LLMProvider
from terminology_service.providers.suggestions import LLMSuggestionProvider
from terminology_service.providers.suggestions.base import (
    MalformedResponse,
    MappingSuggestion,
    ProviderUnavailable,
    SuggestionProvider,
)
from terminology_service.terminology.memory import InMemoryCodeRepository
from terminology_service.terminology.repository import CodeRecord, MappingRecord
from terminology_service.terminology.resolver import (
    ConceptTranslationResolver,
    TranslationMatch,
    rank_matches,
)
from terminology_service.terminology.seed import SEED_CODES, SEED_MAPPINGS

NAMASTE_TM2_URI = "http://id.who.int/icd/release/11/tm2"


class ExplodingProvider(SuggestionProvider):
    """Fails the test if the resolver asks it for anything"""
    async def suggest(self, code, display, definition=None, target_system="ICD-11-TM2"):
        raise AssertionError("provider must not be called when mappings exist")


class StaticProvider(SuggestionProvider):
    def __init__(self, suggestions):
        self.suggestions = suggestions
        self.calls = []

    async def suggest(self, code, display, definition=None, target_system="ICD-11-TM2"):
        self.calls.append((code, target_system))
        return list(self.suggestions)


class FailingProvider(SuggestionProvider):
    def __init__(self, error, fallback_suggestions=()):
        self.error = error
        self.fallback_suggestions = list(fallback_suggestions)

    async def suggest(self, code, display, definition=None, target_system="ICD-11-TM2"):
        raise self.error

    def fallback(self, code, display, definition=None, target_system="ICD-11-TM2"):
        return list(self.fallback_suggestions)


class SlowProvider(SuggestionProvider):
    async def suggest(self, code, display, definition=None, target_system="ICD-11-TM2"):
        await asyncio.sleep(5)
        return []

    def fallback(self, code, display, definition=None, target_system="ICD-11-TM2"):
        return [MappingSuggestion("TM2-GEN01", "inexact", 50, "General traditional medicine pattern")]


def unmapped_repository():
    return InMemoryCodeRepository(codes=[
        CodeRecord("AYU-NEW-001", "Pandu", "NAMASTE", "Anaemia in Ayurveda"),
        CodeRecord("TM2-BL01", "Blood deficiency pattern", "ICD-11-TM2"),
    ])


def seeded_repository():
    return InMemoryCodeRepository(codes=SEED_CODES, mappings=SEED_MAPPINGS)

# ============================================================================
# RANKING
# ============================================================================

def test_rank_matches_by_confidence():
    matches = [
        TranslationMatch("A", "ICD-11-TM2", "", "inexact", 40),
        TranslationMatch("B", "ICD-11-TM2", "", "inexact", 90),
        TranslationMatch("C", "ICD-11-TM2", "", "inexact", 70),
    ]
    assert [m.confidence for m in rank_matches(matches)] == [90, 70, 40]


def test_rank_matches_is_stable():
    matches = [
        TranslationMatch("first", "ICD-11-TM2", "", "inexact", 80),
        TranslationMatch("second", "ICD-11-TM2", "", "inexact", 80),
    ]
    assert [m.target_code for m in rank_matches(matches)] == ["first", "second"]

# ============================================================================
# STORED MAPPINGS
# ============================================================================

@pytest.mark.asyncio
async def test_stored_mappings_skip_provider():
    resolver = ConceptTranslationResolver(seeded_repository(), ExplodingProvider())

    matches = await resolver.translate("AYU-DIG-001", "NAMASTE", "ICD-11-TM2")

    assert len(matches) == 1
    assert matches[0].target_code == "TM2-DA01"
    assert matches[0].target_display == "Disorder of digestive qi transformation"
    assert matches[0].equivalence == "equivalent"
    assert matches[0].provenance == "seed"


@pytest.mark.asyncio
async def test_stored_mappings_ordered_by_confidence():
    repository = InMemoryCodeRepository(
        codes=[CodeRecord("AYU-X", "X", "NAMASTE")],
        mappings=[
            MappingRecord("AYU-X", "NAMASTE", "T40", "ICD-11-TM2", "inexact", confidence=40),
            MappingRecord("AYU-X", "NAMASTE", "T90", "ICD-11-TM2", "equivalent", confidence=90),
            MappingRecord("AYU-X", "NAMASTE", "T70", "ICD-11-TM2", "wider", confidence=70),
        ]
    )
    resolver = ConceptTranslationResolver(repository, ExplodingProvider())

    matches = await resolver.translate("AYU-X", "NAMASTE", "ICD-11-TM2")
    assert [m.target_code for m in matches] == ["T90", "T70", "T40"]


@pytest.mark.asyncio
async def test_target_system_filter():
    resolver = ConceptTranslationResolver(seeded_repository(), ExplodingProvider())

    tm2 = await resolver.translate("SID-CIR-001", "NAMASTE", "ICD-11-TM2")
    bio = await resolver.translate("SID-CIR-001", "NAMASTE", "ICD-11-BIOMEDICINE")

    assert [m.target_code for m in tm2] == ["TM2-HE01", "TM2-HE02"]
    assert [m.target_code for m in bio] == ["I25.9"]
    assert bio[0].target_system == "ICD-11-BIOMEDICINE"


@pytest.mark.asyncio
async def test_systems_accept_uris():
    resolver = ConceptTranslationResolver(seeded_repository(), ExplodingProvider())
    matches = await resolver.translate("AYU-DIG-001", "http://namaste.gov.in/CodeSystem", NAMASTE_TM2_URI)
    assert [m.target_code for m in matches] == ["TM2-DA01"]


@pytest.mark.asyncio
async def test_unknown_system_raises():
    resolver = ConceptTranslationResolver(seeded_repository())
    with pytest.raises(ValueError):
        await resolver.translate("AYU-DIG-001", "NAMASTE", "SNOMED")


@pytest.mark.asyncio
async def test_unknown_source_code_is_empty():
    provider = StaticProvider([MappingSuggestion("TM2-DA01", "equivalent", 80)])
    resolver = ConceptTranslationResolver(seeded_repository(), provider)

    assert await resolver.translate("AYU-NOPE-999", "NAMASTE", "ICD-11-TM2") == []
    assert provider.calls == []


@pytest.mark.asyncio
async def test_non_namaste_source_never_suggests():
    provider = StaticProvider([MappingSuggestion("AYU-DIG-001", "equivalent", 80)])
    resolver = ConceptTranslationResolver(seeded_repository(), provider)

    assert await resolver.translate("TM2-DA01", "ICD-11-TM2", "NAMASTE") == []
    assert provider.calls == []


@pytest.mark.asyncio
async def test_display_resolved_from_repository():
    """Mappings without a stored display take it from the target code record"""
    repository = unmapped_repository()
    await repository.insert_mapping(
        MappingRecord("AYU-NEW-001", "NAMASTE", "TM2-BL01", "ICD-11-TM2", "equivalent", 88)
    )
    await repository.insert_mapping(
        MappingRecord("AYU-NEW-001", "NAMASTE", "TM2-ZZ99", "ICD-11-TM2", "inexact", 30)
    )
    resolver = ConceptTranslationResolver(repository)

    matches = await resolver.translate("AYU-NEW-001", "NAMASTE", "ICD-11-TM2")
    assert matches[0].target_display == "Blood deficiency pattern"
    assert matches[1].target_display == ""

# ============================================================================
# AI SUGGESTIONS
# ============================================================================

@pytest.mark.asyncio
async def test_suggestions_persisted_as_ai_generated():
    repository = unmapped_repository()
    provider = StaticProvider([
        MappingSuggestion("TM2-BL01", "equivalent", 0.82),
        MappingSuggestion("TM2-GEN01", "unknown-code", "55%", "General pattern"),
    ])
    resolver = ConceptTranslationResolver(repository, provider)

    matches = await resolver.translate("AYU-NEW-001", "NAMASTE", "ICD-11-TM2")

    assert provider.calls == [("AYU-NEW-001", "ICD-11-TM2")]
    assert [(m.target_code, m.confidence) for m in matches] == [("TM2-BL01", 82), ("TM2-GEN01", 55)]
    assert matches[0].target_display == "Blood deficiency pattern"
    assert matches[1].equivalence == "inexact"
    assert all(m.provenance == "ai-generated" for m in matches)

    stored = await repository.find_mappings("AYU-NEW-001", "NAMASTE")
    assert {m.target_code for m in stored} == {"TM2-BL01", "TM2-GEN01"}
    assert all(m.provenance == "ai-generated" for m in stored)


@pytest.mark.asyncio
async def test_second_translation_uses_stored_suggestions():
    repository = unmapped_repository()
    provider = StaticProvider([MappingSuggestion("TM2-BL01", "equivalent", 80)])
    resolver = ConceptTranslationResolver(repository, provider)

    await resolver.translate("AYU-NEW-001", "NAMASTE", "ICD-11-TM2")
    again = await resolver.translate("AYU-NEW-001", "NAMASTE", "ICD-11-TM2")

    assert len(provider.calls) == 1
    assert [m.target_code for m in again] == ["TM2-BL01"]


@pytest.mark.asyncio
async def test_no_provider_means_no_suggestions():
    resolver = ConceptTranslationResolver(unmapped_repository(), None)
    assert await resolver.translate("AYU-NEW-001", "NAMASTE", "ICD-11-TM2") == []

# ============================================================================
# GRACEFUL DEGRADATION
# ============================================================================

@pytest.mark.asyncio
@pytest.mark.parametrize("error", [
    ProviderUnavailable("quota exceeded"),
    MalformedResponse("not json"),
    RuntimeError("unexpected"),
])
async def test_provider_failure_returns_empty(error):
    repository = unmapped_repository()
    resolver = ConceptTranslationResolver(repository, FailingProvider(error))

    assert await resolver.translate("AYU-NEW-001", "NAMASTE", "ICD-11-TM2") == []
    assert await repository.find_mappings("AYU-NEW-001") == []


@pytest.mark.asyncio
async def test_provider_failure_uses_fallback_without_persisting():
    repository = unmapped_repository()
    provider = FailingProvider(
        ProviderUnavailable("down"),
        [MappingSuggestion("TM2-GEN01", "inexact", 50, "General traditional medicine pattern")]
    )
    resolver = ConceptTranslationResolver(repository, provider)

    matches = await resolver.translate("AYU-NEW-001", "NAMASTE", "ICD-11-TM2")

    assert [m.target_code for m in matches] == ["TM2-GEN01"]
    assert matches[0].provenance == "fallback"
    assert await repository.find_mappings("AYU-NEW-001") == []


@pytest.mark.asyncio
async def test_provider_timeout_uses_fallback():
    resolver = ConceptTranslationResolver(unmapped_repository(), SlowProvider(), timeout=0.05)

    matches = await resolver.translate("AYU-NEW-001", "NAMASTE", "ICD-11-TM2")

    assert [m.target_code for m in matches] == ["TM2-GEN01"]
    assert matches[0].confidence == 50


@pytest.mark.asyncio
async def test_persistence_failure_does_not_fail_translation(caplog):
    repository = unmapped_repository()
    provider = StaticProvider([MappingSuggestion("TM2-BL01", "equivalent", 80)])
    resolver = ConceptTranslationResolver(repository, provider)

    with patch.object(repository, "insert_mapping", AsyncMock(side_effect=RuntimeError("db down"))):
        with caplog.at_level(logging.ERROR):
            matches = await resolver.translate("AYU-NEW-001", "NAMASTE", "ICD-11-TM2")

    assert [m.target_code for m in matches] == ["TM2-BL01"]
    assert "Failed to persist AI mapping" in caplog.text

# ============================================================================
# INVALID TARGET CODES
# ============================================================================

class BlankCodeLLM(LLMProvider):
    """LLM whose reply carries a whitespace-only target code"""
    def __init__(self, target_code):
        self.target_code = target_code

    async def generate(self, prompt, system=None, json_mode=False, **kwargs):
        return json.dumps({"mappings": [
            {"targetCode": self.target_code, "equivalence": "equivalent", "confidence": 90}
        ]})

    def get_provider_name(self):
        return "mock_provider"

    def get_model_name(self):
        return "mock_model"


@pytest.mark.asyncio
@pytest.mark.parametrize("target_code", ["   ", "TM2  DA01", ""])
async def test_llm_invalid_code_falls_back_without_persisting(target_code):
    repository = unmapped_repository()
    resolver = ConceptTranslationResolver(repository, LLMSuggestionProvider(BlankCodeLLM(target_code)))

    matches = await resolver.translate("AYU-NEW-001", "NAMASTE", "ICD-11-TM2")

    assert [m.target_code for m in matches] == ["TM2-GEN01"]
    assert matches[0].provenance == "fallback"
    assert await repository.find_mappings("AYU-NEW-001") == []
    parameters = build_translation_parameters(matches)
    assert parameters["parameter"][0]["valueBoolean"] is True


@pytest.mark.asyncio
async def test_invalid_suggested_codes_are_dropped():
    repository = unmapped_repository()
    provider = StaticProvider([
        MappingSuggestion("  ", "equivalent", 95),
        MappingSuggestion("TM2  BL01", "equivalent", 90),
        MappingSuggestion("TM2-BL01", "equivalent", 80),
    ])
    resolver = ConceptTranslationResolver(repository, provider)

    matches = await resolver.translate("AYU-NEW-001", "NAMASTE", "ICD-11-TM2")

    assert [m.target_code for m in matches] == ["TM2-BL01"]
    stored = await repository.find_mappings("AYU-NEW-001", "NAMASTE")
    assert [m.target_code for m in stored] == ["TM2-BL01"]


@pytest.mark.asyncio
async def test_stored_invalid_target_codes_are_ignored():
    repository = InMemoryCodeRepository(
        codes=[CodeRecord("AYU-NEW-001", "Pandu", "NAMASTE")],
        mappings=[
            MappingRecord("AYU-NEW-001", "NAMASTE", " ", "ICD-11-TM2", equivalence="equivalent", confidence=90),
            MappingRecord("AYU-NEW-001", "NAMASTE", "TM2-BL01", "ICD-11-TM2", equivalence="wider", confidence=60),
        ],
    )
    resolver = ConceptTranslationResolver(repository, ExplodingProvider())

    matches = await resolver.translate("AYU-NEW-001", "NAMASTE", "ICD-11-TM2")

    assert [m.target_code for m in matches] == ["TM2-BL01"]
    build_translation_parameters(matches)
