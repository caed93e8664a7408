"""
Tests for LLM-backed suggestion providers, the LLM factory and the shared
code system helpers
"""
import json
import pytest
from unittest.mock import AsyncMock, patch

from terminology_service.providers.llm.base import LLMProvider
from terminology_service.providers.llm.factory import LLMFactory
from terminology_service.providers.suggestions import (
    LLMSearchEnhancer,
    LLMSuggestionProvider,
    MalformedResponse,
    ProviderUnavailable,
    SuggestionFactory,
)
from terminology_service.providers.suggestions.llm import extract_json
from terminology_service.terminology.systems import (
    CodeSystem,
    Equivalence,
    is_valid_code,
    normalize_confidence,
    parse_equivalence,
    system_uri,
)


# Mock LLM Provider
class MockLLMProvider(LLMProvider):
    def __init__(self, reply=""):
        self.reply = reply
        self.prompts = []

    async def generate(self, prompt: str, system=None, json_mode=False, **kwargs) -> str:
        self.prompts.append((prompt, system, json_mode))
        return self.reply

    def get_provider_name(self) -> str:
        return "mock_provider"

    def get_model_name(self) -> str:
        return "mock_model"


def mapping_reply(*mappings):
    return json.dumps({"mappings": list(mappings)})

# ============================================================================
# CODE SYSTEM HELPERS
# ============================================================================

def test_resolve_tags_and_uris():
    assert CodeSystem.resolve("NAMASTE") == CodeSystem.NAMASTE
    assert CodeSystem.resolve("icd-11-tm2") == CodeSystem.ICD11_TM2
    assert CodeSystem.resolve("http://id.who.int/icd/release/11/mms") == CodeSystem.ICD11_BIOMEDICINE
    assert CodeSystem.resolve("http://namaste.gov.in/CodeSystem/") == CodeSystem.NAMASTE
    with pytest.raises(ValueError):
        CodeSystem.resolve("SNOMED")


def test_system_uri_passes_unknown_through():
    assert system_uri("ICD-11-TM2") == "http://id.who.int/icd/release/11/tm2"
    assert system_uri("http://loinc.org") == "http://loinc.org"


@pytest.mark.parametrize("value,expected", [
    (85, 85),
    ("85%", 85),
    ("85", 85),
    (0.85, 85),
    ("0.5", 50),
    (1, 1),
    (0, 0),
    (150, 100),
    (-5, 0),
    ("high", 0),
    (None, 0),
    (True, 0),
])
def test_normalize_confidence(value, expected):
    assert normalize_confidence(value) == expected


def test_normalize_confidence_default():
    assert normalize_confidence("n/a", default=50) == 50


def test_parse_equivalence():
    assert parse_equivalence(" Wider ") == Equivalence.WIDER
    with pytest.raises(ValueError):
        parse_equivalence("relatedto")


@pytest.mark.parametrize("value,expected", [
    ("TM2-DA01", True),
    ("TM2 DA01", True),
    ("", False),
    ("   ", False),
    (" TM2-DA01", False),
    ("TM2  DA01", False),
    ("TM2-DA01\n", False),
    (None, False),
])
def test_is_valid_code(value, expected):
    assert is_valid_code(value) is expected

# ============================================================================
# JSON EXTRACTION
# ============================================================================

def test_extract_json_plain():
    assert extract_json('{"mappings": []}') == {"mappings": []}


def test_extract_json_code_fence():
    assert extract_json('```json\n{"mappings": []}\n```') == {"mappings": []}


def test_extract_json_surrounding_text():
    assert extract_json('Here you go: {"mappings": []} hope it helps') == {"mappings": []}


@pytest.mark.parametrize("raw", ["", "   ", "no json here", "{broken"])
def test_extract_json_malformed(raw):
    with pytest.raises(MalformedResponse):
        extract_json(raw)

# ============================================================================
# LLM SUGGESTION PROVIDER
# ============================================================================

@pytest.mark.asyncio
async def test_suggest_parses_mappings():
    llm = MockLLMProvider(mapping_reply(
        {"targetCode": " TM2-DA01 ", "targetDisplay": "Digestive qi", "equivalence": "Equivalent",
         "confidence": "88%", "rationale": "same concept"},
        {"targetCode": "TM2-DA03", "equivalence": "related", "confidence": 0.6},
    ))
    provider = LLMSuggestionProvider(llm)

    suggestions = await provider.suggest("AYU-DIG-001", "Agnimandya", "Digestive fire deficiency")

    assert [s.target_code for s in suggestions] == ["TM2-DA01", "TM2-DA03"]
    assert suggestions[0].equivalence == "equivalent"
    assert suggestions[0].confidence == 88
    assert suggestions[0].target_display == "Digestive qi"
    assert suggestions[1].equivalence == "inexact"
    assert suggestions[1].confidence == 60

    prompt, system, json_mode = llm.prompts[0]
    assert "AYU-DIG-001" in prompt
    assert "Agnimandya" in prompt
    assert "ICD-11 TM2" in prompt
    assert json_mode is True
    assert system


@pytest.mark.asyncio
async def test_suggest_biomedicine_prompt():
    llm = MockLLMProvider(mapping_reply())
    provider = LLMSuggestionProvider(llm)

    assert await provider.suggest("AYU-DIG-002", "Ajeerna", target_system="ICD-11-BIOMEDICINE") == []
    assert "Biomedicine" in llm.prompts[0][0]


@pytest.mark.asyncio
async def test_suggest_wraps_transport_errors():
    llm = MockLLMProvider()
    llm.generate = AsyncMock(side_effect=ConnectionError("refused"))
    provider = LLMSuggestionProvider(llm)

    with pytest.raises(ProviderUnavailable):
        await provider.suggest("AYU-DIG-001", "Agnimandya")


@pytest.mark.asyncio
@pytest.mark.parametrize("reply", [
    "not json at all",
    json.dumps({"suggestions": []}),
    json.dumps({"mappings": [{"targetDisplay": "missing code"}]}),
    mapping_reply({"targetCode": "   ", "equivalence": "equivalent"}),
    mapping_reply({"targetCode": "TM2  DA01", "equivalence": "equivalent"}),
    mapping_reply({"targetCode": 42}),
])
async def test_suggest_malformed_reply(reply):
    provider = LLMSuggestionProvider(MockLLMProvider(reply))
    with pytest.raises(MalformedResponse):
        await provider.suggest("AYU-DIG-001", "Agnimandya")


@pytest.mark.parametrize("display,expected_code,expected_confidence", [
    ("Digestive fire deficiency", "TM2-DA01", 75),
    ("Lung weakness", "TM2-RE01", 70),
    ("Heart palpitations", "TM2-HE01", 70),
    ("Skin disease", "TM2-GEN01", 50),
])
def test_keyword_fallback(display, expected_code, expected_confidence):
    provider = LLMSuggestionProvider(MockLLMProvider())

    suggestions = provider.fallback("AYU-X", display)

    assert len(suggestions) == 1
    assert suggestions[0].target_code == expected_code
    assert suggestions[0].confidence == expected_confidence


def test_generic_fallback_is_inexact():
    provider = LLMSuggestionProvider(MockLLMProvider())
    suggestion = provider.fallback("UNA-JOI-001", "Waja-ul-Mafasil", "Joint pain")[0]
    assert suggestion.equivalence == "inexact"
    assert "manual review" in suggestion.rationale


def test_fallback_only_for_tm2():
    provider = LLMSuggestionProvider(MockLLMProvider())
    assert provider.fallback("AYU-DIG-001", "Digestive", target_system="ICD-11-BIOMEDICINE") == []


def test_provider_name():
    provider = LLMSuggestionProvider(MockLLMProvider())
    assert provider.name == "llm:mock_provider/mock_model"

# ============================================================================
# LLM SEARCH ENHANCER
# ============================================================================

@pytest.mark.asyncio
async def test_enhancer_returns_items():
    llm = MockLLMProvider(json.dumps({"results": [
        {"system": "NAMASTE", "code": "AYU-DIG-002", "context": "Indigestion"},
        {"system": "NAMASTE", "code": "AYU-DIG-001"},
    ]}))
    enhancer = LLMSearchEnhancer(llm)

    items = await enhancer.enhance("digest", [
        {"system": "NAMASTE", "code": "AYU-DIG-001", "display": "Agnimandya"},
        {"system": "NAMASTE", "code": "AYU-DIG-002", "display": "Ajeerna"},
    ])

    assert [i["code"] for i in items] == ["AYU-DIG-002", "AYU-DIG-001"]
    assert items[0]["context"] == "Indigestion"
    assert items[1]["context"] is None


@pytest.mark.asyncio
async def test_enhancer_skips_empty_results():
    llm = MockLLMProvider()
    llm.generate = AsyncMock()
    assert await LLMSearchEnhancer(llm).enhance("x", []) == []
    llm.generate.assert_not_called()


@pytest.mark.asyncio
async def test_enhancer_malformed_reply():
    enhancer = LLMSearchEnhancer(MockLLMProvider('{"ranked": []}'))
    with pytest.raises(MalformedResponse):
        await enhancer.enhance("x", [{"system": "NAMASTE", "code": "A", "display": "a"}])

# ============================================================================
# FACTORIES
# ============================================================================

def test_llm_factory_openai():
    with patch("terminology_service.config.settings.llm_provider", "openai"), \
         patch("terminology_service.config.settings.llm_model", "gpt-4o"), \
         patch("terminology_service.config.settings.llm_api_key", "test_key"):
        provider = LLMFactory.create()
        assert provider.get_provider_name() == "openai"
        assert provider.get_model_name() == "gpt-4o"


def test_llm_factory_anthropic():
    with patch("terminology_service.config.settings.llm_provider", "anthropic"), \
         patch("terminology_service.config.settings.llm_model", "claude-sonnet-4-5"), \
         patch("terminology_service.config.settings.llm_api_key", "test_key"):
        provider = LLMFactory.create()
        assert provider.get_provider_name() == "anthropic"


def test_llm_factory_unsupported():
    with patch("terminology_service.config.settings.llm_provider", "gemini"), \
         patch("terminology_service.config.settings.llm_model", "gemini-pro"), \
         patch("terminology_service.config.settings.llm_api_key", "test_key"):
        with pytest.raises(ValueError):
            LLMFactory.create()


def test_llm_factory_requires_key():
    with patch("terminology_service.config.settings.llm_model", "gpt-4o"), \
         patch("terminology_service.config.settings.llm_api_key", ""):
        assert LLMFactory.is_configured() is False
        with pytest.raises(ValueError):
            LLMFactory.create()


def test_suggestion_factory_unconfigured():
    with patch("terminology_service.config.settings.llm_api_key", ""):
        assert SuggestionFactory.create_provider() is None
        assert SuggestionFactory.create_enhancer() is None


def test_suggestion_factory_configured():
    with patch("terminology_service.config.settings.llm_provider", "openai"), \
         patch("terminology_service.config.settings.llm_model", "gpt-4o"), \
         patch("terminology_service.config.settings.llm_api_key", "test_key"), \
         patch("terminology_service.config.settings.enable_ai_suggestions", True), \
         patch("terminology_service.config.settings.enable_search_enhancement", False):
        provider = SuggestionFactory.create_provider()
        assert isinstance(provider, LLMSuggestionProvider)
        assert SuggestionFactory.create_enhancer() is None


def test_suggestion_factory_disabled():
    with patch("terminology_service.config.settings.llm_model", "gpt-4o"), \
         patch("terminology_service.config.settings.llm_api_key", "test_key"), \
         patch("terminology_service.config.settings.enable_ai_suggestions", False):
        assert SuggestionFactory.create_provider() is None
