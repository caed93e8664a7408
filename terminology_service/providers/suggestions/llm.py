"""
LLM-backed mapping suggestions and search enhancement.

Both classes talk to an ``LLMProvider`` in JSON mode and validate the reply
with pydantic before anything reaches the resolver. Transport failures
become ``ProviderUnavailable``; undecodable replies become
``MalformedResponse``.
"""
import json
import logging
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field, ValidationError, field_validator

from terminology_service.providers.llm.base import LLMProvider
from terminology_service.terminology.systems import (
    CODE_PATTERN,
    Equivalence,
    normalize_confidence,
    parse_equivalence,
)
from .base import (
    MalformedResponse,
    MappingSuggestion,
    ProviderUnavailable,
    SearchEnhancer,
    SuggestionProvider,
)

logger = logging.getLogger(__name__)


MAPPING_SYSTEM_PROMPT = """You are a medical terminology mapping expert specializing in Traditional Medicine and ICD-11 classifications.
Provide accurate mappings between NAMASTE codes (Ayurveda, Siddha, Unani) and WHO ICD-11 codes based on medical context and semantic similarity.

Rules:
1. Only suggest codes from the requested target system
2. Confidence is an integer 0-100 based on semantic similarity and clinical relevance
3. Equivalence is one of: equivalent, wider, narrower, inexact
4. Return 1-3 best suggestions, or an empty list if no good mapping exists

Respond with JSON in this format:
{
  "mappings": [
    {
      "targetCode": "TM2-XX##",
      "targetDisplay": "ICD-11 term name",
      "equivalence": "equivalent",
      "confidence": 85,
      "rationale": "brief explanation"
    }
  ]
}"""

TARGET_SYSTEM_LABELS = {
    "ICD-11-TM2": "ICD-11 TM2 (Traditional Medicine Module 2)",
    "ICD-11-BIOMEDICINE": "ICD-11 Biomedicine (MMS)",
}


class SuggestionItem(BaseModel):
    """One mapping in the model's reply"""
    targetCode: str = Field(..., pattern=CODE_PATTERN)
    targetDisplay: Optional[str] = ""
    equivalence: str = "inexact"
    confidence: Union[int, float, str, None] = None
    rationale: Optional[str] = ""

    @field_validator("targetCode", mode="before")
    @classmethod
    def strip_code(cls, value):
        return value.strip() if isinstance(value, str) else value

    @field_validator("equivalence", mode="before")
    @classmethod
    def coerce_equivalence(cls, value):
        """Unknown equivalence codes are downgraded to 'inexact'"""
        try:
            return parse_equivalence(str(value or "")).value
        except ValueError:
            return Equivalence.INEXACT.value


class SuggestionPayload(BaseModel):
    """Top-level reply: {"mappings": [...]}"""
    mappings: List[SuggestionItem]


def extract_json(raw: str) -> Any:
    """
    Decode a JSON object from an LLM reply, tolerating markdown code fences.

    Raises:
        MalformedResponse: If no JSON object can be decoded
    """
    text = (raw or "").strip()
    if not text:
        raise MalformedResponse("Empty response from model")

    if text.startswith("```"):
        text = text.strip("`")
        if text.lower().startswith("json"):
            text = text[4:]
        text = text.strip()

    try:
        return json.loads(text)
    except json.JSONDecodeError:
        start, end = text.find("{"), text.rfind("}")
        if start != -1 and end > start:
            try:
                return json.loads(text[start:end + 1])
            except json.JSONDecodeError:
                pass
        raise MalformedResponse(f"Model reply is not valid JSON: {text[:120]}")


# Keyword fallbacks for TM2 targets: (keywords, code, display, equivalence, confidence, rationale)
FALLBACK_PATTERNS = [
    (("digestive", "agni"), "TM2-DA01", "Disorder of digestive qi transformation",
     "equivalent", 75, "Pattern-based fallback mapping for digestive disorders"),
    (("respiratory", "lung"), "TM2-RE01", "Lung qi deficiency",
     "equivalent", 70, "Pattern-based fallback mapping for respiratory conditions"),
    (("cardiac", "heart"), "TM2-HE01", "Heart qi stagnation",
     "equivalent", 70, "Pattern-based fallback mapping for cardiac conditions"),
]

GENERIC_FALLBACK = (
    "TM2-GEN01", "General traditional medicine pattern",
    "inexact", 50, "Generic fallback mapping - manual review recommended"
)


class LLMSuggestionProvider(SuggestionProvider):
    """
    Mapping suggestions from an LLM.

    Features:
    - JSON-mode prompting with a fixed reply schema
    - Pydantic validation of every reply
    - Keyword fallback for TM2 targets when the model is unavailable
    """

    def __init__(self, llm: LLMProvider):
        self.llm = llm

    @property
    def name(self) -> str:
        return f"llm:{self.llm.get_provider_name()}/{self.llm.get_model_name()}"

    def _build_prompt(
        self,
        code: str,
        display: str,
        definition: Optional[str],
        target_system: str
    ) -> str:
        target_label = TARGET_SYSTEM_LABELS.get(target_system, target_system)
        return f"""Map this NAMASTE code to {target_label}.

Code: {code}
Display: {display}
Definition: {definition or "No definition provided"}

Consider:
1. Medical context and meaning
2. Traditional medicine concepts
3. Diagnostic equivalence"""

    async def suggest(
        self,
        code: str,
        display: str,
        definition: Optional[str] = None,
        target_system: str = "ICD-11-TM2"
    ) -> List[MappingSuggestion]:
        prompt = self._build_prompt(code, display, definition, target_system)

        try:
            raw = await self.llm.generate(prompt, system=MAPPING_SYSTEM_PROMPT, json_mode=True)
        except Exception as e:
            raise ProviderUnavailable(f"LLM request failed: {str(e)}") from e

        data = extract_json(raw)
        try:
            payload = SuggestionPayload.model_validate(data)
        except ValidationError as e:
            raise MalformedResponse(f"Unexpected suggestion format: {e.error_count()} error(s)") from e

        logger.debug("Received %d suggestion(s) for %s from %s", len(payload.mappings), code, self.name)
        return [
            MappingSuggestion(
                target_code=item.targetCode,
                target_display=(item.targetDisplay or "").strip(),
                equivalence=item.equivalence,
                confidence=normalize_confidence(item.confidence),
                rationale=item.rationale or "",
            )
            for item in payload.mappings
        ]

    def fallback(
        self,
        code: str,
        display: str,
        definition: Optional[str] = None,
        target_system: str = "ICD-11-TM2"
    ) -> List[MappingSuggestion]:
        """Keyword-matched TM2 suggestion; nothing for other target systems."""
        if target_system != "ICD-11-TM2":
            return []

        text = f"{code} {display} {definition or ''}".lower()
        for keywords, target, target_display, equivalence, confidence, rationale in FALLBACK_PATTERNS:
            if any(keyword in text for keyword in keywords):
                return [MappingSuggestion(target, equivalence, confidence, target_display, rationale)]

        target, target_display, equivalence, confidence, rationale = GENERIC_FALLBACK
        return [MappingSuggestion(target, equivalence, confidence, target_display, rationale)]


ENHANCE_SYSTEM_PROMPT = """You are an expert in AYUSH medical terminology (Ayurveda, Siddha, Unani) and medical coding.

Analyze the search results for the query:
1. Reorder results by clinical relevance to the query
2. Add a one-sentence clinical context for each term

Respond with JSON:
{"results": [{"system": "...", "code": "...", "context": "..."}]}
Only include codes that appear in the input."""


class EnhancedItem(BaseModel):
    system: str
    code: str
    context: Optional[str] = None


class EnhancedPayload(BaseModel):
    results: List[EnhancedItem]


class LLMSearchEnhancer(SearchEnhancer):
    """Reorders search results by clinical relevance using an LLM."""

    def __init__(self, llm: LLMProvider):
        self.llm = llm

    async def enhance(self, query: str, results: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        if not results:
            return results

        compact = [
            {
                "system": r["system"],
                "code": r["code"],
                "display": r["display"],
                "definition": r.get("definition"),
            }
            for r in results
        ]
        prompt = f"""Query: "{query}"
Search Results: {json.dumps(compact)}

Enhance these search results with better ordering and contextual information."""

        try:
            raw = await self.llm.generate(prompt, system=ENHANCE_SYSTEM_PROMPT, json_mode=True)
        except Exception as e:
            raise ProviderUnavailable(f"LLM request failed: {str(e)}") from e

        try:
            payload = EnhancedPayload.model_validate(extract_json(raw))
        except ValidationError as e:
            raise MalformedResponse(f"Unexpected enhancement format: {e.error_count()} error(s)") from e

        return [item.model_dump() for item in payload.results]
