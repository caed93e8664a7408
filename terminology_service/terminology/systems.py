"""
Code system vocabulary shared by the repository, resolver and FHIR builders.

Internally every code carries a short system tag (``NAMASTE``,
``ICD-11-TM2``, ``ICD-11-BIOMEDICINE``). FHIR payloads carry the canonical
URI instead; ``CodeSystem.resolve`` accepts either form.
"""
import re
from enum import Enum
from typing import Any, Optional, Union


class CodeSystem(str, Enum):
    """Terminology systems known to the service"""
    NAMASTE = "NAMASTE"
    ICD11_TM2 = "ICD-11-TM2"
    ICD11_BIOMEDICINE = "ICD-11-BIOMEDICINE"

    @property
    def uri(self) -> str:
        return SYSTEM_URIS[self]

    @classmethod
    def resolve(cls, value: Union[str, "CodeSystem"]) -> "CodeSystem":
        """
        Resolve a system tag or canonical URI to a CodeSystem.

        Raises:
            ValueError: If the value names no known system
        """
        if isinstance(value, CodeSystem):
            return value
        normalized = (value or "").strip()
        for system in cls:
            if normalized.upper() == system.value or normalized.rstrip("/") == system.uri:
                return system
        raise ValueError(f"Unknown code system: {value}")


SYSTEM_URIS = {
    CodeSystem.NAMASTE: "http://namaste.gov.in/CodeSystem",
    CodeSystem.ICD11_TM2: "http://id.who.int/icd/release/11/tm2",
    CodeSystem.ICD11_BIOMEDICINE: "http://id.who.int/icd/release/11/mms",
}


def system_uri(system: Union[str, CodeSystem]) -> str:
    """Canonical URI for a system tag; unknown systems pass through unchanged."""
    try:
        return CodeSystem.resolve(system).uri
    except ValueError:
        return system


class Equivalence(str, Enum):
    """ConceptMap equivalence (FHIR R4 concept-map-equivalence subset)"""
    EQUIVALENT = "equivalent"
    WIDER = "wider"
    NARROWER = "narrower"
    INEXACT = "inexact"


class Provenance(str, Enum):
    """Where a concept mapping came from"""
    AI_GENERATED = "ai-generated"
    MANUAL = "manual"
    SEED = "seed"
    FALLBACK = "fallback"  # keyword fallback, returned but never persisted


# FHIR `code` datatype: no leading/trailing whitespace, single inner spaces
CODE_PATTERN = r"^[^\s]+(\s[^\s]+)*$"
_CODE_RE = re.compile(CODE_PATTERN)


def is_valid_code(value: Any) -> bool:
    """True when the value can be written as a FHIR code."""
    return isinstance(value, str) and bool(_CODE_RE.match(value))


_PERCENT_PATTERN = re.compile(r"^\s*(-?\d+(?:\.\d+)?)\s*%?\s*$")


def normalize_confidence(value: Any, default: int = 0) -> int:
    """
    Normalize a confidence value to an integer percentage in [0, 100].

    Accepts integers (85), percentage strings ("85%", "85"), and fractions
    strictly between 0 and 1 (0.85). Anything unparseable yields ``default``.
    """
    if value is None or isinstance(value, bool):
        return default

    if isinstance(value, (int, float)):
        number = float(value)
    else:
        match = _PERCENT_PATTERN.match(str(value))
        if not match:
            return default
        number = float(match.group(1))
        if "%" in str(value):
            return max(0, min(100, round(number)))

    if 0 < number < 1:
        number *= 100

    return max(0, min(100, round(number)))


def parse_equivalence(value: Optional[str]) -> Equivalence:
    """
    Parse an equivalence code, case-insensitively.

    Raises:
        ValueError: If the value is not one of the four supported codes
    """
    return Equivalence((value or "").strip().lower())
