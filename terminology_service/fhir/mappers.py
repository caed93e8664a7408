"""
FHIR Resource Builders

Pure functions that shape terminology data into FHIR R4 resources:
- concepts → ValueSet ($expand result)
- translation matches → Parameters ($translate result)
- NAMASTE code (+ optional ICD-11 code) → dual-coded Condition

Every resource is returned as a plain JSON-ready dict. Before returning, the
dict is loaded into the matching fhir.resources R4B model so that a shape
error surfaces at build time rather than in a client.
"""
from typing import Any, Dict, List, Optional, Sequence
from datetime import datetime, timezone
import re
import uuid

from fhir.resources.R4B.condition import Condition
from fhir.resources.R4B.parameters import Parameters
from fhir.resources.R4B.valueset import ValueSet

from terminology_service.terminology.systems import CodeSystem, system_uri


CONDITION_CLINICAL_SYSTEM = "http://terminology.hl7.org/CodeSystem/condition-clinical"
CONDITION_CATEGORY_SYSTEM = "http://terminology.hl7.org/CodeSystem/condition-category"

# FHIR id datatype: [A-Za-z0-9\-.]{1,64}
MAX_ID_LENGTH = 64
_ID_UNSAFE = re.compile(r"[^A-Za-z0-9\-.]")


def generate_id() -> str:
    """Generate a unique resource ID."""
    return str(uuid.uuid4())


def utc_timestamp() -> str:
    """Current time as an ISO-8601 UTC instant."""
    return datetime.now(timezone.utc).isoformat()


def expansion_id(url: str) -> str:
    """
    Resource id for the expansion of the value set at ``url``.

    Derived from the last url segment with characters outside the FHIR id
    alphabet replaced by "-", cut to 64 characters. Falls back to a UUID
    when nothing usable is left.
    """
    segment = _ID_UNSAFE.sub("-", re.split(r"[/:]", url.rstrip("/"))[-1]).strip("-.")
    if not segment:
        return generate_id()
    suffix = "-expanded"
    return segment[:MAX_ID_LENGTH - len(suffix)] + suffix


def _coding(system: str, code: str, display: Optional[str]) -> Dict[str, str]:
    """Coding dict; empty display is left out since FHIR strings cannot be empty."""
    coding = {"system": system, "code": code}
    if display:
        coding["display"] = display
    return coding


def _prune_empty(value: Any) -> Any:
    """Drop empty lists and dicts, which FHIR does not allow in instances."""
    if isinstance(value, dict):
        pruned = {k: _prune_empty(v) for k, v in value.items()}
        return {k: v for k, v in pruned.items() if v not in (None, [], {})}
    if isinstance(value, list):
        return [_prune_empty(v) for v in value if v not in (None, [], {})]
    return value


def check_resource(model_class, resource: Dict[str, Any]) -> None:
    """Load the resource into its fhir.resources model; raises on a shape error."""
    model_class(**_prune_empty(resource))


def _get(item: Any, key: str, default: Any = None) -> Any:
    """Read a field from either a dict or an object."""
    if isinstance(item, dict):
        return item.get(key, default)
    return getattr(item, key, default)


def build_value_set_expansion(url: str, concepts: Sequence[Any]) -> Dict[str, Any]:
    """
    Build an expanded ValueSet.

    Args:
        url: Canonical url of the value set
        concepts: Items with ``system``, ``code`` and ``display`` (dicts or objects),
            emitted in the given order. System tags are written as their URIs.

    Returns:
        ValueSet resource dict with an ``expansion`` block
    """
    value_set = {
        "resourceType": "ValueSet",
        "id": expansion_id(url),
        "url": url,
        "status": "active",
        "expansion": {
            "identifier": f"urn:uuid:{generate_id()}",
            "timestamp": utc_timestamp(),
            "total": len(concepts),
            "contains": [
                _coding(system_uri(_get(c, "system")), _get(c, "code"), _get(c, "display"))
                for c in concepts
            ],
        },
    }

    check_resource(ValueSet, value_set)
    return value_set


def build_translation_parameters(matches: Sequence[Any]) -> Dict[str, Any]:
    """
    Build the Parameters resource returned by ConceptMap $translate.

    A leading ``result`` parameter says whether anything matched; each match
    follows as a ``match`` parameter with ``equivalence`` and ``concept`` parts.

    Args:
        matches: Items with ``target_system``, ``target_code``,
            ``target_display`` and ``equivalence``
    """
    parameter: List[Dict[str, Any]] = [
        {"name": "result", "valueBoolean": len(matches) > 0}
    ]

    for match in matches:
        parameter.append({
            "name": "match",
            "part": [
                {
                    "name": "equivalence",
                    "valueCode": str(_get(match, "equivalence")),
                },
                {
                    "name": "concept",
                    "valueCoding": _coding(
                        system_uri(_get(match, "target_system")),
                        _get(match, "target_code"),
                        _get(match, "target_display"),
                    ),
                },
            ],
        })

    parameters = {"resourceType": "Parameters", "parameter": parameter}

    check_resource(Parameters, parameters)
    return parameters


def build_condition(
    patient_reference: str,
    namaste_code: str,
    namaste_display: str,
    target_code: Optional[str] = None,
    target_display: Optional[str] = None,
    target_system_uri: Optional[str] = None
) -> Dict[str, Any]:
    """
    Build a problem-list Condition coded with NAMASTE and, optionally, ICD-11.

    The NAMASTE coding is always first. When ``target_code`` is given a second
    coding is appended under ``target_system_uri`` (ICD-11 TM2 by default).

    Args:
        patient_reference: Subject reference, e.g. "Patient/p1"
        namaste_code: NAMASTE code
        namaste_display: NAMASTE display text
        target_code: Optional ICD-11 code
        target_display: Optional ICD-11 display text
        target_system_uri: System URI for the ICD-11 coding

    Returns:
        Condition resource dict with a fresh id
    """
    codings = [_coding(CodeSystem.NAMASTE.uri, namaste_code, namaste_display)]

    if target_code:
        codings.append(_coding(
            target_system_uri or CodeSystem.ICD11_TM2.uri,
            target_code,
            target_display
        ))

    condition = {
        "resourceType": "Condition",
        "id": generate_id(),
        "clinicalStatus": {
            "coding": [{
                "system": CONDITION_CLINICAL_SYSTEM,
                "code": "active"
            }]
        },
        "category": [{
            "coding": [{
                "system": CONDITION_CATEGORY_SYSTEM,
                "code": "problem-list-item"
            }]
        }],
        "code": {"coding": codings},
        "subject": {"reference": patient_reference},
        "recordedDate": utc_timestamp(),
    }

    check_resource(Condition, condition)
    return condition
