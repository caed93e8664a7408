"""
Bundle Validator - structural checks for dual-coded FHIR Bundles.

Validates an untrusted JSON payload in one linear pass without a FHIR schema
engine:
1. resourceType must be "Bundle"
2. Bundle.type must be a non-empty string
3. Bundle.entry must be a list (otherwise stop: no counts)
4. Walk entries, counting resources, Conditions and coding systems
5. Warn when Conditions lack either NAMASTE or ICD-11 coding

Nested access goes through ``_field``, which yields None for anything that is
not a mapping, so a malformed payload produces issues instead of exceptions.
Coding systems are classified by substring: "namaste" first, then "icd" or
"who". Nested Bundles are not descended into.
"""
from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Any, Dict, List, Optional

from fhir.resources.R4B.operationoutcome import OperationOutcome


class IssueSeverity(str, Enum):
    """OperationOutcome issue severity (subset)"""
    INFORMATION = "information"
    WARNING = "warning"
    ERROR = "error"


@dataclass
class ValidationIssue:
    severity: IssueSeverity
    code: str
    diagnostics: str

    def to_dict(self) -> Dict[str, str]:
        return {
            "severity": self.severity.value,
            "code": self.code,
            "diagnostics": self.diagnostics,
        }


@dataclass
class BundleSummary:
    resources: int = 0
    conditions: int = 0
    namasteCodes: int = 0
    icd11Codes: int = 0


@dataclass
class ValidationReport:
    """Ordered issues plus summary counts (None when entry was unusable)."""
    issues: List[ValidationIssue] = field(default_factory=list)
    summary: Optional[BundleSummary] = None

    @property
    def is_valid(self) -> bool:
        return not any(issue.severity == IssueSeverity.ERROR for issue in self.issues)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "isValid": self.is_valid,
            "issues": [issue.to_dict() for issue in self.issues],
            "summary": asdict(self.summary) if self.summary else None,
        }


DUAL_CODING_WARNING = (
    "Missing dual coding: Conditions should carry both NAMASTE and ICD-11 "
    "codings for interoperability"
)


def _field(obj: Any, key: str) -> Any:
    """Safe lookup: None unless obj is a mapping containing key."""
    if isinstance(obj, dict):
        return obj.get(key)
    return None


def _error(code: str, diagnostics: str) -> ValidationIssue:
    return ValidationIssue(IssueSeverity.ERROR, code, diagnostics)


def _warning(code: str, diagnostics: str) -> ValidationIssue:
    return ValidationIssue(IssueSeverity.WARNING, code, diagnostics)


def classify_coding_system(system: Any) -> Optional[str]:
    """Return "namaste", "icd11" or None for a coding system URI."""
    if not isinstance(system, str):
        return None
    if "namaste" in system:
        return "namaste"
    if "icd" in system or "who" in system:
        return "icd11"
    return None


def validate_bundle(bundle: Any) -> ValidationReport:
    """
    Structurally validate a FHIR Bundle payload.

    Never raises; problems are reported as issues. ``is_valid`` is True when
    no error-severity issue was produced.
    """
    report = ValidationReport()

    if _field(bundle, "resourceType") != "Bundle":
        report.issues.append(_error("invalid", "Invalid resourceType. Expected 'Bundle'"))

    bundle_type = _field(bundle, "type")
    if not isinstance(bundle_type, str) or not bundle_type:
        report.issues.append(_error("required", "Bundle type is required"))

    entries = _field(bundle, "entry")
    if not isinstance(entries, list):
        report.issues.append(_error("structure", "Bundle must have an entry array"))
        return report

    summary = BundleSummary()

    for index, entry in enumerate(entries):
        resource = _field(entry, "resource")
        if not isinstance(resource, dict):
            report.issues.append(_warning("incomplete", f"Entry {index}: Entry missing resource"))
            continue

        summary.resources += 1

        if _field(resource, "resourceType") != "Condition":
            continue

        summary.conditions += 1
        codings = _field(_field(resource, "code"), "coding")
        if not isinstance(codings, list):
            continue

        for coding in codings:
            kind = classify_coding_system(_field(coding, "system"))
            if kind == "namaste":
                summary.namasteCodes += 1
            elif kind == "icd11":
                summary.icd11Codes += 1

    if summary.conditions > 0 and (summary.namasteCodes == 0 or summary.icd11Codes == 0):
        report.issues.append(_warning("business-rule", DUAL_CODING_WARNING))

    report.summary = summary
    return report


def to_operation_outcome(report: ValidationReport) -> Dict[str, Any]:
    """
    Render a validation report as an OperationOutcome.

    OperationOutcome needs at least one issue, so a clean report yields a
    single information issue.
    """
    issues = [issue.to_dict() for issue in report.issues] or [
        {"severity": IssueSeverity.INFORMATION.value, "code": "informational", "diagnostics": "All OK"}
    ]
    outcome = {"resourceType": "OperationOutcome", "issue": issues}

    OperationOutcome(**outcome)
    return outcome
