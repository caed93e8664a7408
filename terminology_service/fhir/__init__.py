"""
FHIR Terminology Operations Module

Builds and checks the FHIR R4 resources exchanged by the terminology
operations, using the fhir.resources R4B models for shape checks.

Components:
- mappers: ValueSet expansion, $translate Parameters, dual-coded Condition
- bundler: Bundle assembly
- validator: structural Bundle validation and OperationOutcome rendering
"""
from .mappers import build_value_set_expansion, build_translation_parameters, build_condition
from .bundler import FHIRBundler, build_bundle
from .validator import ValidationIssue, ValidationReport, validate_bundle, to_operation_outcome

__all__ = [
    "build_value_set_expansion",
    "build_translation_parameters",
    "build_condition",
    "build_bundle",
    "FHIRBundler",
    "ValidationIssue",
    "ValidationReport",
    "validate_bundle",
    "to_operation_outcome",
]
