"""
FHIR Bundle Assembler

Wraps resource dicts into a Bundle. ``build_bundle`` is the one-shot form;
``FHIRBundler`` collects resources incrementally for callers that build a
bundle while walking their own data.
"""
from typing import Any, Dict, List, Sequence

from fhir.resources.R4B.bundle import Bundle

from .mappers import check_resource, generate_id, utc_timestamp


def build_bundle(bundle_type: str, resources: Sequence[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Build a Bundle of the given type around the resources, in order.

    Args:
        bundle_type: Bundle.type, e.g. "collection" or "searchset"
        resources: FHIR resource dicts

    Returns:
        Bundle resource dict with a fresh id and timestamp
    """
    bundle = {
        "resourceType": "Bundle",
        "id": generate_id(),
        "type": bundle_type,
        "timestamp": utc_timestamp(),
        "total": len(resources),
        "entry": [{"resource": resource} for resource in resources],
    }

    check_resource(Bundle, bundle)
    return bundle


class FHIRBundler:
    """
    Collects resources and assembles them into a Bundle.

    Usage:
        bundler = FHIRBundler("collection")
        bundler.add_resource(condition)
        bundle = bundler.build()
    """

    def __init__(self, bundle_type: str = "collection"):
        """Initialize the bundler."""
        self.bundle_type = bundle_type
        self.resources: List[Dict[str, Any]] = []

    def add_resource(self, resource: Dict[str, Any]) -> None:
        """Add a resource to the bundle."""
        self.resources.append(resource)

    def build(self) -> Dict[str, Any]:
        """Build the Bundle from the resources added so far."""
        return build_bundle(self.bundle_type, self.resources)

    @property
    def resource_count(self) -> int:
        """Number of resources in the bundle."""
        return len(self.resources)
