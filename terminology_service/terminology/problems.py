"""
Problem-list export: stored problem entries → Bundle of dual-coded Conditions.
"""
import logging
from typing import Any, Dict, Sequence

from terminology_service.fhir.bundler import FHIRBundler
from terminology_service.fhir.mappers import build_condition
from .repository import CodeRepository
from .systems import CodeSystem, system_uri

logger = logging.getLogger(__name__)


async def export_problem_list(
    entries: Sequence[Any],
    repository: CodeRepository,
    bundle_type: str = "collection"
) -> Dict[str, Any]:
    """
    Build a Bundle with one Condition per problem entry.

    Display texts come from the repository; a code the repository does not
    know is displayed as the code itself.

    Args:
        entries: Objects with ``patient_id``, ``namaste_code``, ``target_code``
            and ``target_system``
        repository: Code repository used for display lookups
        bundle_type: Bundle.type of the result
    """
    bundler = FHIRBundler(bundle_type)

    for entry in entries:
        namaste = await repository.find_code_by_key(entry.namaste_code, CodeSystem.NAMASTE.value)
        namaste_display = namaste.display if namaste else entry.namaste_code

        target_display = None
        target_system = entry.target_system or CodeSystem.ICD11_TM2.value
        if entry.target_code:
            target = await repository.find_code_by_key(entry.target_code, target_system)
            target_display = target.display if target else None

        bundler.add_resource(build_condition(
            f"Patient/{entry.patient_id}",
            entry.namaste_code,
            namaste_display,
            target_code=entry.target_code,
            target_display=target_display,
            target_system_uri=system_uri(target_system),
        ))

    logger.info("Exported %d problem-list Condition(s)", bundler.resource_count)
    return bundler.build()
