"""
In-process code repository.

Keeps codes and mappings in dictionaries keyed by insertion order. Useful for
demos and tests; behaves like ``SQLAlchemyCodeRepository`` from the core's
point of view.
"""
from dataclasses import replace
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence, Tuple

from .repository import CodeRecord, CodeRepository, MappingRecord


class InMemoryCodeRepository(CodeRepository):
    """Dictionary-backed code repository."""

    def __init__(
        self,
        codes: Sequence[CodeRecord] = (),
        mappings: Sequence[MappingRecord] = ()
    ):
        self._codes: Dict[Tuple[str, str], CodeRecord] = {}
        self._mappings: Dict[Tuple[str, str, str, str], MappingRecord] = {}
        self._next_mapping_id = 1

        for code in codes:
            self._codes.setdefault((code.code, code.system), code)
        for mapping in mappings:
            self._store_mapping(mapping)

    def _store_mapping(self, mapping: MappingRecord) -> MappingRecord:
        key = (mapping.source_code, mapping.source_system, mapping.target_code, mapping.target_system)
        if key in self._mappings:
            return self._mappings[key]

        stored = replace(
            mapping,
            id=self._next_mapping_id,
            created_at=mapping.created_at or datetime.now(timezone.utc),
        )
        self._next_mapping_id += 1
        self._mappings[key] = stored
        return stored

    async def find_codes_by_text(
        self,
        query: str,
        systems: Optional[Sequence[str]] = None
    ) -> List[CodeRecord]:
        term = (query or "").strip().lower()
        results = []
        for code in self._codes.values():
            if systems and code.system not in systems:
                continue
            if (
                term in code.display.lower()
                or term in code.code.lower()
                or (code.definition and term in code.definition.lower())
            ):
                results.append(code)
        return results

    async def find_code_by_key(self, code: str, system: str) -> Optional[CodeRecord]:
        return self._codes.get((code, system))

    async def find_mappings(
        self,
        source_code: str,
        source_system: Optional[str] = None
    ) -> List[MappingRecord]:
        return [
            m for m in self._mappings.values()
            if m.source_code == source_code
            and (source_system is None or m.source_system == source_system)
        ]

    async def insert_mapping(self, mapping: MappingRecord) -> MappingRecord:
        return self._store_mapping(mapping)

    async def bulk_insert_codes(self, codes: Sequence[CodeRecord]) -> int:
        inserted = 0
        for code in codes:
            key = (code.code, code.system)
            if key not in self._codes:
                self._codes[key] = code
                inserted += 1
        return inserted

    async def get_stats(self) -> Dict[str, int]:
        return {
            "namaste_terms": sum(1 for c in self._codes.values() if c.system == "NAMASTE"),
            "icd11_terms": sum(1 for c in self._codes.values() if c.system.startswith("ICD-11")),
            "mapped_pairs": len(self._mappings),
        }
