"""
Code Repository contract and its SQLAlchemy implementation.

The resolver and search orchestrator only see ``CodeRepository``; any store
that satisfies it (a database, the in-memory seed store) is interchangeable.
Methods are async because each call is a suspension point for the caller,
even where the backing store is synchronous.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional, Sequence

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from terminology_service import models


@dataclass
class CodeRecord:
    """A terminology code as seen by the core."""
    code: str
    display: str
    system: str
    definition: Optional[str] = None
    category: Optional[str] = None


@dataclass
class MappingRecord:
    """A concept mapping as seen by the core."""
    source_code: str
    source_system: str
    target_code: str
    target_system: str
    equivalence: str
    confidence: int = 100
    provenance: str = "manual"
    target_display: Optional[str] = None
    id: Optional[int] = None
    created_at: Optional[datetime] = None


class CodeRepository(ABC):
    """Read/write contract for terminology codes and concept mappings"""

    @abstractmethod
    async def find_codes_by_text(
        self,
        query: str,
        systems: Optional[Sequence[str]] = None
    ) -> List[CodeRecord]:
        """Case-insensitive substring search over display, code and definition."""
        pass

    @abstractmethod
    async def find_code_by_key(self, code: str, system: str) -> Optional[CodeRecord]:
        """Exact lookup by (code, system)."""
        pass

    @abstractmethod
    async def find_mappings(
        self,
        source_code: str,
        source_system: Optional[str] = None
    ) -> List[MappingRecord]:
        """All mappings for a source code, in insertion order."""
        pass

    @abstractmethod
    async def insert_mapping(self, mapping: MappingRecord) -> MappingRecord:
        """Insert a mapping; an existing (source, target) pair is returned as-is."""
        pass

    @abstractmethod
    async def bulk_insert_codes(self, codes: Sequence[CodeRecord]) -> int:
        """Insert codes, ignoring duplicates. Returns the number inserted."""
        pass

    @abstractmethod
    async def get_stats(self) -> Dict[str, int]:
        """Counts of NAMASTE terms, ICD-11 terms and mapped pairs."""
        pass


def _to_code_record(row: models.TerminologyCode) -> CodeRecord:
    return CodeRecord(
        code=row.code,
        display=row.display,
        system=row.system,
        definition=row.definition,
        category=row.category,
    )


def _to_mapping_record(row: models.ConceptMapping) -> MappingRecord:
    return MappingRecord(
        id=row.id,
        source_code=row.source_code,
        source_system=row.source_system,
        target_code=row.target_code,
        target_system=row.target_system,
        target_display=row.target_display,
        equivalence=row.equivalence,
        confidence=row.confidence,
        provenance=row.provenance,
        created_at=row.created_at,
    )


class SQLAlchemyCodeRepository(CodeRepository):
    """Code repository backed by a request-scoped SQLAlchemy session."""

    def __init__(self, db: Session):
        self.db = db

    async def find_codes_by_text(
        self,
        query: str,
        systems: Optional[Sequence[str]] = None
    ) -> List[CodeRecord]:
        term = (query or "").strip().lower()
        q = self.db.query(models.TerminologyCode)

        if term:
            q = q.filter(or_(
                func.lower(models.TerminologyCode.display).contains(term, autoescape=True),
                func.lower(models.TerminologyCode.code).contains(term, autoescape=True),
                func.lower(func.coalesce(models.TerminologyCode.definition, "")).contains(
                    term, autoescape=True
                ),
            ))

        if systems:
            q = q.filter(models.TerminologyCode.system.in_(list(systems)))

        return [_to_code_record(row) for row in q.order_by(models.TerminologyCode.id).all()]

    async def find_code_by_key(self, code: str, system: str) -> Optional[CodeRecord]:
        row = self.db.query(models.TerminologyCode).filter(
            models.TerminologyCode.code == code,
            models.TerminologyCode.system == system
        ).first()
        return _to_code_record(row) if row else None

    async def find_mappings(
        self,
        source_code: str,
        source_system: Optional[str] = None
    ) -> List[MappingRecord]:
        q = self.db.query(models.ConceptMapping).filter(
            models.ConceptMapping.source_code == source_code
        )
        if source_system:
            q = q.filter(models.ConceptMapping.source_system == source_system)
        return [_to_mapping_record(row) for row in q.order_by(models.ConceptMapping.id).all()]

    def _find_pair(self, mapping: MappingRecord) -> Optional[models.ConceptMapping]:
        return self.db.query(models.ConceptMapping).filter(
            models.ConceptMapping.source_code == mapping.source_code,
            models.ConceptMapping.source_system == mapping.source_system,
            models.ConceptMapping.target_code == mapping.target_code,
            models.ConceptMapping.target_system == mapping.target_system,
        ).first()

    async def insert_mapping(self, mapping: MappingRecord) -> MappingRecord:
        existing = self._find_pair(mapping)
        if existing:
            return _to_mapping_record(existing)

        row = models.ConceptMapping(
            source_code=mapping.source_code,
            source_system=mapping.source_system,
            target_code=mapping.target_code,
            target_system=mapping.target_system,
            target_display=mapping.target_display,
            equivalence=mapping.equivalence,
            confidence=mapping.confidence,
            provenance=mapping.provenance,
        )
        self.db.add(row)
        try:
            self.db.commit()
        except IntegrityError:
            # Lost a race with a concurrent insert of the same pair
            self.db.rollback()
            existing = self._find_pair(mapping)
            if existing is None:
                raise
            return _to_mapping_record(existing)
        except SQLAlchemyError:
            self.db.rollback()
            raise

        self.db.refresh(row)
        return _to_mapping_record(row)

    async def bulk_insert_codes(self, codes: Sequence[CodeRecord]) -> int:
        seen = set()
        inserted = 0
        for code in codes:
            key = (code.code, code.system)
            if key in seen:
                continue
            seen.add(key)

            exists = self.db.query(models.TerminologyCode.id).filter(
                models.TerminologyCode.code == code.code,
                models.TerminologyCode.system == code.system
            ).first()
            if exists:
                continue

            self.db.add(models.TerminologyCode(
                code=code.code,
                display=code.display,
                definition=code.definition,
                system=code.system,
                category=code.category,
            ))
            inserted += 1

        try:
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise
        return inserted

    async def get_stats(self) -> Dict[str, int]:
        namaste = self.db.query(func.count(models.TerminologyCode.id)).filter(
            models.TerminologyCode.system == "NAMASTE"
        ).scalar()
        icd11 = self.db.query(func.count(models.TerminologyCode.id)).filter(
            models.TerminologyCode.system.like("ICD-11%")
        ).scalar()
        mapped = self.db.query(func.count(models.ConceptMapping.id)).scalar()
        return {
            "namaste_terms": namaste or 0,
            "icd11_terms": icd11 or 0,
            "mapped_pairs": mapped or 0,
        }
