from sqlalchemy import Column, Integer, String, Text, DateTime, UniqueConstraint
from datetime import datetime, timezone

from .database import Base


def utcnow():
    """Get current UTC time (timezone-aware)."""
    return datetime.now(timezone.utc)


class TerminologyCode(Base):
    """Canonical code from NAMASTE, ICD-11 TM2 or ICD-11 Biomedicine"""
    __tablename__ = "terminology_codes"
    __table_args__ = (
        UniqueConstraint("code", "system", name="uq_terminology_code_system"),
    )

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String(64), nullable=False, index=True)
    display = Column(String(255), nullable=False)
    definition = Column(Text, nullable=True)
    system = Column(String(32), nullable=False, index=True)  # 'NAMASTE', 'ICD-11-TM2', 'ICD-11-BIOMEDICINE'
    category = Column(String(32), nullable=True)  # AYU/SID/UNA for NAMASTE, TM2/biomedicine for ICD-11
    created_at = Column(DateTime, default=utcnow)


class ConceptMapping(Base):
    """
    Directed mapping between two terminology codes.

    A source code may map to any number of targets. The unique constraint on
    the (source, target) pair is what de-duplicates concurrent inserts of the
    same AI suggestion.
    """
    __tablename__ = "concept_mappings"
    __table_args__ = (
        UniqueConstraint(
            "source_code", "source_system", "target_code", "target_system",
            name="uq_concept_mapping_pair"
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    source_code = Column(String(64), nullable=False, index=True)
    source_system = Column(String(32), nullable=False)
    target_code = Column(String(64), nullable=False)
    target_system = Column(String(32), nullable=False)
    target_display = Column(String(255), nullable=True)
    equivalence = Column(String(16), nullable=False)  # equivalent, wider, narrower, inexact
    confidence = Column(Integer, nullable=False, default=100)  # 0-100
    provenance = Column(String(16), nullable=False, default="manual")  # 'ai-generated', 'manual', 'seed'
    created_at = Column(DateTime, default=utcnow)


class ProblemListEntry(Base):
    """Patient problem-list entry, exported as a dual-coded FHIR Condition"""
    __tablename__ = "problem_list_entries"

    id = Column(Integer, primary_key=True, index=True)
    patient_id = Column(String(64), nullable=False, index=True)
    namaste_code = Column(String(64), nullable=False)
    target_code = Column(String(64), nullable=True)
    target_system = Column(String(32), nullable=False, default="ICD-11-TM2")
    status = Column(String(16), nullable=False, default="active")  # active, resolved, inactive
    created_at = Column(DateTime, default=utcnow)
