from pydantic import BaseModel, Field, field_validator
from datetime import datetime
from typing import Optional, Dict, List, Literal

from .terminology.systems import CODE_PATTERN, CodeSystem, Equivalence


def _resolve_system(value: str) -> str:
    """Accept a system tag or URI; store the tag"""
    return CodeSystem.resolve(value).value


# Health check schema
class HealthResponse(BaseModel):
    """Health check response"""
    status: str


# ============================================================================
# Search
# ============================================================================

class SearchRequest(BaseModel):
    """Request schema for terminology search"""
    query: str = Field(..., min_length=2, max_length=200, description="Search text (2+ characters)")
    systems: Optional[List[str]] = Field(
        None, description="Restrict to these systems (tags or URIs), any of them"
    )
    include_suggestions: bool = Field(
        default=False,
        alias="includeSuggestions",
        description="Attach AI mapping candidates to unmapped NAMASTE codes"
    )

    model_config = {"populate_by_name": True}

    @field_validator("query")
    @classmethod
    def strip_query(cls, value: str) -> str:
        value = value.strip()
        if len(value) < 2:
            raise ValueError("Query must be at least 2 characters")
        return value

    @field_validator("systems")
    @classmethod
    def validate_systems(cls, value: Optional[List[str]]) -> Optional[List[str]]:
        if value is None:
            return None
        return [_resolve_system(v) for v in value]


class TranslationMatchResponse(BaseModel):
    """A mapped target concept"""
    target_code: str
    target_system: str
    target_display: str
    equivalence: str
    confidence: int
    provenance: str


class SearchResultResponse(BaseModel):
    """A terminology code matching the query, with its mappings"""
    code: str
    display: str
    system: str
    definition: Optional[str] = None
    context: Optional[str] = None
    mappings: List[TranslationMatchResponse] = Field(default_factory=list)


class SearchResponse(BaseModel):
    results: List[SearchResultResponse]
    total: int


# ============================================================================
# ConceptMap $translate
# ============================================================================

class TranslateRequest(BaseModel):
    """Request schema for ConceptMap $translate"""
    source_code: str = Field(..., min_length=1, alias="sourceCode")
    source_system: str = Field(..., alias="sourceSystem", description="System tag or URI")
    target_system: str = Field(..., alias="targetSystem", description="System tag or URI")

    model_config = {"populate_by_name": True}

    @field_validator("source_system", "target_system")
    @classmethod
    def validate_system(cls, value: str) -> str:
        return _resolve_system(value)


# ============================================================================
# Concept mappings
# ============================================================================

class MappingCreate(BaseModel):
    """Schema for creating a manual concept mapping"""
    source_code: str = Field(..., pattern=CODE_PATTERN, alias="sourceCode")
    source_system: str = Field(..., alias="sourceSystem")
    target_code: str = Field(..., pattern=CODE_PATTERN, alias="targetCode")
    target_system: str = Field(..., alias="targetSystem")
    equivalence: Equivalence
    confidence: int = Field(default=100, ge=0, le=100)
    target_display: Optional[str] = Field(None, alias="targetDisplay")

    model_config = {"populate_by_name": True}

    @field_validator("source_system", "target_system")
    @classmethod
    def validate_system(cls, value: str) -> str:
        return _resolve_system(value)


class SuggestMappingRequest(BaseModel):
    """Request schema for AI mapping suggestions of a single code"""
    code: str = Field(..., pattern=CODE_PATTERN, max_length=64)
    display: str = Field(..., min_length=1, max_length=255)
    definition: Optional[str] = None
    system: str = Field(default=CodeSystem.NAMASTE.value, description="System tag or URI of the code")
    target_system: str = Field(
        default=CodeSystem.ICD11_TM2.value,
        alias="targetSystem",
        description="System tag or URI to suggest mappings in"
    )

    model_config = {"populate_by_name": True}

    @field_validator("system", "target_system")
    @classmethod
    def validate_system(cls, value: str) -> str:
        return _resolve_system(value)


class SuggestMappingResponse(BaseModel):
    """Suggested mappings; fresh AI suggestions are also stored"""
    source_code: str
    source_system: str
    mappings: List[TranslationMatchResponse]


class MappingResponse(BaseModel):
    """Stored concept mapping"""
    id: int
    source_code: str
    source_system: str
    target_code: str
    target_system: str
    target_display: Optional[str] = None
    equivalence: str
    confidence: int
    provenance: str
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


# ============================================================================
# Code ingestion
# ============================================================================

class CodeIngestRow(BaseModel):
    """One already-parsed terminology row"""
    code: str = Field(..., pattern=CODE_PATTERN, max_length=64)
    display: str = Field(..., min_length=1, max_length=255)
    definition: Optional[str] = None
    category: Optional[str] = None


class CodeIngestRequest(BaseModel):
    """Bulk ingestion of terminology rows into one system"""
    data: List[CodeIngestRow] = Field(..., description="Rows to ingest")
    system: str = Field(default=CodeSystem.NAMASTE.value, description="System tag or URI")

    @field_validator("system")
    @classmethod
    def validate_system(cls, value: str) -> str:
        return _resolve_system(value)


class CodeIngestResponse(BaseModel):
    inserted: int
    received: int
    message: str


# ============================================================================
# Problem list
# ============================================================================

class ProblemCreate(BaseModel):
    """Schema for creating a problem-list entry"""
    patient_id: str = Field(default="demo-patient", min_length=1, max_length=64, alias="patientId")
    namaste_code: str = Field(..., pattern=CODE_PATTERN, alias="namasteCode")
    target_code: Optional[str] = Field(None, pattern=CODE_PATTERN, alias="targetCode")
    target_system: str = Field(default=CodeSystem.ICD11_TM2.value, alias="targetSystem")
    status: Literal["active", "resolved", "inactive"] = "active"

    model_config = {"populate_by_name": True}

    @field_validator("target_system")
    @classmethod
    def validate_system(cls, value: str) -> str:
        return _resolve_system(value)


class ProblemResponse(BaseModel):
    """Stored problem-list entry"""
    id: int
    patient_id: str
    namaste_code: str
    target_code: Optional[str] = None
    target_system: str
    status: str
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


# ============================================================================
# Bundle validation
# ============================================================================

class ValidationIssueResponse(BaseModel):
    severity: Literal["information", "warning", "error"]
    code: str
    diagnostics: str


class BundleSummaryResponse(BaseModel):
    resources: int
    conditions: int
    namasteCodes: int
    icd11Codes: int


class BundleValidationResponse(BaseModel):
    """Structured validation report; isValid is False when any error issue exists"""
    isValid: bool
    issues: List[ValidationIssueResponse]
    summary: Optional[BundleSummaryResponse] = None


# ============================================================================
# Statistics
# ============================================================================

class StatsResponse(BaseModel):
    namaste_terms: int
    icd11_terms: int
    mapped_pairs: int
    problem_entries: int
    by_provenance: Dict[str, int] = Field(default_factory=dict)
