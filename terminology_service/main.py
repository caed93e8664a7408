import logging
from contextlib import asynccontextmanager
from dataclasses import asdict
from typing import Any, List, Optional

from fastapi import FastAPI, Body, Depends, HTTPException, Query, status
from sqlalchemy import func
from sqlalchemy.orm import Session

from . import models, schemas, database
from .config import settings
from .fhir import (
    build_translation_parameters,
    build_value_set_expansion,
    to_operation_outcome,
    validate_bundle,
)
from .providers.suggestions import SearchEnhancer, SuggestionFactory, SuggestionProvider
from .terminology.problems import export_problem_list
from .terminology.repository import CodeRecord, MappingRecord, SQLAlchemyCodeRepository
from .terminology.resolver import ConceptTranslationResolver
from .terminology.search import TerminologySearchOrchestrator
from .terminology.systems import CodeSystem, Provenance

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize database tables on startup"""
    models.Base.metadata.create_all(bind=database.engine)
    logger.info("Database tables created")
    yield

# Create FastAPI application
app = FastAPI(
    title=settings.app_name,
    description="NAMASTE to ICD-11 (TM2 / Biomedicine) FHIR terminology service",
    version="1.0.0",
    lifespan=lifespan
)

# Value sets served by $expand; None means every system
VALUE_SETS = {
    "namaste-codes": [CodeSystem.NAMASTE.value],
    "icd11-tm2-codes": [CodeSystem.ICD11_TM2.value],
    "icd11-biomedicine-codes": [CodeSystem.ICD11_BIOMEDICINE.value],
    "all-codes": None,
}


# ============================================================================
# DEPENDENCIES
# ============================================================================

def get_repository(db: Session = Depends(database.get_db)) -> SQLAlchemyCodeRepository:
    """Request-scoped code repository"""
    return SQLAlchemyCodeRepository(db)


def get_suggestion_provider() -> Optional[SuggestionProvider]:
    """Configured mapping suggestion provider, or None"""
    return SuggestionFactory.create_provider()


def get_search_enhancer() -> Optional[SearchEnhancer]:
    """Configured search enhancer, or None"""
    return SuggestionFactory.create_enhancer()


def get_resolver(
    repository: SQLAlchemyCodeRepository = Depends(get_repository),
    provider: Optional[SuggestionProvider] = Depends(get_suggestion_provider)
) -> ConceptTranslationResolver:
    return ConceptTranslationResolver(
        repository,
        provider,
        timeout=settings.suggestion_timeout_seconds
    )


# ============================================================================
# HEALTH
# ============================================================================

@app.get("/health", response_model=schemas.HealthResponse)
def health_check():
    """
    Health check endpoint - returns {"status": "ok"}
    """
    return {"status": "ok"}


# ============================================================================
# SEARCH
# ============================================================================

@app.post("/search", response_model=schemas.SearchResponse)
async def search_terminology(
    request: schemas.SearchRequest,
    repository: SQLAlchemyCodeRepository = Depends(get_repository),
    resolver: ConceptTranslationResolver = Depends(get_resolver),
    enhancer: Optional[SearchEnhancer] = Depends(get_search_enhancer)
):
    """
    Search NAMASTE and ICD-11 codes by display, code or definition

    Accepts:
    - query: Search text (2+ characters)
    - systems: Optional list of system tags or URIs
    - includeSuggestions: Attach AI mapping candidates to unmapped NAMASTE codes

    Every result carries its stored mappings, best confidence first.
    """
    try:
        orchestrator = TerminologySearchOrchestrator(
            repository,
            resolver,
            enhancer=enhancer,
            enhancement_timeout=settings.enhancement_timeout_seconds
        )
        results = await orchestrator.search(
            request.query,
            systems=request.systems,
            include_suggestions=request.include_suggestions
        )
        return {
            "results": [r.to_dict() for r in results],
            "total": len(results)
        }
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.exception("Search failed")
        raise HTTPException(
            status_code=500,
            detail=f"Search failed: {str(e)}"
        )


# ============================================================================
# FHIR TERMINOLOGY OPERATIONS
# ============================================================================

@app.get("/fhir/ValueSet/{value_set_id}/$expand")
async def expand_value_set(
    value_set_id: str,
    filter: Optional[str] = Query(None, description="Text filter over display, code and definition"),
    count: Optional[int] = Query(None, ge=1, le=1000, description="Maximum number of concepts"),
    repository: SQLAlchemyCodeRepository = Depends(get_repository)
):
    """
    Expand a value set into a FHIR ValueSet with an expansion block

    Known value sets: namaste-codes, icd11-tm2-codes, icd11-biomedicine-codes, all-codes.
    Returns 404 for any other id.
    """
    if value_set_id not in VALUE_SETS:
        raise HTTPException(status_code=404, detail=f"Unknown value set: {value_set_id}")

    try:
        codes = await repository.find_codes_by_text(filter or "", VALUE_SETS[value_set_id])
        codes = codes[:count or settings.expand_default_count]
        url = f"{settings.fhir_base_url.rstrip('/')}/ValueSet/{value_set_id}"
        return build_value_set_expansion(url, codes)
    except Exception as e:
        logger.exception("ValueSet expansion failed")
        raise HTTPException(
            status_code=500,
            detail=f"ValueSet expansion failed: {str(e)}"
        )


@app.post("/fhir/ConceptMap/$translate")
async def translate_concept(
    request: schemas.TranslateRequest,
    resolver: ConceptTranslationResolver = Depends(get_resolver)
):
    """
    Translate a code into another system (FHIR ConceptMap $translate)

    Accepts sourceCode, sourceSystem and targetSystem (tags or URIs).
    Returns a Parameters resource with result=false when nothing matches.
    """
    try:
        matches = await resolver.translate(
            request.source_code,
            request.source_system,
            request.target_system
        )
        return build_translation_parameters(matches)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.exception("Translation failed")
        raise HTTPException(
            status_code=500,
            detail=f"Translation failed: {str(e)}"
        )


def _require_object(bundle: Any) -> dict:
    if not isinstance(bundle, dict):
        raise HTTPException(status_code=400, detail="Bundle payload must be a JSON object")
    return bundle


@app.post("/bundle/validate", response_model=schemas.BundleValidationResponse)
def validate_bundle_report(bundle: Any = Body(...)):
    """
    Validate a FHIR Bundle and report its dual-coding summary

    Malformed bundles are reported as issues in a 200 response; isValid is
    false when any error issue was found.
    """
    report = validate_bundle(_require_object(bundle))
    return report.to_dict()


@app.post("/fhir/Bundle/$validate")
def validate_bundle_outcome(bundle: Any = Body(...)):
    """Validate a FHIR Bundle and answer with an OperationOutcome"""
    report = validate_bundle(_require_object(bundle))
    return to_operation_outcome(report)


# ============================================================================
# MAPPINGS AND CODES
# ============================================================================

@app.post("/mappings", response_model=schemas.MappingResponse, status_code=status.HTTP_201_CREATED)
async def create_mapping(
    mapping: schemas.MappingCreate,
    repository: SQLAlchemyCodeRepository = Depends(get_repository)
):
    """
    Create a manual concept mapping

    An existing mapping for the same source/target pair is returned unchanged.
    """
    try:
        stored = await repository.insert_mapping(MappingRecord(
            source_code=mapping.source_code,
            source_system=mapping.source_system,
            target_code=mapping.target_code,
            target_system=mapping.target_system,
            target_display=mapping.target_display,
            equivalence=mapping.equivalence.value,
            confidence=mapping.confidence,
            provenance=Provenance.MANUAL.value,
        ))
        return stored
    except Exception as e:
        logger.exception("Mapping creation failed")
        raise HTTPException(
            status_code=500,
            detail=f"Mapping creation failed: {str(e)}"
        )


@app.post("/mappings/suggest", response_model=schemas.SuggestMappingResponse)
async def suggest_mappings(
    request: schemas.SuggestMappingRequest,
    resolver: ConceptTranslationResolver = Depends(get_resolver)
):
    """
    Ask the suggestion provider for mappings of one code

    Accepts:
    - code, display, definition: The source concept (need not be stored)
    - system: System of the code (defaults to NAMASTE)
    - targetSystem: System to map into (defaults to ICD-11-TM2)

    Fresh AI suggestions are stored as ai-generated mappings; an existing
    mapping for the same pair is kept. Returns no mappings when no provider
    is configured.
    """
    try:
        record = CodeRecord(
            code=request.code,
            display=request.display,
            system=request.system,
            definition=request.definition,
        )
        matches = await resolver.suggest_for(record, request.target_system)
        return {
            "source_code": record.code,
            "source_system": record.system,
            "mappings": [asdict(m) for m in matches],
        }
    except Exception as e:
        logger.exception("Mapping suggestion failed")
        raise HTTPException(
            status_code=500,
            detail=f"Mapping suggestion failed: {str(e)}"
        )


@app.post("/codes/ingest", response_model=schemas.CodeIngestResponse)
async def ingest_codes(
    request: schemas.CodeIngestRequest,
    repository: SQLAlchemyCodeRepository = Depends(get_repository)
):
    """
    Bulk-ingest already-parsed terminology rows into one system

    Rows whose (code, system) already exists are ignored.
    """
    try:
        inserted = await repository.bulk_insert_codes([
            CodeRecord(
                code=row.code,
                display=row.display,
                system=request.system,
                definition=row.definition,
                category=row.category,
            )
            for row in request.data
        ])
        logger.info("Ingested %d of %d %s code(s)", inserted, len(request.data), request.system)
        return {
            "inserted": inserted,
            "received": len(request.data),
            "message": f"Ingested {inserted} {request.system} code(s)"
        }
    except Exception as e:
        logger.exception("Code ingestion failed")
        raise HTTPException(
            status_code=500,
            detail=f"Code ingestion failed: {str(e)}"
        )


# ============================================================================
# PROBLEM LIST
# ============================================================================

@app.get("/problems", response_model=List[schemas.ProblemResponse])
def list_problems(
    patient_id: Optional[str] = Query(None, alias="patientId"),
    db: Session = Depends(database.get_db)
):
    """Fetch problem-list entries, optionally for one patient"""
    q = db.query(models.ProblemListEntry)
    if patient_id:
        q = q.filter(models.ProblemListEntry.patient_id == patient_id)
    return q.order_by(models.ProblemListEntry.id).all()


@app.post("/problems", response_model=schemas.ProblemResponse, status_code=status.HTTP_201_CREATED)
def create_problem(
    problem: schemas.ProblemCreate,
    db: Session = Depends(database.get_db)
):
    """
    Create a problem-list entry

    Accepts:
    - patientId: Patient identifier (defaults to "demo-patient")
    - namasteCode: NAMASTE code of the problem
    - targetCode / targetSystem: Optional ICD-11 code for dual coding
    """
    db_problem = models.ProblemListEntry(**problem.model_dump())
    db.add(db_problem)
    db.commit()
    db.refresh(db_problem)
    return db_problem


@app.delete("/problems/{problem_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_problem(problem_id: int, db: Session = Depends(database.get_db)):
    """
    Delete a problem-list entry by ID

    Returns:
    - 204 No Content if successful
    - 404 error if the entry doesn't exist
    """
    db_problem = db.query(models.ProblemListEntry).filter(
        models.ProblemListEntry.id == problem_id
    ).first()
    if not db_problem:
        raise HTTPException(status_code=404, detail="Problem not found")

    db.delete(db_problem)
    db.commit()
    return None


@app.get("/problems/export")
async def export_problems(
    patient_id: Optional[str] = Query(None, alias="patientId"),
    db: Session = Depends(database.get_db),
    repository: SQLAlchemyCodeRepository = Depends(get_repository)
):
    """Export problem-list entries as a FHIR Bundle of dual-coded Conditions"""
    try:
        q = db.query(models.ProblemListEntry)
        if patient_id:
            q = q.filter(models.ProblemListEntry.patient_id == patient_id)
        entries = q.order_by(models.ProblemListEntry.id).all()
        return await export_problem_list(entries, repository)
    except Exception as e:
        logger.exception("Problem list export failed")
        raise HTTPException(
            status_code=500,
            detail=f"Problem list export failed: {str(e)}"
        )


# ============================================================================
# STATISTICS
# ============================================================================

@app.get("/stats", response_model=schemas.StatsResponse)
async def get_stats(
    db: Session = Depends(database.get_db),
    repository: SQLAlchemyCodeRepository = Depends(get_repository)
):
    """Counts of codes, mappings (by provenance) and problem-list entries"""
    counts = await repository.get_stats()
    by_provenance = dict(
        db.query(models.ConceptMapping.provenance, func.count(models.ConceptMapping.id))
        .group_by(models.ConceptMapping.provenance)
        .all()
    )
    problems = db.query(func.count(models.ProblemListEntry.id)).scalar() or 0
    return {
        **counts,
        "problem_entries": problems,
        "by_provenance": by_provenance,
    }
