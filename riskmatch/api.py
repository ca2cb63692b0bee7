"""FastAPI app exposing risk suggestions, duplicate checks and embedding backfill.

Matching endpoints never fail because a provider is down: they answer with
an empty list. Error handlers cover the remaining engine errors.
"""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Query, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from .config import settings
from .db import AsyncSessionMaker
from .domain import RecordKind, RiskSuggestion
from .engine import MatchingEngine, build_engine
from .errors import DimensionMismatch, RecordNotFound, RiskMatchError
from .logging_config import setup_logging
from .store import SqlRecordStore

logger = logging.getLogger(__name__)


# Pydantic response models
class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    version: str


class ErrorResponse(BaseModel):
    """Error response."""
    error: str
    detail: str | None = None


class RiskDTO(BaseModel):
    """Risk data transfer object."""
    id: str
    title: str
    threat_description: str | None = None
    description: str | None = None


class SuggestionDTO(BaseModel):
    """A suggested or similar risk."""
    risk: RiskDTO
    similarity_score: int = Field(ge=0, le=100)
    matched_fields: list[str] = Field(default_factory=list)


class SuggestionsResponse(BaseModel):
    """List of suggestions."""
    count: int
    results: list[SuggestionDTO]


class SimilarityCheckRequest(BaseModel):
    """Draft risk to check for duplicates."""
    title: str = Field(min_length=1, max_length=500)
    threat_description: str | None = None
    description: str | None = None
    exclude_id: str | None = None
    limit: int | None = Field(default=None, ge=1, le=100)


class BackfillRequest(BaseModel):
    """Backfill run options."""
    kind: RecordKind = RecordKind.RISK
    batch_size: int | None = Field(default=None, ge=1, le=1000)
    concurrency: int | None = Field(default=None, ge=1, le=64)
    dry_run: bool = False


class BackfillResponse(BaseModel):
    """Backfill counters."""
    kind: RecordKind
    processed: int
    succeeded: int
    failed: int
    dry_run: bool


class EmbeddingStatusDTO(BaseModel):
    """Embedding coverage for a record kind."""
    kind: RecordKind
    with_embedding: int
    without_embedding: int
    total: int


def _suggestions_response(suggestions: list[RiskSuggestion]) -> SuggestionsResponse:
    results = [
        SuggestionDTO(
            risk=RiskDTO(
                id=s.risk.id,
                title=s.risk.title,
                threat_description=s.risk.threat_description,
                description=s.risk.description,
            ),
            similarity_score=s.similarity_score,
            matched_fields=s.matched_fields,
        )
        for s in suggestions
    ]
    return SuggestionsResponse(count=len(results), results=results)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup/shutdown logic."""
    # Startup
    setup_logging(settings.logging)
    app.state.engine = build_engine(settings, SqlRecordStore(AsyncSessionMaker))
    logger.info("Application starting up")

    yield

    # Shutdown
    await app.state.engine.aclose()
    logger.info("Application shutting down")


app = FastAPI(
    title="Risk Similarity & Relevance Matching",
    version=settings.version,
    description="Duplicate risk detection and supplier risk suggestions",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://localhost:3001"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_engine(request: Request) -> MatchingEngine:
    """Engine dependency (overridable in tests)."""
    return request.app.state.engine


# Exception handlers
@app.exception_handler(RecordNotFound)
async def not_found_handler(request, exc: RecordNotFound):
    """Handle missing records."""
    logger.warning(f"Not found: {exc}")
    return JSONResponse(
        status_code=status.HTTP_404_NOT_FOUND,
        content=ErrorResponse(error="not_found", detail=str(exc)).model_dump(),
    )


@app.exception_handler(DimensionMismatch)
async def dimension_mismatch_handler(request, exc: DimensionMismatch):
    """Handle vectors from incompatible embedding models."""
    logger.error(f"Dimension mismatch: {exc}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=ErrorResponse(error="dimension_mismatch", detail=str(exc)).model_dump(),
    )


@app.exception_handler(RiskMatchError)
async def engine_error_handler(request, exc: RiskMatchError):
    """Handle remaining engine errors."""
    logger.error(f"Engine error: {exc}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=ErrorResponse(error="engine_error", detail=str(exc)).model_dump(),
    )


@app.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    """Health check endpoint."""
    return HealthResponse(status="ok", version=settings.version)


@app.get("/suppliers/{supplier_id}/risk-suggestions", response_model=SuggestionsResponse)
async def supplier_risk_suggestions(
    supplier_id: str,
    limit: int | None = Query(default=None, ge=1, le=200),
    engine: MatchingEngine = Depends(get_engine),
) -> SuggestionsResponse:
    """Suggest existing risks relevant to a supplier (already-linked risks excluded)."""
    if await engine.matcher.store.get_supplier(supplier_id) is None:
        raise RecordNotFound(f"Supplier not found: {supplier_id}")
    suggestions = await engine.matcher.suggest_risks_for_supplier(supplier_id, limit=limit)
    return _suggestions_response(suggestions)


@app.get("/risks/{risk_id}/similar", response_model=SuggestionsResponse)
async def similar_risks(
    risk_id: str,
    limit: int | None = Query(default=None, ge=1, le=100),
    engine: MatchingEngine = Depends(get_engine),
) -> SuggestionsResponse:
    """Find likely duplicates of an existing risk."""
    if await engine.matcher.store.get_risk(risk_id) is None:
        raise RecordNotFound(f"Risk not found: {risk_id}")
    suggestions = await engine.matcher.find_similar_risks(risk_id, limit=limit)
    return _suggestions_response(suggestions)


@app.post("/risks/similarity-check", response_model=SuggestionsResponse)
async def similarity_check(
    request: SimilarityCheckRequest,
    engine: MatchingEngine = Depends(get_engine),
) -> SuggestionsResponse:
    """Check a draft risk against existing risks before saving it."""
    suggestions = await engine.matcher.check_new_risk(
        request.title,
        request.threat_description,
        request.description,
        exclude_id=request.exclude_id,
        limit=request.limit,
    )
    return _suggestions_response(suggestions)


@app.post("/embeddings/backfill", response_model=BackfillResponse)
async def run_backfill(
    request: BackfillRequest,
    engine: MatchingEngine = Depends(get_engine),
) -> BackfillResponse:
    """Compute missing embeddings for one record kind."""
    logger.info(f"Backfill requested for {request.kind.value} (dry_run={request.dry_run})")
    progress = await engine.backfill.run(
        request.kind,
        batch_size=request.batch_size,
        concurrency=request.concurrency,
        dry_run=request.dry_run,
    )
    return BackfillResponse(kind=request.kind, dry_run=progress.dry_run, **progress.as_counts())


@app.get("/embeddings/status", response_model=list[EmbeddingStatusDTO])
async def embedding_status(engine: MatchingEngine = Depends(get_engine)) -> list[EmbeddingStatusDTO]:
    """Embedding coverage per record kind."""
    statuses = []
    for kind in RecordKind:
        status_ = await engine.backfill.embedding_status(kind)
        statuses.append(EmbeddingStatusDTO(
            kind=kind,
            with_embedding=status_.with_embedding,
            without_embedding=status_.without_embedding,
            total=status_.total,
        ))
    return statuses
