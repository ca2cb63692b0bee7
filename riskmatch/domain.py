"""Plain data types shared by the pipelines.

These are persistence-agnostic: the store maps ORM rows onto them.
"""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Generic, TypeVar, Union

T = TypeVar("T")

EmbeddingVector = list[float]


class RecordKind(str, Enum):
    """Record kinds that carry embeddings."""
    RISK = "risk"
    CONTROL = "control"


class _Unavailable:
    """Sentinel for "no result at this layer"."""

    _instance: _Unavailable | None = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNAVAILABLE"

    def __bool__(self) -> bool:
        return False


UNAVAILABLE = _Unavailable()
Unavailable = _Unavailable


@dataclass(frozen=True)
class Success(Generic[T]):
    """Tagged successful outcome of a scoring strategy."""
    value: T


Outcome = Union[Success[T], _Unavailable]


@dataclass
class Record:
    """Risk-like or control-like record compared by the engine."""
    id: str
    title: str
    threat_description: str | None = None
    description: str | None = None
    embedding: EmbeddingVector | None = None
    kind: RecordKind = RecordKind.RISK
    # Control-only fields
    code: str | None = None
    purpose: str | None = None
    guidance: str | None = None

    def with_embedding(self, embedding: EmbeddingVector | None) -> Record:
        return replace(self, embedding=embedding)


@dataclass(frozen=True)
class SupplierProfile:
    """Read-only supplier fields used to build a relevance query."""
    name: str
    id: str | None = None
    trading_name: str | None = None
    supplier_type: str | None = None
    service_description: str | None = None
    risk_rationale: str | None = None
    criticality_rationale: str | None = None


@dataclass(frozen=True)
class SimilarityResult:
    """Score in [0, 100] plus the fields considered matching."""
    score: int
    matched_fields: list[str] = field(default_factory=list)

    def __post_init__(self):
        if not isinstance(self.score, int) or not 0 <= self.score <= 100:
            raise ValueError(f"score must be an integer in [0, 100], got {self.score!r}")


@dataclass(frozen=True)
class ScoredCandidate:
    """One ranked candidate of a one-to-many search."""
    record_id: str
    score: int
    matched_fields: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class RiskSuggestion:
    """A risk proposed for a supplier or flagged as a likely duplicate."""
    risk: Record
    similarity_score: int
    matched_fields: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class CandidateFilter:
    """Filter for candidate risk queries."""
    archived: bool = False
    exclude_ids: frozenset[str] = frozenset()


@dataclass(frozen=True)
class BackfillProgress:
    """Immutable backfill accumulator."""
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    last_id: str | None = None
    batch_size: int = 10
    concurrency: int = 3
    dry_run: bool = False

    def record(self, ok: bool) -> BackfillProgress:
        """Fold one task outcome into a new accumulator."""
        return replace(
            self,
            processed=self.processed + 1,
            succeeded=self.succeeded + (1 if ok else 0),
            failed=self.failed + (0 if ok else 1),
        )

    def advance(self, last_id: str) -> BackfillProgress:
        return replace(self, last_id=last_id)

    def as_counts(self) -> dict[str, int]:
        return {"processed": self.processed, "succeeded": self.succeeded, "failed": self.failed}


@dataclass(frozen=True)
class EmbeddingStatus:
    """Embedding coverage for one record kind."""
    kind: RecordKind
    with_embedding: int
    without_embedding: int

    @property
    def total(self) -> int:
        return self.with_embedding + self.without_embedding
