"""Persistence collaborator consumed by the pipelines.

The pipelines depend only on the ``RecordStore`` protocol. ``SqlRecordStore``
implements it over async SQLAlchemy sessions; tests use in-memory fakes.
"""
from __future__ import annotations

import logging
from typing import Protocol

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from riskmatch import models
from riskmatch.domain import (
    CandidateFilter,
    EmbeddingStatus,
    EmbeddingVector,
    Record,
    RecordKind,
    SupplierProfile,
)

logger = logging.getLogger(__name__)


class RecordStore(Protocol):
    """Read/write contract of the persistence layer."""

    async def find_candidates(self, filter: CandidateFilter, limit: int) -> list[Record]: ...

    async def find_linked_ids(self, supplier_id: str) -> set[str]: ...

    async def update_embedding(self, kind: RecordKind, record_id: str, vector: EmbeddingVector) -> None: ...

    async def find_missing_embeddings_page(
        self,
        kind: RecordKind,
        after_id: str | None,
        limit: int,
    ) -> list[Record]: ...

    async def get_supplier(self, supplier_id: str) -> SupplierProfile | None: ...

    async def get_risk(self, risk_id: str) -> Record | None: ...

    async def embedding_status(self, kind: RecordKind) -> EmbeddingStatus: ...


def _vector(value) -> EmbeddingVector | None:
    if value is None:
        return None
    return [float(v) for v in value]


def risk_to_record(row: models.Risk) -> Record:
    return Record(
        id=row.id,
        title=row.title,
        threat_description=row.threat_description,
        description=row.description,
        embedding=_vector(row.embedding),
        kind=RecordKind.RISK,
    )


def control_to_record(row: models.Control) -> Record:
    return Record(
        id=row.id,
        title=row.title,
        description=row.description,
        embedding=_vector(row.embedding),
        kind=RecordKind.CONTROL,
        code=row.code,
        purpose=row.purpose,
        guidance=row.guidance,
    )


_MODELS = {
    RecordKind.RISK: (models.Risk, risk_to_record),
    RecordKind.CONTROL: (models.Control, control_to_record),
}


class SqlRecordStore:
    """``RecordStore`` over async SQLAlchemy sessions.

    Every call opens its own short-lived session, so concurrent backfill
    workers each own exactly one write. Ids are string UUIDs compared
    lexically; cursor pagination relies on that order being total and stable.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def find_candidates(self, filter: CandidateFilter, limit: int) -> list[Record]:
        query = select(models.Risk).where(models.Risk.archived.is_(filter.archived))
        if filter.exclude_ids:
            query = query.where(models.Risk.id.not_in(filter.exclude_ids))
        query = query.order_by(models.Risk.created_at, models.Risk.id).limit(limit)

        async with self.session_factory() as session:
            result = await session.execute(query)
            return [risk_to_record(r) for r in result.scalars().all()]

    async def find_linked_ids(self, supplier_id: str) -> set[str]:
        query = select(models.SupplierRiskLink.risk_id).where(
            models.SupplierRiskLink.supplier_id == supplier_id
        )
        async with self.session_factory() as session:
            result = await session.execute(query)
            return set(result.scalars().all())

    async def update_embedding(self, kind: RecordKind, record_id: str, vector: EmbeddingVector) -> None:
        model, _ = _MODELS[kind]
        async with self.session_factory() as session:
            try:
                await session.execute(
                    update(model).where(model.id == record_id).values(embedding=vector)
                )
                await session.commit()
            except Exception:
                await session.rollback()
                logger.error(f"Failed to store embedding for {kind.value} {record_id}")
                raise

    async def find_missing_embeddings_page(
        self,
        kind: RecordKind,
        after_id: str | None,
        limit: int,
    ) -> list[Record]:
        model, to_record = _MODELS[kind]
        query = select(model).where(model.embedding.is_(None))
        if after_id is not None:
            query = query.where(model.id > after_id)
        query = query.order_by(model.id).limit(limit)

        async with self.session_factory() as session:
            result = await session.execute(query)
            return [to_record(r) for r in result.scalars().all()]

    async def get_supplier(self, supplier_id: str) -> SupplierProfile | None:
        async with self.session_factory() as session:
            row = await session.get(models.Supplier, supplier_id)
        if row is None:
            return None
        return SupplierProfile(
            id=row.id,
            name=row.name,
            trading_name=row.trading_name,
            supplier_type=row.supplier_type,
            service_description=row.service_description,
            risk_rationale=row.risk_rationale,
            criticality_rationale=row.criticality_rationale,
        )

    async def get_risk(self, risk_id: str) -> Record | None:
        async with self.session_factory() as session:
            row = await session.get(models.Risk, risk_id)
        return risk_to_record(row) if row is not None else None

    async def embedding_status(self, kind: RecordKind) -> EmbeddingStatus:
        model, _ = _MODELS[kind]
        async with self.session_factory() as session:
            with_count = await session.scalar(
                select(func.count()).select_from(model).where(model.embedding.is_not(None))
            )
            without_count = await session.scalar(
                select(func.count()).select_from(model).where(model.embedding.is_(None))
            )
        return EmbeddingStatus(
            kind=kind,
            with_embedding=int(with_count or 0),
            without_embedding=int(without_count or 0),
        )
