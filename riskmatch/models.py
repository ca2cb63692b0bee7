"""Core SQLAlchemy models (2.x style) for the records the engine reads and writes.

Only the columns the matching engine needs are mapped. Embeddings are
stored with pgvector; the column is unconstrained in dimension because the
dimension is a property of the configured embedding model.
"""

from __future__ import annotations

import uuid
from datetime import datetime

from pgvector.sqlalchemy import Vector
from sqlalchemy import Boolean, ForeignKey, Index, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def _new_id() -> str:
    return str(uuid.uuid4())


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


class Risk(Base):
    """Risk register entries."""
    __tablename__ = "risks"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    title: Mapped[str] = mapped_column(String(500), nullable=False, index=True)
    threat_description: Mapped[str | None] = mapped_column(Text)
    description: Mapped[str | None] = mapped_column(Text)
    archived: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False, index=True)
    embedding: Mapped[list[float] | None] = mapped_column(Vector(), nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False,
    )

    # Relationships
    supplier_links: Mapped[list[SupplierRiskLink]] = relationship("SupplierRiskLink", back_populates="risk")


class Control(Base):
    """Controls (e.g. ISO 27002 catalogue entries)."""
    __tablename__ = "controls"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    code: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    purpose: Mapped[str | None] = mapped_column(Text)
    guidance: Mapped[str | None] = mapped_column(Text)
    embedding: Mapped[list[float] | None] = mapped_column(Vector(), nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=datetime.utcnow, nullable=False)


class Supplier(Base):
    """Suppliers; only the profile fields used for relevance matching."""
    __tablename__ = "suppliers"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    trading_name: Mapped[str | None] = mapped_column(String(255))
    supplier_type: Mapped[str | None] = mapped_column(String(100))
    service_description: Mapped[str | None] = mapped_column(Text)
    risk_rationale: Mapped[str | None] = mapped_column(Text)
    criticality_rationale: Mapped[str | None] = mapped_column(Text)

    # Relationships
    risk_links: Mapped[list[SupplierRiskLink]] = relationship("SupplierRiskLink", back_populates="supplier")


class SupplierRiskLink(Base):
    """Risks already linked to a supplier."""
    __tablename__ = "supplier_risk_links"

    supplier_id: Mapped[str] = mapped_column(
        ForeignKey("suppliers.id", ondelete="CASCADE"),
        primary_key=True,
    )
    risk_id: Mapped[str] = mapped_column(
        ForeignKey("risks.id", ondelete="CASCADE"),
        primary_key=True,
    )
    created_at: Mapped[datetime] = mapped_column(default=datetime.utcnow, nullable=False)

    # Relationships
    supplier: Mapped[Supplier] = relationship("Supplier", back_populates="risk_links")
    risk: Mapped[Risk] = relationship("Risk", back_populates="supplier_links")

    __table_args__ = (
        Index("ix_supplier_risk_links_risk", "risk_id"),
    )
