"""Comparison-text builders for risks, controls and supplier profiles.

Output is deterministic, lowercased, trimmed and never longer than the
configured maximum.
"""
from __future__ import annotations

import logging

from riskmatch.domain import Record, RecordKind, SupplierProfile

logger = logging.getLogger(__name__)

DEFAULT_MAX_LENGTH = 1024
FIELD_SEPARATOR = "\n\n"

# Primary signal fields first, identity fields last
SUPPLIER_FIELDS: tuple[tuple[str, str], ...] = (
    ("service_description", "service description"),
    ("risk_rationale", "risk rationale"),
    ("criticality_rationale", "criticality rationale"),
    ("name", "supplier name"),
    ("trading_name", "trading name"),
    ("supplier_type", "supplier type"),
)


def is_blank(value: str | None) -> bool:
    return value is None or not value.strip()


def truncate(text: str, max_length: int = DEFAULT_MAX_LENGTH) -> str:
    """Straight prefix truncation."""
    if max_length < 0:
        raise ValueError("max_length must be non-negative")
    return text[:max_length]


def _finish(parts: list[str], max_length: int) -> str:
    combined = FIELD_SEPARATOR.join(parts).strip().lower()
    return truncate(combined, max_length)


def combine(
    title: str | None,
    threat_description: str | None = None,
    description: str | None = None,
    *,
    max_length: int = DEFAULT_MAX_LENGTH,
) -> str:
    """Combine risk fields into comparison text.

    Non-blank fields only, in the order title, threat, description, joined by
    a blank line. The result is lowercased, trimmed and cut to ``max_length``.

    Example:
        >>> combine("  TEST  ", "Threat", None)
        'test\\n\\nthreat'
    """
    parts = [p.strip() for p in (title, threat_description, description) if not is_blank(p)]
    return _finish(parts, max_length)


def combine_control(
    code: str | None,
    title: str | None,
    description: str | None = None,
    purpose: str | None = None,
    guidance: str | None = None,
    *,
    max_length: int = DEFAULT_MAX_LENGTH,
) -> str:
    """Combine control fields (code, title, description, purpose, guidance)."""
    parts = [p.strip() for p in (code, title, description, purpose, guidance) if not is_blank(p)]
    return _finish(parts, max_length)


def combine_supplier_profile(
    profile: SupplierProfile,
    *,
    max_length: int = DEFAULT_MAX_LENGTH,
) -> str:
    """Build the relevance query text for a supplier.

    Each present field is prefixed with its label (``"service description: ..."``)
    so that substring checks downstream can tell which field matched.
    """
    parts = []
    for attr, label in SUPPLIER_FIELDS:
        value = getattr(profile, attr)
        if not is_blank(value):
            parts.append(f"{label}: {value.strip()}")
    return _finish(parts, max_length)


def record_text(record: Record, *, max_length: int = DEFAULT_MAX_LENGTH) -> str:
    """Comparison text for a stored record of either kind."""
    if record.kind == RecordKind.CONTROL:
        return combine_control(
            record.code,
            record.title,
            record.description,
            record.purpose,
            record.guidance,
            max_length=max_length,
        )
    return combine(
        record.title,
        record.threat_description,
        record.description,
        max_length=max_length,
    )


def split_query_text(text: str) -> Record:
    """Recover a pseudo-record from combined risk text.

    The first block becomes the title, the second the threat description and
    the remainder the description. Text without separators is used as title.
    """
    blocks = [b.strip() for b in text.split(FIELD_SEPARATOR) if b.strip()]
    if not blocks:
        return Record(id="query", title="")
    return Record(
        id="query",
        title=blocks[0],
        threat_description=blocks[1] if len(blocks) > 1 else None,
        description=FIELD_SEPARATOR.join(blocks[2:]) if len(blocks) > 2 else None,
    )
