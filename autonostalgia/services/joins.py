"""
Batch reference hydration.

Every list view fetches its primary rows with its own filter and ordering,
then resolves foreign keys here: one ``id IN (...)`` query per reference,
an id map, and a merge that keeps the primary order. References that point
at missing rows hydrate to ``None``.
"""
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .errors import JoinError

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class Reference:
    """Resolve ``row.<fk>`` against ``model.id`` and expose it as ``attr``."""
    attr: str
    model: Any
    fk: str


@dataclass
class Hydrated:
    row: Any
    refs: Dict[str, Optional[Any]] = field(default_factory=dict)

    def __getitem__(self, attr: str) -> Optional[Any]:
        return self.refs.get(attr)


def unique_ids(rows: Iterable[Any], fk: str) -> List[uuid.UUID]:
    """Distinct non-null values of ``fk`` in first-seen order."""
    seen = set()
    ordered = []
    for row in rows:
        value = getattr(row, fk, None)
        if value is None or value in seen:
            continue
        seen.add(value)
        ordered.append(value)
    return ordered


def fetch_by_ids(db: Session, model: Any, ids: Sequence[uuid.UUID]) -> Dict[uuid.UUID, Any]:
    if not ids:
        return {}
    try:
        related = db.query(model).filter(model.id.in_(list(ids))).all()
    except SQLAlchemyError as exc:
        logger.error("join_fetch_failed", table=model.__tablename__, count=len(ids), error=str(exc))
        raise JoinError(f"Failed to fetch {model.__tablename__}") from exc
    return {r.id: r for r in related}


def hydrate(db: Session, rows: Sequence[Any], *references: Reference) -> List[Hydrated]:
    """Attach each reference to every row; aborts as a whole on any sub-query error."""
    rows = list(rows)
    if not rows:
        return []

    # One query per model even when two references share it (customer + assessor)
    ids_by_model: Dict[Any, List[uuid.UUID]] = {}
    for ref in references:
        bucket = ids_by_model.setdefault(ref.model, [])
        for value in unique_ids(rows, ref.fk):
            if value not in bucket:
                bucket.append(value)

    maps = {model: fetch_by_ids(db, model, ids) for model, ids in ids_by_model.items()}

    hydrated = []
    for row in rows:
        refs = {}
        for ref in references:
            key = getattr(row, ref.fk, None)
            refs[ref.attr] = maps[ref.model].get(key) if key is not None else None
        hydrated.append(Hydrated(row=row, refs=refs))
    return hydrated
