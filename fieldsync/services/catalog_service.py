"""
Reference catalogs for the intake form: salesmen, building types, villages.

Lookups are plain name lists ordered alphabetically; searches use a
case-insensitive substring match capped at 50 names (20 when the query is
empty).
"""

from __future__ import annotations

import logging

from fieldsync.core.exceptions import ValidationError
from fieldsync.models import db
from fieldsync.models.catalog import (
    DEFAULT_BUILDING_TYPES,
    DEFAULT_SALESMEN,
    BuildingType,
    Salesman,
    Village,
)

logger = logging.getLogger(__name__)

SEARCH_LIMIT = 50
EMPTY_QUERY_LIMIT = 20


class DuplicateEntryError(ValidationError):
    """Catalog entry already exists."""


def list_salesmen() -> list[str]:
    return [s.name for s in Salesman.query.order_by(Salesman.name).all()]


def list_building_types() -> list[str]:
    return [b.type for b in BuildingType.query.order_by(BuildingType.type).all()]


def _search(model, column, query: str | None) -> list[str]:
    q = model.query.order_by(column)
    text = (query or "").strip()
    if text:
        q = q.filter(column.ilike(f"%{text}%")).limit(SEARCH_LIMIT)
    else:
        q = q.limit(EMPTY_QUERY_LIMIT)
    return [getattr(row, column.key) for row in q.all()]


def search_salesmen(query: str | None) -> list[str]:
    return _search(Salesman, Salesman.name, query)


def search_villages(query: str | None) -> list[str]:
    return _search(Village, Village.name, query)


def _clean(value, field: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"Valid {field} is required", details={field: "required"})
    return value.strip()


def add_salesman(name) -> list[str]:
    """Add a salesman; return the full sorted list."""
    name = _clean(name, "name")
    if Salesman.query.filter_by(name=name).first():
        raise DuplicateEntryError("Salesman already exists", details={"name": name})
    db.session.add(Salesman(name=name))
    db.session.commit()
    logger.info("Salesman added: %s", name)
    return list_salesmen()


def add_building_type(type_name) -> list[str]:
    """Add a building type; return the full sorted list."""
    type_name = _clean(type_name, "type")
    if BuildingType.query.filter_by(type=type_name).first():
        raise DuplicateEntryError("Building type already exists", details={"type": type_name})
    db.session.add(BuildingType(type=type_name))
    db.session.commit()
    logger.info("Building type added: %s", type_name)
    return list_building_types()


def seed_defaults() -> dict[str, int]:
    """Insert the default salesmen and building types into empty tables."""
    added = {"salesmen": 0, "building_types": 0}
    if Salesman.query.count() == 0:
        db.session.add_all(Salesman(name=n) for n in DEFAULT_SALESMEN)
        added["salesmen"] = len(DEFAULT_SALESMEN)
    if BuildingType.query.count() == 0:
        db.session.add_all(BuildingType(type=t) for t in DEFAULT_BUILDING_TYPES)
        added["building_types"] = len(DEFAULT_BUILDING_TYPES)
    db.session.commit()
    return added
