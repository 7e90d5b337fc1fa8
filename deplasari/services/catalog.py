"""
Stores and localities lookup.
"""
from typing import Any, Dict, List, Optional

import structlog
from sqlalchemy import case, func, or_
from sqlalchemy.orm import Session

from ..models.models import Locality, Store
from .time_rules import utcnow


logger = structlog.get_logger(__name__)

SEARCH_LIMIT = 20
COUNTY_SUGGESTIONS = 5


def upsert_store(
    db: Session,
    store_id: str,
    city: str,
    county: str,
    description: Optional[str] = None,
    address: Optional[str] = None,
) -> Store:
    """Create the store or overwrite its details; blank fields get derived defaults."""
    description = description or f"Store {store_id}"
    address = address or f"{city}, {county}"
    store = db.query(Store).filter(Store.store_id == store_id).first()
    if store is None:
        store = Store(store_id=store_id)
        db.add(store)
    store.description = description
    store.address = address
    store.city = city
    store.county = county
    store.updated_at = utcnow()
    db.commit()
    db.refresh(store)
    logger.info("store_upserted", store_id=store_id)
    return store


def search_stores(db: Session, term: Optional[str]) -> List[Store]:
    """Partial match on description, city or county; a numeric term also matches the id exactly and ranks it first."""
    term = (term or "").strip()
    if not term:
        return []
    pattern = f"%{term}%"
    conditions = [
        Store.description.ilike(pattern),
        Store.city.ilike(pattern),
        Store.county.ilike(pattern),
    ]
    query = db.query(Store)
    if term.isdigit():
        query = query.filter(or_(Store.store_id == term, *conditions)).order_by(
            case((Store.store_id == term, 0), else_=1),
            Store.description,
        )
    else:
        query = query.filter(or_(*conditions)).order_by(Store.description)
    results = query.limit(SEARCH_LIMIT).all()
    logger.info("stores_searched", term=term, results=len(results))
    return results


def get_store(db: Session, store_id: str) -> Optional[Store]:
    return db.query(Store).filter(Store.store_id == store_id).first()


def validate_store(db: Session, store_id: str) -> Dict[str, Any]:
    store = get_store(db, store_id)
    if store is None:
        return {
            "success": False,
            "exists": False,
            "message": f"Store with ID {store_id} does not exist in the database",
        }
    return {"success": True, "exists": True, "store": store}


def localities_by_county(db: Session, county: str) -> Dict[str, Any]:
    """
    Locality names of a county, matched case-insensitively.

    When nothing matches exactly, up to five county names containing the
    search text are suggested instead.
    """
    names = [
        nume
        for (nume,) in db.query(Locality.nume)
        .filter(func.lower(Locality.judet) == county.lower())
        .order_by(Locality.nume.asc())
        .all()
    ]
    if not names:
        suggestions = [
            judet
            for (judet,) in db.query(Locality.judet)
            .filter(func.lower(Locality.judet).like(f"%{county.lower()}%"))
            .distinct()
            .order_by(Locality.judet.asc())
            .limit(COUNTY_SUGGESTIONS)
            .all()
        ]
        if suggestions:
            return {
                "success": False,
                "error": "No localities found for the exact county name",
                "suggestions": suggestions,
                "localities": [],
            }
    return {"success": True, "localities": names, "count": len(names)}
