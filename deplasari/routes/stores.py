from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ..db import get_db
from ..schemas.stores import StoreCreate, StoreResponse, StoreSaved
from ..services import catalog


router = APIRouter(prefix="/api", tags=["stores"])


def _numeric_id(value: Optional[str]) -> str:
    value = (value or "").strip()
    if not value.isdigit():
        raise HTTPException(status_code=400, detail="Invalid store ID")
    return value


# ---------- STORES ----------
@router.post("/stores", response_model=StoreSaved)
def upsert_store(payload: StoreCreate, db: Session = Depends(get_db)):
    store = catalog.upsert_store(
        db,
        payload.store_id,
        payload.city,
        payload.county,
        description=payload.description,
        address=payload.address,
    )
    return StoreSaved(store=StoreResponse.model_validate(store))


@router.get("/stores/search", response_model=List[StoreResponse])
def search_stores(term: Optional[str] = None, db: Session = Depends(get_db)):
    return catalog.search_stores(db, term)


@router.get("/stores/direct-search", response_model=List[StoreResponse])
def direct_search(id: Optional[str] = None, db: Session = Depends(get_db)):
    store = catalog.get_store(db, _numeric_id(id))
    return [store] if store else []


@router.get("/stores/{store_id}", response_model=StoreResponse)
def get_store(store_id: str, db: Session = Depends(get_db)):
    store = catalog.get_store(db, _numeric_id(store_id))
    if not store:
        raise HTTPException(status_code=404, detail="Store not found")
    return store


@router.get("/validate-store")
def validate_store(id: Optional[str] = None, db: Session = Depends(get_db)):
    result = catalog.validate_store(db, _numeric_id(id))
    if result.get("store") is not None:
        result["store"] = StoreResponse.model_validate(result["store"]).model_dump()
    return result


# ---------- LOCALITIES ----------
@router.get("/localities/by-county")
def localities_by_county(county: Optional[str] = Query(None), db: Session = Depends(get_db)):
    if not county or not county.strip():
        raise HTTPException(status_code=400, detail="County parameter is required")
    return catalog.localities_by_county(db, county.strip())
