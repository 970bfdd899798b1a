"""
Stores API - register and manage Shopify stores
"""
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.schemas.store import StoreCreate, StoreResponse, StoreUpdate
from app.services import integration_service

router = APIRouter(prefix="/stores", tags=["stores"])


@router.get("")
async def list_stores(db: Session = Depends(get_db)):
    return [StoreResponse.model_validate(s).model_dump(mode="json") for s in integration_service.get_stores(db)]


@router.post("", status_code=201)
async def create_store(body: StoreCreate, db: Session = Depends(get_db)):
    store = integration_service.create_store(db, **body.model_dump())
    return StoreResponse.model_validate(store).model_dump(mode="json")


@router.put("/{store_id}")
async def update_store(store_id: str, body: StoreUpdate, db: Session = Depends(get_db)):
    store = integration_service.update_store(db, store_id, **body.model_dump(exclude_unset=True))
    if not store:
        raise HTTPException(status_code=404, detail="Store not found")
    return StoreResponse.model_validate(store).model_dump(mode="json")


@router.delete("/{store_id}")
async def delete_store(store_id: str, db: Session = Depends(get_db)):
    if not integration_service.delete_store(db, store_id):
        raise HTTPException(status_code=404, detail="Store not found")
    return {"success": True}
