"""
Products API - local catalog and multi-store sync
"""
from fastapi import APIRouter, BackgroundTasks, Depends, Query
from sqlalchemy.orm import Session
from typing import Any, Dict, List, Optional

from app.core.database import get_db
from app.core.exceptions import NotFoundError
from app.models import SyncLog
from app.schemas.product import ProductCreate, ProductResponse, ProductUpdate, StockUpdate
from app.schemas.sync import BulkSyncRequest, SyncLogResponse, SyncRequest
from app.services import ProductService, ProductSyncService, VariantService
from app.services.product_service import to_uuid
from app.services.sync_service import run_bulk_sync

router = APIRouter(prefix="/products", tags=["products"])


def _product_payload(product) -> Dict[str, Any]:
    return ProductResponse.model_validate(product).model_dump(mode="json")


@router.get("")
async def list_products(
    sync_status: Optional[str] = Query(None),
    search: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    per_page: int = Query(50, ge=1, le=100),
    db: Session = Depends(get_db)
):
    products, total = ProductService.get_products(db, sync_status, search, page, per_page)
    return {
        "products": [
            {
                "id": str(p.id),
                "title": p.title,
                "vendor": p.vendor,
                "status": p.status,
                "sync_status": p.sync_status,
                "store_ids": p.store_ids or [],
            }
            for p in products
        ],
        "total": total,
        "page": page,
        "per_page": per_page
    }


@router.post("/ingest", status_code=201)
async def ingest_product(data: Dict[str, Any], db: Session = Depends(get_db)):
    """Raw intake; variants may be a JSON-encoded string"""
    images = data.pop("images", None) or []
    variants = data.pop("variants", None)
    result = ProductService.ingest_product(db, data, images, variants)
    return {"success": True, "message": "Product ingested successfully", "data": result}


@router.post("", status_code=201)
async def create_product(body: ProductCreate, db: Session = Depends(get_db)):
    data = body.model_dump(exclude={"options"})
    options = body.model_dump()["options"]
    product = ProductService.create_product(db, data, options)
    return {"success": True, "message": "Product created successfully", "data": _product_payload(product)}


@router.post("/bulk", status_code=201)
async def create_bulk_products(body: List[ProductCreate], db: Session = Depends(get_db)):
    results = ProductService.create_bulk_products(db, [item.model_dump() for item in body])
    return {
        "success": True,
        "results": [
            {
                "success": r["success"],
                "data": _product_payload(r["data"]) if r["data"] is not None else None,
                "error": r["error"],
            }
            for r in results
        ],
    }


@router.get("/{product_id}")
async def get_product(product_id: str, db: Session = Depends(get_db)):
    product = ProductService.get_product_with_details(db, product_id)
    return {"success": True, "data": _product_payload(product)}


@router.put("/{product_id}")
async def update_product(product_id: str, body: ProductUpdate, db: Session = Depends(get_db)):
    data = body.model_dump(exclude_unset=True, exclude={"remote_config"})
    remote_config = body.remote_config.model_dump() if body.remote_config else None
    result = await ProductService.update_product(db, product_id, data, remote_config)
    return {
        "success": True,
        "message": "Product updated successfully",
        "data": _product_payload(result["product"]),
        "sync": result["sync"],
    }


@router.delete("/{product_id}")
async def delete_product(product_id: str, db: Session = Depends(get_db)):
    ProductService.delete_product(db, product_id)
    return {"success": True, "message": "Product deleted successfully"}


# ===================== SYNC =====================

@router.post("/{product_id}/sync")
async def sync_product(product_id: str, body: SyncRequest, db: Session = Depends(get_db)):
    result = await ProductSyncService(db).sync_product(
        product_id,
        location_id=body.location_id,
        store_ids=[str(s) for s in body.store_ids],
        stores=body.store_targets(),
        store_id=str(body.store_id) if body.store_id else None,
    )
    return {"success": True, "message": result["message"], "data": result}


@router.post("/sync/bulk", status_code=202)
async def bulk_sync_products(
    body: BulkSyncRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db)
):
    """Returns immediately; progress is recorded in a SyncLog row"""
    product_ids = [str(pid) for pid in body.product_ids]
    store_ids = [str(s) for s in body.store_ids]
    sync_log = SyncLog(product_ids=product_ids, store_ids=store_ids)
    db.add(sync_log)
    db.commit()
    db.refresh(sync_log)

    background_tasks.add_task(
        run_bulk_sync,
        product_ids,
        location_id=body.location_id,
        store_ids=store_ids,
        stores=body.store_targets(),
        sync_log_id=sync_log.id,
    )
    return {"success": True, "message": "Bulk sync started", "sync_id": str(sync_log.id)}


@router.get("/sync/logs/{sync_id}")
async def get_sync_log(sync_id: str, db: Session = Depends(get_db)):
    sync_log = db.query(SyncLog).filter(SyncLog.id == to_uuid(sync_id)).first()
    if not sync_log:
        raise NotFoundError("Sync log not found")
    return SyncLogResponse.model_validate(sync_log).model_dump(mode="json")


# ===================== VARIANTS =====================

@router.put("/variants/{variant_id}/stock")
async def update_variant_stock(variant_id: str, body: StockUpdate, db: Session = Depends(get_db)):
    result = await VariantService(db).on_variant_stock_changed(variant_id, body.stock_quantity)
    return {"success": True, "data": result}
