"""
Variant Service - variant updates and the zero-inventory lifecycle

When a variant's stock is set to exactly 0 the variant is removed from
every store it exists on, or, if it is the product's last variant, the
product is archived instead. This runs as a detached task so the stock
update itself never fails because of it.
"""
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Set
import asyncio
import logging

from sqlalchemy.orm import Session, joinedload, sessionmaker

from app.core.database import SessionLocal
from app.core.exceptions import NotFoundError
from app.integrations.base import BaseCatalogClient
from app.models import Product, ProductStatus, ProductVariant, Store
from . import integration_service
from .product_service import to_uuid
from .store_map import EntityLedger

logger = logging.getLogger(__name__)

ClientFactory = Callable[[Store], BaseCatalogClient]

UPDATABLE_FIELDS = ("sku", "price", "compare_at_price", "stock_quantity", "image_url")

# Strong references so running tasks are not garbage collected
_background_tasks: Set[asyncio.Task] = set()


@dataclass(frozen=True)
class VariantSnapshot:
    """Variant state captured before the stock write"""
    variant_id: Any
    product_id: Any
    product_title: str
    sku: Optional[str] = None
    shopify_product_ids: Dict[str, str] = field(default_factory=dict)
    shopify_variant_ids: Dict[str, str] = field(default_factory=dict)


def snapshot_variant(db: Session, variant_id: Any) -> Optional[VariantSnapshot]:
    variant = db.query(ProductVariant).options(
        joinedload(ProductVariant.product)
    ).filter(ProductVariant.id == to_uuid(variant_id)).first()
    if variant is None or variant.product is None:
        return None

    return VariantSnapshot(
        variant_id=variant.id,
        product_id=variant.product.id,
        product_title=variant.product.title,
        sku=variant.sku,
        shopify_product_ids=dict(variant.product.shopify_product_ids or {}),
        shopify_variant_ids=dict(variant.shopify_variant_ids or {}),
    )


class VariantDeletionService:
    """Remote and local cleanup of a variant whose stock reached zero"""

    def __init__(self, db: Session, client_factory: Optional[ClientFactory] = None):
        self.db = db
        self.client_factory = client_factory or integration_service.get_client_for_store

    async def handle_zero_inventory(self, snapshot: VariantSnapshot) -> Dict[str, Any]:
        logger.info(f"Zero inventory check for variant {snapshot.variant_id} of product {snapshot.product_id}")

        variant_count = self.db.query(ProductVariant).filter(
            ProductVariant.product_id == snapshot.product_id
        ).count()

        if variant_count <= 1:
            return await self._archive_product(snapshot)
        return await self._delete_variant(snapshot)

    async def _archive_product(self, snapshot: VariantSnapshot) -> Dict[str, Any]:
        """Last sellable unit: keep the variant, draft the product everywhere"""
        logger.warning(
            f"Variant {snapshot.variant_id} is the last variant of product {snapshot.product_id}, "
            f"archiving product instead of deleting"
        )
        if not snapshot.shopify_product_ids:
            logger.info(f"Product {snapshot.product_id} is not synced to any stores, skipping archive")
            return {
                "success": True,
                "action": "skipped",
                "reason": "Product not synced to any stores",
                "variant_id": str(snapshot.variant_id),
                "product_id": str(snapshot.product_id),
            }

        product = self.db.query(Product).filter(Product.id == snapshot.product_id).first()
        if product is None:
            raise NotFoundError(f"Product not found for variant {snapshot.variant_id}")

        ledger = EntityLedger(product)
        archive_results = []
        for key, remote_id in snapshot.shopify_product_ids.items():
            store = self.db.query(Store).filter(Store.id == to_uuid(key)).first()
            if store is None or not store.has_credentials or not remote_id:
                logger.warning(f"Store {key} not usable for archiving, skipping")
                continue
            try:
                remote = await self.client_factory(store).update_product(remote_id, {"status": "DRAFT"})
                ledger.set("shopify_statuses", key, remote.status)
                archive_results.append({"store_id": key, "success": True, "shopify_product_id": remote_id})
                logger.info(f"Archived product {remote_id} on store {store.store_name}")
            except Exception as e:
                logger.error(f"Failed to archive product on store {key}: {e}")
                archive_results.append({"store_id": key, "success": False, "error": str(e)})

        ledger.apply(self.db)
        product.status = ProductStatus.DRAFT
        self.db.commit()

        return {
            "success": True,
            "action": "archived_product",
            "reason": "Last variant - archived product instead of deleting",
            "variant_id": str(snapshot.variant_id),
            "product_id": str(snapshot.product_id),
            "archive_results": archive_results,
        }

    async def _delete_variant(self, snapshot: VariantSnapshot) -> Dict[str, Any]:
        deletion_results: List[Dict[str, Any]] = []

        if not snapshot.shopify_variant_ids:
            logger.info(f"Variant {snapshot.variant_id} is not synced to any stores, deleting locally only")
            action = "deleted_local_only"
        else:
            action = "deleted"
            for key, remote_id in snapshot.shopify_variant_ids.items():
                deletion_results.append(await self._delete_remote(key, remote_id))

        variant = self.db.query(ProductVariant).filter(ProductVariant.id == snapshot.variant_id).first()
        if variant is not None:
            self.db.delete(variant)
        self.db.commit()
        logger.info(f"Deleted variant {snapshot.variant_id} ({snapshot.sku}) locally")

        return {
            "success": True,
            "action": action,
            "variant_id": str(snapshot.variant_id),
            "product_id": str(snapshot.product_id),
            "deleted_from_stores": deletion_results,
            "deleted_from_local_db": True,
        }

    async def _delete_remote(self, key: str, remote_id: Optional[str]) -> Dict[str, Any]:
        store = self.db.query(Store).filter(Store.id == to_uuid(key)).first()
        if store is None or not store.has_credentials:
            logger.warning(f"Store {key} not found, skipping")
            return {"store_id": key, "success": False, "error": "Store not found"}
        if not remote_id:
            return {"store_id": key, "success": False, "error": "No Shopify variant ID"}

        try:
            deleted_id = await self.client_factory(store).delete_variant(remote_id)
            logger.info(f"Deleted variant {remote_id} from store {store.store_name}")
            return {"store_id": key, "success": True, "deleted_shopify_variant_id": deleted_id}
        except Exception as e:
            logger.error(f"Failed to delete variant {remote_id} from store {key}: {e}")
            return {"store_id": key, "success": False, "error": str(e)}


# ========== Detached zero-inventory tasks ==========

async def _run_zero_inventory(
    snapshot: VariantSnapshot,
    session_factory: sessionmaker,
    client_factory: Optional[ClientFactory],
) -> Dict[str, Any]:
    db = session_factory()
    try:
        return await VariantDeletionService(db, client_factory).handle_zero_inventory(snapshot)
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def _log_task_result(task: asyncio.Task) -> None:
    _background_tasks.discard(task)
    if task.cancelled():
        logger.warning(f"Zero inventory task {task.get_name()} was cancelled")
        return
    error = task.exception()
    if error is not None:
        logger.error(f"Zero inventory handling failed in {task.get_name()}: {error}")
    else:
        logger.info(f"Zero inventory handling finished: {task.result().get('action')}")


def schedule_zero_inventory(
    snapshot: VariantSnapshot,
    session_factory: Optional[sessionmaker] = None,
    client_factory: Optional[ClientFactory] = None,
) -> asyncio.Task:
    task = asyncio.create_task(
        _run_zero_inventory(snapshot, session_factory or SessionLocal, client_factory),
        name=f"zero-inventory-{snapshot.variant_id}",
    )
    _background_tasks.add(task)
    task.add_done_callback(_log_task_result)
    return task


async def drain_background_tasks() -> None:
    """Wait for every pending zero-inventory task (shutdown and tests)"""
    while _background_tasks:
        await asyncio.gather(*list(_background_tasks), return_exceptions=True)


class VariantService:
    """Local variant updates"""

    def __init__(
        self,
        db: Session,
        client_factory: Optional[ClientFactory] = None,
        session_factory: Optional[sessionmaker] = None,
    ):
        self.db = db
        self.client_factory = client_factory
        self.session_factory = session_factory or SessionLocal

    async def update_variant(self, variant_id: Any, data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Update local variant fields. Setting stock_quantity to exactly 0
        snapshots the variant first and schedules the zero-inventory handler.
        """
        uid = to_uuid(variant_id)
        variant = self.db.query(ProductVariant).filter(ProductVariant.id == uid).first() if uid else None
        if variant is None:
            raise NotFoundError(f"Variant {variant_id} not found")

        snapshot = None
        if data.get("stock_quantity") == 0:
            snapshot = snapshot_variant(self.db, uid)

        for name in UPDATABLE_FIELDS:
            if name in data:
                setattr(variant, name, data[name])
        self.db.commit()

        scheduled = False
        if snapshot is not None:
            logger.info(f"Variant {variant_id} stock updated to 0, scheduling zero inventory handling")
            schedule_zero_inventory(snapshot, self.session_factory, self.client_factory)
            scheduled = True

        return {
            "variant_id": str(variant.id),
            "stock_quantity": variant.stock_quantity,
            "zero_inventory_scheduled": scheduled,
        }

    async def on_variant_stock_changed(self, variant_id: Any, new_quantity: int) -> Dict[str, Any]:
        return await self.update_variant(variant_id, {"stock_quantity": new_quantity})
