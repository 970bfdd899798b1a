"""
Sync Service - multi-store product synchronization
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Sequence
import asyncio
import logging

from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from tenacity import AsyncRetrying, before_sleep_log, retry_if_exception_type, stop_after_attempt, wait_exponential

from app.core.config import settings
from app.core.database import SessionLocal
from app.core.exceptions import AppError, NotFoundError, ValidationError
from app.integrations.base import BaseCatalogClient
from app.models import Product, ProductSyncStatus, Store, SyncLog, SyncStatus
from . import integration_service
from .inventory_service import InventoryActivator
from .media_service import MediaReconciler
from .option_projector import collect_all_image_urls, collect_image_entries, project_options, project_variants
from .product_reconciler import RemoteProductReconciler
from .product_service import ProductService, to_uuid
from .sku_service import assign_store_skus
from .store_map import LedgerBatch, merge_store_ids, product_sync_state, remote_id_of, store_key

logger = logging.getLogger(__name__)

ClientFactory = Callable[[Store], BaseCatalogClient]

CREDENTIALS_MISSING = "Shopify credentials not found for this store"


@dataclass
class StoreTarget:
    store_id: str
    location_id: Optional[str] = None


def _utcnow() -> datetime:
    return datetime.utcnow()


def _truncate(message: str) -> str:
    return (message or "")[:settings.SYNC_ERROR_MAX_LENGTH]


def resolve_target_stores(
    product: Product,
    location_id: Optional[str] = None,
    store_ids: Optional[Sequence[Any]] = None,
    stores: Optional[Sequence[Dict[str, Any]]] = None,
    store_id: Optional[Any] = None,
) -> List[StoreTarget]:
    """
    Priority: explicit stores > store_ids with a shared location >
    single store_id > the product's own store.
    """
    if stores:
        targets = [
            StoreTarget(store_key(s.get("store_id")), s.get("location_id") or location_id)
            for s in stores
            if s.get("store_id") not in (None, "")
        ]
    elif store_ids:
        targets = [StoreTarget(store_key(sid), location_id) for sid in store_ids if sid not in (None, "")]
    elif store_id not in (None, ""):
        targets = [StoreTarget(store_key(store_id), location_id)]
    else:
        targets = []

    if not targets and product.store_id:
        targets = [StoreTarget(store_key(product.store_id), location_id)]

    if not targets:
        logger.error(f"No store ID found for product {product.id}. stores={stores}, store_ids={store_ids}")
        raise ValidationError("Store ID not found for this product")

    unique = []
    seen = set()
    for target in targets:
        if target.store_id not in seen:
            seen.add(target.store_id)
            unique.append(target)
    return unique


class ProductSyncService:
    """
    Fans one product out to several stores. Stores are processed one after
    another inside a single local transaction; a failing store is recorded
    and the loop moves on.
    """

    def __init__(
        self,
        db: Session,
        client_factory: Optional[ClientFactory] = None,
        session_factory: Optional[sessionmaker] = None,
    ):
        self.db = db
        self.client_factory = client_factory or integration_service.get_client_for_store
        self.session_factory = session_factory or SessionLocal

    # ========== Loading ==========

    async def fetch_product(self, product_id: Any) -> Product:
        """Load the full graph, retrying dropped connections"""
        product = None
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(settings.SYNC_FETCH_MAX_RETRIES),
            wait=wait_exponential(multiplier=settings.SYNC_FETCH_BACKOFF_SECONDS),
            retry=retry_if_exception_type(OperationalError),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        ):
            with attempt:
                try:
                    product = ProductService.get_product_graph(self.db, product_id)
                except OperationalError:
                    self.db.rollback()
                    raise

        if not product:
            raise NotFoundError("Product not found")
        return product

    def get_store(self, store_id: str) -> Optional[Store]:
        uid = to_uuid(store_id)
        if uid is None:
            return None
        return self.db.query(Store).filter(Store.id == uid).first()

    # ========== Single product ==========

    async def sync_product(
        self,
        product_id: Any,
        location_id: Optional[str] = None,
        store_ids: Optional[Sequence[Any]] = None,
        stores: Optional[Sequence[Dict[str, Any]]] = None,
        store_id: Optional[Any] = None,
    ) -> Dict[str, Any]:
        """
        Sync one product to the resolved stores.
        Returns {product_id, results, message, summary}.
        """
        targets: List[StoreTarget] = []
        try:
            product = await self.fetch_product(product_id)
            targets = resolve_target_stores(product, location_id, store_ids, stores, store_id)

            product.sync_attempted_at = _utcnow()
            product.sync_status = ProductSyncStatus.PENDING

            ledger = LedgerBatch()
            results = []
            for target in targets:
                results.append(await self._sync_store(product, target, ledger))

            self._finalize(product, targets, results, ledger)
            self.db.commit()

        except (NotFoundError, ValidationError):
            self.db.rollback()
            raise
        except Exception as e:
            self.db.rollback()
            logger.error(f"Sync failed for product {product_id}: {e}")
            self._record_failure(product_id, targets, e)
            raise

        succeeded = sum(1 for r in results if r["success"])
        logger.info(f"Product {product_id} synced to {succeeded}/{len(results)} stores")
        return {
            "product_id": str(product.id),
            "results": results,
            "message": f"Product synced to {succeeded} out of {len(results)} stores successfully",
            "summary": {
                "total_stores": len(results),
                "successful_syncs": succeeded,
                "failed_syncs": len(results) - succeeded,
                "stores": [t.store_id for t in targets],
            },
        }

    async def _sync_store(self, product: Product, target: StoreTarget, ledger: LedgerBatch) -> Dict[str, Any]:
        key = target.store_id
        result = {"store_id": key, "location_id": target.location_id, "success": False}
        product_ledger = ledger.for_entity(product)

        store = self.get_store(key)
        if store is None or not store.has_credentials:
            logger.error(f"Shopify credentials not found for store ID: {key}")
            result["error"] = CREDENTIALS_MISSING
            self._record_store_error(product_ledger, key, CREDENTIALS_MISSING)
            return result

        client = self.client_factory(store)
        reconciler = RemoteProductReconciler(client, MediaReconciler(client))

        try:
            assign_store_skus(self.db, product, store)
            options = project_options(product.options)
            variants = project_variants(product, options, key)

            remote_id = remote_id_of(product_sync_state(product, key))
            created = remote_id is None
            if created:
                remote = await reconciler.create_product(product, options, collect_image_entries(product))
            else:
                remote = await reconciler.update_product(product, remote_id)

            # Recorded first so a later failure still takes the update path next time
            product_ledger.set("shopify_product_ids", key, remote.id)
            product_ledger.set("shopify_handles", key, remote.handle)
            product_ledger.set("shopify_statuses", key, remote.status)

            details = await client.get_product_details(remote.id) or remote
            if not created and await reconciler.rename_options(product, details):
                details = await client.get_product_details(remote.id) or details
            outcome = await reconciler.reconcile_variants(remote.id, options, variants, details)

            known_media = {}
            for variant in product.variants:
                remote_variant = outcome.mapped.get(variant.id)
                if remote_variant is None:
                    continue
                variant_ledger = ledger.for_entity(variant)
                variant_ledger.set("shopify_variant_ids", key, remote_variant.id)
                if remote_variant.inventory_item_id:
                    variant_ledger.set("inventory_item_ids", key, remote_variant.inventory_item_id)
                variant_ledger.set("sync_statuses", key, ProductSyncStatus.SYNCED)
                if (variant.shopify_media_ids or {}).get(key):
                    known_media[variant.id] = variant.shopify_media_ids[key]

            product_media = remote.media if created else details.media
            media_ids = await reconciler.sync_variant_media(remote.id, variants, outcome.mapped, product_media, known_media)
            for variant in product.variants:
                if variant.id in media_ids:
                    ledger.for_entity(variant).set("shopify_media_ids", key, media_ids[variant.id])

            activate = outcome.mapped.keys() if created else outcome.created_ids
            inventory_items = {
                vid: outcome.mapped[vid].inventory_item_id
                for vid in activate
                if outcome.mapped[vid].inventory_item_id
            }
            if inventory_items:
                activator = InventoryActivator(self.db, client)
                await activator.activate_variants(
                    product, key, inventory_items, target.location_id or store.default_location_id
                )

            await self._discover_option_ids(client, reconciler, product, remote.id, key, ledger)

            product_ledger.set("sync_statuses", key, ProductSyncStatus.SYNCED)
            product_ledger.delete("sync_errors", key)
            result.update({
                "success": True,
                "shopify_product_id": remote.id,
                "shopify_handle": remote.handle,
                "shopify_status": remote.status,
                "message": f"Product synced successfully to store {key}",
            })

        except SQLAlchemyError:
            raise
        except Exception as e:
            message = _truncate(str(e))
            logger.error(f"Failed to sync product {product.id} to store {key}: {message}")
            self._record_store_error(product_ledger, key, message)
            result["error"] = message

        return result

    def _record_store_error(self, product_ledger, key: str, message: str) -> None:
        product_ledger.set("sync_statuses", key, ProductSyncStatus.FAILED)
        product_ledger.set("sync_errors", key, {"message": message, "attemptedAt": _utcnow().isoformat()})

    async def _discover_option_ids(
        self,
        client: BaseCatalogClient,
        reconciler: RemoteProductReconciler,
        product: Product,
        remote_product_id: str,
        key: str,
        ledger: LedgerBatch,
    ) -> None:
        """Record remote option/value ids; never fails the store sync"""
        try:
            remote = await client.get_product_details(remote_product_id)
            if remote is None:
                return
            for option, remote_option_id, value_pairs in reconciler.match_option_ids(product, remote):
                ledger.for_entity(option).set("shopify_option_ids", key, remote_option_id)
                for value, remote_value_id in value_pairs:
                    ledger.for_entity(value).set("shopify_option_value_ids", key, remote_value_id)
        except Exception as e:
            logger.warning(f"Could not map option ids for {remote_product_id}: {e}")

    def _finalize(
        self,
        product: Product,
        targets: List[StoreTarget],
        results: List[Dict[str, Any]],
        ledger: LedgerBatch,
    ) -> None:
        """Single merge-write per entity after every store was attempted"""
        ledger.apply(self.db)

        product.store_ids = merge_store_ids(product.store_ids, [t.store_id for t in targets])
        if product.store_id is None:
            product.store_id = next((to_uuid(t.store_id) for t in targets if to_uuid(t.store_id)), None)
        product.all_image_urls = collect_all_image_urls(product)

        failed = [r for r in results if not r["success"]]
        if failed:
            product.sync_status = ProductSyncStatus.FAILED
            product.sync_error = _truncate("; ".join(f"{r['store_id']}: {r.get('error')}" for r in failed))
        else:
            product.sync_status = ProductSyncStatus.SYNCED
            product.sync_error = None
            product.sync_completed_at = _utcnow()

    def _record_failure(self, product_id: Any, targets: List[StoreTarget], error: Exception) -> None:
        """Best-effort status update after the main transaction was rolled back"""
        uid = to_uuid(product_id)
        if uid is None:
            return
        try:
            product = self.db.query(Product).filter(Product.id == uid).first()
            if product is None:
                return
            message = _truncate(str(error))
            ledger = LedgerBatch()
            product_ledger = ledger.for_entity(product)
            for target in targets:
                self._record_store_error(product_ledger, target.store_id, message)
            ledger.apply(self.db)
            product.sync_status = ProductSyncStatus.FAILED
            product.sync_error = message
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Could not record sync failure for product {product_id}: {e}")

    # ========== Bulk ==========

    async def bulk_sync_products(
        self,
        product_ids: Sequence[Any],
        location_id: Optional[str] = None,
        store_ids: Optional[Sequence[Any]] = None,
        stores: Optional[Sequence[Dict[str, Any]]] = None,
        batch_size: Optional[int] = None,
        delay_seconds: Optional[float] = None,
    ) -> Dict[str, Any]:
        """
        Sync many products in fixed-size concurrent batches with a pause
        between batches. One product failing never affects the others.
        """
        batch_size = batch_size or settings.SYNC_BATCH_SIZE
        delay_seconds = settings.SYNC_BATCH_DELAY_SECONDS if delay_seconds is None else delay_seconds
        product_ids = list(product_ids)
        results = []

        for start in range(0, len(product_ids), batch_size):
            batch = product_ids[start:start + batch_size]
            logger.info(f"Bulk sync batch {start // batch_size + 1}: {len(batch)} products")

            outcomes = await asyncio.gather(
                *[self._sync_isolated(pid, location_id, store_ids, stores) for pid in batch],
                return_exceptions=True,
            )
            for pid, outcome in zip(batch, outcomes):
                if isinstance(outcome, BaseException):
                    logger.error(f"Bulk sync failed for product {pid}: {outcome}")
                    results.append({"product_id": str(pid), "success": False, "data": None, "error": str(outcome) or "Unknown error"})
                else:
                    results.append(outcome)

            if start + batch_size < len(product_ids) and delay_seconds > 0:
                await asyncio.sleep(delay_seconds)

        succeeded = sum(1 for r in results if r["success"])
        return {
            "results": results,
            "summary": {
                "total": len(results),
                "succeeded": succeeded,
                "failed": len(results) - succeeded,
            },
        }

    async def _sync_isolated(self, product_id, location_id, store_ids, stores) -> Dict[str, Any]:
        """Each concurrent product sync gets its own session"""
        db = self.session_factory()
        try:
            service = ProductSyncService(db, self.client_factory, self.session_factory)
            data = await service.sync_product(product_id, location_id=location_id, store_ids=store_ids, stores=stores)
            return {"product_id": str(product_id), "success": True, "data": data, "error": None}
        except AppError as e:
            return {"product_id": str(product_id), "success": False, "data": None, "error": e.message}
        finally:
            db.close()


# ========== Background runs ==========

async def run_bulk_sync(
    product_ids: Sequence[Any],
    location_id: Optional[str] = None,
    store_ids: Optional[Sequence[Any]] = None,
    stores: Optional[Sequence[Dict[str, Any]]] = None,
    session_factory: Optional[sessionmaker] = None,
    client_factory: Optional[ClientFactory] = None,
    sync_log_id: Optional[Any] = None,
) -> Dict[str, Any]:
    """Bulk sync recorded in SyncLog"""
    session_factory = session_factory or SessionLocal
    db = session_factory()
    try:
        sync_log = None
        if sync_log_id is not None:
            sync_log = db.query(SyncLog).filter(SyncLog.id == to_uuid(sync_log_id)).first()
        if sync_log is None:
            sync_log = SyncLog(
                product_ids=[str(pid) for pid in product_ids],
                store_ids=[str(sid) for sid in store_ids or []],
            )
            db.add(sync_log)
            db.commit()

        service = ProductSyncService(db, client_factory, session_factory)
        try:
            outcome = await service.bulk_sync_products(product_ids, location_id, store_ids, stores)
        except Exception as e:
            sync_log.status = SyncStatus.FAILED.value
            sync_log.error_message = str(e)[:500]
            sync_log.completed_at = _utcnow()
            db.commit()
            raise

        sync_log.stats = outcome["summary"]
        sync_log.status = SyncStatus.SUCCESS.value if not outcome["summary"]["failed"] else SyncStatus.FAILED.value
        if outcome["summary"]["failed"]:
            sync_log.error_message = f"{outcome['summary']['failed']} of {outcome['summary']['total']} products failed"
        sync_log.completed_at = _utcnow()
        db.commit()
        logger.info(f"Bulk sync {sync_log.id} finished: {outcome['summary']}")
        return outcome
    finally:
        db.close()


def get_failed_product_ids(db: Session, limit: int = 50) -> List[Any]:
    """Products whose last sync failed, oldest attempt first"""
    rows = db.query(Product.id).filter(
        Product.sync_status == ProductSyncStatus.FAILED
    ).order_by(Product.sync_attempted_at).limit(limit).all()
    return [row[0] for row in rows]


def failed_store_ids(db: Session, product_id: Any) -> List[str]:
    """Stores recorded as failed for a product; falls back to every targeted store"""
    product = db.query(Product).filter(Product.id == to_uuid(product_id)).first()
    if product is None:
        return []
    failed = [key for key, status in (product.sync_statuses or {}).items() if status == ProductSyncStatus.FAILED]
    return failed or list(product.store_ids or [])
