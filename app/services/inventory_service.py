"""
Inventory Service - remote inventory activation and location stock ledger
"""
from typing import Any, Dict, List, Optional
import logging

from sqlalchemy.orm import Session

from app.integrations.base import BaseCatalogClient, RemoteLocation
from app.models import Product, ProductVariant, ProductLocation
from .store_map import store_key

logger = logging.getLogger(__name__)


class InventoryActivator:
    """
    Pushes stock for one store. Ordering per inventory item is fixed:
    enable tracking -> activate at location -> set quantity.
    """

    def __init__(self, db: Session, client: BaseCatalogClient):
        self.db = db
        self.client = client

    async def resolve_locations(self, location_id: Optional[str] = None) -> List[RemoteLocation]:
        """The requested location if the store has it, otherwise all active ones"""
        locations = await self.client.get_locations()
        if location_id:
            match = [loc for loc in locations if loc.id == location_id]
            if match:
                return match
            logger.warning(f"Specified location ID {location_id} not found, using all active locations")
        return locations

    async def activate_variants(
        self,
        product: Product,
        store_id: Any,
        inventory_items: Dict[Any, str],
        location_id: Optional[str] = None,
        include_zero: bool = False,
    ) -> Dict[str, int]:
        """
        inventory_items: {variant_id: remote inventory item id}
        include_zero pushes variants whose stock was lowered to 0; a first
        sync only pushes positive stock.
        Returns stats: {variants, locations, updated, skipped, errors}
        """
        key = store_key(store_id)
        stats = {
            "variants": 0,
            "locations": 0,
            "updated": 0,
            "skipped": 0,
            "errors": 0,
        }

        candidates = [
            v for v in product.variants
            if inventory_items.get(v.id)
            and (include_zero or (v.stock_quantity or 0) > 0)
        ]
        if not candidates:
            return stats

        locations = await self.resolve_locations(location_id)
        stats["locations"] = len(locations)

        for variant in candidates:
            inventory_item_id = inventory_items[variant.id]
            sku = (variant.store_specific_skus or {}).get(key) or variant.sku
            stats["variants"] += 1

            try:
                await self.client.enable_inventory_tracking(inventory_item_id)
            except Exception as e:
                logger.error(f"Failed to enable tracking for {sku}: {e}")
                stats["skipped"] += 1
                continue

            for location in locations:
                try:
                    await self.client.activate_inventory_at_location(inventory_item_id, location.id)
                    await self.client.set_inventory_quantity(inventory_item_id, location.id, variant.stock_quantity or 0)
                except Exception as e:
                    logger.error(f"Failed for {sku} at {location.name} in store {key}: {e}")
                    stats["errors"] += 1
                    continue

                self.upsert_location(product, variant, sku, key, location, variant.stock_quantity or 0)
                stats["updated"] += 1

        logger.info(
            f"Inventory pushed for product {product.id} in store {key}: "
            f"variants={stats['variants']}, updated={stats['updated']}, "
            f"skipped={stats['skipped']}, errors={stats['errors']}"
        )
        return stats

    def upsert_location(
        self,
        product: Product,
        variant: ProductVariant,
        sku: Optional[str],
        store_id: str,
        location: RemoteLocation,
        quantity: int,
    ) -> ProductLocation:
        row = self.db.query(ProductLocation).filter(
            ProductLocation.variant_id == variant.id,
            ProductLocation.store_id == store_id,
            ProductLocation.location_id == location.id,
        ).first()

        if row is None:
            row = ProductLocation(
                product_id=product.id,
                variant_id=variant.id,
                store_id=store_id,
                location_id=location.id,
            )
            self.db.add(row)

        row.variant_sku = sku
        row.location_name = location.name
        row.stock_quantity = quantity
        self.db.flush()
        return row
