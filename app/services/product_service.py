"""
Product Service - Business Logic for Products
"""
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional, Sequence
from uuid import UUID, uuid4
import json
import logging
import time

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from app.core.exceptions import NotFoundError, ValidationError
from app.models import (
    Product, ProductImage, ProductOption, ProductOptionValue, ProductStatus,
    ProductSyncStatus, ProductVariant, ProductVariantOption,
)
from .option_projector import cartesian_product, collect_all_image_urls

logger = logging.getLogger(__name__)

PRODUCT_FIELDS = ("title", "description", "product_type", "vendor", "status")


def to_uuid(value: Any) -> Optional[UUID]:
    if value is None or isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError:
        return None


def _sku_timestamp() -> str:
    return str(int(time.time() * 1000))[-6:]


def _price(value: Any) -> Optional[Decimal]:
    """Prices arrive as strings or numbers; blanks and '0' mean unset"""
    if value in (None, "", "0", 0):
        return None
    try:
        return Decimal(str(value))
    except InvalidOperation:
        raise ValidationError(f"Invalid price: {value}")


def _parse_tags(tags: Any) -> List[str]:
    if not tags:
        return []
    if isinstance(tags, (list, tuple)):
        return [str(t) for t in tags]
    try:
        parsed = json.loads(tags)
    except (TypeError, ValueError):
        return [str(tags)]
    return [str(t) for t in parsed] if isinstance(parsed, list) else [str(parsed)]


def _normalize_option_values(values: Sequence[Any]) -> List[Dict[str, Any]]:
    """Option values may be plain strings or {value, price, ...} dicts"""
    return [{"value": v} if isinstance(v, str) else dict(v) for v in values or []]


def _image_entry(image: Any, index: int) -> Dict[str, Any]:
    if isinstance(image, str):
        return {"original_url": image, "display_order": index}
    return {
        "original_url": image.get("original_url") or image.get("url") or image.get("image_url"),
        "enhanced_url": image.get("enhanced_url"),
        "alt_text": image.get("alt_text"),
        "display_order": image.get("display_order", index),
        "is_primary": bool(image.get("is_primary", False)),
    }


class ProductService:
    """Product business logic"""

    @staticmethod
    def get_product_graph(db: Session, product_id: Any) -> Optional[Product]:
        """Product with options, values, variants, variant options and images"""
        uid = to_uuid(product_id)
        if uid is None:
            return None
        return db.query(Product).options(
            selectinload(Product.options).selectinload(ProductOption.values),
            selectinload(Product.variants)
                .selectinload(ProductVariant.variant_options)
                .selectinload(ProductVariantOption.option_value)
                .selectinload(ProductOptionValue.option),
            selectinload(Product.images),
        ).filter(Product.id == uid).first()

    @staticmethod
    def get_product_with_details(db: Session, product_id: Any) -> Product:
        product = ProductService.get_product_graph(db, product_id)
        if not product:
            raise NotFoundError("Product not found")
        return product

    @staticmethod
    def get_products(
        db: Session,
        sync_status: Optional[str] = None,
        search: Optional[str] = None,
        page: int = 1,
        per_page: int = 50,
    ):
        """Get products with filters and pagination"""
        query = db.query(Product)
        if sync_status:
            query = query.filter(Product.sync_status == sync_status)
        if search:
            query = query.filter(Product.title.ilike(f"%{search}%"))

        total = query.count()
        products = query.order_by(Product.created_at.desc())\
            .offset((page - 1) * per_page)\
            .limit(per_page)\
            .all()
        return products, total

    # ========== Ingestion ==========

    @staticmethod
    def ingest_product(
        db: Session,
        data: Dict[str, Any],
        images: Optional[Sequence[str]] = None,
        variants: Optional[Any] = None,
    ) -> Dict[str, str]:
        """
        Raw intake: product row, uploaded image URLs and JSON-encoded
        variants. Nothing is synced.
        """
        if not data.get("title") or not data.get("product_type"):
            raise ValidationError("Title and Product Type are required")

        parsed_variants = []
        if variants:
            if isinstance(variants, str):
                try:
                    parsed_variants = json.loads(variants)
                except ValueError:
                    raise ValidationError("Invalid variants JSON format")
            else:
                parsed_variants = list(variants)
            if not isinstance(parsed_variants, list):
                raise ValidationError("Invalid variants JSON format")

        reference_code = str(uuid4())
        product = Product(
            unique_reference_code=reference_code,
            title=data["title"],
            description=data.get("description") or "",
            product_type=data["product_type"],
            vendor=data.get("vendor"),
            tags=_parse_tags(data.get("tags")),
            status=data.get("status") or ProductStatus.DRAFT,
            sync_status=ProductSyncStatus.NOT_SYNCED,
        )
        db.add(product)

        try:
            db.flush()
            for index, url in enumerate(images or [], start=1):
                product.images.append(ProductImage(
                    original_url=url,
                    display_order=index,
                    is_primary=index == 1,
                    alt_text=product.title,
                ))

            for position, item in enumerate(parsed_variants, start=1):
                product.variants.append(ProductVariant(
                    sku=item.get("sku"),
                    position=position,
                    price=_price(item.get("price")),
                    compare_at_price=_price(item.get("compare_at_price") or item.get("compareAtPrice")),
                    stock_quantity=item.get("stock_quantity", item.get("inventoryQuantity", 0)) or 0,
                    image_url=item.get("image_url") or item.get("imageUrl"),
                    is_default=position == 1,
                ))

            product.all_image_urls = collect_all_image_urls(product)
            db.commit()
        except Exception:
            db.rollback()
            raise

        logger.info(f"Product ingested: {product.id} with {len(images or [])} images, {len(parsed_variants)} variants")
        return {"product_id": str(product.id), "reference_code": reference_code}

    # ========== Creation ==========

    @staticmethod
    def create_product(db: Session, data: Dict[str, Any], options: Optional[Sequence[Dict[str, Any]]] = None) -> Product:
        """
        Create the full local graph in one transaction. Variants come from
        data["variants"], else the cartesian product of option values, else
        a single simple variant.
        """
        if not data.get("title"):
            raise ValidationError("Title is required")

        options = [
            {"name": o["name"], "values": _normalize_option_values(o.get("values"))}
            for o in options or []
            if o.get("name")
        ]

        product = Product(
            unique_reference_code=data.get("unique_reference_code") or str(uuid4()),
            title=data["title"],
            description=data.get("description") or "",
            product_type=data.get("product_type"),
            vendor=data.get("vendor"),
            tags=_parse_tags(data.get("tags")),
            status=data.get("status") or ProductStatus.DRAFT,
            store_id=to_uuid(data.get("store_id")),
            sync_status=ProductSyncStatus.NOT_SYNCED,
        )

        value_rows: Dict[tuple, ProductOptionValue] = {}
        for position, option_data in enumerate(options, start=1):
            option = ProductOption(name=option_data["name"], position=position)
            for value_position, value_data in enumerate(option_data["values"], start=1):
                row = ProductOptionValue(
                    value=value_data["value"],
                    position=value_position,
                    price=_price(value_data.get("price")),
                    compare_at_price=_price(value_data.get("compare_at_price")),
                    stock_quantity=value_data.get("stock_quantity"),
                )
                option.values.append(row)
                value_rows[(option.name, row.value)] = row
            product.options.append(option)

        variants_data = ProductService._variants_data(data, options)
        for position, item in enumerate(variants_data, start=1):
            variant = ProductVariant(
                sku=item["sku"],
                position=position,
                price=item["price"],
                compare_at_price=item["compare_at_price"],
                stock_quantity=item["stock_quantity"],
                image_url=item.get("image_url"),
                is_default=position == 1,
            )
            for pair in item["option_values"]:
                row = value_rows.get((pair["option_name"], pair["value"]))
                if row is not None:
                    variant.variant_options.append(ProductVariantOption(option_value=row))
            product.variants.append(variant)

        db.add(product)
        try:
            db.flush()
            ProductService._attach_images(product, data.get("images") or [])
            product.all_image_urls = collect_all_image_urls(product)
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Product creation failed: {e}")
            raise

        logger.info(f"Created product {product.id} with {len(product.variants)} variants")
        return ProductService.get_product_with_details(db, product.id)

    @staticmethod
    def _variants_data(data: Dict[str, Any], options: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        timestamp = _sku_timestamp()

        if data.get("variants"):
            variants = []
            for index, item in enumerate(data["variants"], start=1):
                variants.append({
                    "sku": item.get("sku") or f"VAR-{timestamp}-{index:03d}",
                    "price": _price(item.get("price")),
                    "compare_at_price": _price(item.get("compare_at_price")),
                    "stock_quantity": item.get("stock_quantity") or 0,
                    "image_url": item.get("image_url"),
                    "option_values": list(item.get("option_values") or []),
                })
            return variants

        if options:
            combos = cartesian_product([
                [(option["name"], value) for value in option["values"]]
                for option in options
            ])
            variants = []
            for index, combo in enumerate(combos, start=1):
                price = compare_at_price = None
                stock_quantity = 0
                for _, value in combo:
                    price = _price(value.get("price")) or price
                    compare_at_price = _price(value.get("compare_at_price")) or compare_at_price
                    stock_quantity = value.get("stock_quantity") or stock_quantity
                parts = "-".join(str(value["value"]).upper() for _, value in combo)
                variants.append({
                    "sku": f"{parts}-{timestamp}-{index:03d}",
                    "price": price,
                    "compare_at_price": compare_at_price,
                    "stock_quantity": stock_quantity,
                    "option_values": [{"option_name": name, "value": value["value"]} for name, value in combo],
                })
            return variants

        return [{
            "sku": data.get("sku") or f"SIMPLE-{timestamp}-001",
            "price": _price(data.get("price")),
            "compare_at_price": _price(data.get("compare_at_price")),
            "stock_quantity": data.get("stock_quantity") or 0,
            "image_url": data.get("image_url"),
            "option_values": [],
        }]

    @staticmethod
    def _attach_images(product: Product, images: Sequence[Any]) -> None:
        """Product images, then variant images not already present"""
        seen = set()
        for index, image in enumerate(images, start=1):
            entry = _image_entry(image, index)
            if not entry["original_url"] or entry["original_url"] in seen:
                continue
            seen.add(entry["original_url"])
            product.images.append(ProductImage(**entry))

        for index, variant in enumerate(product.variants):
            if not variant.image_url:
                continue
            existing = next((img for img in product.images if img.original_url == variant.image_url), None)
            if existing is not None:
                existing.variant_id = variant.id
                continue
            product.images.append(ProductImage(
                variant_id=variant.id,
                original_url=variant.image_url,
                alt_text=f"Variant image for {variant.sku}",
                display_order=index,
                is_primary=index == 0,
            ))

    @staticmethod
    def create_bulk_products(db: Session, products: Sequence[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """Each product is created independently"""
        results = []
        for data in products:
            data = dict(data)
            options = data.pop("options", None) or []
            try:
                product = ProductService.create_product(db, data, options)
                results.append({"success": True, "data": product, "error": None})
            except (ValidationError, SQLAlchemyError) as e:
                db.rollback()
                logger.error(f"Bulk product creation error for '{data.get('title')}': {e}")
                results.append({"success": False, "data": None, "error": getattr(e, "message", str(e))})

        logger.info(f"Bulk product creation completed. Success: {sum(1 for r in results if r['success'])}/{len(results)}")
        return results

    # ========== Update ==========

    @staticmethod
    async def update_product(
        db: Session,
        product_id: Any,
        data: Dict[str, Any],
        remote_config: Optional[Dict[str, Any]] = None,
        client_factory=None,
    ) -> Dict[str, Any]:
        """
        Update local fields, options, variants and images. With a remote
        config the product is re-synced to the stores it already lives on
        (or remote_config["store_ids"]), which pushes product fields,
        option names, variant prices and changed variant media. Stock
        changes are then pushed through the inventory protocol.
        """
        from .inventory_service import InventoryActivator
        from .sync_service import ProductSyncService

        product = ProductService.get_product_with_details(db, product_id)

        for name in PRODUCT_FIELDS:
            if data.get(name) is not None:
                setattr(product, name, data[name])
        if "tags" in data:
            product.tags = _parse_tags(data["tags"])

        if data.get("options") is not None:
            ProductService._update_options(db, product, data["options"])

        restocked = []
        if data.get("variants"):
            restocked = ProductService._update_variants(product, data["variants"])

        if data.get("images") is not None:
            for image in [img for img in product.images if img.variant_id is None]:
                product.images.remove(image)
            db.flush()
            ProductService._attach_images(product, data["images"])

        product.all_image_urls = collect_all_image_urls(product)
        try:
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            raise
        logger.info(f"Updated product {product.id} locally")

        if not remote_config:
            return {"product": ProductService.get_product_with_details(db, product.id), "sync": None}

        store_ids = remote_config.get("store_ids") or list((product.shopify_product_ids or {}).keys())
        if not store_ids:
            logger.info(f"Product {product.id} is not synced to any store, skipping remote update")
            return {"product": ProductService.get_product_with_details(db, product.id), "sync": None}

        sync_service = ProductSyncService(db, client_factory)
        outcome = await sync_service.sync_product(
            product.id, location_id=remote_config.get("location_id"), store_ids=store_ids
        )

        if restocked:
            product = ProductService.get_product_with_details(db, product.id)
            for result in outcome["results"]:
                if not result["success"]:
                    continue
                key = result["store_id"]
                items = {
                    v.id: (v.inventory_item_ids or {}).get(key)
                    for v in product.variants
                    if v.id in restocked and (v.inventory_item_ids or {}).get(key)
                }
                if not items:
                    continue
                store = sync_service.get_store(key)
                activator = InventoryActivator(db, sync_service.client_factory(store))
                await activator.activate_variants(
                    product, key, items, result.get("location_id") or store.default_location_id,
                    include_zero=True,
                )
            db.commit()

        return {"product": ProductService.get_product_with_details(db, product.id), "sync": outcome}

    @staticmethod
    def _update_options(db: Session, product: Product, options_data: Sequence[Dict[str, Any]]) -> None:
        """
        Options are matched by position. Renames keep the option row;
        values are matched by name so existing variant links survive.
        """
        existing = sorted(product.options, key=lambda o: o.position or 0)
        for index, option_data in enumerate(options_data):
            values = [v["value"] for v in _normalize_option_values(option_data.get("values"))]
            if index < len(existing):
                option = existing[index]
                if option.name != option_data["name"]:
                    logger.info(f"Option renamed '{option.name}' -> '{option_data['name']}'")
                    option.name = option_data["name"]
            else:
                option = ProductOption(name=option_data["name"], position=index + 1)
                product.options.append(option)

            current = {v.value: v for v in option.values}
            for value in list(option.values):
                if value.value not in values:
                    option.values.remove(value)
            for position, value in enumerate(values, start=1):
                if value in current:
                    current[value].position = position
                else:
                    option.values.append(ProductOptionValue(value=value, position=position))
        db.flush()

    @staticmethod
    def _update_variants(product: Product, variants_data: Sequence[Dict[str, Any]]) -> List[Any]:
        """
        Match incoming variants by id, then SKU. Changed images clear the
        recorded media so the next sync re-attaches them.
        Returns ids of variants whose stock changed.
        """
        by_id = {str(v.id): v for v in product.variants}
        by_sku = {v.sku: v for v in product.variants if v.sku}
        restocked = []

        for item in variants_data:
            variant = by_id.get(str(item.get("id"))) or by_sku.get(item.get("sku"))
            if variant is None:
                logger.warning(f"Variant {item.get('id') or item.get('sku')} not found on product {product.id}")
                continue

            if "price" in item:
                variant.price = _price(item["price"])
            if "compare_at_price" in item:
                variant.compare_at_price = _price(item["compare_at_price"])
            if item.get("stock_quantity") is not None and item["stock_quantity"] != variant.stock_quantity:
                variant.stock_quantity = item["stock_quantity"]
                restocked.append(variant.id)
            if item.get("image_url") and item["image_url"] != variant.image_url:
                variant.image_url = item["image_url"]
                variant.shopify_media_ids = {}

        return restocked

    # ========== Delete ==========

    @staticmethod
    def delete_product(db: Session, product_id: Any) -> bool:
        """Local delete; options, variants and images cascade"""
        uid = to_uuid(product_id)
        product = db.query(Product).filter(Product.id == uid).first() if uid else None
        if not product:
            raise NotFoundError("Product not found")

        db.delete(product)
        db.commit()
        logger.info(f"Deleted product {product_id}")
        return True
