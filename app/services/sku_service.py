"""
SKU Service - store-specific SKU derivation

SKU layout: <vendor initials>-<product hash>-<variant ordinal>-<store code>,
e.g. CC-EFWNQ4-001-US. The same variant gets one SKU per store because every
store is its own SKU namespace.
"""
from typing import Any, Dict, Optional
import logging

from sqlalchemy.orm import Session

from app.models import Product, Store
from .store_map import EntityLedger, store_key

logger = logging.getLogger(__name__)

BASE36_DIGITS = "0123456789abcdefghijklmnopqrstuvwxyz"


def _int32(value: int) -> int:
    value &= 0xFFFFFFFF
    return value - 0x100000000 if value & 0x80000000 else value


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(BASE36_DIGITS[remainder])
    return "".join(reversed(digits))


def short_hash(value: str, length: int = 6) -> str:
    """
    FNV-1a style hash with 32-bit wrapping arithmetic, rendered in
    upper-case base 36 and cut to `length` characters.
    """
    h = 2166136261
    for char in value:
        h = _int32(h) ^ ord(char)
        h = h + (
            _int32(h << 1)
            + _int32(h << 4)
            + _int32(h << 7)
            + _int32(h << 8)
            + _int32(h << 24)
        )
    return _to_base36(h & 0xFFFFFFFF).upper()[:length]


def vendor_prefix(vendor: Optional[str]) -> str:
    """First letter of every word, upper-cased: 'Cool Co' -> 'CC'"""
    return "".join(word[0] for word in (vendor or "").split(" ") if word).upper()


def derive_sku(vendor: Optional[str], product_id: Any, variant_ordinal: int, store_code: Optional[str]) -> str:
    """Deterministic per-store SKU. variant_ordinal is 1-based"""
    prefix = vendor_prefix(vendor)
    product_code = short_hash(str(product_id))
    variant_code = f"{variant_ordinal:03d}"
    code = (store_code or "").upper() or f"{prefix}{variant_code}"
    return f"{prefix}-{product_code}-{variant_code}-{code}"


def assign_store_skus(db: Session, product: Product, store: Store) -> Dict[Any, str]:
    """
    Derive the SKU of every variant for one store and persist it into
    store_specific_skus before any remote call is made. A SKU already
    recorded for the store is kept, so remote variants stay matched.
    Returns {variant_id: sku}.
    """
    key = store_key(store.id)
    assigned = {}

    positions = [v.position for v in product.variants]
    use_positions = all(positions) and len(set(positions)) == len(positions)
    taken = {
        (v.store_specific_skus or {}).get(key)
        for v in product.variants
        if (v.store_specific_skus or {}).get(key)
    }

    for index, variant in enumerate(product.variants, start=1):
        existing = (variant.store_specific_skus or {}).get(key)
        if existing:
            assigned[variant.id] = existing
            continue

        ordinal = variant.position if use_positions else index
        sku = derive_sku(product.vendor, product.id, ordinal, store.store_code)
        while sku in taken:
            ordinal += 1
            sku = derive_sku(product.vendor, product.id, ordinal, store.store_code)
        taken.add(sku)

        EntityLedger(variant).set("store_specific_skus", key, sku).apply(db)
        assigned[variant.id] = sku

    db.flush()
    logger.info(f"Assigned {len(assigned)} store SKUs for product {product.id} in store {key}")
    return assigned
