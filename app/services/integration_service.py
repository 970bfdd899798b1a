"""
Integration Service - Manage store configurations
"""
from typing import Optional, List
from uuid import UUID
from sqlalchemy.orm import Session
import logging

from app.core.exceptions import ValidationError
from app.models import Store
from app.integrations import ShopifyClient, BaseCatalogClient

logger = logging.getLogger(__name__)


def _uuid(value) -> Optional[UUID]:
    try:
        return value if isinstance(value, UUID) else UUID(str(value))
    except ValueError:
        return None


def get_stores(
    db: Session,
    is_active: Optional[bool] = None,
) -> List[Store]:
    """Get all stores with optional filters"""
    query = db.query(Store)

    if is_active is not None:
        query = query.filter(Store.is_active == is_active)

    return query.order_by(Store.created_at.desc()).all()


def get_store(db: Session, store_id) -> Optional[Store]:
    """Get store by ID"""
    uid = _uuid(store_id)
    if uid is None:
        return None
    return db.query(Store).filter(Store.id == uid).first()


def get_store_by_domain(db: Session, shopify_domain: str) -> Optional[Store]:
    return db.query(Store).filter(Store.shopify_domain == shopify_domain).first()


def create_store(
    db: Session,
    store_name: str,
    shopify_domain: str,
    shopify_access_token: str,
    store_code: Optional[str] = None,
    default_location_id: Optional[str] = None,
) -> Store:
    """Register a new store"""
    if get_store_by_domain(db, shopify_domain):
        raise ValidationError(f"Store already registered: {shopify_domain}")

    store = Store(
        store_name=store_name,
        shopify_domain=shopify_domain,
        shopify_access_token=shopify_access_token,
        store_code=(store_code or "").upper() or None,
        default_location_id=default_location_id,
        is_active=True,
    )

    db.add(store)
    db.commit()
    db.refresh(store)

    logger.info(f"Created store: {store_name} ({shopify_domain})")
    return store


def update_store(db: Session, store_id, **kwargs) -> Optional[Store]:
    """Update store configuration"""
    store = get_store(db, store_id)
    if not store:
        return None

    allowed_fields = [
        "store_name", "shopify_access_token", "store_code",
        "default_location_id", "is_active",
    ]

    for field, value in kwargs.items():
        if field in allowed_fields and value is not None:
            setattr(store, field, value)

    db.commit()
    db.refresh(store)

    logger.info(f"Updated store: {store.store_name}")
    return store


def delete_store(db: Session, store_id) -> bool:
    """Delete store"""
    store = get_store(db, store_id)
    if not store:
        return False

    db.delete(store)
    db.commit()

    logger.info(f"Deleted store: {store.store_name}")
    return True


def get_client_for_store(store: Store) -> BaseCatalogClient:
    """Create the catalog client for a store"""
    if not store.has_credentials:
        raise ValidationError(f"Shopify credentials not found for store {store.id}")

    return ShopifyClient(
        shop_domain=store.shopify_domain,
        access_token=store.shopify_access_token,
    )
