"""
Base Catalog Client - Abstract base class for remote storefront catalogs
"""
from abc import ABC, abstractmethod
from typing import Optional, List, Dict, Any
from dataclasses import dataclass, field
import logging

logger = logging.getLogger(__name__)


class MediaStatus:
    READY = "ready"
    FAILED = "failed"
    PENDING = "pending"


@dataclass
class RemoteOptionValue:
    id: str
    name: str


@dataclass
class RemoteOption:
    id: str
    name: str
    position: int
    values: List[RemoteOptionValue] = field(default_factory=list)


@dataclass
class RemoteVariant:
    """
    Normalized variant as returned by the remote catalog
    """
    id: str
    sku: Optional[str] = None
    price: Optional[str] = None
    inventory_item_id: Optional[str] = None
    # [{"name": "Size", "value": "M"}]
    selected_options: List[Dict[str, str]] = field(default_factory=list)
    media_ids: List[str] = field(default_factory=list)

    @property
    def signature(self) -> str:
        """'Size:M / Color:Red' - used to detect already-created variants"""
        return " / ".join(f"{o.get('name')}:{o.get('value')}" for o in self.selected_options)


@dataclass
class RemoteMedia:
    id: str
    status: str = MediaStatus.PENDING
    url: Optional[str] = None
    alt: Optional[str] = None


@dataclass
class RemoteProduct:
    """
    Normalized product as returned by the remote catalog
    """
    id: str
    title: Optional[str] = None
    handle: Optional[str] = None
    status: Optional[str] = None
    options: List[RemoteOption] = field(default_factory=list)
    variants: List[RemoteVariant] = field(default_factory=list)
    media: List[RemoteMedia] = field(default_factory=list)

    def variant_media_map(self) -> Dict[str, List[str]]:
        return {v.id: list(v.media_ids) for v in self.variants}


@dataclass
class RemoteLocation:
    id: str
    name: str
    is_active: bool = True


class BaseCatalogClient(ABC):
    """
    Abstract base class for remote catalog integrations.
    One instance talks to exactly one store.
    """
    PLATFORM_NAME: str = "base"

    def __init__(self, shop_domain: str, access_token: str):
        self.shop_domain = shop_domain
        self.access_token = access_token

    # ========== Products ==========

    @abstractmethod
    async def create_product(self, product_input: Dict[str, Any]) -> RemoteProduct:
        """
        Create product with its options and media.
        The returned product carries the default variant the catalog creates.
        """
        pass

    @abstractmethod
    async def update_product(self, product_id: str, product_input: Dict[str, Any]) -> RemoteProduct:
        """Update descriptive fields. Returns id, handle, status"""
        pass

    @abstractmethod
    async def get_product_details(self, product_id: str) -> Optional[RemoteProduct]:
        """Options, variants (with attached media) and product media"""
        pass

    @abstractmethod
    async def update_product_option(
        self,
        product_id: str,
        option_id: str,
        name: str,
        position: Optional[int] = None,
    ) -> List[RemoteOption]:
        pass

    # ========== Variants ==========

    @abstractmethod
    async def create_variants(self, product_id: str, variants: List[Dict[str, Any]]) -> List[RemoteVariant]:
        pass

    @abstractmethod
    async def update_variants(self, product_id: str, variants: List[Dict[str, Any]]) -> List[RemoteVariant]:
        pass

    @abstractmethod
    async def delete_variant(self, variant_id: str) -> str:
        """Returns the deleted variant id"""
        pass

    # ========== Media ==========

    @abstractmethod
    async def create_media(self, product_id: str, media: List[Dict[str, Any]]) -> List[RemoteMedia]:
        pass

    @abstractmethod
    async def get_media_status(self, product_id: str) -> List[RemoteMedia]:
        pass

    @abstractmethod
    async def attach_media_to_variants(self, product_id: str, variant_media: List[Dict[str, Any]]) -> List[str]:
        """variant_media: [{"variantId": ..., "mediaIds": [...]}]. Returns attached variant ids"""
        pass

    @abstractmethod
    async def detach_media_from_variants(self, product_id: str, variant_media: List[Dict[str, Any]]) -> List[str]:
        pass

    @abstractmethod
    async def delete_media(self, product_id: str, media_ids: List[str]) -> List[str]:
        """Returns deleted media ids"""
        pass

    # ========== Inventory ==========

    @abstractmethod
    async def enable_inventory_tracking(self, inventory_item_id: str) -> None:
        pass

    @abstractmethod
    async def activate_inventory_at_location(self, inventory_item_id: str, location_id: str) -> bool:
        """True when activated now or already active"""
        pass

    @abstractmethod
    async def set_inventory_quantity(self, inventory_item_id: str, location_id: str, quantity: int) -> None:
        pass

    @abstractmethod
    async def get_locations(self) -> List[RemoteLocation]:
        """Active locations; raises when the store has none"""
        pass

    # ========== Utilities ==========

    def _log_api_call(self, operation: str, status_code: int):
        """Log API call for debugging"""
        logger.debug(f"[{self.PLATFORM_NAME}:{self.shop_domain}] {operation} -> {status_code}")
