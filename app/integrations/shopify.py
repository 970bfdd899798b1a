"""
Shopify Admin GraphQL Client
API Documentation: https://shopify.dev/docs/api/admin-graphql
"""
from typing import Optional, Dict, Any, List
import httpx
import logging

from tenacity import AsyncRetrying, stop_after_attempt, wait_exponential, retry_if_exception_type

from app.core.config import settings
from app.core.exceptions import RemoteApiError, TransientApiError
from .base import (
    BaseCatalogClient, RemoteProduct, RemoteOption, RemoteOptionValue,
    RemoteVariant, RemoteMedia, RemoteLocation, MediaStatus,
)

logger = logging.getLogger(__name__)


# ========== Fragments ==========

VARIANT_FIELDS = """
    id
    sku
    price
    inventoryItem { id }
    selectedOptions { name value }
"""

MEDIA_FIELDS = """
    id
    status
    alt
    mediaContentType
    preview { status image { url } }
    ... on MediaImage { image { url } }
"""

PRODUCT_FIELDS = f"""
    id
    title
    handle
    status
    options {{
        id
        name
        position
        optionValues {{ id name }}
    }}
    variants(first: 100) {{
        nodes {{
            {VARIANT_FIELDS}
            media(first: 10) {{ nodes {{ id }} }}
        }}
    }}
    media(first: 50) {{
        nodes {{ {MEDIA_FIELDS} }}
    }}
"""

PRODUCT_CREATE = f"""
mutation productCreate($product: ProductCreateInput!, $media: [CreateMediaInput!]) {{
    productCreate(product: $product, media: $media) {{
        product {{ {PRODUCT_FIELDS} }}
        userErrors {{ field message }}
    }}
}}
"""

PRODUCT_UPDATE = """
mutation productUpdate($product: ProductUpdateInput!) {
    productUpdate(product: $product) {
        product { id handle status }
        userErrors { field message }
    }
}
"""

PRODUCT_QUERY = f"""
query getProduct($id: ID!) {{
    product(id: $id) {{ {PRODUCT_FIELDS} }}
}}
"""

PRODUCT_OPTION_UPDATE = """
mutation productOptionUpdate($productId: ID!, $option: OptionUpdateInput!) {
    productOptionUpdate(productId: $productId, option: $option) {
        product {
            id
            options { id name position optionValues { id name } }
        }
        userErrors { field message }
    }
}
"""

VARIANTS_BULK_CREATE = f"""
mutation productVariantsBulkCreate($productId: ID!, $variants: [ProductVariantsBulkInput!]!) {{
    productVariantsBulkCreate(productId: $productId, variants: $variants) {{
        productVariants {{ {VARIANT_FIELDS} }}
        userErrors {{ field message }}
    }}
}}
"""

VARIANTS_BULK_UPDATE = f"""
mutation productVariantsBulkUpdate($productId: ID!, $variants: [ProductVariantsBulkInput!]!) {{
    productVariantsBulkUpdate(productId: $productId, variants: $variants) {{
        productVariants {{ {VARIANT_FIELDS} }}
        userErrors {{ field message }}
    }}
}}
"""

VARIANT_DELETE = """
mutation productVariantDelete($id: ID!) {
    productVariantDelete(id: $id) {
        deletedProductVariantId
        userErrors { field message }
    }
}
"""

MEDIA_CREATE = f"""
mutation productCreateMedia($productId: ID!, $media: [CreateMediaInput!]!) {{
    productCreateMedia(productId: $productId, media: $media) {{
        media {{ {MEDIA_FIELDS} }}
        mediaUserErrors {{ field message }}
    }}
}}
"""

MEDIA_STATUS_QUERY = """
query getProductMediaStatus($id: ID!) {
    product(id: $id) {
        media(first: 50) {
            nodes { id status preview { status } }
        }
    }
}
"""

VARIANT_APPEND_MEDIA = """
mutation productVariantAppendMedia($productId: ID!, $variantMedia: [ProductVariantAppendMediaInput!]!) {
    productVariantAppendMedia(productId: $productId, variantMedia: $variantMedia) {
        productVariants { id }
        userErrors { field message }
    }
}
"""

VARIANT_DETACH_MEDIA = """
mutation productVariantDetachMedia($productId: ID!, $variantMedia: [ProductVariantDetachMediaInput!]!) {
    productVariantDetachMedia(productId: $productId, variantMedia: $variantMedia) {
        productVariants { id }
        userErrors { field message }
    }
}
"""

MEDIA_DELETE = """
mutation productDeleteMedia($productId: ID!, $mediaIds: [ID!]!) {
    productDeleteMedia(productId: $productId, mediaIds: $mediaIds) {
        deletedMediaIds
        mediaUserErrors { field message }
    }
}
"""

INVENTORY_ITEM_UPDATE = """
mutation inventoryItemUpdate($id: ID!, $input: InventoryItemInput!) {
    inventoryItemUpdate(id: $id, input: $input) {
        inventoryItem { id tracked }
        userErrors { field message }
    }
}
"""

INVENTORY_ACTIVATE = """
mutation inventoryActivate($inventoryItemId: ID!, $locationId: ID!) {
    inventoryActivate(inventoryItemId: $inventoryItemId, locationId: $locationId) {
        inventoryLevel { id }
        userErrors { field message }
    }
}
"""

INVENTORY_SET_QUANTITIES = """
mutation inventorySetQuantities($input: InventorySetQuantitiesInput!) {
    inventorySetQuantities(input: $input) {
        inventoryAdjustmentGroup { reason }
        userErrors { field message code }
    }
}
"""

# inventoryActivate user errors that mean the item is already stocked there
ALREADY_ACTIVE_MARKERS = ("already active", "already stocked")

LOCATIONS_QUERY = """
query getLocations($first: Int!) {
    locations(first: $first) {
        nodes { id name isActive }
    }
}
"""


def _nodes(connection: Optional[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Accept both `nodes` and `edges { node }` connection shapes"""
    if not connection:
        return []
    if "nodes" in connection:
        return connection.get("nodes") or []
    return [edge.get("node") for edge in connection.get("edges") or [] if edge.get("node")]


class ShopifyClient(BaseCatalogClient):
    """
    Shopify Admin GraphQL API Client
    """
    PLATFORM_NAME = "shopify"

    # Status mapping (media)
    MEDIA_STATUS_MAP = {
        "READY": MediaStatus.READY,
        "FAILED": MediaStatus.FAILED,
    }

    def __init__(self, shop_domain: str, access_token: str, api_version: Optional[str] = None):
        super().__init__(shop_domain, access_token)
        self.api_version = api_version or settings.SHOPIFY_API_VERSION

    @property
    def graphql_url(self) -> str:
        return f"https://{self.shop_domain}/admin/api/{self.api_version}/graphql.json"

    def _build_headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "X-Shopify-Access-Token": self.access_token,
        }

    # ========== Transport ==========

    async def _graphql(self, operation: str, query: str, variables: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Execute a query, retrying throttled and transient failures"""
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(settings.SHOPIFY_MAX_RETRIES),
            wait=wait_exponential(multiplier=0.5, min=0.5, max=6),
            retry=retry_if_exception_type(TransientApiError),
            reraise=True,
        ):
            with attempt:
                return await self._post(operation, query, variables)

    async def _post(self, operation: str, query: str, variables: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        async with httpx.AsyncClient(timeout=settings.SHOPIFY_HTTP_TIMEOUT) as client:
            try:
                response = await client.post(
                    self.graphql_url,
                    headers=self._build_headers(),
                    json={"query": query, "variables": variables or {}},
                )
            except httpx.TransportError as e:
                raise TransientApiError(f"Shopify API Error: {operation} failed: {e}", operation=operation)

        self._log_api_call(operation, response.status_code)

        if response.status_code == 429 or response.status_code >= 500:
            raise TransientApiError(
                f"Shopify API Error: {operation} returned HTTP {response.status_code}",
                operation=operation,
                status_code=response.status_code,
            )
        if response.status_code >= 400:
            raise RemoteApiError(
                f"Shopify API Error: {operation} returned HTTP {response.status_code}: {response.text[:300]}",
                operation=operation,
                status_code=response.status_code,
            )

        data = response.json()
        errors = data.get("errors")
        if errors:
            messages = ", ".join(e.get("message", "") for e in errors)
            if any((e.get("extensions") or {}).get("code") == "THROTTLED" for e in errors):
                raise TransientApiError(f"GraphQL Error: {messages}", operation=operation, status_code=429)
            logger.error(f"GraphQL errors in {operation}: {messages}")
            raise RemoteApiError(f"GraphQL Error: {messages}", operation=operation, status_code=500)

        return data.get("data") or {}

    def _raise_user_errors(self, operation: str, payload: Dict[str, Any], key: str = "userErrors"):
        user_errors = payload.get(key) or []
        if user_errors:
            messages = ", ".join(e.get("message", "") for e in user_errors)
            logger.error(f"User errors in {operation}: {messages}")
            raise RemoteApiError(f"Shopify Error: {messages}", operation=operation, user_errors=user_errors)

    # ========== Normalization ==========

    def normalize_media_status(self, node: Dict[str, Any]) -> str:
        status = node.get("status") or (node.get("preview") or {}).get("status")
        return self.MEDIA_STATUS_MAP.get(status, MediaStatus.PENDING)

    def _parse_media(self, node: Dict[str, Any]) -> RemoteMedia:
        url = (node.get("image") or {}).get("url") or ((node.get("preview") or {}).get("image") or {}).get("url")
        return RemoteMedia(
            id=node["id"],
            status=self.normalize_media_status(node),
            url=url,
            alt=node.get("alt"),
        )

    def _parse_variant(self, node: Dict[str, Any]) -> RemoteVariant:
        return RemoteVariant(
            id=node["id"],
            sku=node.get("sku") or None,
            price=node.get("price"),
            inventory_item_id=(node.get("inventoryItem") or {}).get("id"),
            selected_options=node.get("selectedOptions") or [],
            media_ids=[m["id"] for m in _nodes(node.get("media"))],
        )

    def _parse_option(self, node: Dict[str, Any]) -> RemoteOption:
        return RemoteOption(
            id=node["id"],
            name=node.get("name"),
            position=node.get("position") or 0,
            values=[RemoteOptionValue(id=v["id"], name=v.get("name")) for v in node.get("optionValues") or []],
        )

    def _parse_product(self, node: Dict[str, Any]) -> RemoteProduct:
        return RemoteProduct(
            id=node["id"],
            title=node.get("title"),
            handle=node.get("handle"),
            status=node.get("status"),
            options=[self._parse_option(o) for o in node.get("options") or []],
            variants=[self._parse_variant(v) for v in _nodes(node.get("variants"))],
            media=[self._parse_media(m) for m in _nodes(node.get("media"))],
        )

    # ========== Products ==========

    async def create_product(self, product_input: Dict[str, Any]) -> RemoteProduct:
        variables = dict(product_input)
        media = variables.pop("media", None)
        data = await self._graphql("productCreate", PRODUCT_CREATE, {"product": variables, "media": media})
        payload = data.get("productCreate") or {}
        self._raise_user_errors("productCreate", payload)
        if not payload.get("product"):
            raise RemoteApiError("Shopify Error: productCreate returned no product", operation="productCreate")
        return self._parse_product(payload["product"])

    async def update_product(self, product_id: str, product_input: Dict[str, Any]) -> RemoteProduct:
        data = await self._graphql("productUpdate", PRODUCT_UPDATE, {"product": {"id": product_id, **product_input}})
        payload = data.get("productUpdate") or {}
        self._raise_user_errors("productUpdate", payload)
        return self._parse_product(payload.get("product") or {"id": product_id})

    async def get_product_details(self, product_id: str) -> Optional[RemoteProduct]:
        data = await self._graphql("product", PRODUCT_QUERY, {"id": product_id})
        node = data.get("product")
        if not node:
            return None
        return self._parse_product(node)

    async def update_product_option(
        self,
        product_id: str,
        option_id: str,
        name: str,
        position: Optional[int] = None,
    ) -> List[RemoteOption]:
        option = {"id": option_id, "name": name}
        if position is not None:
            option["position"] = position
        data = await self._graphql(
            "productOptionUpdate", PRODUCT_OPTION_UPDATE, {"productId": product_id, "option": option}
        )
        payload = data.get("productOptionUpdate") or {}
        self._raise_user_errors("productOptionUpdate", payload)
        product = payload.get("product") or {}
        return [self._parse_option(o) for o in product.get("options") or []]

    # ========== Variants ==========

    async def create_variants(self, product_id: str, variants: List[Dict[str, Any]]) -> List[RemoteVariant]:
        data = await self._graphql(
            "productVariantsBulkCreate", VARIANTS_BULK_CREATE, {"productId": product_id, "variants": variants}
        )
        payload = data.get("productVariantsBulkCreate") or {}
        self._raise_user_errors("productVariantsBulkCreate", payload)
        return [self._parse_variant(v) for v in payload.get("productVariants") or []]

    async def update_variants(self, product_id: str, variants: List[Dict[str, Any]]) -> List[RemoteVariant]:
        if not variants:
            return []
        data = await self._graphql(
            "productVariantsBulkUpdate", VARIANTS_BULK_UPDATE, {"productId": product_id, "variants": variants}
        )
        payload = data.get("productVariantsBulkUpdate") or {}
        self._raise_user_errors("productVariantsBulkUpdate", payload)
        return [self._parse_variant(v) for v in payload.get("productVariants") or []]

    async def delete_variant(self, variant_id: str) -> str:
        data = await self._graphql("productVariantDelete", VARIANT_DELETE, {"id": variant_id})
        payload = data.get("productVariantDelete") or {}
        self._raise_user_errors("productVariantDelete", payload)
        return payload.get("deletedProductVariantId") or variant_id

    # ========== Media ==========

    async def create_media(self, product_id: str, media: List[Dict[str, Any]]) -> List[RemoteMedia]:
        data = await self._graphql("productCreateMedia", MEDIA_CREATE, {"productId": product_id, "media": media})
        payload = data.get("productCreateMedia") or {}
        created = [self._parse_media(m) for m in payload.get("media") or [] if m]
        user_errors = payload.get("mediaUserErrors") or []

        if user_errors and not created:
            self._raise_user_errors("productCreateMedia", payload, key="mediaUserErrors")
        if user_errors:
            messages = ", ".join(e.get("message", "") for e in user_errors)
            logger.warning(f"Partial media creation for {product_id}: {len(created)} created, errors: {messages}")

        return created

    async def get_media_status(self, product_id: str) -> List[RemoteMedia]:
        data = await self._graphql("getProductMediaStatus", MEDIA_STATUS_QUERY, {"id": product_id})
        product = data.get("product") or {}
        return [self._parse_media(m) for m in _nodes(product.get("media"))]

    async def attach_media_to_variants(self, product_id: str, variant_media: List[Dict[str, Any]]) -> List[str]:
        data = await self._graphql(
            "productVariantAppendMedia", VARIANT_APPEND_MEDIA,
            {"productId": product_id, "variantMedia": variant_media},
        )
        payload = data.get("productVariantAppendMedia") or {}
        self._raise_user_errors("productVariantAppendMedia", payload)
        return [v["id"] for v in payload.get("productVariants") or []]

    async def detach_media_from_variants(self, product_id: str, variant_media: List[Dict[str, Any]]) -> List[str]:
        data = await self._graphql(
            "productVariantDetachMedia", VARIANT_DETACH_MEDIA,
            {"productId": product_id, "variantMedia": variant_media},
        )
        payload = data.get("productVariantDetachMedia") or {}
        self._raise_user_errors("productVariantDetachMedia", payload)
        return [v["id"] for v in payload.get("productVariants") or []]

    async def delete_media(self, product_id: str, media_ids: List[str]) -> List[str]:
        data = await self._graphql("productDeleteMedia", MEDIA_DELETE, {"productId": product_id, "mediaIds": media_ids})
        payload = data.get("productDeleteMedia") or {}
        self._raise_user_errors("productDeleteMedia", payload, key="mediaUserErrors")
        return payload.get("deletedMediaIds") or []

    # ========== Inventory ==========

    async def enable_inventory_tracking(self, inventory_item_id: str) -> None:
        data = await self._graphql(
            "inventoryItemUpdate", INVENTORY_ITEM_UPDATE,
            {"id": inventory_item_id, "input": {"tracked": True}},
        )
        self._raise_user_errors("inventoryItemUpdate", data.get("inventoryItemUpdate") or {})

    async def activate_inventory_at_location(self, inventory_item_id: str, location_id: str) -> bool:
        data = await self._graphql(
            "inventoryActivate", INVENTORY_ACTIVATE,
            {"inventoryItemId": inventory_item_id, "locationId": location_id},
        )
        payload = data.get("inventoryActivate") or {}
        user_errors = payload.get("userErrors") or []
        if user_errors:
            messages = [(e.get("message") or "").lower() for e in user_errors]
            if all(any(marker in m for marker in ALREADY_ACTIVE_MARKERS) for m in messages):
                logger.warning(f"Inventory item {inventory_item_id} already active at {location_id}")
                return True
            self._raise_user_errors("inventoryActivate", payload)
        return True

    async def set_inventory_quantity(self, inventory_item_id: str, location_id: str, quantity: int) -> None:
        data = await self._graphql(
            "inventorySetQuantities", INVENTORY_SET_QUANTITIES,
            {
                "input": {
                    "name": "available",
                    "reason": "correction",
                    "ignoreCompareQuantity": True,
                    "quantities": [
                        {
                            "inventoryItemId": inventory_item_id,
                            "locationId": location_id,
                            "quantity": quantity,
                        }
                    ],
                }
            },
        )
        self._raise_user_errors("inventorySetQuantities", data.get("inventorySetQuantities") or {})

    async def get_locations(self) -> List[RemoteLocation]:
        data = await self._graphql("locations", LOCATIONS_QUERY, {"first": settings.INVENTORY_LOCATIONS_LIMIT})
        locations = [
            RemoteLocation(id=node["id"], name=node.get("name") or "", is_active=node.get("isActive", True))
            for node in _nodes(data.get("locations"))
        ]
        active = [loc for loc in locations if loc.is_active]
        if not active:
            raise RemoteApiError(f"No active locations found for {self.shop_domain}", operation="locations")
        return active
