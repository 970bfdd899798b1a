# Remote Catalog Integrations Package
from .base import (
    BaseCatalogClient, RemoteProduct, RemoteOption, RemoteOptionValue,
    RemoteVariant, RemoteMedia, RemoteLocation, MediaStatus,
)
from .shopify import ShopifyClient

__all__ = [
    "BaseCatalogClient",
    "RemoteProduct",
    "RemoteOption",
    "RemoteOptionValue",
    "RemoteVariant",
    "RemoteMedia",
    "RemoteLocation",
    "MediaStatus",
    "ShopifyClient",
]
