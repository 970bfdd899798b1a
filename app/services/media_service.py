"""
Media Service - remote media upload, readiness polling and variant attachment
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence
from urllib.parse import urlparse
import asyncio
import logging
import os

from app.core.config import settings
from app.integrations.base import BaseCatalogClient, RemoteMedia, RemoteProduct, MediaStatus

logger = logging.getLogger(__name__)

UNSUPPORTED_EXTENSIONS = (".svg", ".webm", ".mp4", ".avi", ".mov", ".wmv")

# Accepted, but remote processing often fails on these
UNRELIABLE_URL_MARKERS = ("encrypted-tbn", "google.com/images", "proxy", "gstatic.com/images")


def is_valid_media_url(url: Optional[str]) -> bool:
    if not url or not isinstance(url, str):
        return False
    parsed = urlparse(url.strip())
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def file_name(url: Optional[str]) -> str:
    if not url:
        return ""
    return os.path.basename(urlparse(url).path).lower()


def filter_media_sources(entries: Sequence[Dict[str, str]]) -> List[Dict[str, str]]:
    """Drop invalid and unsupported URLs. entries: [{"url", "alt"}]"""
    accepted = []
    for entry in entries:
        url = entry.get("url")
        if not is_valid_media_url(url):
            logger.warning(f"Skipping invalid media URL: {url}")
            continue
        if file_name(url).endswith(UNSUPPORTED_EXTENSIONS):
            logger.warning(f"Skipping unsupported media format: {url}")
            continue
        if any(marker in url for marker in UNRELIABLE_URL_MARKERS):
            logger.warning(f"Media URL may fail processing: {url}")
        accepted.append(entry)
    return accepted


def media_input(entries: Sequence[Dict[str, str]]) -> List[Dict[str, str]]:
    return [
        {"originalSource": entry["url"], "alt": entry.get("alt") or "", "mediaContentType": "IMAGE"}
        for entry in entries
    ]


def assign_sources(entries: Sequence[Dict[str, str]], media: List[RemoteMedia]) -> List[RemoteMedia]:
    """
    Media come back in request order; remember each one's source URL so
    variant images can be matched before processing finishes.
    """
    if len(entries) == len(media):
        for entry, item in zip(entries, media):
            if not item.url:
                item.url = entry["url"]
    return media


def match_media(url: str, media: Sequence[RemoteMedia]) -> Optional[RemoteMedia]:
    """Exact URL match first, then file name match"""
    for item in media:
        if item.url == url:
            return item

    name = file_name(url)
    if not name:
        return None
    stem = os.path.splitext(name)[0]
    # the CDN appends "_<suffix>" to uploaded names and may change the extension
    prefixes = (stem + "_", stem + ".") if stem else ()
    for item in media:
        candidate = file_name(item.url)
        if candidate == name or (prefixes and candidate.startswith(prefixes)):
            return item
    return None


@dataclass
class MediaWaitResult:
    ready_ids: List[str] = field(default_factory=list)
    failed_ids: List[str] = field(default_factory=list)
    pending_ids: List[str] = field(default_factory=list)
    timed_out: bool = False


@dataclass
class VariantImageTarget:
    """A remote variant that should display image_url"""
    variant_key: Any
    remote_variant_id: str
    image_url: str


class MediaReconciler:
    """
    Variant media protocol for one store:
    create -> wait until ready -> detach existing -> (delete orphans) -> attach
    """

    def __init__(
        self,
        client: BaseCatalogClient,
        timeout: Optional[float] = None,
        poll_interval: Optional[float] = None,
        delete_detached: Optional[bool] = None,
    ):
        self.client = client
        self.timeout = settings.MEDIA_READY_TIMEOUT_SECONDS if timeout is None else timeout
        self.poll_interval = settings.MEDIA_POLL_INTERVAL_SECONDS if poll_interval is None else poll_interval
        self.delete_detached = settings.MEDIA_DELETE_DETACHED if delete_detached is None else delete_detached

    async def create_media(self, product_id: str, entries: Sequence[Dict[str, str]]) -> List[RemoteMedia]:
        accepted = filter_media_sources(entries)
        if not accepted:
            return []
        created = await self.client.create_media(product_id, media_input(accepted))
        logger.info(f"Created {len(created)} media on {product_id}")
        return assign_sources(accepted, created)

    async def wait_for_media_ready(self, product_id: str, media_ids: Sequence[str]) -> MediaWaitResult:
        """Poll until every media is ready or failed, or the timeout passes"""
        wanted = set(media_ids)
        if not wanted:
            return MediaWaitResult()

        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.timeout

        while True:
            result = await self._partition(product_id, wanted)
            if not result.pending_ids:
                return result
            if loop.time() >= deadline:
                break
            await asyncio.sleep(self.poll_interval)

        # Final check after the deadline
        result = await self._partition(product_id, wanted)
        result.timed_out = bool(result.pending_ids)
        if result.timed_out:
            logger.warning(
                f"Timed out waiting for media on {product_id}: "
                f"{len(result.ready_ids)} ready, {len(result.failed_ids)} failed, {len(result.pending_ids)} pending"
            )
        return result

    async def _partition(self, product_id: str, wanted: set) -> MediaWaitResult:
        statuses = {m.id: m.status for m in await self.client.get_media_status(product_id)}
        result = MediaWaitResult()
        for media_id in wanted:
            status = statuses.get(media_id, MediaStatus.PENDING)
            if status == MediaStatus.READY:
                result.ready_ids.append(media_id)
            elif status == MediaStatus.FAILED:
                result.failed_ids.append(media_id)
            else:
                result.pending_ids.append(media_id)
        return result

    async def replace_variant_media(
        self,
        product_id: str,
        variant_media: List[Dict[str, Any]],
        details: Optional[RemoteProduct] = None,
    ) -> List[str]:
        """
        Detach whatever each variant currently shows, optionally delete
        media nobody references any more, then attach the new media.
        """
        if not variant_media:
            return []

        if details is None:
            details = await self.client.get_product_details(product_id)
        current = details.variant_media_map() if details else {}

        detach_inputs = []
        for entry in variant_media:
            existing = current.get(entry["variantId"]) or []
            if existing:
                detach_inputs.append({"variantId": entry["variantId"], "mediaIds": list(existing)})

        if detach_inputs:
            await self.client.detach_media_from_variants(product_id, detach_inputs)
            logger.info(f"Detached media from {len(detach_inputs)} variants on {product_id}")

            if self.delete_detached and details:
                orphaned = self._orphaned_media(details, detach_inputs)
                if orphaned:
                    await self.client.delete_media(product_id, orphaned)
                    logger.info(f"Deleted {len(orphaned)} orphaned media on {product_id}")

        return await self.client.attach_media_to_variants(product_id, variant_media)

    def _orphaned_media(self, details: RemoteProduct, detach_inputs: List[Dict[str, Any]]) -> List[str]:
        """Detached media that no other variant still references"""
        detached_variants = {entry["variantId"] for entry in detach_inputs}
        still_referenced = {
            media_id
            for variant_id, media_ids in details.variant_media_map().items()
            if variant_id not in detached_variants
            for media_id in media_ids
        }
        product_media = {m.id for m in details.media}

        orphaned = []
        for entry in detach_inputs:
            for media_id in entry["mediaIds"]:
                if media_id in product_media and media_id not in still_referenced and media_id not in orphaned:
                    orphaned.append(media_id)
        return orphaned

    async def sync_variant_images(
        self,
        product_id: str,
        targets: Sequence[VariantImageTarget],
        existing_media: Sequence[RemoteMedia] = (),
    ) -> Dict[Any, str]:
        """
        Make every target variant show its image. Media already on the
        product are reused; the rest are created first.
        Returns {variant_key: media_id} for the variants that were attached.
        """
        if not targets:
            return {}

        media = list(existing_media)
        missing = []
        for target in targets:
            if not match_media(target.image_url, media) and target.image_url not in [m["url"] for m in missing]:
                missing.append({"url": target.image_url, "alt": ""})
        if missing:
            media.extend(await self.create_media(product_id, missing))

        planned = {}
        for target in targets:
            item = match_media(target.image_url, media)
            if item is None:
                logger.warning(f"No media for variant image {target.image_url}")
                continue
            planned[target.variant_key] = (target, item.id)

        if not planned:
            return {}

        wait = await self.wait_for_media_ready(product_id, list({media_id for _, media_id in planned.values()}))
        if wait.failed_ids:
            logger.error(f"Media processing failed on {product_id}: {wait.failed_ids}")

        ready = set(wait.ready_ids)
        variant_media = []
        attached = {}
        for variant_key, (target, media_id) in planned.items():
            if media_id not in ready:
                continue
            variant_media.append({"variantId": target.remote_variant_id, "mediaIds": [media_id]})
            attached[variant_key] = media_id

        if variant_media:
            await self.replace_variant_media(product_id, variant_media)
        return attached
