"""
Remote Product Reconciler - create/update one product on one store

Works against a single BaseCatalogClient. Callers own persistence: the
reconciler only returns remote identifiers, it never writes the ledger.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple
import logging
import re
import time

from app.core.exceptions import RemoteApiError
from app.integrations.base import BaseCatalogClient, RemoteMedia, RemoteProduct, RemoteVariant
from app.models import Product, ProductOption, ProductOptionValue, ProductStatus
from .media_service import MediaReconciler, VariantImageTarget, assign_sources, filter_media_sources, media_input
from .option_projector import (
    ProjectedOption, ProjectedVariant, product_options_input, retained_options, variant_input,
)

logger = logging.getLogger(__name__)


def slugify(value: Optional[str]) -> str:
    return re.sub(r"[^a-z0-9]+", "-", (value or "").lower()).strip("-")


def unique_handle(title: Optional[str]) -> str:
    return f"{slugify(title) or 'product'}-{int(time.time() * 1000)}"


def is_handle_conflict(error: RemoteApiError) -> bool:
    return "handle" in error.message.lower() and "already been taken" in error.message.lower()


def is_already_exists(error: RemoteApiError) -> bool:
    return "already exists" in error.message.lower()


def is_meaningful_signature(signature: str) -> bool:
    """Placeholder variants ('Title:Default Title') never count as matches"""
    return bool(signature) and "Default" not in signature and "Title" not in signature


@dataclass
class VariantReconcileResult:
    # local variant id -> remote variant
    mapped: Dict[Any, RemoteVariant] = field(default_factory=dict)
    # local variant ids created remotely in this pass (including adopted defaults)
    created_ids: List[Any] = field(default_factory=list)
    skipped_existing: int = 0

    def variant_ids_by_sku(self, variants: Sequence[ProjectedVariant]) -> Dict[str, str]:
        return {pv.sku: self.mapped[pv.variant_id].id for pv in variants if pv.variant_id in self.mapped}

    def inventory_item_ids_by_sku(self, variants: Sequence[ProjectedVariant]) -> Dict[str, str]:
        return {
            pv.sku: self.mapped[pv.variant_id].inventory_item_id
            for pv in variants
            if pv.variant_id in self.mapped and self.mapped[pv.variant_id].inventory_item_id
        }


class RemoteProductReconciler:
    """
    create-vs-update decisions and payload building for one store
    """

    def __init__(self, client: BaseCatalogClient, media: Optional[MediaReconciler] = None):
        self.client = client
        self.media = media or MediaReconciler(client)

    # ========== Product ==========

    def build_product_input(self, product: Product) -> Dict[str, Any]:
        return {
            "title": product.title,
            "descriptionHtml": product.description or "",
            "productType": product.product_type or "",
            "vendor": product.vendor or "",
            "tags": list(product.tags or []),
            "status": "ACTIVE" if product.status == ProductStatus.PUBLISHED else "DRAFT",
        }

    async def create_product(
        self,
        product: Product,
        options: Sequence[ProjectedOption],
        images: Sequence[Dict[str, str]],
    ) -> RemoteProduct:
        """productCreate with options and media; retries once on a taken handle"""
        payload = self.build_product_input(product)
        option_input = product_options_input(options)
        if option_input:
            payload["productOptions"] = option_input

        accepted_images = filter_media_sources(images)
        payload["media"] = media_input(accepted_images) or None

        try:
            remote = await self.client.create_product(payload)
        except RemoteApiError as e:
            if not is_handle_conflict(e):
                raise
            payload["handle"] = unique_handle(product.title)
            logger.warning(f"Handle taken for '{product.title}', retrying with {payload['handle']}")
            remote = await self.client.create_product(payload)

        assign_sources(accepted_images, remote.media)
        logger.info(f"Created remote product {remote.id} ({remote.handle}) for {product.id}")
        return remote

    async def update_product(self, product: Product, remote_product_id: str) -> RemoteProduct:
        remote = await self.client.update_product(remote_product_id, self.build_product_input(product))
        logger.info(f"Updated remote product {remote_product_id} for {product.id}")
        return remote

    # ========== Variants ==========

    async def reconcile_variants(
        self,
        remote_product_id: str,
        options: Sequence[ProjectedOption],
        variants: Sequence[ProjectedVariant],
        existing: Optional[RemoteProduct],
    ) -> VariantReconcileResult:
        """
        Map local variants onto remote ones by SKU, then by option
        signature; create only what is still missing.
        """
        result = VariantReconcileResult()
        existing_variants = list(existing.variants) if existing else []
        by_sku = {v.sku: v for v in existing_variants if v.sku}
        by_signature = {v.signature: v for v in existing_variants if is_meaningful_signature(v.signature)}
        used = set()

        to_create: List[ProjectedVariant] = []
        adopt: List[Tuple[ProjectedVariant, RemoteVariant]] = []

        for pv in variants:
            remote = by_sku.get(pv.sku)
            if remote is None:
                match = by_signature.get(pv.signature(options))
                if match is not None and match.id not in used and not (match.sku and match.sku != pv.sku):
                    remote = match
                    adopt.append((pv, match))
            if remote is not None and remote.id not in used:
                used.add(remote.id)
                result.mapped[pv.variant_id] = remote
                result.skipped_existing += 1
                continue
            to_create.append(pv)

        # The catalog creates a SKU-less placeholder variant with every new product
        if to_create and not options:
            placeholder = next((v for v in existing_variants if not v.sku and v.id not in used), None)
            if placeholder is not None:
                pv = to_create.pop(0)
                used.add(placeholder.id)
                result.mapped[pv.variant_id] = placeholder
                adopt.append((pv, placeholder))

        if to_create:
            created = await self._create_variants(remote_product_id, options, to_create)
            for pv in to_create:
                remote = created.get(pv.sku) or created.get(pv.signature(options))
                if remote is None:
                    logger.warning(f"Variant {pv.sku} was not returned by the remote catalog")
                    continue
                result.mapped[pv.variant_id] = remote
                result.created_ids.append(pv.variant_id)

        if adopt:
            updated = await self.client.update_variants(remote_product_id, [
                self._adopt_input(pv, remote) for pv, remote in adopt
            ])
            updated_by_id = {v.id: v for v in updated}
            for pv, remote in adopt:
                refreshed = updated_by_id.get(remote.id)
                if refreshed is not None:
                    refreshed.inventory_item_id = refreshed.inventory_item_id or remote.inventory_item_id
                    result.mapped[pv.variant_id] = refreshed
                if not remote.sku:
                    result.created_ids.append(pv.variant_id)

        await self._sync_prices(remote_product_id, variants, result, adopt)

        logger.info(
            f"Variants for {remote_product_id}: mapped={len(result.mapped)}, "
            f"created={len(result.created_ids)}, existing={result.skipped_existing}"
        )
        return result

    def _adopt_input(self, pv: ProjectedVariant, remote: RemoteVariant) -> Dict[str, Any]:
        payload = {
            "id": remote.id,
            "price": pv.price,
            "inventoryItem": {"sku": pv.sku},
        }
        if pv.compare_at_price:
            payload["compareAtPrice"] = pv.compare_at_price
        return payload

    async def _create_variants(
        self,
        remote_product_id: str,
        options: Sequence[ProjectedOption],
        variants: Sequence[ProjectedVariant],
    ) -> Dict[str, RemoteVariant]:
        """Returns created variants keyed by SKU and by option signature"""
        try:
            created = await self.client.create_variants(
                remote_product_id, [variant_input(pv, options) for pv in variants]
            )
        except RemoteApiError as e:
            if not is_already_exists(e):
                raise
            logger.warning(f"Variants already exist on {remote_product_id}, mapping existing variants")
            details = await self.client.get_product_details(remote_product_id)
            created = details.variants if details else []

        keyed = {}
        for remote in created:
            if remote.sku:
                keyed[remote.sku] = remote
            if is_meaningful_signature(remote.signature):
                keyed.setdefault(remote.signature, remote)
        return keyed

    async def _sync_prices(
        self,
        remote_product_id: str,
        variants: Sequence[ProjectedVariant],
        result: VariantReconcileResult,
        adopted: Sequence[Tuple[ProjectedVariant, RemoteVariant]],
    ) -> None:
        """Push price changes for variants that already existed remotely"""
        skip = set(result.created_ids) | {pv.variant_id for pv, _ in adopted}
        changes = []
        for pv in variants:
            remote = result.mapped.get(pv.variant_id)
            if remote is None or pv.variant_id in skip or remote.price is None:
                continue
            if _same_price(remote.price, pv.price):
                continue
            change = {"id": remote.id, "price": pv.price}
            if pv.compare_at_price:
                change["compareAtPrice"] = pv.compare_at_price
            changes.append(change)

        if changes:
            await self.client.update_variants(remote_product_id, changes)
            logger.info(f"Updated prices of {len(changes)} variants on {remote_product_id}")

    # ========== Media ==========

    async def sync_variant_media(
        self,
        remote_product_id: str,
        variants: Sequence[ProjectedVariant],
        mapped: Dict[Any, RemoteVariant],
        product_media: Sequence[RemoteMedia] = (),
        known_media: Optional[Dict[Any, str]] = None,
    ) -> Dict[Any, str]:
        """
        Attach variant images. Variants already showing their recorded
        media are left alone. Returns {local variant id: media id}.
        """
        known_media = known_media or {}
        targets = []
        for pv in variants:
            remote = mapped.get(pv.variant_id)
            if not pv.image_url or remote is None:
                continue
            if known_media.get(pv.variant_id) and known_media[pv.variant_id] in remote.media_ids:
                continue
            targets.append(VariantImageTarget(pv.variant_id, remote.id, pv.image_url))

        if not targets:
            return {}
        return await self.media.sync_variant_images(remote_product_id, targets, product_media)

    # ========== Options ==========

    def match_option_ids(
        self,
        product: Product,
        remote: RemoteProduct,
    ) -> List[Tuple[ProductOption, str, List[Tuple[ProductOptionValue, str]]]]:
        """
        Pair local options with remote ones by position, and their values
        by index. Returns [(option, remote option id, [(value, remote value id)])].
        """
        remote_options = sorted(remote.options, key=lambda o: o.position or 0)
        pairs = []
        for index, option in enumerate(retained_options(product.options)):
            if index >= len(remote_options):
                break
            remote_option = remote_options[index]
            local_values = [
                v for v in sorted(option.values, key=lambda v: v.position or 0)
                if v.value and v.value.strip()
            ]
            value_pairs = [
                (value, remote_option.values[j].id)
                for j, value in enumerate(local_values)
                if j < len(remote_option.values)
            ]
            pairs.append((option, remote_option.id, value_pairs))
        return pairs

    async def rename_options(self, product: Product, remote: RemoteProduct) -> int:
        """Push local option names onto the positionally matching remote options"""
        remote_options = sorted(remote.options, key=lambda o: o.position or 0)
        renamed = 0
        for index, option in enumerate(retained_options(product.options)):
            if index >= len(remote_options):
                break
            remote_option = remote_options[index]
            if remote_option.name == option.name:
                continue
            await self.client.update_product_option(remote.id, remote_option.id, option.name, remote_option.position)
            logger.info(f"Renamed option '{remote_option.name}' -> '{option.name}' on {remote.id}")
            renamed += 1
        return renamed


def _same_price(remote_price: Any, local_price: str) -> bool:
    try:
        return float(remote_price) == float(local_price)
    except (TypeError, ValueError):
        return str(remote_price) == str(local_price)
