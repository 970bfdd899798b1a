"""
Option/Variant Projector

Turns the local option/value/variant graph into the ordered, store-specific
shape the remote catalog expects. Pure functions; nothing here touches the
database or the network.
"""
from dataclasses import dataclass, field
from decimal import Decimal
from itertools import product as iter_product
from typing import Any, Dict, List, Optional, Sequence
import logging

from app.models import Product, ProductOption, ProductVariant

logger = logging.getLogger(__name__)

# Shopify accepts at most three options per product
MAX_REMOTE_OPTIONS = 3


@dataclass
class ProjectedOption:
    option_id: Any
    name: str
    position: int
    values: List[str] = field(default_factory=list)


@dataclass
class ProjectedVariant:
    variant_id: Any
    sku: Optional[str]
    price: str
    compare_at_price: Optional[str]
    # Aligned positionally with the projected option list
    options: List[str] = field(default_factory=list)
    image_url: Optional[str] = None

    def option_pairs(self, options: Sequence[ProjectedOption]) -> List[Dict[str, str]]:
        return [{"name": value, "optionName": option.name} for option, value in zip(options, self.options)]

    def signature(self, options: Sequence[ProjectedOption]) -> str:
        """Same layout as RemoteVariant.signature"""
        return " / ".join(f"{option.name}:{value}" for option, value in zip(options, self.options))


def _is_blank(value: Optional[str]) -> bool:
    return value is None or str(value).strip() == ""


def format_price(value: Any) -> str:
    if not value:
        return "0.00"
    if isinstance(value, Decimal):
        return f"{value:.2f}"
    return str(value)


def format_optional_price(value: Any) -> Optional[str]:
    if not value:
        return None
    return format_price(value)


def retained_options(options: Sequence[ProductOption]) -> List[ProductOption]:
    """Options with a name and at least one non-blank value, first three by position"""
    valid = [
        option for option in sorted(options, key=lambda o: o.position or 0)
        if not _is_blank(option.name) and any(not _is_blank(v.value) for v in option.values)
    ]
    return valid[:MAX_REMOTE_OPTIONS]


def project_options(options: Sequence[ProductOption]) -> List[ProjectedOption]:
    projected = []
    for option in retained_options(options):
        values = [v.value for v in sorted(option.values, key=lambda v: v.position or 0) if not _is_blank(v.value)]
        projected.append(ProjectedOption(
            option_id=option.id,
            name=option.name,
            position=option.position,
            values=values,
        ))
    return projected


def variant_option_lookup(variant: ProductVariant) -> Dict[Any, Dict[str, str]]:
    """{option_id: {"name": ..., "value": ...}} from the variant's join rows"""
    lookup = {}
    for link in variant.variant_options:
        option_value = link.option_value
        if option_value is None or option_value.option is None:
            continue
        lookup[option_value.option.id] = {
            "name": option_value.option.name,
            "value": option_value.value,
        }
    return lookup


def resolve_option_values(variant: ProductVariant, options: Sequence[ProjectedOption]) -> List[str]:
    """
    One value per projected option. A missing value falls back to the
    option's first value so the variant stays valid for the remote catalog.
    """
    lookup = variant_option_lookup(variant)
    values = []
    for option in options:
        selected = lookup.get(option.option_id)
        if not selected or _is_blank(selected.get("value")):
            default = option.values[0]
            logger.warning(f'Variant {variant.sku} missing value for option "{option.name}", using default: "{default}"')
            values.append(default)
        else:
            values.append(selected["value"])

    if len(values) != len(options):
        logger.error(f"Variant {variant.sku} has {len(values)} option values but product has {len(options)} options")
        while len(values) < len(options):
            missing = options[len(values)]
            logger.warning(f'Adding default value "{missing.values[0]}" for option "{missing.name}" to variant {variant.sku}')
            values.append(missing.values[0])

    return values


def project_variant(
    variant: ProductVariant,
    options: Sequence[ProjectedOption],
    sku: Optional[str] = None,
) -> ProjectedVariant:
    return ProjectedVariant(
        variant_id=variant.id,
        sku=sku or variant.sku,
        price=format_price(variant.price),
        compare_at_price=format_optional_price(variant.compare_at_price),
        options=resolve_option_values(variant, options),
        image_url=variant.image_url or None,
    )


def project_variants(
    product: Product,
    options: Sequence[ProjectedOption],
    store_id: Optional[str] = None,
) -> List[ProjectedVariant]:
    """Project every variant, using its store-specific SKU when one is known"""
    projected = []
    for variant in product.variants:
        sku = (variant.store_specific_skus or {}).get(store_id) if store_id else None
        projected.append(project_variant(variant, options, sku))
    return projected


def product_options_input(options: Sequence[ProjectedOption]) -> Optional[List[Dict[str, Any]]]:
    """productOptions payload, or None so an empty list is never sent"""
    if not options:
        return None
    return [
        {
            "name": option.name,
            "position": index,
            "values": [{"name": value} for value in option.values],
        }
        for index, option in enumerate(options, start=1)
    ]


def variant_input(variant: ProjectedVariant, options: Sequence[ProjectedOption]) -> Dict[str, Any]:
    """ProductVariantsBulkInput for a projected variant"""
    payload = {
        "optionValues": variant.option_pairs(options),
        "price": variant.price,
        "inventoryItem": {"sku": variant.sku},
    }
    if variant.compare_at_price:
        payload["compareAtPrice"] = variant.compare_at_price
    return payload


# ========== Images ==========

def collect_image_entries(product: Product) -> List[Dict[str, str]]:
    """
    Product images then variant images, de-duplicated by URL, in order.
    Returns [{"url": ..., "alt": ...}].
    """
    seen = set()
    entries = []

    for index, image in enumerate(product.images, start=1):
        url = image.original_url or image.enhanced_url
        if url and url not in seen:
            seen.add(url)
            entries.append({"url": url, "alt": image.alt_text or f"Product image {index}"})

    variant_index = 0
    for variant in product.variants:
        if variant.image_url and variant.image_url not in seen:
            variant_index += 1
            seen.add(variant.image_url)
            entries.append({"url": variant.image_url, "alt": f"Variant image {variant_index}"})

    return entries


def collect_all_image_urls(product: Product) -> List[str]:
    return [entry["url"] for entry in collect_image_entries(product)]


# ========== Variant Generation ==========

def cartesian_product(value_lists: Sequence[Sequence[Any]]) -> List[tuple]:
    """
    Ordered combinations, first list varying slowest:
    [[S, M], [Red]] -> [(S, Red), (M, Red)]. No lists -> [()]
    """
    return list(iter_product(*value_lists))
