"""
Product/alias matcher.

Resolves every parsed line item to exactly one receipt item: an unclaimed
product claim, or a cashback item matched by canonical name, by an
existing alias, or through a freshly minted unverified alias.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Callable, Mapping, Optional

from cashback.errors import InvalidClaimMapping, InvalidProductReference
from cashback.models import ProductAliasModel, ProductModel, fold_name
from cashback.schemas import (
    AliasStatus,
    CashbackItem,
    ItemProps,
    ItemStatus,
    ParsedLineItem,
    ProductClaim,
    ReceiptItem,
)

logger = logging.getLogger(__name__)

# (product, item name) -> new unverified alias; raises AliasCreationFailed
AliasFactory = Callable[[ProductModel, str], ProductAliasModel]

_ALIAS_OUTCOMES = {
    AliasStatus.VERIFIED.value: ItemStatus.AUTO_VERIFIED_ALIAS,
    AliasStatus.REJECTED.value: ItemStatus.AUTO_REJECTED_ALIAS,
    AliasStatus.UNVERIFIED.value: ItemStatus.MANUAL_REVIEW,
}


@dataclass
class MatchResult:
    items: list[ReceiptItem] = field(default_factory=list)
    has_rejected: bool = False
    has_unverified: bool = False
    created_aliases: list[ProductAliasModel] = field(default_factory=list)


def resolve_claims(lines: list[ParsedLineItem], claims: Mapping[str, str]) -> dict[str, str]:
    """Fold claim keys and reject claims for names absent from the receipt."""
    on_receipt = {fold_name(line.name) for line in lines}
    folded: dict[str, str] = {}
    for name, product_id in claims.items():
        key = fold_name(name)
        if folded.setdefault(key, product_id) != product_id:
            logger.warning("Conflicting claims for '%s': %s vs %s", name, folded[key], product_id)
            raise InvalidClaimMapping(f"Item {name} is claimed as more than one product")
    unknown = [name for name in claims if fold_name(name) not in on_receipt]
    if unknown:
        logger.warning("Claims reference items not on the receipt: %s", ", ".join(unknown))
        raise InvalidClaimMapping(f"Items not found on the receipt: {', '.join(unknown)}")
    return folded


def find_alias(product: ProductModel, name: str) -> Optional[ProductAliasModel]:
    key = fold_name(name)
    for alias in product.aliases or []:
        if fold_name(alias.alternative_name) == key:
            return alias
    return None


def _match_claimed(
    line: ParsedLineItem,
    product: ProductModel,
    create_alias: AliasFactory,
    result: MatchResult,
) -> CashbackItem:
    alias_id = None
    if fold_name(product.canonical_name) == fold_name(line.name):
        status = ItemStatus.AUTO_VERIFIED_CANON
    else:
        alias = find_alias(product, line.name)
        if alias is None:
            alias = create_alias(product, line.name)
            result.created_aliases.append(alias)
            logger.info("Minted alias %s '%s' for product %s", alias.id, line.name, product.id)
        alias_id = alias.id
        status = _ALIAS_OUTCOMES.get(alias.verification_status, ItemStatus.MANUAL_REVIEW)

    if status == ItemStatus.AUTO_REJECTED_ALIAS:
        result.has_rejected = True
    elif status == ItemStatus.MANUAL_REVIEW:
        result.has_unverified = True

    return CashbackItem(
        name=line.name,
        props=ItemProps.from_line(line),
        claimed_product_id=product.id,
        product_alias_id=alias_id,
        verification_status=status,
        cashback=product.cashback_amount or 0,
    )


def match_items(
    lines: list[ParsedLineItem],
    claims: Mapping[str, str],
    catalog: Mapping[str, ProductModel],
    create_alias: AliasFactory,
    on: date | None = None,
) -> MatchResult:
    """Match *lines* against the claimed products in *catalog*.

    *claims* maps receipt item names (any case) to product ids. A claim
    naming a missing, ineligible or unpublished product fails the whole
    submission with :class:`InvalidProductReference`.
    """
    folded_claims = resolve_claims(lines, claims)
    result = MatchResult()

    for line in lines:
        product_id = folded_claims.get(fold_name(line.name))
        if product_id is None:
            result.items.append(ProductClaim(name=line.name, props=ItemProps.from_line(line)))
            continue

        product = catalog.get(product_id)
        if product is None or not product.is_available(on):
            logger.warning("Claimed product %s for '%s' is not available", product_id, line.name)
            raise InvalidProductReference(
                f"Product {product_id} does not exist or is not eligible for cashback"
            )
        result.items.append(_match_claimed(line, product, create_alias, result))

    logger.debug(
        "Matched %d items (rejected=%s, unverified=%s)",
        len(result.items), result.has_rejected, result.has_unverified,
    )
    return result
