# factopay_app/services/pricing.py
# -*- coding: utf-8 -*-
"""Order Builder: turns catalog items + billing period into an integer total.

Prices are minor currency units (paise) end to end. An item's contribution is
``price * multiplier(period)``, where the period is the item's own billing
period when it has one and the order's billing period otherwise.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from ..errors import InvalidOrderError, NotFoundError

BILLING_MULTIPLIERS = {
    "monthly": 1,
    "quarterly": 3,
    "half_yearly": 6,
    "yearly": 12,
    "one_time": 1,
}

ITEM_TYPES = ("course", "service")


def normalize_period(period: Optional[str]) -> Optional[str]:
    if not period:
        return None
    # older clients send "one-time" / "Half-Yearly"
    return str(period).strip().lower().replace("-", "_")


def multiplier_for(period: Optional[str]) -> int:
    return BILLING_MULTIPLIERS.get(normalize_period(period), 1)


def adjusted_price(price: int, period: Optional[str]) -> int:
    return int(price) * multiplier_for(period)


def _is_minor_units(value) -> bool:
    # bool is an int subclass but never a price
    return isinstance(value, int) and not isinstance(value, bool)


@dataclass
class QuotedItem:
    item_type: str
    item_id: str
    price: int
    billing_period: Optional[str] = None
    selected_features: List[str] = field(default_factory=list)

    @property
    def adjusted_price(self) -> int:
        return adjusted_price(self.price, self.billing_period)


@dataclass
class OrderQuote:
    total_amount: int
    currency: str
    items: List[QuotedItem]
    consultation_price: Optional[int] = None


def _coerce_item(raw) -> QuotedItem:
    if isinstance(raw, QuotedItem):
        return raw
    if not isinstance(raw, dict):
        raise InvalidOrderError("Each item must be an object")
    item_type = raw.get("itemType", raw.get("item_type"))
    item_id = raw.get("itemId", raw.get("item_id"))
    if item_type not in ITEM_TYPES:
        raise InvalidOrderError(f"Unknown item type: {item_type!r}")
    if not item_id:
        raise InvalidOrderError("Item without itemId")
    features = raw.get("selectedFeatures", raw.get("selected_features")) or []
    if not isinstance(features, list):
        raise InvalidOrderError("selectedFeatures must be a list")
    return QuotedItem(
        item_type=item_type,
        item_id=str(item_id),
        price=raw.get("price"),
        billing_period=raw.get("billingPeriod", raw.get("billing_period")),
        selected_features=[str(f) for f in features],
    )


def build_order(items: Iterable, billing_period: Optional[str], currency: str,
                consultation_price: Optional[int] = None) -> OrderQuote:
    """Prices ``items`` (dicts or ``QuotedItem``) for ``billing_period``.

    Raises ``InvalidOrderError`` for an empty list, a negative or non-integer
    price, or a negative consultation price.
    """
    quoted = [_coerce_item(raw) for raw in (items or [])]
    if not quoted:
        raise InvalidOrderError("Order must contain at least one item")

    overall = normalize_period(billing_period)
    total = 0
    for it in quoted:
        if not _is_minor_units(it.price):
            raise InvalidOrderError(f"Price of {it.item_id} must be an integer amount in minor units")
        if it.price < 0:
            raise InvalidOrderError(f"Price of {it.item_id} cannot be negative")
        it.billing_period = normalize_period(it.billing_period) or overall
        total += it.adjusted_price

    if consultation_price is not None:
        if not _is_minor_units(consultation_price) or consultation_price < 0:
            raise InvalidOrderError("consultationPrice must be a non-negative integer")
        total += consultation_price

    return OrderQuote(total_amount=total, currency=currency, items=quoted,
                      consultation_price=consultation_price)


def price_items(requested: Iterable, billing_period: Optional[str], currency: str,
                consultation_price: Optional[int] = None) -> OrderQuote:
    """Same as ``build_order`` but with prices read from the catalog.

    Whatever price the client sent is ignored.
    """
    from ..models.catalog import CatalogItem

    resolved = []
    for raw in requested or []:
        it = _coerce_item({**raw, "price": 0} if isinstance(raw, dict) else raw)
        row = CatalogItem.query.filter_by(item_type=it.item_type, item_id=it.item_id, active=True).first()
        if row is None:
            raise NotFoundError(f"{it.item_type} {it.item_id} not found", itemId=it.item_id)
        it.price = row.price
        resolved.append(it)
    return build_order(resolved, billing_period, currency, consultation_price=consultation_price)
