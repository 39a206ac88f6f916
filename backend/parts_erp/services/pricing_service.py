# Overview: Pricing engine; weighted-average cost and HYBRID recommended sale price.

"""
Pricing Engine

Pure functions, no DB access. All amounts are Decimal.

HYBRID policy:
- target (excl. tax) = average cost * (1 + margin rate)
- floor  (excl. tax) = last purchase cost * (1 + min margin on last purchase)
- price  (excl. tax) = max(target, floor) when a target exists, else floor
- price  (incl. tax) = price excl. tax * (1 + tax rate)

The max is taken before tax and rounding, so the floor is never eroded by
rounding order.

PRECISION:
- costs (average / last purchase) keep 4 decimal places
- consumer-facing prices round half-up to 2 decimal places
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP

ZERO = Decimal("0")
HUNDRED = Decimal("100")
CURRENCY_QUANTUM = Decimal("0.01")
COST_QUANTUM = Decimal("0.0001")


def _d(value) -> Decimal:
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def round_currency(value) -> Decimal:
    return _d(value).quantize(CURRENCY_QUANTUM, rounding=ROUND_HALF_UP)


def round_cost(value) -> Decimal:
    return _d(value).quantize(COST_QUANTUM, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class PriceBreakdown:
    target_excl_tax: Decimal
    floor_excl_tax: Decimal
    price_excl_tax: Decimal
    price_incl_tax: Decimal

    @property
    def recommended_price(self) -> Decimal:
        """Tax-inclusive price, rounded for display and storage."""
        return round_currency(self.price_incl_tax)


def compute_price_breakdown(
    *,
    avg_cost,
    last_cost,
    margin_rate,
    min_margin_on_last,
    tax_rate,
) -> PriceBreakdown:
    """
    Unrounded HYBRID price components.

    Every component is 0 when both costs are <= 0.
    """
    avg_cost = _d(avg_cost)
    last_cost = _d(last_cost)
    margin_rate = _d(margin_rate)
    min_margin_on_last = _d(min_margin_on_last)
    tax_rate = _d(tax_rate)

    target = ZERO
    if avg_cost > 0 and margin_rate > 0:
        target = avg_cost * (1 + margin_rate / HUNDRED)

    floor = ZERO
    if last_cost > 0:
        floor = last_cost * (1 + min_margin_on_last / HUNDRED)

    if margin_rate > 0 and target > 0:
        price_excl = max(target, floor)
    else:
        price_excl = floor

    price_incl = price_excl * (1 + tax_rate / HUNDRED) if price_excl > 0 else ZERO

    return PriceBreakdown(
        target_excl_tax=target,
        floor_excl_tax=floor,
        price_excl_tax=price_excl,
        price_incl_tax=price_incl,
    )


def calculate_hybrid_recommended_price(
    *,
    avg_cost,
    last_cost,
    margin_rate,
    min_margin_on_last,
    tax_rate,
) -> Decimal:
    """Recommended tax-inclusive sale price (2 dp), 0 for degenerate input."""
    return compute_price_breakdown(
        avg_cost=avg_cost,
        last_cost=last_cost,
        margin_rate=margin_rate,
        min_margin_on_last=min_margin_on_last,
        tax_rate=tax_rate,
    ).recommended_price


def calculate_weighted_average_cost(old_qty, old_avg, recv_qty, recv_price) -> Decimal:
    """
    Stock-weighted average purchase cost after a reception.

    (old_qty * old_avg + recv_qty * recv_price) / (old_qty + recv_qty)

    Degenerate cases:
    - nothing received (recv_qty <= 0 or recv_price <= 0): old average kept
    - no usable prior stock/cost (old_qty <= 0 or old_avg <= 0): received price
    """
    old_qty = _d(old_qty)
    old_avg = _d(old_avg)
    recv_qty = _d(recv_qty)
    recv_price = _d(recv_price)

    if recv_qty <= 0 or recv_price <= 0:
        return round_cost(old_avg)
    if old_qty <= 0 or old_avg <= 0:
        return round_cost(recv_price)

    total_value = old_qty * old_avg + recv_qty * recv_price
    return round_cost(total_value / (old_qty + recv_qty))


def recommended_price_for_product(product) -> Decimal:
    return calculate_hybrid_recommended_price(
        avg_cost=product.purchase_price,
        last_cost=product.last_purchase_price,
        margin_rate=product.margin_rate,
        min_margin_on_last=product.min_margin_on_last_purchase,
        tax_rate=product.tax_rate,
    )


def has_cost(product) -> bool:
    return _d(product.purchase_price) > 0 or _d(product.last_purchase_price) > 0


def decompose_product_pricing(product) -> dict:
    """
    Break a product's stored sale price into cost, margin and tax.

    Returns camelCase keys for direct JSON rendering.
    """
    sale_price = _d(product.sale_price)
    tax_rate = _d(product.tax_rate)
    avg_cost = _d(product.purchase_price)

    price_excl = round_currency(sale_price / (1 + tax_rate / HUNDRED)) if sale_price > 0 else ZERO
    tax_amount = sale_price - price_excl if sale_price > 0 else ZERO
    margin_amount = price_excl - avg_cost if avg_cost > 0 else ZERO
    margin_pct = (
        (margin_amount / avg_cost * HUNDRED).quantize(CURRENCY_QUANTUM, rounding=ROUND_HALF_UP)
        if avg_cost > 0
        else ZERO
    )

    breakdown = compute_price_breakdown(
        avg_cost=avg_cost,
        last_cost=product.last_purchase_price,
        margin_rate=product.margin_rate,
        min_margin_on_last=product.min_margin_on_last_purchase,
        tax_rate=tax_rate,
    )

    return {
        "productId": product.id,
        "pricingMode": product.pricing_mode,
        "lastPurchasePrice": format(round_cost(product.last_purchase_price), "f"),
        "averageCost": format(round_cost(avg_cost), "f"),
        "priceExclTax": format(price_excl, "f"),
        "marginAmount": format(round_currency(margin_amount), "f"),
        "marginPercent": format(margin_pct, "f"),
        "taxAmount": format(round_currency(tax_amount), "f"),
        "salePrice": format(round_currency(sale_price), "f"),
        "targetPriceExclTax": format(round_currency(breakdown.target_excl_tax), "f"),
        "floorPriceExclTax": format(round_currency(breakdown.floor_excl_tax), "f"),
        "recommendedPrice": format(breakdown.recommended_price, "f"),
    }
