# plantstore/pricing/rules.py
"""
Pure coupon, tax and shipping computations.

Nothing in here touches the database; the service layer loads rule rows and
hands them to these functions. Each discount, tax or rate kind carries its own
computation on the enum member so every kind is handled in one place.
"""
import enum
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Optional

from plantstore.exceptions import NotFoundError, ValidationError
from plantstore.time_utils import as_utc


def round_money(amount: float) -> float:
    return round(float(amount), 2)


class CouponType(str, enum.Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"

    def discount_for(self, cart_total: float, value: float) -> float:
        if self is CouponType.PERCENTAGE:
            return cart_total * value / 100
        return value

    def check_value(self, value: float) -> None:
        if self is CouponType.PERCENTAGE and not 0 < value <= 100:
            raise ValidationError("Percentage discount must be between 0 and 100")
        if self is CouponType.FIXED and value <= 0:
            raise ValidationError("Fixed discount value must be greater than 0")


class TaxType(str, enum.Enum):
    PERCENTAGE = "percentage"
    FLAT = "flat"
    VAT = "vat"
    SALES = "sales"
    GST = "gst"

    @property
    def is_flat(self) -> bool:
        return self is TaxType.FLAT

    def tax_for(self, amount: float, rate: float) -> float:
        if self.is_flat:
            return rate
        return amount * rate / 100


class ExemptionCondition(str, enum.Enum):
    MINIMUM_AMOUNT = "minimum_amount"
    CUSTOMER_TYPE = "customer_type"


@dataclass
class CouponQuote:
    code: str
    type: CouponType
    value: float
    discount_amount: float
    final_total: float
    valid: bool = True


@dataclass
class TaxQuote:
    region: str
    tax_rate: float
    taxable_amount: float
    tax_amount: float
    total: float


def calculate_discount(
    coupon_type: CouponType,
    value: float,
    cart_total: float,
    max_discount: Optional[float] = None,
) -> float:
    """
    Discount for ``cart_total``: capped at ``max_discount`` when set, and
    never larger than the cart total itself.
    """
    discount = CouponType(coupon_type).discount_for(cart_total, value)
    if max_discount and discount > max_discount:
        discount = max_discount
    if discount > cart_total:
        discount = cart_total
    return round_money(discount)


def ensure_coupon_applicable(coupon, cart_total: float, now: datetime) -> None:
    """Raise ValidationError when ``coupon`` cannot be used for ``cart_total`` at ``now``."""
    if cart_total <= 0:
        raise ValidationError("Cart total must be greater than 0")
    if not coupon.is_active:
        raise ValidationError("Coupon is not active")
    valid_from = as_utc(coupon.valid_from)
    if valid_from and valid_from > now:
        raise ValidationError("Coupon is not yet valid")
    valid_until = as_utc(coupon.valid_until)
    if valid_until and valid_until < now:
        raise ValidationError("Coupon has expired")
    if coupon.minimum_purchase and cart_total < coupon.minimum_purchase:
        raise ValidationError(f"Minimum purchase amount of {coupon.minimum_purchase:g} required")
    if coupon.max_usage is not None and (coupon.used_count or 0) >= coupon.max_usage:
        raise ValidationError("Coupon has reached maximum usage limit")


def quote_coupon(coupon, cart_total: float) -> CouponQuote:
    coupon_type = CouponType(coupon.type)
    discount = calculate_discount(coupon_type, coupon.value, cart_total, coupon.max_discount)
    return CouponQuote(
        code=coupon.code,
        type=coupon_type,
        value=coupon.value,
        discount_amount=discount,
        final_total=round_money(cart_total - discount),
    )


def effective_tax_rate(
    base_rate: float,
    subtotal: float,
    exemption_rules: Iterable[dict],
    customer_type: Optional[str] = None,
) -> float:
    """First matching exemption rule replaces the base rate."""
    for rule in exemption_rules or ():
        condition = rule.get("condition")
        if condition == ExemptionCondition.MINIMUM_AMOUNT and subtotal >= float(rule.get("value", 0)):
            return float(rule["rate"])
        if condition == ExemptionCondition.CUSTOMER_TYPE and customer_type and customer_type == rule.get("value"):
            return float(rule["rate"])
    return base_rate


def compute_tax(tax_rule, subtotal: float, customer_type: Optional[str] = None) -> TaxQuote:
    tax_type = TaxType(tax_rule.type)
    if tax_rule.threshold and subtotal < tax_rule.threshold:
        tax_amount = 0.0
    else:
        rate = effective_tax_rate(tax_rule.rate, subtotal, tax_rule.exemption_rules, customer_type)
        tax_amount = tax_type.tax_for(subtotal, rate)
    tax_amount = round_money(tax_amount)
    return TaxQuote(
        region=tax_rule.region,
        tax_rate=tax_rule.rate,
        taxable_amount=round_money(subtotal),
        tax_amount=tax_amount,
        total=round_money(subtotal + tax_amount),
    )


# ---------- shipping ----------
class ShippingRateType(str, enum.Enum):
    """How the weight part of a shipping cost is charged."""

    PER_KG = "per_kg"
    WEIGHT_TIER = "weight_tier"

    def weight_cost(self, weight: float, rate_per_kg: float, weight_pricing: Iterable[dict]) -> float:
        if self is ShippingRateType.PER_KG:
            return weight * (rate_per_kg or 0)
        tier = find_weight_tier(weight_pricing, weight)
        return float(tier["additional_cost"]) if tier else 0.0


@dataclass
class ShippingQuote:
    cost: float
    base_cost: float
    zone_cost: float
    weight_cost: float
    estimated_days: Optional[str] = None


def find_weight_tier(weight_pricing: Iterable[dict], weight: float) -> Optional[dict]:
    """First tier with ``min_weight <= weight <= max_weight``; both ends inclusive."""
    for tier in weight_pricing or ():
        if float(tier["min_weight"]) <= weight <= float(tier["max_weight"]):
            return tier
    return None


def zone_surcharge(zone_pricing: Iterable[dict], country: Optional[str]) -> float:
    """Additional cost of the first zone listing ``country``."""
    if not country:
        return 0.0
    for zone in zone_pricing or ():
        if country in (zone.get("countries") or ()):
            return float(zone.get("additional_cost") or 0)
    return 0.0


def ensure_shipping_available(method, weight: float, region: Optional[str]) -> None:
    if weight < 0:
        raise ValidationError("Invalid weight")
    if not method.is_active:
        raise NotFoundError("Shipping method not found")
    # an empty region list ships everywhere
    if method.regions and region not in method.regions:
        raise NotFoundError("Shipping method not available for this region")
    if method.max_weight is not None and weight > method.max_weight:
        raise ValidationError(f"Weight exceeds the maximum of {method.max_weight:g} kg for this shipping method")


def compute_shipping(method, weight: float, region: Optional[str] = None, country: Optional[str] = None) -> ShippingQuote:
    """
    Base rate, plus the surcharge of the first zone containing the
    destination country, plus the weight charge of the method's rate type.
    The country defaults to the region.
    """
    ensure_shipping_available(method, weight, region)
    rate_type = ShippingRateType(method.rate_type)
    base_cost = float(method.base_rate or 0)
    zone_cost = zone_surcharge(method.zone_pricing, country or region)
    weight_cost = rate_type.weight_cost(weight, method.rate_per_kg, method.weight_pricing)
    return ShippingQuote(
        cost=round_money(base_cost + zone_cost + weight_cost),
        base_cost=round_money(base_cost),
        zone_cost=round_money(zone_cost),
        weight_cost=round_money(weight_cost),
        estimated_days=method.estimated_days,
    )
