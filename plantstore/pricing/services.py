# plantstore/pricing/services.py
from typing import Optional

from sqlalchemy import or_, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from plantstore.exceptions import ConflictError, NotFoundError, ValidationError
from plantstore.models import Coupon, ShippingMethod, TaxRule
from plantstore.observability import get_logger
from plantstore.pricing.rules import (
    CouponQuote,
    CouponType,
    ShippingQuote,
    ShippingRateType,
    TaxQuote,
    compute_shipping,
    compute_tax,
    ensure_coupon_applicable,
    quote_coupon,
    round_money,
)
from plantstore.time_utils import as_utc, utcnow

logger = get_logger(__name__)


# ---------- coupons ----------
def normalize_code(code: str) -> str:
    return (code or "").strip().upper()


def get_coupon(db: Session, coupon_id: int) -> Coupon:
    coupon = db.get(Coupon, coupon_id)
    if coupon is None:
        raise NotFoundError("Coupon not found")
    return coupon


def validate_coupon(db: Session, code: str, cart_total: float) -> CouponQuote:
    coupon = db.query(Coupon).filter(Coupon.code == normalize_code(code)).first()
    if coupon is None:
        raise NotFoundError("Invalid or expired coupon")
    ensure_coupon_applicable(coupon, cart_total, utcnow())
    return quote_coupon(coupon, cart_total)


def apply_coupon(db: Session, coupon_id: int, cart_total: float) -> CouponQuote:
    """
    Same checks as ``validate_coupon``, then one use is recorded. The counter
    is bumped by a conditional UPDATE so concurrent checkouts cannot overshoot
    ``max_usage``.
    """
    coupon = get_coupon(db, coupon_id)
    ensure_coupon_applicable(coupon, cart_total, utcnow())
    quote = quote_coupon(coupon, cart_total)

    result = db.execute(
        update(Coupon)
        .where(
            Coupon.id == coupon.id,
            or_(Coupon.max_usage.is_(None), Coupon.used_count < Coupon.max_usage),
        )
        .values(used_count=Coupon.used_count + 1)
    )
    if result.rowcount == 0:
        db.rollback()
        raise ValidationError("Coupon has reached maximum usage limit")
    db.commit()
    logger.info("coupon_applied", coupon_id=coupon.id, code=coupon.code, discount=quote.discount_amount)
    return quote


def _check_coupon_fields(coupon: Coupon) -> None:
    CouponType(coupon.type).check_value(coupon.value)
    if coupon.minimum_purchase is not None and coupon.minimum_purchase < 0:
        raise ValidationError("Minimum purchase amount cannot be negative")
    if coupon.max_discount is not None and coupon.max_discount < 0:
        raise ValidationError("Maximum discount cannot be negative")
    valid_from = as_utc(coupon.valid_from)
    valid_until = as_utc(coupon.valid_until)
    if valid_from and valid_until and valid_until <= valid_from:
        raise ValidationError("End date must be after start date")


def _ensure_code_free(db: Session, code: str, exclude_id: Optional[int] = None) -> None:
    query = db.query(Coupon).filter(Coupon.code == code)
    if exclude_id is not None:
        query = query.filter(Coupon.id != exclude_id)
    if query.first() is not None:
        raise ConflictError("Coupon code already exists", field="code")


def _commit_coupon(db: Session, coupon: Coupon) -> Coupon:
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ConflictError("Coupon code already exists", field="code")
    db.refresh(coupon)
    return coupon


def create_coupon(db: Session, data: dict) -> Coupon:
    data = {key: value for key, value in data.items() if value is not None}
    data["code"] = normalize_code(data["code"])
    data.setdefault("valid_from", utcnow())
    coupon = Coupon(**data)
    _check_coupon_fields(coupon)
    _ensure_code_free(db, coupon.code)
    db.add(coupon)
    coupon = _commit_coupon(db, coupon)
    logger.info("coupon_created", coupon_id=coupon.id, code=coupon.code)
    return coupon


def list_coupons(db: Session, is_active: Optional[bool] = None, page: int = 1, limit: int = 20):
    """Returns (coupons, total), newest first."""
    query = db.query(Coupon)
    if is_active is not None:
        query = query.filter(Coupon.is_active.is_(is_active))
    total = query.count()
    coupons = query.order_by(Coupon.created_at.desc(), Coupon.id.desc()).offset((page - 1) * limit).limit(limit).all()
    return coupons, total


def update_coupon(db: Session, coupon_id: int, changes: dict) -> Coupon:
    coupon = get_coupon(db, coupon_id)
    if changes.get("code"):
        changes["code"] = normalize_code(changes["code"])
        _ensure_code_free(db, changes["code"], exclude_id=coupon.id)
    for field, value in changes.items():
        setattr(coupon, field, value)
    _check_coupon_fields(coupon)
    coupon = _commit_coupon(db, coupon)
    logger.info("coupon_updated", coupon_id=coupon.id, fields=sorted(changes))
    return coupon


def delete_coupon(db: Session, coupon_id: int) -> None:
    coupon = get_coupon(db, coupon_id)
    db.delete(coupon)
    db.commit()
    logger.info("coupon_deleted", coupon_id=coupon_id)


# ---------- tax ----------
def get_tax_rule(db: Session, rule_id: int) -> TaxRule:
    rule = db.get(TaxRule, rule_id)
    if rule is None:
        raise NotFoundError("Tax rule not found")
    return rule


def calculate_tax(db: Session, region: str, subtotal: float, customer_type: Optional[str] = None) -> TaxQuote:
    rule = (
        db.query(TaxRule)
        .filter(
            TaxRule.region == region.strip(),
            TaxRule.is_default.is_(True),
            TaxRule.is_active.is_(True),
        )
        .first()
    )
    if rule is None:
        raise NotFoundError("No tax rate found for this region")
    return compute_tax(rule, subtotal, customer_type)


def _clear_other_defaults(db: Session, rule: TaxRule) -> None:
    # at most one default rule per region
    db.query(TaxRule).filter(
        TaxRule.region == rule.region,
        TaxRule.id != rule.id,
        TaxRule.is_default.is_(True),
    ).update({TaxRule.is_default: False}, synchronize_session="fetch")


def create_tax_rule(db: Session, data: dict) -> TaxRule:
    data = dict(data)
    data["region"] = data["region"].strip()
    data["rate"] = round_money(data["rate"])
    rule = TaxRule(**data)
    db.add(rule)
    db.flush()
    if rule.is_default:
        _clear_other_defaults(db, rule)
    db.commit()
    db.refresh(rule)
    logger.info("tax_rule_created", tax_rule_id=rule.id, region=rule.region, is_default=rule.is_default)
    return rule


def list_tax_rules(db: Session, region: Optional[str] = None) -> list[TaxRule]:
    query = db.query(TaxRule).filter(TaxRule.is_active.is_(True))
    if region:
        query = query.filter(TaxRule.region == region.strip())
    return query.order_by(TaxRule.region, TaxRule.id).all()


def update_tax_rule(db: Session, rule_id: int, changes: dict) -> TaxRule:
    rule = get_tax_rule(db, rule_id)
    if changes.get("region"):
        changes["region"] = changes["region"].strip()
    if changes.get("rate") is not None:
        changes["rate"] = round_money(changes["rate"])
    for field, value in changes.items():
        setattr(rule, field, value)
    db.flush()
    if rule.is_default:
        _clear_other_defaults(db, rule)
    db.commit()
    db.refresh(rule)
    logger.info("tax_rule_updated", tax_rule_id=rule.id, fields=sorted(changes))
    return rule


def delete_tax_rule(db: Session, rule_id: int) -> None:
    rule = get_tax_rule(db, rule_id)
    db.delete(rule)
    db.commit()
    logger.info("tax_rule_deleted", tax_rule_id=rule_id)


# ---------- shipping ----------
def get_shipping_method(db: Session, method_id: int) -> ShippingMethod:
    method = db.get(ShippingMethod, method_id)
    if method is None:
        raise NotFoundError("Shipping method not found")
    return method


def calculate_shipping(
    db: Session,
    method_id: int,
    weight: float,
    region: Optional[str] = None,
    country: Optional[str] = None,
) -> tuple[ShippingQuote, ShippingMethod]:
    method = get_shipping_method(db, method_id)
    quote = compute_shipping(method, weight, _strip(region), _strip(country))
    return quote, method


def _strip(value: Optional[str]) -> Optional[str]:
    return value.strip() if value else value


def _check_shipping_fields(method: ShippingMethod) -> None:
    for tier in method.weight_pricing or ():
        if tier["max_weight"] < tier["min_weight"]:
            raise ValidationError("Weight tier maximum must not be below its minimum")
    if method.rate_type == ShippingRateType.WEIGHT_TIER and not method.weight_pricing:
        raise ValidationError("Weight tier pricing needs at least one tier")


def create_shipping_method(db: Session, data: dict) -> ShippingMethod:
    data = dict(data)
    data["regions"] = [region.strip() for region in data.get("regions") or () if region.strip()]
    method = ShippingMethod(**data)
    _check_shipping_fields(method)
    db.add(method)
    db.commit()
    db.refresh(method)
    logger.info("shipping_method_created", shipping_method_id=method.id, carrier=method.carrier)
    return method


def list_shipping_methods(db: Session, region: Optional[str] = None) -> list[ShippingMethod]:
    """Active methods; with ``region``, only those that list it."""
    methods = db.query(ShippingMethod).filter(ShippingMethod.is_active.is_(True)).order_by(ShippingMethod.id).all()
    if region:
        region = region.strip()
        methods = [method for method in methods if region in (method.regions or ())]
    return methods


def update_shipping_method(db: Session, method_id: int, changes: dict) -> ShippingMethod:
    method = get_shipping_method(db, method_id)
    if changes.get("regions") is not None:
        changes["regions"] = [region.strip() for region in changes["regions"] if region.strip()]
    for field, value in changes.items():
        setattr(method, field, value)
    _check_shipping_fields(method)
    db.commit()
    db.refresh(method)
    logger.info("shipping_method_updated", shipping_method_id=method.id, fields=sorted(changes))
    return method


def delete_shipping_method(db: Session, method_id: int) -> None:
    method = get_shipping_method(db, method_id)
    db.delete(method)
    db.commit()
    logger.info("shipping_method_deleted", shipping_method_id=method_id)
