# plantstore/pricing/routes.py
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from plantstore.auth.dependencies import get_current_user, require_admin
from plantstore.database import get_db
from plantstore.pricing import services
from plantstore.schemas import (
    CouponApplyRequest,
    CouponApplyResponse,
    CouponCreate,
    CouponListResponse,
    CouponOut,
    CouponUpdate,
    CouponValidateRequest,
    CouponValidateResponse,
    MessageResponse,
    ShippingCalculateRequest,
    ShippingCalculateResponse,
    ShippingMethodCreate,
    ShippingMethodOut,
    ShippingMethodUpdate,
    TaxCalculateRequest,
    TaxCalculateResponse,
    TaxRuleCreate,
    TaxRuleOut,
    TaxRuleUpdate,
)

coupon_router = APIRouter()
tax_router = APIRouter()
shipping_router = APIRouter()


def _tax_fields(body, **dump_kwargs) -> dict:
    data = body.model_dump(**dump_kwargs)
    if data.get("exemption_rules") is not None:
        # stored as plain JSON
        data["exemption_rules"] = [rule.model_dump(mode="json") for rule in body.exemption_rules]
    return data


# ---------- COUPONS: checkout ----------
@coupon_router.post("/validate", response_model=CouponValidateResponse, dependencies=[Depends(get_current_user)])
def validate_coupon(body: CouponValidateRequest, db: Session = Depends(get_db)):
    quote = services.validate_coupon(db, body.code, body.cart_total)
    return CouponValidateResponse(valid=quote.valid, coupon=quote)


@coupon_router.post("/{coupon_id}/apply", response_model=CouponApplyResponse, dependencies=[Depends(get_current_user)])
def apply_coupon(coupon_id: int, body: CouponApplyRequest, db: Session = Depends(get_db)):
    quote = services.apply_coupon(db, coupon_id, body.cart_total)
    return CouponApplyResponse(success=True, coupon=quote)


# ---------- COUPONS: admin ----------
@coupon_router.post("", response_model=CouponOut, status_code=status.HTTP_201_CREATED, dependencies=[Depends(require_admin)])
def create_coupon(body: CouponCreate, db: Session = Depends(get_db)):
    return services.create_coupon(db, body.model_dump())


@coupon_router.get("", response_model=CouponListResponse, dependencies=[Depends(require_admin)])
def list_coupons(
    is_active: Optional[bool] = Query(default=None, alias="isActive"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    db: Session = Depends(get_db),
):
    coupons, total = services.list_coupons(db, is_active=is_active, page=page, limit=limit)
    return CouponListResponse(coupons=coupons, page=page, limit=limit, total=total)


@coupon_router.get("/{coupon_id}", response_model=CouponOut, dependencies=[Depends(require_admin)])
def get_coupon(coupon_id: int, db: Session = Depends(get_db)):
    return services.get_coupon(db, coupon_id)


@coupon_router.put("/{coupon_id}", response_model=CouponOut, dependencies=[Depends(require_admin)])
def update_coupon(coupon_id: int, body: CouponUpdate, db: Session = Depends(get_db)):
    return services.update_coupon(db, coupon_id, body.model_dump(exclude_unset=True))


@coupon_router.delete("/{coupon_id}", response_model=MessageResponse, dependencies=[Depends(require_admin)])
def delete_coupon(coupon_id: int, db: Session = Depends(get_db)):
    services.delete_coupon(db, coupon_id)
    return MessageResponse(message="Coupon deleted")


# ---------- TAX ----------
@tax_router.post("/calculate", response_model=TaxCalculateResponse)
def calculate_tax(body: TaxCalculateRequest, db: Session = Depends(get_db)):
    return services.calculate_tax(db, body.region, body.subtotal, body.customer_type)


@tax_router.post("", response_model=TaxRuleOut, status_code=status.HTTP_201_CREATED, dependencies=[Depends(require_admin)])
def create_tax_rule(body: TaxRuleCreate, db: Session = Depends(get_db)):
    return services.create_tax_rule(db, _tax_fields(body))


@tax_router.get("", response_model=list[TaxRuleOut], dependencies=[Depends(require_admin)])
def list_tax_rules(region: Optional[str] = None, db: Session = Depends(get_db)):
    return services.list_tax_rules(db, region=region)


@tax_router.get("/{rule_id}", response_model=TaxRuleOut, dependencies=[Depends(require_admin)])
def get_tax_rule(rule_id: int, db: Session = Depends(get_db)):
    return services.get_tax_rule(db, rule_id)


@tax_router.put("/{rule_id}", response_model=TaxRuleOut, dependencies=[Depends(require_admin)])
def update_tax_rule(rule_id: int, body: TaxRuleUpdate, db: Session = Depends(get_db)):
    return services.update_tax_rule(db, rule_id, _tax_fields(body, exclude_unset=True))


@tax_router.delete("/{rule_id}", response_model=MessageResponse, dependencies=[Depends(require_admin)])
def delete_tax_rule(rule_id: int, db: Session = Depends(get_db)):
    services.delete_tax_rule(db, rule_id)
    return MessageResponse(message="Tax rule deleted")


# ---------- SHIPPING: checkout ----------
@shipping_router.get("", response_model=list[ShippingMethodOut])
def list_shipping_methods(region: Optional[str] = None, db: Session = Depends(get_db)):
    return services.list_shipping_methods(db, region=region)


@shipping_router.post("/calculate", response_model=ShippingCalculateResponse)
def calculate_shipping(body: ShippingCalculateRequest, db: Session = Depends(get_db)):
    quote, method = services.calculate_shipping(db, body.method_id, body.weight, body.region, body.country)
    return ShippingCalculateResponse(
        cost=quote.cost,
        base_cost=quote.base_cost,
        zone_cost=quote.zone_cost,
        weight_cost=quote.weight_cost,
        estimated_days=quote.estimated_days,
        method=ShippingMethodOut.model_validate(method),
    )


# ---------- SHIPPING: admin ----------
@shipping_router.post("", response_model=ShippingMethodOut, status_code=status.HTTP_201_CREATED, dependencies=[Depends(require_admin)])
def create_shipping_method(body: ShippingMethodCreate, db: Session = Depends(get_db)):
    return services.create_shipping_method(db, body.model_dump())


@shipping_router.get("/{method_id}", response_model=ShippingMethodOut, dependencies=[Depends(require_admin)])
def get_shipping_method(method_id: int, db: Session = Depends(get_db)):
    return services.get_shipping_method(db, method_id)


@shipping_router.put("/{method_id}", response_model=ShippingMethodOut, dependencies=[Depends(require_admin)])
def update_shipping_method(method_id: int, body: ShippingMethodUpdate, db: Session = Depends(get_db)):
    return services.update_shipping_method(db, method_id, body.model_dump(exclude_unset=True))


@shipping_router.delete("/{method_id}", response_model=MessageResponse, dependencies=[Depends(require_admin)])
def delete_shipping_method(method_id: int, db: Session = Depends(get_db)):
    services.delete_shipping_method(db, method_id)
    return MessageResponse(message="Shipping method removed")
