# plantstore/schemas.py
from datetime import datetime
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, EmailStr, Field
from pydantic.alias_generators import to_camel

from plantstore.pricing.rules import CouponType, ExemptionCondition, ShippingRateType, TaxType


class ApiModel(BaseModel):
    """camelCase on the wire, snake_case accepted on input."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class MessageResponse(ApiModel):
    message: str


# ---------- auth ----------
class RegisterRequest(ApiModel):
    name: str = Field(min_length=2, max_length=50)
    email: EmailStr
    password: str


class LoginRequest(ApiModel):
    email: EmailStr
    password: str


class AuthResponse(ApiModel):
    id: int
    name: str
    email: EmailStr
    is_admin: bool
    token: str


class SessionOut(ApiModel):
    jti: str
    user_agent: Optional[str] = None
    ip: Optional[str] = None
    created_at: datetime
    last_used_at: Optional[datetime] = None
    revoked: bool


class SessionsResponse(ApiModel):
    sessions: list[SessionOut]


class SessionStats(ApiModel):
    active: int
    revoked: int
    total: int


class ProfileResponse(ApiModel):
    id: int
    name: str
    email: EmailStr
    role: str
    is_admin: bool
    is_verified: bool
    session_stats: SessionStats


class ProfileUpdate(ApiModel):
    name: Optional[str] = Field(default=None, min_length=2, max_length=50)
    email: Optional[EmailStr] = None


class ForgotPasswordRequest(ApiModel):
    email: EmailStr


class ForgotPasswordResponse(ApiModel):
    message: str
    reset_token: Optional[str] = None


class ResetPasswordRequest(ApiModel):
    password: str


class ChangePasswordRequest(ApiModel):
    current_password: str
    new_password: str


# ---------- coupons ----------
class CouponCreate(ApiModel):
    code: str = Field(min_length=3, max_length=20)
    type: CouponType
    value: float
    description: Optional[str] = None
    minimum_purchase: float = Field(default=0, ge=0)
    max_discount: Optional[float] = Field(default=None, ge=0)
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None
    max_usage: Optional[int] = Field(default=None, ge=1)


class CouponUpdate(ApiModel):
    code: Optional[str] = Field(default=None, min_length=3, max_length=20)
    type: Optional[CouponType] = None
    value: Optional[float] = None
    description: Optional[str] = None
    minimum_purchase: Optional[float] = Field(default=None, ge=0)
    max_discount: Optional[float] = Field(default=None, ge=0)
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None
    max_usage: Optional[int] = Field(default=None, ge=1)
    is_active: Optional[bool] = None


class CouponOut(ApiModel):
    id: int
    code: str
    type: CouponType
    value: float
    description: Optional[str] = None
    minimum_purchase: float
    max_discount: Optional[float] = None
    valid_from: datetime
    valid_until: Optional[datetime] = None
    max_usage: Optional[int] = None
    used_count: int
    is_active: bool


class CouponValidateRequest(ApiModel):
    code: str = Field(min_length=1)
    cart_total: float


class CouponApplyRequest(ApiModel):
    cart_total: float


class CouponQuoteOut(ApiModel):
    code: str
    type: CouponType
    value: float
    discount_amount: float
    final_total: float


class CouponValidateResponse(ApiModel):
    valid: bool
    coupon: CouponQuoteOut


class CouponApplyResponse(ApiModel):
    success: bool
    coupon: CouponQuoteOut


# ---------- tax ----------
class ExemptionRule(ApiModel):
    condition: ExemptionCondition
    value: Union[float, str]
    rate: float = Field(ge=0, le=100)


class TaxRuleCreate(ApiModel):
    name: str = Field(min_length=1)
    region: str = Field(min_length=1)
    state: Optional[str] = None
    rate: float = Field(ge=0, le=100)
    type: TaxType = TaxType.PERCENTAGE
    is_default: bool = False
    threshold: Optional[float] = Field(default=None, ge=0)
    exemption_rules: list[ExemptionRule] = Field(default_factory=list)


class TaxRuleUpdate(ApiModel):
    name: Optional[str] = Field(default=None, min_length=1)
    region: Optional[str] = Field(default=None, min_length=1)
    state: Optional[str] = None
    rate: Optional[float] = Field(default=None, ge=0, le=100)
    type: Optional[TaxType] = None
    is_default: Optional[bool] = None
    threshold: Optional[float] = Field(default=None, ge=0)
    exemption_rules: Optional[list[ExemptionRule]] = None
    is_active: Optional[bool] = None


class TaxRuleOut(ApiModel):
    id: int
    name: str
    region: str
    state: Optional[str] = None
    rate: float
    type: TaxType
    is_default: bool
    threshold: Optional[float] = None
    is_active: bool
    exemption_rules: list[ExemptionRule] = Field(default_factory=list)


class TaxCalculateRequest(ApiModel):
    region: str = Field(min_length=1)
    subtotal: float = Field(ge=0)
    customer_type: Optional[str] = None


class TaxCalculateResponse(ApiModel):
    region: str
    tax_rate: float
    taxable_amount: float
    tax_amount: float
    total: float


# ---------- shipping ----------
class ZonePrice(ApiModel):
    countries: list[str] = Field(min_length=1)
    additional_cost: float = Field(ge=0)


class WeightTier(ApiModel):
    min_weight: float = Field(ge=0)
    max_weight: float = Field(ge=0)
    additional_cost: float = Field(ge=0)


class ShippingMethodCreate(ApiModel):
    name: str = Field(min_length=1)
    carrier: str = Field(min_length=1)
    estimated_days: Optional[str] = None
    base_rate: float = Field(default=0, ge=0)
    rate_type: ShippingRateType = ShippingRateType.PER_KG
    rate_per_kg: float = Field(default=0, ge=0)
    max_weight: Optional[float] = Field(default=None, gt=0)
    regions: list[str] = Field(default_factory=list)
    zone_pricing: list[ZonePrice] = Field(default_factory=list)
    weight_pricing: list[WeightTier] = Field(default_factory=list)


class ShippingMethodUpdate(ApiModel):
    name: Optional[str] = Field(default=None, min_length=1)
    carrier: Optional[str] = Field(default=None, min_length=1)
    estimated_days: Optional[str] = None
    base_rate: Optional[float] = Field(default=None, ge=0)
    rate_type: Optional[ShippingRateType] = None
    rate_per_kg: Optional[float] = Field(default=None, ge=0)
    max_weight: Optional[float] = Field(default=None, gt=0)
    regions: Optional[list[str]] = None
    zone_pricing: Optional[list[ZonePrice]] = None
    weight_pricing: Optional[list[WeightTier]] = None
    is_active: Optional[bool] = None


class ShippingMethodOut(ApiModel):
    id: int
    name: str
    carrier: str
    estimated_days: Optional[str] = None
    base_rate: float
    rate_type: ShippingRateType
    rate_per_kg: float
    max_weight: Optional[float] = None
    regions: list[str] = Field(default_factory=list)
    zone_pricing: list[ZonePrice] = Field(default_factory=list)
    weight_pricing: list[WeightTier] = Field(default_factory=list)
    is_active: bool


class ShippingCalculateRequest(ApiModel):
    method_id: int
    # sign is checked by the pricing rules so a negative weight reads "Invalid weight"
    weight: float
    region: Optional[str] = None
    country: Optional[str] = None


class ShippingCalculateResponse(ApiModel):
    cost: float
    base_cost: float
    zone_cost: float
    weight_cost: float
    estimated_days: Optional[str] = None
    method: ShippingMethodOut


# ---------- analytics ----------
class AnalyticsEventIn(ApiModel):
    event: str = Field(min_length=1, max_length=100)
    properties: dict[str, Any] = Field(default_factory=dict)


class TokenResponse(BaseModel):
    """OAuth2 password-flow answer for the interactive docs; field names are fixed by the flow."""

    access_token: str
    token_type: str = "bearer"


class CouponListResponse(ApiModel):
    coupons: list[CouponOut]
    page: int
    limit: int
    total: int


class HealthResponse(ApiModel):
    status: str
    service: str
    version: str
