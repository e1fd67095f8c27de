# plantstore/models.py
import enum

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from plantstore.auth.utils import verify_password
from plantstore.database import Base
from plantstore.pricing.rules import CouponType, ShippingRateType, TaxType
from plantstore.time_utils import utcnow


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class UserRole(str, enum.Enum):
    USER = "user"
    ADMIN = "admin"
    SELLER = "seller"


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(50), nullable=False)
    email = Column(String, unique=True, index=True, nullable=False)
    password_hash = Column(String, nullable=True)
    role = Column(Enum(UserRole, native_enum=False, length=16, values_callable=_enum_values), nullable=False, default=UserRole.USER, index=True)
    is_verified = Column(Boolean, nullable=False, default=False)

    # lockout
    login_attempts = Column(Integer, nullable=False, default=0)
    locked_until = Column(DateTime(timezone=True), nullable=True)

    # global invalidation points for issued tokens
    last_login = Column(DateTime(timezone=True), nullable=True)
    last_logout = Column(DateTime(timezone=True), nullable=True)
    password_changed_at = Column(DateTime(timezone=True), nullable=True)

    # sha256 of the emailed values
    verification_token = Column(String, nullable=True, index=True)
    reset_password_token = Column(String, nullable=True, index=True)
    reset_password_expires = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    sessions = relationship("UserSession", back_populates="user", cascade="all, delete-orphan")

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    def match_password(self, candidate: str) -> bool:
        if not self.password_hash:
            return False
        return verify_password(candidate, self.password_hash)


class UserSession(Base):
    __tablename__ = "user_sessions"
    __table_args__ = (UniqueConstraint("user_id", "jti", name="uq_user_sessions_user_jti"),)

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    jti = Column(String(64), nullable=False, index=True)
    user_agent = Column(String, nullable=True)
    ip = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    last_used_at = Column(DateTime(timezone=True), nullable=True)
    revoked = Column(Boolean, nullable=False, default=False)

    user = relationship("User", back_populates="sessions")


class Coupon(Base):
    __tablename__ = "coupons"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String(20), unique=True, index=True, nullable=False)
    type = Column(Enum(CouponType, native_enum=False, length=16, values_callable=_enum_values), nullable=False, default=CouponType.FIXED)
    value = Column(Float, nullable=False)
    description = Column(Text, nullable=True)
    minimum_purchase = Column(Float, nullable=False, default=0)
    max_discount = Column(Float, nullable=True)
    valid_from = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    valid_until = Column(DateTime(timezone=True), nullable=True)
    max_usage = Column(Integer, nullable=True)
    used_count = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class TaxRule(Base):
    __tablename__ = "tax_rules"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    region = Column(String, nullable=False, index=True)
    state = Column(String, nullable=True, index=True)
    rate = Column(Float, nullable=False)
    type = Column(Enum(TaxType, native_enum=False, length=16, values_callable=_enum_values), nullable=False, default=TaxType.PERCENTAGE)
    is_default = Column(Boolean, nullable=False, default=False)
    threshold = Column(Float, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    exemption_rules = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class ShippingMethod(Base):
    __tablename__ = "shipping_methods"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    carrier = Column(String, nullable=False)
    estimated_days = Column(String, nullable=True)
    base_rate = Column(Float, nullable=False, default=0)
    rate_type = Column(Enum(ShippingRateType, native_enum=False, length=16, values_callable=_enum_values), nullable=False, default=ShippingRateType.PER_KG)
    rate_per_kg = Column(Float, nullable=False, default=0)
    max_weight = Column(Float, nullable=True)
    # empty list ships to every region
    regions = Column(JSON, nullable=False, default=list)
    # [{"countries": [...], "additional_cost": float}]
    zone_pricing = Column(JSON, nullable=False, default=list)
    # [{"min_weight": float, "max_weight": float, "additional_cost": float}]
    weight_pricing = Column(JSON, nullable=False, default=list)
    is_active = Column(Boolean, nullable=False, default=True, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
