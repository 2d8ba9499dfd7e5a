from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Float, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import relationship

from .db import Base

ROLES = ("customer", "artisan")


def utcnow():
    return datetime.now(timezone.utc)


class Account(Base):
    """Identity record: credentials only, no profile data."""

    __tablename__ = "accounts"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, nullable=False, unique=True, index=True)
    password_hash = Column(String, nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    sessions = relationship("AuthSession", back_populates="account", cascade="all, delete-orphan")


class AuthSession(Base):
    __tablename__ = "auth_sessions"

    id = Column(String, primary_key=True)
    account_id = Column(Integer, ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False, index=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    revoked_at = Column(DateTime, nullable=True)

    account = relationship("Account", back_populates="sessions")


class User(Base):
    """Public profile, keyed by the account id."""

    __tablename__ = "users"

    id = Column(Integer, ForeignKey("accounts.id", ondelete="CASCADE"), primary_key=True)
    name = Column(String, nullable=False, index=True)
    # 'customer' or 'artisan'; never changed after signup
    role = Column(String, nullable=False, default="customer", index=True)
    location = Column(String, nullable=False, default="")
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    products = relationship("Product", back_populates="artisan", cascade="all, delete-orphan")

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None


class Product(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    artisan_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String, nullable=False, index=True)
    description = Column(Text, nullable=False, default="")
    price = Column(Numeric(10, 2), nullable=False)
    photo_url = Column(String, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    artisan = relationship("User", back_populates="products")
    orders = relationship("Order", back_populates="product", cascade="all, delete-orphan")


class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)
    customer_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    # copied from the product when the order is placed
    artisan_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(String, nullable=False, default="pending", index=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    product = relationship("Product", back_populates="orders")
    customer = relationship("User", foreign_keys=[customer_id])
    artisan = relationship("User", foreign_keys=[artisan_id])
