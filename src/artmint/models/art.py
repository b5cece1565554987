"""Asset, provenance, and collection index models."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from artmint.models.base import Base, utcnow

if TYPE_CHECKING:
    from artmint.models.marketplace import Offer
    from artmint.models.user import User


class Asset(Base):
    __tablename__ = "assets"

    asset_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    title: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    tags: Mapped[list] = mapped_column(JSONB, default=list, nullable=False)
    category: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    file_name: Mapped[str] = mapped_column(String(255), nullable=False)
    content_type: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    file_size: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    file_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    cms_asset_uid: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    artist_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.user_id"), nullable=False
    )
    price_cents: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    currency: Mapped[str] = mapped_column(String(3), default="USD", nullable=False)
    status: Mapped[str] = mapped_column(String(10), default="sale", nullable=False)
    current_owner_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.user_id"), nullable=False
    )
    owner_transaction_id: Mapped[str] = mapped_column(
        String(64), default="CREATOR", nullable=False
    )
    version: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('sale', 'resale', 'sold')", name="ck_assets_status"
        ),
        CheckConstraint(
            "price_cents IS NULL OR (price_cents > 0 AND price_cents <= 100000000)",
            name="ck_assets_price_range",
        ),
    )

    # Relationships
    artist: Mapped[User] = relationship(
        foreign_keys=[artist_id], back_populates="created_assets"
    )
    current_owner: Mapped[User] = relationship(
        foreign_keys=[current_owner_id], back_populates="owned_assets"
    )
    ownership_history: Mapped[list[OwnershipHistory]] = relationship(
        back_populates="asset", order_by="OwnershipHistory.transferred_at"
    )
    offers: Mapped[list[Offer]] = relationship(back_populates="asset")


class OwnershipHistory(Base):
    __tablename__ = "ownership_history"

    record_id: Mapped[int] = mapped_column(
        BigInteger, primary_key=True, autoincrement=True
    )
    asset_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("assets.asset_id"), nullable=False
    )
    from_user_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.user_id"), nullable=True
    )
    to_user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.user_id"), nullable=False
    )
    transfer_type: Mapped[str] = mapped_column(String(20), nullable=False)
    transaction_id: Mapped[str] = mapped_column(String(64), nullable=False)
    payment_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    price_cents: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    transferred_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )

    __table_args__ = (
        CheckConstraint(
            "transfer_type IN ('creation', 'purchase')",
            name="ck_ownership_transfer_type",
        ),
    )

    asset: Mapped[Asset] = relationship(back_populates="ownership_history")


class UserAsset(Base):
    """One row per (user, asset) in a user's collection."""

    __tablename__ = "user_assets"

    entry_id: Mapped[int] = mapped_column(
        BigInteger, primary_key=True, autoincrement=True
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.user_id"), nullable=False
    )
    asset_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("assets.asset_id"), nullable=False
    )
    transaction_id: Mapped[str] = mapped_column(String(64), nullable=False)
    purchase_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    price_cents: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    currency: Mapped[str] = mapped_column(String(3), default="USD", nullable=False)
    added_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )

    __table_args__ = (
        UniqueConstraint("user_id", "asset_id", name="uq_user_assets_user_asset"),
    )

    user: Mapped[User] = relationship(back_populates="collection")
