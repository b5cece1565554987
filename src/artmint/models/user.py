"""User, wallet, and ledger models."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    String,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from artmint.models.base import Base, utcnow

if TYPE_CHECKING:
    from artmint.models.art import Asset, UserAsset
    from artmint.models.marketplace import Offer


class User(Base):
    __tablename__ = "users"

    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    email: Mapped[str] = mapped_column(String(320), unique=True, nullable=False)
    display_name: Mapped[str] = mapped_column(String(80), nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(String(20), default="buyer", nullable=False)
    token_version: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )

    __table_args__ = (
        CheckConstraint("role IN ('buyer', 'artist')", name="ck_users_role"),
    )

    # Relationships
    wallet: Mapped[Optional[Wallet]] = relationship(
        back_populates="user", uselist=False, lazy="selectin"
    )
    created_assets: Mapped[list[Asset]] = relationship(
        foreign_keys="Asset.artist_id", back_populates="artist", lazy="noload"
    )
    owned_assets: Mapped[list[Asset]] = relationship(
        foreign_keys="Asset.current_owner_id",
        back_populates="current_owner",
        lazy="noload",
    )
    collection: Mapped[list[UserAsset]] = relationship(
        back_populates="user", lazy="noload"
    )
    offers: Mapped[list[Offer]] = relationship(
        foreign_keys="Offer.buyer_id", back_populates="buyer", lazy="noload"
    )

    @property
    def is_artist(self) -> bool:
        return self.role == "artist"


class Wallet(Base):
    __tablename__ = "wallets"

    wallet_id: Mapped[str] = mapped_column(String(80), primary_key=True)
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.user_id"), unique=True, nullable=False
    )
    balance_cents: Mapped[int] = mapped_column(BigInteger, default=0, nullable=False)
    version: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )

    user: Mapped[User] = relationship(back_populates="wallet")
    transactions: Mapped[list[WalletTransaction]] = relationship(
        back_populates="wallet",
        order_by="WalletTransaction.created_at",
        lazy="noload",
    )


class WalletTransaction(Base):
    """Append-only ledger row; a trigger rejects UPDATE."""

    __tablename__ = "wallet_transactions"

    transaction_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    wallet_id: Mapped[str] = mapped_column(
        String(80), ForeignKey("wallets.wallet_id", ondelete="CASCADE"), nullable=False
    )
    txn_type: Mapped[str] = mapped_column(String(10), nullable=False)
    amount_cents: Mapped[int] = mapped_column(BigInteger, nullable=False)
    asset_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("assets.asset_id"), nullable=True
    )
    payment_id: Mapped[Optional[str]] = mapped_column(
        String(255), unique=True, nullable=True
    )
    description: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )

    __table_args__ = (
        CheckConstraint("txn_type IN ('DEBIT', 'CREDIT')", name="ck_wallet_txn_type"),
        CheckConstraint("amount_cents > 0", name="ck_wallet_txn_amount_positive"),
    )

    wallet: Mapped[Wallet] = relationship(back_populates="transactions")
