"""ORM models package -- re-exports all models and the Base class."""

from artmint.models.base import Base
from artmint.models.user import User, Wallet, WalletTransaction
from artmint.models.art import Asset, OwnershipHistory, UserAsset
from artmint.models.marketplace import Offer, Settlement, ProcessedWebhook

__all__ = [
    "Base",
    "User",
    "Wallet",
    "WalletTransaction",
    "Asset",
    "OwnershipHistory",
    "UserAsset",
    "Offer",
    "Settlement",
    "ProcessedWebhook",
]
