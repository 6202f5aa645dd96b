"""
Points ledger and referral rewards for riders

This package provides:
- Immutable, append-only point ledger entries
- A denormalized balance that always equals the ledger sum
- Rider registration with signup bonus and referral codes
- Referral redemption crediting inviter and invitee exactly once
"""

from .models import (
    PointReason,
    PointLedgerEntry,
    UserBalance,
    Rider,
    ReferralRecord,
)
from .service import PointsService
from .referrals import ReferralService

__all__ = [
    "PointReason",
    "PointLedgerEntry",
    "UserBalance",
    "Rider",
    "ReferralRecord",
    "PointsService",
    "ReferralService",
]
