"""
Rider leaderboards and daily rank rewards

This module provides:
- Delivery record submission with one record per (user, platform, business day)
- Admin verification; only verified records are ranked
- Day/week/month/all-time leaderboards on a 06:00 business-day boundary
- Daily settlement crediting the top ranks exactly once per (user, day)
"""

from .models import (
    Platform,
    VerificationStatus,
    RankingPeriod,
    DeliveryRecord,
    RankingEntry,
    RankingQuery,
    SettlementResult,
)
from .aggregator import Aggregator, RankingCache
from .records import DeliveryRecordService
from .rewarder import DailyRewarder, reward_points

__all__ = [
    "Platform",
    "VerificationStatus",
    "RankingPeriod",
    "DeliveryRecord",
    "RankingEntry",
    "RankingQuery",
    "SettlementResult",
    "Aggregator",
    "RankingCache",
    "DeliveryRecordService",
    "DailyRewarder",
    "reward_points",
]
