from datetime import date, datetime
from enum import Enum
from typing import Optional
from uuid import UUID
from pydantic import BaseModel, Field, ConfigDict, computed_field

from points.models import Vehicle


class Platform(str, Enum):
    BAEMIN_CONNECT = "baemin_connect"
    COUPANG_EATS = "coupang_eats"


class VerificationStatus(str, Enum):
    UNVERIFIED = "unverified"
    VERIFIED = "verified"
    REJECTED = "rejected"


class RankingPeriod(str, Enum):
    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    ALL = "all"


class SubmitRecordRequest(BaseModel):
    user_id: UUID
    platform: Platform
    amount: int = Field(..., ge=0, description="Earnings in the smallest currency unit")
    delivery_count: int = Field(..., ge=0)
    recorded_at: Optional[datetime] = Field(
        default=None, description="When the earnings were recorded; defaults to now"
    )

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "user_id": "550e8400-e29b-41d4-a716-446655440000",
            "platform": "coupang_eats",
            "amount": 152000,
            "delivery_count": 31,
        }
    })


class VerifyRecordRequest(BaseModel):
    status: VerificationStatus
    performed_by: Optional[str] = None


class DeliveryRecord(BaseModel):
    id: UUID
    user_id: UUID
    business_date: date
    platform: Platform
    amount: int
    delivery_count: int
    status: VerificationStatus
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)

    @property
    def is_verified(self) -> bool:
        return self.status == VerificationStatus.VERIFIED


class RankingQuery(BaseModel):
    period: RankingPeriod = RankingPeriod.DAY
    reference_date: Optional[date] = None
    region: Optional[str] = None
    vehicle: Optional[Vehicle] = None
    platform: Optional[Platform] = None
    limit: Optional[int] = Field(default=None, ge=1)

    model_config = ConfigDict(frozen=True)


class RankingEntry(BaseModel):
    rank: int
    user_id: UUID
    nickname: str
    region: str
    total_amount: int
    total_deliveries: int


class RankingResponse(BaseModel):
    period: RankingPeriod
    start: Optional[date] = None
    end: Optional[date] = None
    entries: list[RankingEntry]


class UserRanks(BaseModel):
    user_id: UUID
    daily_rank: Optional[int] = None
    weekly_rank: Optional[int] = None
    monthly_rank: Optional[int] = None


class PlannedReward(BaseModel):
    user_id: UUID
    rank: int
    points: int


class SettlementStatus(str, Enum):
    CREDITED = "credited"
    SKIPPED = "skipped"
    FAILED = "failed"


class UserSettlementResult(BaseModel):
    user_id: UUID
    rank: int
    points: int
    status: SettlementStatus
    error: Optional[str] = None


class SettlementResult(BaseModel):
    day: date
    already_settled: bool = False
    results: list[UserSettlementResult] = Field(default_factory=list)

    def _count(self, status: SettlementStatus) -> int:
        return sum(1 for r in self.results if r.status == status)

    @computed_field
    @property
    def credited_count(self) -> int:
        return self._count(SettlementStatus.CREDITED)

    @computed_field
    @property
    def skipped_count(self) -> int:
        return self._count(SettlementStatus.SKIPPED)

    @computed_field
    @property
    def failed_count(self) -> int:
        return self._count(SettlementStatus.FAILED)

    @property
    def failed_user_ids(self) -> list[UUID]:
        return [r.user_id for r in self.results if r.status == SettlementStatus.FAILED]


class RetrySettlementRequest(BaseModel):
    user_ids: Optional[list[UUID]] = Field(default=None, description="Limit the retry to these users")
