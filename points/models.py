from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID
from pydantic import BaseModel, Field, ConfigDict


class PointReason(str, Enum):
    SIGNUP_BONUS = "signup_bonus"
    REFERRAL_INVITER = "referral_inviter"
    REFERRAL_INVITEE = "referral_invitee"
    DAILY_RANK_REWARD = "daily_rank_reward"
    MANUAL_ADMIN_ADJUSTMENT = "manual_admin_adjustment"


class Vehicle(str, Enum):
    MOTORCYCLE = "motorcycle"
    BICYCLE = "bicycle"
    CAR = "car"
    WALK = "walk"


class RegisterRiderRequest(BaseModel):
    nickname: str = Field(..., min_length=1, max_length=30)
    region: str = Field(..., min_length=1)
    vehicle: Vehicle = Vehicle.MOTORCYCLE

    model_config = ConfigDict(json_schema_extra={
        "example": {"nickname": "fastrider", "region": "seoul", "vehicle": "motorcycle"}
    })


class Rider(BaseModel):
    id: UUID
    nickname: str
    region: str
    vehicle: Vehicle
    referral_code: str
    referred_by: Optional[UUID] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class AddPointsRequest(BaseModel):
    user_id: UUID
    amount: int = Field(..., description="Signed point delta, never zero")
    reason: PointReason
    description: str = Field(..., min_length=1)
    idempotency_key: Optional[str] = Field(default=None, description="Unique key to prevent duplicates")

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "user_id": "550e8400-e29b-41d4-a716-446655440000",
            "amount": 200,
            "reason": "manual_admin_adjustment",
            "description": "Compensation for missed upload",
        }
    })


class PointLedgerEntry(BaseModel):
    id: UUID
    user_id: UUID
    amount: int
    reason: PointReason
    description: str
    idempotency_key: Optional[str] = None
    balance_after: int
    created_at: datetime

    model_config = ConfigDict(from_attributes=True, frozen=True)


class UserBalance(BaseModel):
    user_id: UUID
    points: int
    total_entries: int
    last_transaction_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class BalanceAudit(BaseModel):
    user_id: UUID
    balance_points: int
    ledger_points: int
    consistent: bool


class LedgerHistoryResponse(BaseModel):
    user_id: UUID
    entries: list[PointLedgerEntry]
    total_count: int
    current_balance: int


class PointsResponse(BaseModel):
    entry: PointLedgerEntry
    balance: UserBalance
    message: str


class RedeemReferralRequest(BaseModel):
    code: str = Field(..., description="Inviter's referral code")
    invitee_id: UUID


class ReferralRecord(BaseModel):
    id: UUID
    invite_code: str
    inviter_id: UUID
    invitee_id: UUID
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ReferralResponse(BaseModel):
    referral: ReferralRecord
    inviter_points: int
    invitee_points: int
    message: str


class InviteStats(BaseModel):
    user_id: UUID
    total_invites: int
    recent_invites: int
