from datetime import datetime, timedelta, timezone
from typing import Optional
from uuid import UUID, uuid4

import structlog

from core.errors import ConflictError, ValidationError, WriteError
from core.storage import DuplicateKeyError, StorageError

from .models import InviteStats, PointReason, ReferralRecord, ReferralResponse
from .service import PointsService, PointsWriteError

logger = structlog.get_logger(__name__)

RECENT_INVITE_WINDOW = timedelta(days=30)


class InvalidReferralCodeError(ValidationError):
    pass


class SelfReferralError(ConflictError):
    pass


class ReferralAlreadyUsedError(ConflictError):
    pass


class ReferralCreditError(WriteError):
    pass


class ReferralService:
    def __init__(self, points: Optional[PointsService] = None):
        self.points = points or PointsService()
        self.storage = self.points.storage
        self.settings = self.points.settings

    def redeem(self, code: Optional[str], invitee_id: Optional[UUID]) -> ReferralResponse:
        """
        Validate an invite code and credit both parties exactly once.

        Checks run in order and the first failure wins: the code must belong
        to a rider, that rider must not be the invitee, and the
        (code, invitee) pair must not have been redeemed before. The referral
        row and both credits are one storage transaction.
        """
        if not code or not code.strip() or invitee_id is None:
            raise InvalidReferralCodeError("Invite code and invitee are required")
        code = code.strip().upper()

        inviter = self.points.find_rider_by_code(code)
        if inviter is None:
            raise InvalidReferralCodeError("Invalid invite code")
        if inviter.id == invitee_id:
            raise SelfReferralError("You cannot redeem your own invite code")
        self.points.get_rider(invitee_id)

        inviter_points = self.settings.referral_inviter_points
        invitee_points = self.settings.referral_invitee_points
        now = datetime.now(timezone.utc)
        record_data = {
            "id": uuid4(),
            "invite_code": code,
            "inviter_id": inviter.id,
            "invitee_id": invitee_id,
            "created_at": now,
        }

        try:
            with self.storage.transaction():
                self.storage.insert(
                    "referrals", record_data, unique={"code_invitee": (code, invitee_id)}
                )
                self.storage.update("riders", invitee_id, referred_by=inviter.id)
                self.points.credit(
                    inviter.id,
                    inviter_points,
                    PointReason.REFERRAL_INVITER,
                    "Friend invite reward",
                    idempotency_key=f"referral:{code}:{invitee_id}:inviter",
                )
                self.points.credit(
                    invitee_id,
                    invitee_points,
                    PointReason.REFERRAL_INVITEE,
                    "Invite code reward",
                    idempotency_key=f"referral:{code}:{invitee_id}:invitee",
                )
        except DuplicateKeyError:
            raise ReferralAlreadyUsedError("Invite code already used")
        except (PointsWriteError, StorageError) as e:
            logger.error(
                "referral_credit_failed",
                operation="redeem_referral",
                invite_code=code,
                inviter_id=str(inviter.id),
                invitee_id=str(invitee_id),
                error=str(e),
            )
            raise ReferralCreditError("Referral could not be credited") from e

        logger.info(
            "referral_redeemed",
            invite_code=code,
            inviter_id=str(inviter.id),
            invitee_id=str(invitee_id),
            inviter_points=inviter_points,
            invitee_points=invitee_points,
        )
        return ReferralResponse(
            referral=ReferralRecord(**record_data),
            inviter_points=inviter_points,
            invitee_points=invitee_points,
            message="Referral redeemed successfully",
        )

    def invite_stats(self, user_id: UUID) -> InviteStats:
        self.points.get_rider(user_id)
        invites = self.storage.select("referrals", lambda r: r["inviter_id"] == user_id)
        cutoff = datetime.now(timezone.utc) - RECENT_INVITE_WINDOW
        return InviteStats(
            user_id=user_id,
            total_invites=len(invites),
            recent_invites=sum(1 for r in invites if r["created_at"] >= cutoff),
        )
