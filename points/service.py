import secrets
import string
from datetime import datetime, timezone
from typing import Optional
from uuid import UUID, uuid4

import structlog

from core.config import Settings, get_settings
from core.errors import ConflictError, NotFoundError, ValidationError, WriteError
from core.storage import (
    CheckViolationError,
    DuplicateKeyError,
    InMemoryStorage,
    StorageError,
)

from .models import (
    AddPointsRequest,
    BalanceAudit,
    LedgerHistoryResponse,
    PointLedgerEntry,
    PointReason,
    PointsResponse,
    RegisterRiderRequest,
    Rider,
    UserBalance,
)

logger = structlog.get_logger(__name__)

REFERRAL_CODE_ALPHABET = string.ascii_uppercase + string.digits
REFERRAL_CODE_LENGTH = 6
MAX_CODE_ATTEMPTS = 10


class InvalidPointsRequestError(ValidationError):
    pass


class RiderNotFoundError(NotFoundError):
    pass


class IdempotencyConflictError(ConflictError):
    pass


class InsufficientPointsError(ConflictError):
    pass


class PointsWriteError(WriteError):
    pass


def generate_referral_code() -> str:
    return "".join(secrets.choice(REFERRAL_CODE_ALPHABET) for _ in range(REFERRAL_CODE_LENGTH))


class PointsService:
    def __init__(self, storage: Optional[InMemoryStorage] = None, settings: Optional[Settings] = None):
        self.storage = storage or InMemoryStorage()
        self.settings = settings or get_settings()

    def register_rider(self, request: RegisterRiderRequest) -> Rider:
        now = datetime.now(timezone.utc)
        rider_id = uuid4()

        with self.storage.transaction():
            for _ in range(MAX_CODE_ATTEMPTS):
                code = generate_referral_code()
                try:
                    row = self.storage.insert(
                        "riders",
                        {
                            "id": rider_id,
                            "nickname": request.nickname,
                            "region": request.region,
                            "vehicle": request.vehicle,
                            "referral_code": code,
                            "referred_by": None,
                            "created_at": now,
                        },
                        unique={"referral_code": (code,)},
                    )
                    break
                except DuplicateKeyError:
                    continue
            else:
                raise PointsWriteError("Could not allocate a unique referral code")

            if self.settings.signup_bonus > 0:
                self.credit(
                    rider_id,
                    self.settings.signup_bonus,
                    PointReason.SIGNUP_BONUS,
                    "Signup bonus",
                    idempotency_key=f"signup:{rider_id}",
                )

        logger.info(
            "rider_registered",
            user_id=str(rider_id),
            region=request.region,
            signup_bonus=self.settings.signup_bonus,
        )
        return Rider(**row)

    def get_rider(self, user_id: UUID) -> Rider:
        row = self.storage.get("riders", user_id)
        if not row:
            raise RiderNotFoundError(f"Rider {user_id} not found")
        return Rider(**row)

    def find_rider_by_code(self, code: str) -> Optional[Rider]:
        row = self.storage.find("riders", "referral_code", (code.strip().upper(),))
        return Rider(**row) if row else None

    def credit(
        self,
        user_id: UUID,
        amount: int,
        reason: PointReason,
        description: str,
        idempotency_key: Optional[str] = None,
        allow_negative_balance: bool = True,
    ) -> PointLedgerEntry:
        """
        Append one ledger entry and move the balance with it.

        Every point mutation in the service goes through here so the balance
        always equals the sum of the user's ledger entries.

        Callers may run it inside a storage transaction that later rolls back,
        so the success line is debug-level and callers log once committed.
        """
        entry_data = {
            "id": uuid4(),
            "user_id": user_id,
            "amount": amount,
            "reason": reason,
            "description": description,
            "idempotency_key": idempotency_key,
            "created_at": datetime.now(timezone.utc),
        }
        try:
            stored = self.storage.append_ledger_entry(
                entry_data, min_balance=None if allow_negative_balance else 0
            )
        except DuplicateKeyError:
            raise IdempotencyConflictError(f"Points already granted for key {idempotency_key}")
        except CheckViolationError as e:
            raise InsufficientPointsError(str(e))
        except StorageError as e:
            logger.error(
                "points_credit_failed",
                user_id=str(user_id),
                amount=amount,
                reason=reason.value,
                idempotency_key=idempotency_key,
                error=str(e),
            )
            raise PointsWriteError(f"Failed to write points for {user_id}") from e

        logger.debug(
            "points_credited",
            user_id=str(user_id),
            amount=amount,
            reason=reason.value,
            balance_after=stored["balance_after"],
        )
        return PointLedgerEntry(**stored)

    def add_points(self, request: AddPointsRequest) -> PointsResponse:
        if request.amount == 0:
            raise InvalidPointsRequestError("Point amount must be non-zero")
        self.get_rider(request.user_id)

        entry = self.credit(
            request.user_id,
            request.amount,
            request.reason,
            request.description,
            idempotency_key=request.idempotency_key,
            allow_negative_balance=False,
        )
        logger.info(
            "points_added",
            user_id=str(request.user_id),
            amount=entry.amount,
            reason=entry.reason.value,
            balance_after=entry.balance_after,
        )
        sign = "+" if entry.amount > 0 else ""
        return PointsResponse(
            entry=entry,
            balance=self.get_balance(request.user_id),
            message=f"{entry.description} {sign}{entry.amount}P",
        )

    def get_balance(self, user_id: UUID) -> UserBalance:
        row = self.storage.get("balances", user_id)
        if not row:
            return UserBalance(user_id=user_id, points=0, total_entries=0)
        return UserBalance(**row)

    def get_ledger_history(self, user_id: UUID, limit: int = 50, offset: int = 0) -> LedgerHistoryResponse:
        all_entries = [
            PointLedgerEntry(**e)
            for e in self.storage.select("ledger_entries", lambda e: e["user_id"] == user_id)
        ]
        all_entries.reverse()
        all_entries.sort(key=lambda e: e.created_at, reverse=True)
        paginated = all_entries[offset:offset + limit]

        return LedgerHistoryResponse(
            user_id=user_id,
            entries=paginated,
            total_count=len(all_entries),
            current_balance=self.get_balance(user_id).points,
        )

    def audit_balance(self, user_id: UUID) -> BalanceAudit:
        ledger_points = sum(
            e["amount"] for e in self.storage.select("ledger_entries", lambda e: e["user_id"] == user_id)
        )
        balance_points = self.get_balance(user_id).points
        if balance_points != ledger_points:
            logger.error(
                "balance_mismatch",
                user_id=str(user_id),
                balance_points=balance_points,
                ledger_points=ledger_points,
            )
        return BalanceAudit(
            user_id=user_id,
            balance_points=balance_points,
            ledger_points=ledger_points,
            consistent=balance_points == ledger_points,
        )
