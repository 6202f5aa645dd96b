from datetime import datetime, timezone
from typing import Optional
from uuid import UUID, uuid4

import structlog

from core.config import Settings, get_settings
from core.errors import NotFoundError, WriteError
from core.storage import InMemoryStorage, StorageError
from points.service import RiderNotFoundError

from .aggregator import RankingCache
from .models import DeliveryRecord, SubmitRecordRequest, VerificationStatus
from .periods import business_date

logger = structlog.get_logger(__name__)


class RecordNotFoundError(NotFoundError):
    pass


class RecordWriteError(WriteError):
    pass


class DeliveryRecordService:
    """Rider submissions and admin verification of daily earnings."""

    def __init__(
        self,
        storage: Optional[InMemoryStorage] = None,
        cache: Optional[RankingCache] = None,
        settings: Optional[Settings] = None,
    ):
        self.storage = storage or InMemoryStorage()
        self.cache = cache
        self.settings = settings or get_settings()

    def submit(self, request: SubmitRecordRequest) -> DeliveryRecord:
        """Store a submission; a resubmission for the same user, platform and day replaces it."""
        if not self.storage.get("riders", request.user_id):
            raise RiderNotFoundError(f"Rider {request.user_id} not found")

        now = datetime.now(timezone.utc)
        day = business_date(request.recorded_at or now, self.settings)
        row = {
            "id": uuid4(),
            "user_id": request.user_id,
            "business_date": day,
            "platform": request.platform,
            "amount": request.amount,
            "delivery_count": request.delivery_count,
            "status": VerificationStatus.UNVERIFIED,
            "created_at": now,
            "updated_at": now,
        }
        try:
            stored, created = self.storage.upsert(
                "delivery_records", row, "user_platform_date", (request.user_id, request.platform, day)
            )
        except StorageError as e:
            logger.error(
                "record_submit_failed",
                user_id=str(request.user_id),
                business_date=day.isoformat(),
                platform=request.platform.value,
                error=str(e),
            )
            raise RecordWriteError("Could not save delivery record") from e

        self._invalidate(stored)
        logger.info(
            "record_submitted",
            user_id=str(request.user_id),
            business_date=day.isoformat(),
            platform=request.platform.value,
            overwritten=not created,
        )
        return DeliveryRecord(**stored)

    def get(self, record_id: UUID) -> DeliveryRecord:
        row = self.storage.get("delivery_records", record_id)
        if not row:
            raise RecordNotFoundError(f"Delivery record {record_id} not found")
        return DeliveryRecord(**row)

    def set_status(
        self, record_id: UUID, status: VerificationStatus, performed_by: Optional[str] = None
    ) -> DeliveryRecord:
        row = self.storage.update(
            "delivery_records", record_id, status=status, updated_at=datetime.now(timezone.utc)
        )
        if not row:
            raise RecordNotFoundError(f"Delivery record {record_id} not found")

        self._invalidate(row)
        logger.info(
            "record_status_changed",
            record_id=str(record_id),
            user_id=str(row["user_id"]),
            status=status.value,
            performed_by=performed_by,
        )
        return DeliveryRecord(**row)

    def delete(self, record_id: UUID, performed_by: Optional[str] = None) -> DeliveryRecord:
        row = self.storage.delete("delivery_records", record_id)
        if not row:
            raise RecordNotFoundError(f"Delivery record {record_id} not found")

        self._invalidate(row)
        logger.info("record_deleted", record_id=str(record_id), performed_by=performed_by)
        return DeliveryRecord(**row)

    def list_for_user(self, user_id: UUID, limit: int = 20) -> list[DeliveryRecord]:
        rows = self.storage.select("delivery_records", lambda r: r["user_id"] == user_id)
        rows.sort(key=lambda r: (r["business_date"], r["updated_at"]), reverse=True)
        return [DeliveryRecord(**r) for r in rows[:limit]]

    def _invalidate(self, row: dict) -> None:
        if self.cache is not None:
            self.cache.invalidate(row["business_date"])
