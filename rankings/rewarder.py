from datetime import date, datetime, timezone
from typing import Iterable, Optional
from uuid import UUID, uuid4

import structlog

from core.config import Settings
from core.errors import NotFoundError
from core.storage import DuplicateKeyError, InMemoryStorage
from points.models import PointReason
from points.service import IdempotencyConflictError, PointsService, PointsWriteError

from .aggregator import Aggregator
from .models import (
    PlannedReward,
    RankingPeriod,
    RankingQuery,
    SettlementResult,
    SettlementStatus,
    UserSettlementResult,
)
from .periods import previous_business_date

logger = structlog.get_logger(__name__)

# rank -> points; ranks 4..10 share the last tier, anything lower earns nothing
RANK_REWARDS = {1: 500, 2: 400, 3: 300}
TOP_TIER_POINTS = 100
TOP_TIER_LAST_RANK = 10


class SettlementNotFoundError(NotFoundError):
    pass


def reward_points(rank: int) -> int:
    if rank in RANK_REWARDS:
        return RANK_REWARDS[rank]
    if 4 <= rank <= TOP_TIER_LAST_RANK:
        return TOP_TIER_POINTS
    return 0


def reward_description(rank: int) -> str:
    if rank <= 3:
        return f"Daily ranking #{rank}"
    return f"Daily top {TOP_TIER_LAST_RANK} (#{rank})"


def settlement_key(day: date, user_id: UUID) -> str:
    return f"daily-rank:{day.isoformat()}:{user_id}"


class DailyRewarder:
    """
    Turns one business day's leaderboard into point credits, once per (user, day).

    The per-day settlement marker is written insert-if-absent before any
    credit, so a second trigger for the same day stops there. Each credit
    carries a per-user idempotency key, which makes retries of individual
    users safe.
    """

    def __init__(
        self,
        points: Optional[PointsService] = None,
        aggregator: Optional[Aggregator] = None,
        settings: Optional[Settings] = None,
    ):
        self.points = points or PointsService()
        self.storage: InMemoryStorage = self.points.storage
        self.settings = settings or self.points.settings
        self.aggregator = aggregator or Aggregator(self.storage, settings=self.settings)

    def plan(self, day: date) -> list[PlannedReward]:
        ranking = self.aggregator.rank(
            RankingQuery(period=RankingPeriod.DAY, reference_date=day, limit=self.settings.daily_reward_top_n),
            use_cache=False,
        )
        planned = []
        for entry in ranking.entries:
            points = reward_points(entry.rank)
            if points > 0:
                planned.append(PlannedReward(user_id=entry.user_id, rank=entry.rank, points=points))
        return planned

    def settle(self, day: Optional[date] = None) -> SettlementResult:
        day = day or previous_business_date(settings=self.settings)
        log = logger.bind(operation="daily_settlement", business_date=day.isoformat())
        log.info("settlement_started")

        planned = self.plan(day)
        if not planned:
            log.info("settlement_no_rankings")
            return SettlementResult(day=day)

        try:
            self.storage.insert(
                "settlements",
                {
                    "id": uuid4(),
                    "business_date": day,
                    "rewards": [p.model_dump() for p in planned],
                    "created_at": datetime.now(timezone.utc),
                },
                unique={"business_date": (day,)},
            )
        except DuplicateKeyError:
            log.info("settlement_already_settled")
            return SettlementResult(day=day, already_settled=True)

        result = SettlementResult(day=day, results=[self._credit(day, p) for p in planned])
        log.info(
            "settlement_finished",
            credited=result.credited_count,
            skipped=result.skipped_count,
            failed=result.failed_count,
        )
        return result

    def retry(self, day: date, user_ids: Optional[Iterable[UUID]] = None) -> SettlementResult:
        """Re-run crediting from the stored plan; users already paid come back as skipped."""
        marker = self.storage.find("settlements", "business_date", (day,))
        if not marker:
            raise SettlementNotFoundError(f"No settlement recorded for {day.isoformat()}")

        planned = [PlannedReward(**r) for r in marker["rewards"]]
        if user_ids is not None:
            wanted = set(user_ids)
            planned = [p for p in planned if p.user_id in wanted]

        result = SettlementResult(day=day, already_settled=True, results=[self._credit(day, p) for p in planned])
        logger.info(
            "settlement_retried",
            business_date=day.isoformat(),
            credited=result.credited_count,
            skipped=result.skipped_count,
            failed=result.failed_count,
        )
        return result

    def _credit(self, day: date, planned: PlannedReward) -> UserSettlementResult:
        outcome = UserSettlementResult(
            user_id=planned.user_id,
            rank=planned.rank,
            points=planned.points,
            status=SettlementStatus.CREDITED,
        )
        try:
            self.points.credit(
                planned.user_id,
                planned.points,
                PointReason.DAILY_RANK_REWARD,
                reward_description(planned.rank),
                idempotency_key=settlement_key(day, planned.user_id),
            )
            logger.info(
                "rank_reward_credited",
                business_date=day.isoformat(),
                user_id=str(planned.user_id),
                rank=planned.rank,
                points=planned.points,
            )
        except IdempotencyConflictError:
            outcome.status = SettlementStatus.SKIPPED
        except PointsWriteError as e:
            logger.warning(
                "settlement_credit_failed",
                operation="daily_settlement",
                business_date=day.isoformat(),
                user_id=str(planned.user_id),
                rank=planned.rank,
                points=planned.points,
                error=str(e.__cause__ or e),
            )
            outcome.status = SettlementStatus.FAILED
            outcome.error = "Point credit failed"
        return outcome
