import threading
from collections import OrderedDict, defaultdict
from datetime import date
from typing import Optional
from uuid import UUID

import structlog

from core.config import Settings, get_settings
from core.errors import RetrievalError
from core.storage import InMemoryStorage, StorageError

from .models import (
    RankingEntry,
    RankingPeriod,
    RankingQuery,
    RankingResponse,
    UserRanks,
    VerificationStatus,
)
from .periods import current_business_date, in_window, period_window

logger = structlog.get_logger(__name__)


class RankingRetrievalError(RetrievalError):
    pass


class RankingCache:
    """
    Computed leaderboards keyed by resolved query, dropped when a record in their window changes.

    Holds at most ``max_entries`` leaderboards and evicts the least recently
    used one first. Every invalidation bumps ``generation``; a leaderboard
    computed from a read that started under an older generation is not stored.
    """

    def __init__(self, max_entries: int = 256):
        self.max_entries = max_entries
        self._entries: OrderedDict[RankingQuery, RankingResponse] = OrderedDict()
        self._generation = 0
        self._lock = threading.Lock()

    @property
    def generation(self) -> int:
        with self._lock:
            return self._generation

    def get(self, query: RankingQuery) -> Optional[RankingResponse]:
        with self._lock:
            response = self._entries.get(query)
            if response is not None:
                self._entries.move_to_end(query)
            return response

    def put(self, query: RankingQuery, response: RankingResponse, generation: Optional[int] = None) -> bool:
        with self._lock:
            if generation is not None and generation != self._generation:
                return False
            self._entries[query] = response
            self._entries.move_to_end(query)
            while len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)
            return True

    def invalidate(self, day: date) -> int:
        with self._lock:
            self._generation += 1
            stale = [q for q, r in self._entries.items() if in_window(day, (r.start, r.end))]
            for query in stale:
                del self._entries[query]
            return len(stale)

    def clear(self) -> None:
        with self._lock:
            self._generation += 1
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class Aggregator:
    def __init__(
        self,
        storage: Optional[InMemoryStorage] = None,
        cache: Optional[RankingCache] = None,
        settings: Optional[Settings] = None,
    ):
        self.storage = storage or InMemoryStorage()
        self.cache = cache if cache is not None else RankingCache()
        self.settings = settings or get_settings()

    def rank(self, query: RankingQuery, use_cache: bool = True) -> RankingResponse:
        """
        Build the leaderboard for one period from verified records.

        Users are ordered by summed amount, then summed delivery count, then
        user id, and receive sequential 1-based ranks. Users whose amounts sum
        to zero are left out. A failed read yields no ranking at all.

        With ``use_cache=False`` the cache is neither read nor written.
        """
        reference = query.reference_date or current_business_date(settings=self.settings)
        query = query.model_copy(update={"reference_date": reference})

        if use_cache:
            cached = self.cache.get(query)
            if cached is not None:
                return cached
        generation = self.cache.generation

        window = period_window(query.period, reference)
        try:
            records = self.storage.select(
                "delivery_records",
                lambda r: r["status"] == VerificationStatus.VERIFIED
                and in_window(r["business_date"], window)
                and (query.platform is None or r["platform"] == query.platform),
            )
            riders = {r["id"]: r for r in self.storage.select("riders")}
        except StorageError as e:
            logger.error(
                "ranking_retrieval_failed",
                operation="rank",
                period=query.period.value,
                reference_date=reference.isoformat(),
                error=str(e),
            )
            raise RankingRetrievalError("Could not load delivery records") from e

        totals: dict[UUID, list[int]] = defaultdict(lambda: [0, 0])
        for record in records:
            rider = riders.get(record["user_id"])
            if rider is None:
                continue
            if query.region and rider["region"] != query.region:
                continue
            if query.vehicle and rider["vehicle"] != query.vehicle:
                continue
            totals[record["user_id"]][0] += record["amount"]
            totals[record["user_id"]][1] += record["delivery_count"]

        ordered = sorted(
            ((user_id, amount, count) for user_id, (amount, count) in totals.items() if amount > 0),
            key=lambda t: (-t[1], -t[2], str(t[0])),
        )
        if query.limit is not None:
            ordered = ordered[:query.limit]

        entries = [
            RankingEntry(
                rank=position,
                user_id=user_id,
                nickname=riders[user_id]["nickname"],
                region=riders[user_id]["region"],
                total_amount=amount,
                total_deliveries=count,
            )
            for position, (user_id, amount, count) in enumerate(ordered, start=1)
        ]

        response = RankingResponse(period=query.period, start=window[0], end=window[1], entries=entries)
        if use_cache:
            self.cache.put(query, response, generation)
        return response

    def user_ranks(self, user_id: UUID, reference: Optional[date] = None) -> UserRanks:
        reference = reference or current_business_date(settings=self.settings)
        ranks = {}
        for period in (RankingPeriod.DAY, RankingPeriod.WEEK, RankingPeriod.MONTH):
            response = self.rank(RankingQuery(period=period, reference_date=reference))
            ranks[period] = next((e.rank for e in response.entries if e.user_id == user_id), None)
        return UserRanks(
            user_id=user_id,
            daily_rank=ranks[RankingPeriod.DAY],
            weekly_rank=ranks[RankingPeriod.WEEK],
            monthly_rank=ranks[RankingPeriod.MONTH],
        )
