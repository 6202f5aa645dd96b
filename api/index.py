from dataclasses import dataclass
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from mangum import Mangum
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.config import Settings, get_settings
from core.log import configure_logging
from core.storage import InMemoryStorage
from points.api import router as points_router
from points.referrals import ReferralService
from points.service import PointsService
from rankings.aggregator import Aggregator, RankingCache
from rankings.api import router as rankings_router
from rankings.records import DeliveryRecordService
from rankings.rewarder import DailyRewarder


@dataclass
class Services:
    storage: InMemoryStorage
    points_service: PointsService
    referral_service: ReferralService
    record_service: DeliveryRecordService
    aggregator: Aggregator
    rewarder: DailyRewarder


def build_services(storage: Optional[InMemoryStorage] = None, settings: Optional[Settings] = None) -> Services:
    storage = storage or InMemoryStorage()
    settings = settings or get_settings()
    cache = RankingCache(settings.ranking_cache_size)

    points_service = PointsService(storage, settings)
    aggregator = Aggregator(storage, cache, settings)
    return Services(
        storage=storage,
        points_service=points_service,
        referral_service=ReferralService(points_service),
        record_service=DeliveryRecordService(storage, cache, settings),
        aggregator=aggregator,
        rewarder=DailyRewarder(points_service, aggregator, settings),
    )


def create_app(services: Optional[Services] = None, settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()
    services = services or build_services(settings=settings)
    configure_logging(settings)

    app = FastAPI(
        title="Rider Points API",
        description="Delivery leaderboards, daily rank rewards and the rider points ledger",
        version="1.0.0",
        root_path="/api",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.settings = settings
    for name, service in vars(services).items():
        setattr(app.state, name, service)

    @app.get("/health", tags=["System"])
    def health_check():
        return {"status": "healthy", "service": "rider-points"}

    app.include_router(points_router)
    app.include_router(rankings_router)
    return app


app = create_app()

handler = Mangum(app)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
