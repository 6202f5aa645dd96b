import secrets
from datetime import date
from typing import Optional
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request, status

from core.config import Settings
from core.errors import ServiceError
from core.http import to_http_exception
from points.models import Vehicle

from .aggregator import Aggregator
from .models import (
    DeliveryRecord, SubmitRecordRequest, VerifyRecordRequest, Platform,
    RankingPeriod, RankingQuery, RankingResponse, UserRanks,
    SettlementResult, RetrySettlementRequest,
)
from .records import DeliveryRecordService
from .rewarder import DailyRewarder

logger = structlog.get_logger(__name__)

router = APIRouter()


def get_record_service(request: Request) -> DeliveryRecordService:
    return request.app.state.record_service


def get_aggregator(request: Request) -> Aggregator:
    return request.app.state.aggregator


def get_rewarder(request: Request) -> DailyRewarder:
    return request.app.state.rewarder


def require_cron_secret(request: Request, authorization: Optional[str] = Header(default=None)) -> None:
    settings: Settings = request.app.state.settings
    if not settings.cron_secret:
        logger.warning("cron_secret_not_configured")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    expected = f"Bearer {settings.cron_secret}"
    if authorization is None or not secrets.compare_digest(authorization, expected):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")


@router.post("/records", response_model=DeliveryRecord, status_code=status.HTTP_201_CREATED, tags=["Records"])
def submit_record(
    request: SubmitRecordRequest, service: DeliveryRecordService = Depends(get_record_service)
) -> DeliveryRecord:
    try:
        return service.submit(request)
    except ServiceError as e:
        raise to_http_exception(e)


@router.get("/records/{record_id}", response_model=DeliveryRecord, tags=["Records"])
def get_record(record_id: UUID, service: DeliveryRecordService = Depends(get_record_service)) -> DeliveryRecord:
    try:
        return service.get(record_id)
    except ServiceError as e:
        raise to_http_exception(e)


@router.post("/records/{record_id}/verify", response_model=DeliveryRecord, tags=["Admin"])
def verify_record(
    record_id: UUID, request: VerifyRecordRequest, service: DeliveryRecordService = Depends(get_record_service)
) -> DeliveryRecord:
    try:
        return service.set_status(record_id, request.status, request.performed_by)
    except ServiceError as e:
        raise to_http_exception(e)


@router.delete("/records/{record_id}", response_model=DeliveryRecord, tags=["Admin"])
def delete_record(record_id: UUID, service: DeliveryRecordService = Depends(get_record_service)) -> DeliveryRecord:
    try:
        return service.delete(record_id)
    except ServiceError as e:
        raise to_http_exception(e)


@router.get("/riders/{user_id}/records", response_model=list[DeliveryRecord], tags=["Records"])
def list_rider_records(
    user_id: UUID, limit: int = 20, service: DeliveryRecordService = Depends(get_record_service)
) -> list[DeliveryRecord]:
    return service.list_for_user(user_id, limit)


@router.get("/rankings", response_model=RankingResponse, tags=["Rankings"])
def get_rankings(
    period: RankingPeriod = RankingPeriod.DAY,
    reference_date: Optional[date] = Query(default=None, alias="date"),
    region: Optional[str] = None,
    vehicle: Optional[Vehicle] = None,
    platform: Optional[Platform] = None,
    limit: Optional[int] = None,
    aggregator: Aggregator = Depends(get_aggregator),
) -> RankingResponse:
    if limit is not None and limit < 1:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="limit must be positive")
    query = RankingQuery(
        period=period, reference_date=reference_date, region=region, vehicle=vehicle, platform=platform, limit=limit
    )
    try:
        return aggregator.rank(query)
    except ServiceError as e:
        raise to_http_exception(e)


@router.get("/riders/{user_id}/ranks", response_model=UserRanks, tags=["Rankings"])
def get_rider_ranks(
    user_id: UUID,
    reference_date: Optional[date] = Query(default=None, alias="date"),
    aggregator: Aggregator = Depends(get_aggregator),
) -> UserRanks:
    try:
        return aggregator.user_ranks(user_id, reference_date)
    except ServiceError as e:
        raise to_http_exception(e)


@router.api_route(
    "/cron/daily-ranking-rewards",
    methods=["GET", "POST"],
    response_model=SettlementResult,
    dependencies=[Depends(require_cron_secret)],
    tags=["Cron"],
)
def run_daily_ranking_rewards(rewarder: DailyRewarder = Depends(get_rewarder)) -> SettlementResult:
    try:
        return rewarder.settle()
    except ServiceError as e:
        raise to_http_exception(e)


@router.post(
    "/cron/daily-ranking-rewards/{day}/retry",
    response_model=SettlementResult,
    dependencies=[Depends(require_cron_secret)],
    tags=["Cron"],
)
def retry_daily_ranking_rewards(
    day: date, request: RetrySettlementRequest, rewarder: DailyRewarder = Depends(get_rewarder)
) -> SettlementResult:
    try:
        return rewarder.retry(day, request.user_ids)
    except ServiceError as e:
        raise to_http_exception(e)
