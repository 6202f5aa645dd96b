from uuid import UUID
from fastapi import APIRouter, Depends, Request, status

from core.errors import ServiceError
from core.http import to_http_exception

from .models import (
    AddPointsRequest, PointsResponse, UserBalance, LedgerHistoryResponse, BalanceAudit,
    RegisterRiderRequest, Rider, RedeemReferralRequest, ReferralResponse, InviteStats,
)
from .referrals import ReferralService
from .service import PointsService

router = APIRouter()


def get_points_service(request: Request) -> PointsService:
    return request.app.state.points_service


def get_referral_service(request: Request) -> ReferralService:
    return request.app.state.referral_service


@router.post("/riders", response_model=Rider, status_code=status.HTTP_201_CREATED, tags=["Riders"])
def register_rider(
    request: RegisterRiderRequest, service: PointsService = Depends(get_points_service)
) -> Rider:
    try:
        return service.register_rider(request)
    except ServiceError as e:
        raise to_http_exception(e)


@router.get("/riders/{user_id}", response_model=Rider, tags=["Riders"])
def get_rider(user_id: UUID, service: PointsService = Depends(get_points_service)) -> Rider:
    try:
        return service.get_rider(user_id)
    except ServiceError as e:
        raise to_http_exception(e)


@router.post("/points", response_model=PointsResponse, status_code=status.HTTP_201_CREATED, tags=["Points"])
def add_points(
    request: AddPointsRequest, service: PointsService = Depends(get_points_service)
) -> PointsResponse:
    try:
        return service.add_points(request)
    except ServiceError as e:
        raise to_http_exception(e)


@router.get("/users/{user_id}/balance", response_model=UserBalance, tags=["Points"])
def get_user_balance(user_id: UUID, service: PointsService = Depends(get_points_service)) -> UserBalance:
    return service.get_balance(user_id)


@router.get("/users/{user_id}/balance/audit", response_model=BalanceAudit, tags=["Points"])
def audit_user_balance(user_id: UUID, service: PointsService = Depends(get_points_service)) -> BalanceAudit:
    return service.audit_balance(user_id)


@router.get("/users/{user_id}/ledger", response_model=LedgerHistoryResponse, tags=["Points"])
def get_user_ledger(
    user_id: UUID, limit: int = 50, offset: int = 0, service: PointsService = Depends(get_points_service)
) -> LedgerHistoryResponse:
    return service.get_ledger_history(user_id, limit, offset)


@router.post(
    "/referrals/redeem", response_model=ReferralResponse, status_code=status.HTTP_201_CREATED, tags=["Referrals"]
)
def redeem_referral(
    request: RedeemReferralRequest, service: ReferralService = Depends(get_referral_service)
) -> ReferralResponse:
    try:
        return service.redeem(request.code, request.invitee_id)
    except ServiceError as e:
        raise to_http_exception(e)


@router.get("/riders/{user_id}/invites", response_model=InviteStats, tags=["Referrals"])
def get_invite_stats(user_id: UUID, service: ReferralService = Depends(get_referral_service)) -> InviteStats:
    try:
        return service.invite_stats(user_id)
    except ServiceError as e:
        raise to_http_exception(e)
