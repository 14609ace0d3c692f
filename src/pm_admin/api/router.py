# src/pm_admin/api/router.py
"""Registry admin REST API. Every call is checked against the registry owner."""
from datetime import timedelta
from typing import Annotated

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from src.pm_common.database import get_db_session
from src.pm_common.response import ApiResponse, success_response
from src.pm_gateway.auth.dependencies import get_current_participant
from src.pm_market.application.service import MarketApplicationService, get_market_service

router = APIRouter(prefix="/admin", tags=["admin"])

Service = Annotated[MarketApplicationService, Depends(get_market_service)]
Caller = Annotated[str, Depends(get_current_participant)]
Db = Annotated[AsyncSession, Depends(get_db_session)]


class AuthorizeCreatorRequest(BaseModel):
    authorized: bool


class DurationLimitsRequest(BaseModel):
    min_seconds: int = Field(gt=0)
    max_seconds: int = Field(gt=0)


class CreationFeeRequest(BaseModel):
    fee: int = Field(ge=0)


class WithdrawFeesRequest(BaseModel):
    recipient: str = Field(min_length=1, max_length=128)


def _respond(request: Request, data: object) -> ApiResponse:
    resp = success_response(data)
    resp.request_id = getattr(request.state, "request_id", resp.request_id)
    return resp


@router.get("/registry")
async def registry_config(
    request: Request, caller: Caller, service: Service, db: Db
) -> ApiResponse:
    config = await service.registry_config(db, caller)
    return _respond(request, config.model_dump())


@router.post("/pause")
async def toggle_pause(request: Request, caller: Caller, service: Service, db: Db) -> ApiResponse:
    paused = await service.toggle_pause(db, caller)
    return _respond(request, {"paused": paused})


@router.post("/require-authorization")
async def toggle_require_authorization(
    request: Request, caller: Caller, service: Service, db: Db
) -> ApiResponse:
    required = await service.toggle_require_authorization(db, caller)
    return _respond(request, {"require_authorization": required})


@router.put("/creators/{creator}")
async def set_authorized_creator(
    creator: str,
    body: AuthorizeCreatorRequest,
    request: Request,
    caller: Caller,
    service: Service,
    db: Db,
) -> ApiResponse:
    await service.set_authorized_creator(db, caller, creator, body.authorized)
    return _respond(request, {"creator": creator, "authorized": body.authorized})


@router.put("/duration-limits")
async def set_duration_limits(
    body: DurationLimitsRequest,
    request: Request,
    caller: Caller,
    service: Service,
    db: Db,
) -> ApiResponse:
    await service.set_duration_limits(
        db, caller, timedelta(seconds=body.min_seconds), timedelta(seconds=body.max_seconds)
    )
    return _respond(request, body.model_dump())


@router.put("/creation-fee")
async def set_creation_fee(
    body: CreationFeeRequest,
    request: Request,
    caller: Caller,
    service: Service,
    db: Db,
) -> ApiResponse:
    await service.set_creation_fee(db, caller, body.fee)
    return _respond(request, body.model_dump())


@router.post("/fees/withdraw")
async def withdraw_fees(
    body: WithdrawFeesRequest,
    request: Request,
    caller: Caller,
    service: Service,
    db: Db,
) -> ApiResponse:
    amount = await service.withdraw_fees(db, caller, body.recipient)
    return _respond(request, {"recipient": body.recipient, "amount": amount})
