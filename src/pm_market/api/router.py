"""pm_market REST endpoints.

POST /markets                              — create (registry clones + initializes)
GET  /markets                              — list with offset pagination
GET  /markets/categories                   — categories in first-seen order
GET  /markets/stats                        — platform aggregates
GET  /markets/top                          — markets ranked by reported volume
GET  /markets/creators/{creator}           — creator aggregates
GET  /markets/{market_id}                  — full detail
GET  /markets/{market_id}/events           — event history
GET  /markets/{market_id}/quote            — AMM preview for a stake
GET  /markets/{market_id}/positions/me     — caller's position + claimable
POST /markets/{market_id}/stake
POST /markets/{market_id}/resolve          — resolution authority only
POST /markets/{market_id}/cancel           — resolution authority only
PUT  /markets/{market_id}/status           — pause / reactivate (creator or registry owner)
POST /markets/{market_id}/claim

Reads are unauthenticated and side-effect free; writes take the caller
identity from the bearer token.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.pm_common.database import get_db_session
from src.pm_common.enums import MarketStatus, Outcome
from src.pm_common.response import ApiResponse, success_response
from src.pm_gateway.auth.dependencies import get_current_participant
from src.pm_market.application.schemas import (
    CancelRequest,
    CreateMarketRequest,
    ResolveRequest,
    StakeRequest,
    UpdateStatusRequest,
)
from src.pm_market.application.service import MarketApplicationService, get_market_service

router = APIRouter(prefix="/markets", tags=["markets"])

Service = Annotated[MarketApplicationService, Depends(get_market_service)]
Participant = Annotated[str, Depends(get_current_participant)]
Db = Annotated[AsyncSession, Depends(get_db_session)]


def _respond(request: Request, data: object, message: str = "success") -> ApiResponse:
    resp = success_response(data, message)
    resp.request_id = getattr(request.state, "request_id", resp.request_id)
    return resp


@router.post("", status_code=201)
async def create_market(
    body: CreateMarketRequest,
    request: Request,
    creator: Participant,
    service: Service,
    db: Db,
) -> ApiResponse:
    result = await service.create_market(db, creator, body)
    return _respond(request, result.model_dump(), "Market created")


@router.get("")
async def list_markets(
    request: Request,
    service: Service,
    db: Db,
    offset: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
    category: str | None = Query(None),
    status: MarketStatus | None = Query(None),
) -> ApiResponse:
    result = await service.list_markets(db, offset, limit, category, status)
    return _respond(request, result.model_dump())


@router.get("/categories")
async def list_categories(request: Request, service: Service, db: Db) -> ApiResponse:
    return _respond(request, await service.categories(db))


@router.get("/stats")
async def platform_stats(request: Request, service: Service, db: Db) -> ApiResponse:
    return _respond(request, (await service.platform_stats(db)).model_dump())


@router.get("/top")
async def top_markets(
    request: Request,
    service: Service,
    db: Db,
    limit: int = Query(10, ge=1, le=100),
) -> ApiResponse:
    return _respond(request, [m.model_dump() for m in await service.top_markets(db, limit)])


@router.get("/creators/{creator}")
async def creator_stats(
    creator: str, request: Request, service: Service, db: Db
) -> ApiResponse:
    return _respond(request, (await service.creator_stats(db, creator)).model_dump())


@router.get("/{market_id}")
async def get_market(market_id: int, request: Request, service: Service, db: Db) -> ApiResponse:
    return _respond(request, (await service.get_market(db, market_id)).model_dump())


@router.get("/{market_id}/events")
async def get_events(market_id: int, request: Request, service: Service, db: Db) -> ApiResponse:
    events = await service.get_events(db, market_id)
    return _respond(request, [e.model_dump() for e in events])


@router.get("/{market_id}/quote")
async def get_quote(
    market_id: int,
    request: Request,
    service: Service,
    db: Db,
    side: Outcome = Query(...),
    amount: int = Query(..., gt=0),
) -> ApiResponse:
    return _respond(request, (await service.quote(db, market_id, side, amount)).model_dump())


@router.get("/{market_id}/positions/me")
async def get_my_position(
    market_id: int,
    request: Request,
    participant: Participant,
    service: Service,
    db: Db,
) -> ApiResponse:
    result = await service.get_position(db, market_id, participant)
    return _respond(request, result.model_dump())


@router.post("/{market_id}/stake")
async def stake(
    market_id: int,
    body: StakeRequest,
    request: Request,
    participant: Participant,
    service: Service,
    db: Db,
) -> ApiResponse:
    result = await service.stake(db, market_id, participant, body)
    return _respond(request, result.model_dump(), "Stake placed")


@router.post("/{market_id}/resolve")
async def resolve(
    market_id: int,
    body: ResolveRequest,
    request: Request,
    caller: Participant,
    service: Service,
    db: Db,
) -> ApiResponse:
    result = await service.resolve(db, market_id, caller, body.outcome)
    return _respond(request, result.model_dump(), "Market resolved")


@router.post("/{market_id}/cancel")
async def cancel(
    market_id: int,
    body: CancelRequest,
    request: Request,
    caller: Participant,
    service: Service,
    db: Db,
) -> ApiResponse:
    result = await service.cancel(db, market_id, caller, body)
    return _respond(request, result.model_dump(), "Market cancelled")


@router.put("/{market_id}/status")
async def update_status(
    market_id: int,
    body: UpdateStatusRequest,
    request: Request,
    caller: Participant,
    service: Service,
    db: Db,
) -> ApiResponse:
    result = await service.update_market_status(db, market_id, caller, body.status)
    return _respond(request, result.model_dump(), "Market status updated")


@router.post("/{market_id}/claim")
async def claim(
    market_id: int,
    request: Request,
    participant: Participant,
    service: Service,
    db: Db,
) -> ApiResponse:
    result = await service.claim(db, market_id, participant)
    return _respond(request, result.model_dump(), "Claim paid")
