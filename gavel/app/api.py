"""FastAPI application exposing the auction service.

Run with ``uvicorn gavel.app.api:app``. Callers identify themselves with the
``X-User-Id`` header; the user must exist in the ``users`` table.
"""

from __future__ import annotations

import time
from contextlib import asynccontextmanager
from typing import Annotated

from fastapi import FastAPI, Query, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse, PlainTextResponse

from gavel import __version__
from gavel.app.dependencies import AuctionServiceDep, RequesterDep
from gavel.domain.errors import (AuctionError, ConflictError, ForbiddenError,
                                 InvalidArgumentError, InvalidStateError,
                                 NotFoundError, PreconditionFailedError)
from gavel.domain.models import AuctionStatus
from gavel.infrastructure.observability import (configure_logging,
                                                format_prometheus, get_logger,
                                                record_api_request)
from gavel.services import AuctionPage, AuctionService
from gavel.services.dto import (AuctionCreateDTO, AuctionDTO, AuctionListDTO,
                                AuctionUpdateDTO, BidCreateDTO, BidDTO,
                                SweepResultDTO)

logger = get_logger(__name__)

ERROR_STATUS_CODES: dict[type[AuctionError], int] = {
    NotFoundError: status.HTTP_404_NOT_FOUND,
    ForbiddenError: status.HTTP_403_FORBIDDEN,
    ConflictError: status.HTTP_409_CONFLICT,
    InvalidArgumentError: status.HTTP_400_BAD_REQUEST,
    InvalidStateError: status.HTTP_409_CONFLICT,
    PreconditionFailedError: status.HTTP_412_PRECONDITION_FAILED,
}


@asynccontextmanager
async def lifespan(_: FastAPI):
    configure_logging()
    yield


app = FastAPI(title="Gavel Auction API", version=__version__, lifespan=lifespan)


@app.exception_handler(AuctionError)
async def auction_error_handler(_: Request, exc: AuctionError) -> JSONResponse:
    status_code = ERROR_STATUS_CODES.get(
        type(exc), status.HTTP_500_INTERNAL_SERVER_ERROR
    )
    return JSONResponse(status_code=status_code, content=jsonable_encoder(exc.to_dict()))


@app.middleware("http")
async def record_request_metrics(request: Request, call_next):
    started = time.perf_counter()
    response = await call_next(request)
    route = request.scope.get("route")
    endpoint = getattr(route, "path", request.url.path)
    record_api_request(
        endpoint, request.method, response.status_code, time.perf_counter() - started
    )
    return response


def _parse_statuses(raw: str | None) -> list[AuctionStatus] | None:
    """``Active,Upcoming`` style filter; ``all`` disables status filtering."""
    if raw is None:
        return None
    if raw.strip().lower() == "all":
        return None
    try:
        return [AuctionStatus.from_string(part) for part in raw.split(",") if part.strip()]
    except ValueError as exc:
        raise InvalidArgumentError(str(exc), status=raw) from exc


def _page_to_dto(service: AuctionService, page: AuctionPage) -> AuctionListDTO:
    return AuctionListDTO(
        items=[service.describe(auction) for auction in page.items],
        total=page.total,
        page=page.page,
        limit=page.limit,
        total_pages=page.total_pages,
    )


@app.get("/")
def root():
    return {
        "name": "Gavel Auction API",
        "version": __version__,
        "docs": "/docs",
        "endpoints": {"auctions": "/auctions", "metrics": "/metrics"},
    }


@app.get("/metrics", response_class=PlainTextResponse)
def metrics() -> str:
    return format_prometheus()


@app.post("/auctions", response_model=AuctionDTO, status_code=status.HTTP_201_CREATED)
def create_auction(
    payload: AuctionCreateDTO, service: AuctionServiceDep, requester: RequesterDep
) -> AuctionDTO:
    auction = service.create(
        requester,
        product_id=payload.product_id,
        start_time=payload.start_time,
        end_time=payload.end_time,
        starting_bid=payload.starting_bid,
        reserve_price=payload.reserve_price,
        buy_now_price=payload.buy_now_price,
    )
    return service.describe(auction)


@app.get("/auctions", response_model=AuctionListDTO)
def list_auctions(
    service: AuctionServiceDep,
    status_filter: Annotated[str, Query(alias="status")] = "Active,Upcoming",
    seller_id: str | None = None,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=100)] = 10,
    order: Annotated[str, Query(pattern="^(asc|desc)$")] = "asc",
) -> AuctionListDTO:
    result = service.list_auctions(
        statuses=_parse_statuses(status_filter),
        seller_id=seller_id,
        page=page,
        limit=limit,
        descending=order == "desc",
    )
    return _page_to_dto(service, result)


@app.get("/auctions/mine", response_model=AuctionListDTO)
def list_my_auctions(
    service: AuctionServiceDep,
    requester: RequesterDep,
    status_filter: Annotated[str | None, Query(alias="status")] = None,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=100)] = 10,
    order: Annotated[str, Query(pattern="^(asc|desc)$")] = "asc",
) -> AuctionListDTO:
    result = service.list_mine(
        requester,
        statuses=_parse_statuses(status_filter),
        page=page,
        limit=limit,
        descending=order == "desc",
    )
    return _page_to_dto(service, result)


@app.post("/auctions/sweep", response_model=SweepResultDTO)
def sweep_auctions(service: AuctionServiceDep, requester: RequesterDep) -> SweepResultDTO:
    return service.sweep_expired(requester)


@app.get("/auctions/{auction_id}", response_model=AuctionDTO)
def get_auction(auction_id: str, service: AuctionServiceDep) -> AuctionDTO:
    return service.describe(service.get(auction_id))


@app.get("/auctions/{auction_id}/bids", response_model=list[BidDTO])
def list_bids(auction_id: str, service: AuctionServiceDep) -> list[BidDTO]:
    return [BidDTO.from_bid(bid) for bid in service.list_bids(auction_id)]


@app.post(
    "/auctions/{auction_id}/bids",
    response_model=AuctionDTO,
    status_code=status.HTTP_201_CREATED,
)
def place_bid(
    auction_id: str,
    payload: BidCreateDTO,
    service: AuctionServiceDep,
    requester: RequesterDep,
) -> AuctionDTO:
    return service.describe(service.place_bid(auction_id, requester, payload.amount))


@app.patch("/auctions/{auction_id}", response_model=AuctionDTO)
def update_auction(
    auction_id: str,
    payload: AuctionUpdateDTO,
    service: AuctionServiceDep,
    requester: RequesterDep,
) -> AuctionDTO:
    return service.describe(service.update(auction_id, requester, payload.changes()))


@app.delete("/auctions/{auction_id}", response_model=AuctionDTO)
def cancel_auction(
    auction_id: str, service: AuctionServiceDep, requester: RequesterDep
) -> AuctionDTO:
    return service.describe(service.cancel(auction_id, requester))


@app.post("/auctions/{auction_id}/settle", response_model=AuctionDTO)
def settle_auction(
    auction_id: str, service: AuctionServiceDep, requester: RequesterDep
) -> AuctionDTO:
    return service.describe(service.settle(auction_id, requester))
