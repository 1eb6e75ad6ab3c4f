from __future__ import annotations

from uuid import UUID

import redis
from fastapi import APIRouter, Depends, HTTPException, WebSocket, WebSocketDisconnect, status

from lottery.api.deps import get_coordinator, get_ledger, get_redis, get_settings
from lottery.api.models import (
    EnterRequest,
    FulfillRequest,
    FundSubscriptionRequest,
    HistoryResponse,
    LotteryConfig,
    LotteryCreateRequest,
    LotteryListResponse,
    LotteryState,
    PerformUpkeepResponse,
    PlayersResponse,
    RandomnessRequestResponse,
    SubscriptionResponse,
    UpkeepResponse,
    VrfFulfillRequest,
    WinnerResponse,
)
from lottery.entry_gate import enter
from lottery.errors import (
    LotteryBusy,
    LotteryError,
    LotteryNotFound,
    PayoutTransferFailed,
    RequestNotFound,
    UnknownRequest,
    WordOverrideDisabled,
)
from lottery.infra.redis_client import redis_ready
from lottery.payouts import RedisPayoutLedger
from lottery.provisioning import deploy_lottery
from lottery.randomness.coordinator import RedisVRFCoordinator
from lottery.resolution import fulfill_random_words, perform_upkeep
from lottery.settings import LotterySettings, config_from_request
from lottery.store import (
    get_lottery,
    get_player,
    get_players,
    list_lotteries,
    list_round_results,
    require_lottery,
)
from lottery.streams import latest_event, read_events
from lottery.upkeep import evaluate_upkeep
from lottery.vrf_worker import VrfWorkerConfig, run_vrf_worker_once
from lottery.websocket_hub import hub


router = APIRouter()


def _http_error(e: Exception) -> HTTPException:
    """Map lifecycle failures to HTTP responses with a machine-readable body."""

    if isinstance(e, PayoutTransferFailed):
        return HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail={"error": e.code, "message": str(e), **e.context()},
        )
    if isinstance(e, LotteryError):
        if isinstance(e, (LotteryNotFound, RequestNotFound)):
            code = status.HTTP_404_NOT_FOUND
        elif isinstance(e, LotteryBusy):
            code = status.HTTP_409_CONFLICT
        elif isinstance(e, WordOverrideDisabled):
            code = status.HTTP_403_FORBIDDEN
        else:
            code = status.HTTP_422_UNPROCESSABLE_ENTITY
        return HTTPException(status_code=code, detail={"error": e.code, "message": str(e), **e.context()})
    return HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))


async def _notify(r: redis.Redis, lottery_id: UUID) -> None:
    latest = latest_event(r=r, lottery_id=str(lottery_id))
    if latest is None:
        return
    event_id, fields = latest
    await hub.publish(str(lottery_id), event_id=event_id, fields=fields)


def _deliver_words(
    *,
    r: redis.Redis,
    coordinator: RedisVRFCoordinator,
    ledger: RedisPayoutLedger,
    settings: LotterySettings,
    request_id: int,
    lottery_id: UUID,
    words: list[int] | None,
) -> LotteryState:
    if words is not None and not settings.dev_fulfillment:
        raise WordOverrideDisabled(request_id)

    def _callback(rid: int, delivered: list[int]) -> None:
        fulfill_random_words(r=r, lottery_id=lottery_id, request_id=rid, random_words=delivered, ledger=ledger)

    coordinator.fulfill_request(request_id=request_id, callback=_callback, words=words)
    return require_lottery(r=r, lottery_id=lottery_id)


@router.websocket("/ws/lottery/{lottery_id}")
async def lottery_updates_ws(websocket: WebSocket, lottery_id: UUID) -> None:
    lid = str(lottery_id)
    await hub.connect(lid, websocket)

    try:
        # Keep the socket open; client can optionally send pings.
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        await hub.disconnect(lid, websocket)
    except Exception:
        await hub.disconnect(lid, websocket)
        raise


@router.get("/healthcheck")
async def healthcheck(r: redis.Redis = Depends(get_redis)) -> dict[str, str]:
    return {"status": "ok", "redis": "ok" if redis_ready(r) else "unavailable"}


# ---- lotteries ----


@router.post("/lottery", response_model=LotteryState, status_code=status.HTTP_201_CREATED)
async def create_lottery_route(
    payload: LotteryCreateRequest | None = None,
    r: redis.Redis = Depends(get_redis),
    coordinator: RedisVRFCoordinator = Depends(get_coordinator),
    settings: LotterySettings = Depends(get_settings),
) -> LotteryState:
    try:
        config = config_from_request(payload=payload or LotteryCreateRequest(), defaults=settings)
        state = deploy_lottery(r=r, coordinator=coordinator, config=config, funding=settings.subscription_funding)
    except ValueError as e:
        raise _http_error(e) from e
    return state


@router.get("/lottery", response_model=LotteryListResponse)
async def list_lotteries_route(r: redis.Redis = Depends(get_redis)) -> LotteryListResponse:
    return LotteryListResponse(lotteries=list_lotteries(r=r))


@router.get("/lottery/{lottery_id}", response_model=LotteryState)
async def get_lottery_route(lottery_id: UUID, r: redis.Redis = Depends(get_redis)) -> LotteryState:
    state = get_lottery(r=r, lottery_id=lottery_id)
    if state is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Lottery not found")
    return state


@router.get("/lottery/{lottery_id}/config", response_model=LotteryConfig)
async def get_config_route(lottery_id: UUID, r: redis.Redis = Depends(get_redis)) -> LotteryConfig:
    try:
        return require_lottery(r=r, lottery_id=lottery_id).config
    except LotteryError as e:
        raise _http_error(e) from e


@router.get("/lottery/{lottery_id}/players", response_model=PlayersResponse)
async def get_players_route(lottery_id: UUID, r: redis.Redis = Depends(get_redis)) -> PlayersResponse:
    try:
        players = get_players(r=r, lottery_id=lottery_id)
    except LotteryError as e:
        raise _http_error(e) from e
    return PlayersResponse(lottery_id=lottery_id, players=players, count=len(players))


@router.get("/lottery/{lottery_id}/players/{index}")
async def get_player_route(lottery_id: UUID, index: int, r: redis.Redis = Depends(get_redis)) -> dict[str, object]:
    try:
        participant = get_player(r=r, lottery_id=lottery_id, index=index)
    except LotteryError as e:
        raise _http_error(e) from e
    return {"lottery_id": str(lottery_id), "index": index, "participant": participant}


@router.get("/lottery/{lottery_id}/winner", response_model=WinnerResponse)
async def get_winner_route(lottery_id: UUID, r: redis.Redis = Depends(get_redis)) -> WinnerResponse:
    try:
        state = require_lottery(r=r, lottery_id=lottery_id)
    except LotteryError as e:
        raise _http_error(e) from e
    return WinnerResponse(lottery_id=lottery_id, recent_winner=state.recent_winner, last_resolution_at=state.last_resolution_at)


@router.get("/lottery/{lottery_id}/history", response_model=HistoryResponse)
async def get_history_route(lottery_id: UUID, r: redis.Redis = Depends(get_redis)) -> HistoryResponse:
    try:
        require_lottery(r=r, lottery_id=lottery_id)
    except LotteryError as e:
        raise _http_error(e) from e
    return HistoryResponse(lottery_id=lottery_id, rounds=list_round_results(r=r, lottery_id=lottery_id))


@router.get("/lottery/{lottery_id}/events")
async def get_events_route(
    lottery_id: UUID,
    count: int = 20,
    start: str = "-",
    end: str = "+",
    r: redis.Redis = Depends(get_redis),
) -> dict[str, object]:
    """Read the lottery's notification stream (EntryAccepted, ResolutionRequested, WinnerSelected)."""

    if count < 1 or count > 200:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="count must be between 1 and 200")

    try:
        entries = read_events(r=r, lottery_id=str(lottery_id), start=start, end=end, count=count)
    except redis.ResponseError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e)) from e

    return {"lottery_id": str(lottery_id), "events": [{"id": mid, "fields": fields} for mid, fields in entries]}


# ---- lifecycle ----


@router.post("/lottery/{lottery_id}/enter", response_model=LotteryState)
async def enter_route(lottery_id: UUID, payload: EnterRequest, r: redis.Redis = Depends(get_redis)) -> LotteryState:
    try:
        state = enter(r=r, lottery_id=lottery_id, participant=payload.participant, payment=payload.payment)
    except ValueError as e:
        raise _http_error(e) from e

    await _notify(r, lottery_id)
    return state


@router.get("/lottery/{lottery_id}/upkeep", response_model=UpkeepResponse)
async def check_upkeep_route(lottery_id: UUID, r: redis.Redis = Depends(get_redis)) -> UpkeepResponse:
    try:
        check = evaluate_upkeep(r=r, lottery_id=lottery_id)
    except LotteryError as e:
        raise _http_error(e) from e
    return UpkeepResponse(**check.as_dict())


@router.post("/lottery/{lottery_id}/upkeep", response_model=PerformUpkeepResponse)
async def perform_upkeep_route(
    lottery_id: UUID,
    r: redis.Redis = Depends(get_redis),
    coordinator: RedisVRFCoordinator = Depends(get_coordinator),
) -> PerformUpkeepResponse:
    try:
        requested = perform_upkeep(r=r, lottery_id=lottery_id, provider=coordinator)
    except ValueError as e:
        raise _http_error(e) from e

    await _notify(r, lottery_id)
    return PerformUpkeepResponse(request_id=requested.request_id, state=requested.state)


@router.post("/lottery/{lottery_id}/fulfill", response_model=LotteryState)
async def fulfill_route(
    lottery_id: UUID,
    payload: FulfillRequest,
    r: redis.Redis = Depends(get_redis),
    coordinator: RedisVRFCoordinator = Depends(get_coordinator),
    ledger: RedisPayoutLedger = Depends(get_ledger),
    settings: LotterySettings = Depends(get_settings),
) -> LotteryState:
    """Have the coordinator deliver words for this lottery's request.

    The request must be one the coordinator issued to this lottery and is
    marked fulfilled by it. Callers only choose the words in dev mode.
    """

    try:
        record = coordinator.get_request(payload.request_id)
        if record.consumer != str(lottery_id):
            state = require_lottery(r=r, lottery_id=lottery_id)
            raise UnknownRequest(request_id=payload.request_id, pending_request_id=state.pending_request_id)
        state = _deliver_words(
            r=r,
            coordinator=coordinator,
            ledger=ledger,
            settings=settings,
            request_id=payload.request_id,
            lottery_id=lottery_id,
            words=payload.random_words,
        )
    except (ValueError, PayoutTransferFailed) as e:
        raise _http_error(e) from e

    await _notify(r, lottery_id)
    return state


# ---- local randomness provider ----


def _subscription_response(coordinator: RedisVRFCoordinator, subscription_id: int) -> SubscriptionResponse:
    sub = coordinator.get_subscription(subscription_id)
    return SubscriptionResponse(subscription_id=sub.subscription_id, balance=sub.balance, consumers=sub.consumers)


@router.post("/vrf/subscriptions", response_model=SubscriptionResponse, status_code=status.HTTP_201_CREATED)
async def create_subscription_route(coordinator: RedisVRFCoordinator = Depends(get_coordinator)) -> SubscriptionResponse:
    subscription_id = coordinator.create_subscription()
    return _subscription_response(coordinator, subscription_id)


@router.get("/vrf/subscriptions/{subscription_id}", response_model=SubscriptionResponse)
async def get_subscription_route(
    subscription_id: int,
    coordinator: RedisVRFCoordinator = Depends(get_coordinator),
) -> SubscriptionResponse:
    try:
        return _subscription_response(coordinator, subscription_id)
    except LotteryError as e:
        raise _http_error(e) from e


@router.post("/vrf/subscriptions/{subscription_id}/fund", response_model=SubscriptionResponse)
async def fund_subscription_route(
    subscription_id: int,
    payload: FundSubscriptionRequest,
    coordinator: RedisVRFCoordinator = Depends(get_coordinator),
) -> SubscriptionResponse:
    try:
        coordinator.fund_subscription(subscription_id=subscription_id, amount=payload.amount)
        return _subscription_response(coordinator, subscription_id)
    except ValueError as e:
        raise _http_error(e) from e


@router.post("/vrf/subscriptions/{subscription_id}/consumers/{lottery_id}", response_model=SubscriptionResponse)
async def add_consumer_route(
    subscription_id: int,
    lottery_id: UUID,
    r: redis.Redis = Depends(get_redis),
    coordinator: RedisVRFCoordinator = Depends(get_coordinator),
) -> SubscriptionResponse:
    try:
        require_lottery(r=r, lottery_id=lottery_id)
        coordinator.add_consumer(subscription_id=subscription_id, consumer=str(lottery_id))
        return _subscription_response(coordinator, subscription_id)
    except ValueError as e:
        raise _http_error(e) from e


@router.get("/vrf/requests/{request_id}", response_model=RandomnessRequestResponse)
async def get_request_route(
    request_id: int,
    coordinator: RedisVRFCoordinator = Depends(get_coordinator),
) -> RandomnessRequestResponse:
    try:
        record = coordinator.get_request(request_id)
    except LotteryError as e:
        raise _http_error(e) from e
    return RandomnessRequestResponse(
        request_id=record.request_id,
        consumer=record.consumer,
        subscription_id=record.subscription_id,
        num_words=record.num_words,
        status=record.status,
        random_words=record.random_words,
    )


@router.post("/vrf/requests/{request_id}/fulfill", response_model=LotteryState)
async def fulfill_request_route(
    request_id: int,
    payload: VrfFulfillRequest | None = None,
    r: redis.Redis = Depends(get_redis),
    coordinator: RedisVRFCoordinator = Depends(get_coordinator),
    ledger: RedisPayoutLedger = Depends(get_ledger),
    settings: LotterySettings = Depends(get_settings),
) -> LotteryState:
    """Have the local coordinator deliver words for a request right away.

    `random_words` overrides the generated words, which makes winner selection
    reproducible in manual testing. It is rejected unless dev fulfillment is on.
    """

    try:
        lottery_id = UUID(coordinator.get_request(request_id).consumer)
        state = _deliver_words(
            r=r,
            coordinator=coordinator,
            ledger=ledger,
            settings=settings,
            request_id=request_id,
            lottery_id=lottery_id,
            words=payload.random_words if payload is not None else None,
        )
    except (ValueError, PayoutTransferFailed) as e:
        raise _http_error(e) from e

    await _notify(r, lottery_id)
    return state


@router.post("/vrf/run_once")
async def run_vrf_once_route(
    count: int = 10,
    r: redis.Redis = Depends(get_redis),
    coordinator: RedisVRFCoordinator = Depends(get_coordinator),
    ledger: RedisPayoutLedger = Depends(get_ledger),
) -> dict[str, object]:
    """Dev endpoint: fulfill queued randomness requests once, without a separate worker process."""

    if count < 1 or count > 100:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="count must be 1..100")

    fulfilled = run_vrf_worker_once(
        r=r,
        coordinator=coordinator,
        ledger=ledger,
        config=VrfWorkerConfig(block_ms=0, count=count),
    )

    if fulfilled:
        for state in list_lotteries(r=r):
            await _notify(r, state.lottery_id)

    return {"fulfilled": fulfilled}
