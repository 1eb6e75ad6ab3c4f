from __future__ import annotations

import asyncio

import pytest
from conftest import after_interval

from lottery.api.models import RoundPhase
from lottery.entry_gate import enter
from lottery.keeper import KeeperConfig, run_keeper, run_keeper_once, run_keeper_pass
from lottery.store import list_round_results, require_lottery
from lottery.vrf_worker import VrfWorkerConfig, run_vrf_worker_once

WORKER = VrfWorkerConfig(block_ms=0, count=10)


def test_keeper_waits_until_round_is_ready(r, make_lottery, coordinator) -> None:
    state = make_lottery()
    enter(r=r, lottery_id=state.lottery_id, participant="A", payment=100)

    assert run_keeper_once(r=r, lottery_id=state.lottery_id, provider=coordinator, now=state.last_resolution_at) is None
    assert require_lottery(r=r, lottery_id=state.lottery_id).phase == RoundPhase.open

    request_id = run_keeper_once(r=r, lottery_id=state.lottery_id, provider=coordinator, now=after_interval(state))
    assert request_id is not None
    assert require_lottery(r=r, lottery_id=state.lottery_id).pending_request_id == request_id

    # Polling again while calculating is harmless.
    assert run_keeper_once(r=r, lottery_id=state.lottery_id, provider=coordinator, now=after_interval(state)) is None


def test_keeper_pass_covers_every_ready_lottery(r, make_lottery, coordinator) -> None:
    ready = make_lottery()
    empty = make_lottery()
    enter(r=r, lottery_id=ready.lottery_id, participant="A", payment=100)

    issued = run_keeper_pass(r=r, provider=coordinator, now=after_interval(ready, extra_seconds=60))

    assert list(issued) == [ready.lottery_id]
    assert require_lottery(r=r, lottery_id=empty.lottery_id).phase == RoundPhase.open


def test_keeper_pass_survives_rejected_request(r, make_lottery, coordinator) -> None:
    broken = make_lottery()
    enter(r=r, lottery_id=broken.lottery_id, participant="A", payment=100)
    r.srem(f"vrf:subscription:{broken.config.randomness.subscription_id}:consumers", str(broken.lottery_id))

    assert run_keeper_pass(r=r, provider=coordinator, now=after_interval(broken)) == {}
    assert require_lottery(r=r, lottery_id=broken.lottery_id).phase == RoundPhase.open


def test_worker_fulfills_requested_round(r, make_lottery, coordinator, ledger) -> None:
    state = make_lottery()
    for p in ("A", "B", "C"):
        enter(r=r, lottery_id=state.lottery_id, participant=p, payment=100)
    request_id = run_keeper_once(r=r, lottery_id=state.lottery_id, provider=coordinator, now=after_interval(state))

    assert run_vrf_worker_once(r=r, coordinator=coordinator, ledger=ledger, config=WORKER) == 1

    record = coordinator.get_request(request_id)
    assert record.status == "fulfilled"
    winner = ["A", "B", "C"][record.random_words[0] % 3]

    stored = require_lottery(r=r, lottery_id=state.lottery_id)
    assert stored.phase == RoundPhase.open
    assert stored.recent_winner == winner
    assert ledger.balance_of(winner) == 300
    # Acked entries are removed from the request stream.
    assert r.xlen("vrf:requests") == 0

    # Nothing left to do.
    assert run_vrf_worker_once(r=r, coordinator=coordinator, ledger=ledger, config=WORKER) == 0


def test_worker_redrives_refused_payout_with_same_words(r, make_lottery, coordinator, ledger) -> None:
    state = make_lottery()
    enter(r=r, lottery_id=state.lottery_id, participant="A", payment=100)
    request_id = run_keeper_once(r=r, lottery_id=state.lottery_id, provider=coordinator, now=after_interval(state))

    ledger.refuse("A")
    assert run_vrf_worker_once(r=r, coordinator=coordinator, ledger=ledger, config=WORKER) == 0
    first = coordinator.get_request(request_id)
    assert first.status == "pending"
    assert r.xlen("vrf:requests") == 1
    assert require_lottery(r=r, lottery_id=state.lottery_id).phase == RoundPhase.calculating

    # Still refused: stays pending on the next pass too.
    assert run_vrf_worker_once(r=r, coordinator=coordinator, ledger=ledger, config=WORKER) == 0

    ledger.accept("A")
    assert run_vrf_worker_once(r=r, coordinator=coordinator, ledger=ledger, config=WORKER) == 1

    done = coordinator.get_request(request_id)
    assert done.status == "fulfilled"
    assert done.random_words == first.random_words
    assert ledger.balance_of("A") == 100
    assert [h.random_word for h in list_round_results(r=r, lottery_id=state.lottery_id)] == first.random_words


def test_worker_drops_requests_the_lottery_no_longer_expects(r, make_lottery, coordinator, ledger) -> None:
    state = make_lottery()
    enter(r=r, lottery_id=state.lottery_id, participant="A", payment=100)
    request_id = run_keeper_once(r=r, lottery_id=state.lottery_id, provider=coordinator, now=after_interval(state))

    # Resolve the round out of band; the queued request is then stale.
    from lottery.resolution import fulfill_random_words

    fulfill_random_words(r=r, lottery_id=state.lottery_id, request_id=request_id, random_words=[0], ledger=ledger)

    assert run_vrf_worker_once(r=r, coordinator=coordinator, ledger=ledger, config=WORKER) == 0
    assert ledger.balance_of("A") == 100
    # Acked, so it is not re-read.
    assert r.xpending("vrf:requests", "vrf:fulfillers")["pending"] == 0
    assert r.xlen("vrf:requests") == 0
    assert r.ttl(f"vrf:request:{request_id}") > 0


@pytest.mark.asyncio
async def test_keeper_loop_stops_on_event(r, make_lottery, coordinator) -> None:
    make_lottery()
    stop = asyncio.Event()

    task = asyncio.create_task(run_keeper(r=r, provider=coordinator, config=KeeperConfig(poll_seconds=0.01), stop=stop))
    await asyncio.sleep(0.05)
    stop.set()
    await asyncio.wait_for(task, timeout=2)
    assert task.done()
