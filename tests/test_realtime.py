import asyncio
import time

import pytest
from starlette import status
from starlette.websockets import WebSocketDisconnect

from app.realtime.change_feed import DEBTS, PROFILES, TABLES, TRANSACTIONS, ChangeFeed, change_feed
from app.realtime.debounce import Debouncer
from app.realtime.subscription import RetryPolicy, SubscriptionManager, SubscriptionState
from app.realtime.sync import TransactionSync

FAST = RetryPolicy(max_retries=2, base_delay=0.01, max_delay=0.02)


class FlakySource:
    """Falla las primeras `failures` suscripciones y luego delega al canal."""

    def __init__(self, failures: int):
        self.failures = failures
        self.calls = 0
        self.feed = ChangeFeed()

    def subscribe(self, table, on_change, on_error=None):
        self.calls += 1
        if self.calls <= self.failures:
            raise ConnectionError("sin conexión")
        return self.feed.subscribe(table, on_change, on_error)


def test_retry_delays_are_capped():
    policy = RetryPolicy()
    assert [policy.delay_for(n) for n in range(1, 7)] == [1, 2, 4, 8, 16, 30]


def test_debounce_coalesces_bursts():
    async def scenario():
        calls = []
        debouncer = Debouncer(0.05, lambda: calls.append(1))
        for _ in range(10):
            debouncer.trigger()
        await asyncio.sleep(0.2)
        return calls, debouncer

    calls, debouncer = asyncio.run(scenario())
    assert calls == [1]
    assert debouncer.fired == 1
    assert not debouncer.armed


def test_subscription_recovers_after_failures():
    async def scenario():
        source = FlakySource(failures=2)
        manager = SubscriptionManager(source, policy=FAST, debounce_window=0.01)
        await manager.subscribe("tx", TRANSACTIONS, lambda: None)
        sub = await manager.wait_settled("tx")
        state = sub.state
        count = source.feed.listener_count(TRANSACTIONS)
        await manager.close()
        return state, source.calls, count

    state, calls, count = asyncio.run(scenario())
    assert state == SubscriptionState.subscribed
    assert calls == 3
    assert count == 1


def test_subscription_gives_up_and_reports_degraded():
    degraded = []

    async def scenario():
        source = FlakySource(failures=100)
        manager = SubscriptionManager(
            source, policy=FAST, debounce_window=0.01, on_degraded=lambda key, err: degraded.append(key)
        )
        await manager.subscribe("tx", TRANSACTIONS, lambda: None)
        sub = await manager.wait_settled("tx")
        return sub, manager.degraded, source.calls

    sub, is_degraded, calls = asyncio.run(scenario())
    assert sub.state == SubscriptionState.failed
    assert is_degraded
    assert calls == FAST.max_retries + 1
    assert degraded == ["tx"]


def test_dropped_subscription_reconnects():
    async def scenario():
        source = FlakySource(failures=0)
        manager = SubscriptionManager(source, policy=FAST, debounce_window=0.01)
        sub = await manager.subscribe("tx", TRANSACTIONS, lambda: None)
        source.feed.drop(TRANSACTIONS, ConnectionError("se cayó"))
        await asyncio.sleep(0)
        state_after_drop = sub.state
        await manager.wait_settled("tx")
        return state_after_drop, sub.state, source.feed.listener_count(TRANSACTIONS)

    after_drop, final, count = asyncio.run(scenario())
    assert after_drop == SubscriptionState.retrying
    assert final == SubscriptionState.subscribed
    assert count == 1


def test_close_cancels_pending_retries():
    async def scenario():
        source = FlakySource(failures=100)
        manager = SubscriptionManager(source, policy=RetryPolicy(max_retries=5, base_delay=10, max_delay=10))
        sub = await manager.subscribe("tx", TRANSACTIONS, lambda: None)
        assert sub.state == SubscriptionState.retrying
        await manager.close()
        await asyncio.wait({sub._task})
        return sub, source.calls

    sub, calls = asyncio.run(scenario())
    assert sub.state == SubscriptionState.closed
    assert sub._task.cancelled()
    assert calls == 1


def _sync(source, server, balances, clock=None):
    async def fetch_transactions():
        return list(server)

    async def fetch_balances():
        return dict(balances)

    kwargs = {"clock": clock} if clock else {}
    return TransactionSync("u1", fetch_transactions, fetch_balances, source, policy=FAST, debounce_window=0.01, **kwargs)


def test_optimistic_changes_are_replaced_by_authoritative_state():
    async def scenario():
        feed = ChangeFeed()
        server = [{"id": "t1", "deleted_at": None}]
        balances = {"b": 50.0}
        sync = _sync(feed, server, balances)
        await sync.start()

        sync.add_optimistic({"id": "tmp", "deleted_at": None})
        sync.remove_optimistic("t1")
        optimistic = [t["id"] for t in sync.visible_transactions]

        server.append({"id": "t2", "deleted_at": None})
        balances["b"] = 0.0
        feed.publish(TRANSACTIONS, "created", "t2")
        feed.publish(DEBTS, "created", "t2")
        await asyncio.sleep(0.2)

        result = [t["id"] for t in sync.visible_transactions], dict(sync.friend_balances)
        await sync.stop()
        return optimistic, result

    optimistic, (visible, balances) = asyncio.run(scenario())
    assert optimistic == ["tmp"]
    assert visible == ["t1", "t2"]
    assert balances == {"b": 0.0}


def test_profile_changes_refresh_transactions():
    async def scenario():
        feed = ChangeFeed()
        server = [{"id": "t1"}]
        sync = _sync(feed, server, {})
        await sync.start()
        server[0] = {"id": "t1", "profiles": {"u2": "Bea"}}
        feed.publish(PROFILES, "updated", "u2")
        await asyncio.sleep(0.2)
        await sync.stop()
        return sync.transactions

    assert asyncio.run(scenario()) == [{"id": "t1", "profiles": {"u2": "Bea"}}]


def test_staleness_and_degraded_state():
    now = [100.0]

    async def scenario():
        sync = _sync(ChangeFeed(), [], {}, clock=lambda: now[0])
        await sync.start()
        fresh = sync.is_stale()
        now[0] += 61
        stale = sync.is_stale()
        await sync.stop()

        broken = _sync(FlakySource(failures=100), [], {})
        broken.manager.policy = RetryPolicy(max_retries=0)
        await broken.start()
        await broken.stop()
        return fresh, stale, broken

    fresh, stale, broken = asyncio.run(scenario())
    assert not fresh
    assert stale
    assert broken.degraded
    assert broken.is_stale()
    assert broken.error


def test_failed_refresh_keeps_local_state():
    async def scenario():
        async def boom():
            raise ConnectionError("sin red")

        async def no_balances():
            return {}

        sync = TransactionSync("u1", boom, no_balances, ChangeFeed())
        sync.add_optimistic({"id": "tmp"})
        await sync.refresh_transactions()
        return sync

    sync = asyncio.run(scenario())
    assert [t["id"] for t in sync.transactions] == ["tmp"]
    assert sync.error


def test_websocket_relays_changes(client, make_user):
    a, ha = make_user("a@gastos.co")
    token = ha["Authorization"].split()[1]

    with client.websocket_connect(f"/realtime/ws?token={token}") as ws:
        r = client.post(
            "/transactions",
            json={"type": "personal", "amount": 5, "payers": [{"user_id": str(a), "amount_paid": 5}]},
            headers=ha,
        )
        assert r.status_code == 200
        event = ws.receive_json()
        assert event["table"] == TRANSACTIONS
        assert event["action"] == "created"
        assert event["record_id"] == r.json()["id"]


def test_websocket_rejects_bad_token(client):
    with pytest.raises(WebSocketDisconnect):
        with client.websocket_connect("/realtime/ws?token=malo"):
            pass


def test_events_carry_their_audience():
    feed = ChangeFeed()
    seen = []
    feed.subscribe(TRANSACTIONS, seen.append)
    feed.publish(TRANSACTIONS, "created", "t1", audience=["u1", "u2"])
    feed.publish(PROFILES, "created", "u3")

    assert seen[0].visible_to("u1")
    assert not seen[0].visible_to("u9")
    assert "audience" not in seen[0].as_dict()


def _personal(user_id, amount=5):
    return {"type": "personal", "amount": amount, "payers": [{"user_id": str(user_id), "amount_paid": amount}]}


def test_websocket_only_relays_records_the_user_takes_part_in(client, make_user):
    a, ha = make_user("a@gastos.co")
    x, hx = make_user("x@gastos.co")
    token = hx["Authorization"].split()[1]

    with client.websocket_connect(f"/realtime/ws?token={token}") as ws:
        assert client.post("/transactions", json=_personal(a), headers=ha).status_code == 200
        own = client.post("/transactions", json=_personal(x), headers=hx).json()["id"]
        first = [ws.receive_json() for _ in range(3)]

        shared = {
            "type": "shared",
            "amount": 10,
            "payers": [{"user_id": str(a), "amount_paid": 10}],
            "split_details": {
                "method": "equally",
                "participants": [
                    {"user_id": str(a), "share_amount": 5},
                    {"user_id": str(x), "share_amount": 5},
                ],
            },
        }
        shared_id = client.post("/transactions", json=shared, headers=ha).json()["id"]
        second = ws.receive_json()

    assert {e["record_id"] for e in first} == {own}
    assert {e["table"] for e in first} == {"transactions", "debts", "monthly_balances"}
    assert second["record_id"] == shared_id


def test_websocket_close_releases_listeners(client, make_user):
    _, ha = make_user("a@gastos.co")
    token = ha["Authorization"].split()[1]
    before = {table: change_feed.listener_count(table) for table in TABLES}

    with client.websocket_connect(f"/realtime/ws?token={token}"):
        during = {table: change_feed.listener_count(table) for table in TABLES}

    deadline = time.monotonic() + 2
    while time.monotonic() < deadline:
        after = {table: change_feed.listener_count(table) for table in TABLES}
        if after == before:
            break
        time.sleep(0.02)

    assert during == {table: count + 1 for table, count in before.items()}
    assert after == before


def test_dropped_channel_closes_the_websocket(client, make_user):
    _, ha = make_user("a@gastos.co")
    token = ha["Authorization"].split()[1]

    with client.websocket_connect(f"/realtime/ws?token={token}") as ws:
        change_feed.drop(TRANSACTIONS, ConnectionError("canal caído"))
        with pytest.raises(WebSocketDisconnect) as exc:
            ws.receive_json()

    assert exc.value.code == status.WS_1011_INTERNAL_ERROR
