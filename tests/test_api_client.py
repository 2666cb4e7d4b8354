import asyncio
import json

import httpx
import pytest
from httpx_ws.transport import ASGIWebSocketTransport

from app.main import app
from app.realtime.change_feed import TRANSACTIONS, change_feed
from app.realtime.client import LedgerApiClient, WebSocketChangeSource
from app.realtime.subscription import RetryPolicy, SubscriptionManager, SubscriptionState
from app.realtime.sync import TransactionSync

FAST = RetryPolicy(max_retries=2, base_delay=0.01, max_delay=0.02)


def test_fetch_transactions_walks_all_pages():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.headers["Authorization"] == "Bearer tok"
        page = int(request.url.params["page"])
        seen.append(page)
        return httpx.Response(200, json={"items": [{"id": f"t{page}"}], "totalPages": 3})

    client = LedgerApiClient("http://api.test", "tok", transport=httpx.MockTransport(handler))
    items = asyncio.run(client.fetch_transactions())

    assert [i["id"] for i in items] == ["t1", "t2", "t3"]
    assert seen == [1, 2, 3]


def test_fetch_friend_balances_maps_by_friend():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/balances/friends"
        return httpx.Response(200, json=[{"friend_id": "b", "balance": 12.5}, {"friend_id": "c", "balance": -3}])

    client = LedgerApiClient("http://api.test/", "tok", transport=httpx.MockTransport(handler))
    assert asyncio.run(client.fetch_friend_balances()) == {"b": 12.5, "c": -3.0}


def test_writes_send_json_and_raise_on_errors():
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append((request.method, request.url.path, json.loads(request.content or b"null")))
        if request.method == "DELETE":
            return httpx.Response(503, json={"detail": "No fue posible guardar los cambios."})
        return httpx.Response(200, json={"id": "t1"})

    client = LedgerApiClient("http://api.test", "tok", transport=httpx.MockTransport(handler))
    assert asyncio.run(client.create_transaction({"amount": 10})) == {"id": "t1"}
    assert asyncio.run(client.update_transaction("t1", {"amount": 12})) == {"id": "t1"}
    with pytest.raises(httpx.HTTPStatusError):
        asyncio.run(client.delete_transaction("t1"))

    assert requests[0] == ("POST", "/transactions", {"amount": 10})
    assert requests[1] == ("PUT", "/transactions/t1", {"amount": 12})
    assert requests[2][:2] == ("DELETE", "/transactions/t1")


def test_against_the_app(make_user):
    a, ha = make_user("a@gastos.co")
    b, _ = make_user("b@gastos.co")
    token = ha["Authorization"].split()[1]

    async def scenario():
        api = LedgerApiClient("http://testserver", token, transport=httpx.ASGITransport(app=app))
        created = await api.create_transaction(
            {
                "type": "shared",
                "amount": 30,
                "payers": [{"user_id": str(a), "amount_paid": 30}],
                "split_details": {
                    "method": "equally",
                    "participants": [
                        {"user_id": str(a), "share_amount": 15},
                        {"user_id": str(b), "share_amount": 15},
                    ],
                },
            }
        )
        return created, await api.fetch_transactions(), await api.fetch_friend_balances(), await api.fetch_monthly_balances()

    created, transactions, balances, monthly = asyncio.run(scenario())
    assert [t["id"] for t in transactions] == [created["id"]]
    assert balances == {str(b): 15.0}
    assert monthly[-1]["closing_balance"] == -30


async def _until(predicate, timeout=5.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        assert loop.time() < deadline, "la condición no se cumplió a tiempo"
        await asyncio.sleep(0.02)


def test_websocket_source_keeps_a_remote_sync_current(make_user):
    a, ha = make_user("a@gastos.co")
    b, _ = make_user("b@gastos.co")
    token = ha["Authorization"].split()[1]

    async def scenario():
        api = LedgerApiClient("http://testserver", token, transport=httpx.ASGITransport(app=app))
        source = WebSocketChangeSource("http://testserver", token, transport=ASGIWebSocketTransport(app=app))
        sync = TransactionSync(
            str(a), api.fetch_transactions, api.fetch_friend_balances, source, policy=FAST, debounce_window=0.01
        )
        await sync.start()
        states = {key: sync.manager.get(key).state for key in (f"transactions:{a}", f"debts:{a}", "profiles")}
        before = list(sync.transactions)

        created = await api.create_transaction(
            {
                "type": "shared",
                "amount": 30,
                "payers": [{"user_id": str(a), "amount_paid": 30}],
                "split_details": {
                    "method": "equally",
                    "participants": [
                        {"user_id": str(a), "share_amount": 15},
                        {"user_id": str(b), "share_amount": 15},
                    ],
                },
            }
        )
        await _until(lambda: len(sync.transactions) == 1 and sync.friend_balances == {str(b): 15.0})

        await sync.stop()
        await source.aclose()
        return states, before, created, sync

    states, before, created, sync = asyncio.run(scenario())
    assert set(states.values()) == {SubscriptionState.subscribed}
    assert before == []
    assert sync.transactions[0]["id"] == created["id"]
    assert not sync.degraded


def test_websocket_source_retries_then_reports_degraded():
    degraded = []

    async def scenario():
        source = WebSocketChangeSource("http://testserver", "malo", transport=ASGIWebSocketTransport(app=app))
        manager = SubscriptionManager(
            source, policy=FAST, debounce_window=0.01, on_degraded=lambda key, err: degraded.append(key)
        )
        sub = await manager.subscribe("tx", TRANSACTIONS, lambda: None)
        first = sub.state
        await manager.wait_settled("tx")
        await source.aclose()
        return first, sub, source.connections

    first, sub, connections = asyncio.run(scenario())
    assert first == SubscriptionState.retrying
    assert sub.state == SubscriptionState.failed
    assert sub.attempts == FAST.max_retries + 1
    assert connections == 0
    assert degraded == ["tx"]


def test_websocket_source_resubscribes_after_a_drop(make_user):
    _, ha = make_user("a@gastos.co")
    token = ha["Authorization"].split()[1]
    policy = RetryPolicy(max_retries=2, base_delay=0.3, max_delay=0.3)

    async def scenario():
        source = WebSocketChangeSource("http://testserver", token, transport=ASGIWebSocketTransport(app=app))
        manager = SubscriptionManager(source, policy=policy, debounce_window=0.01)
        sub = await manager.subscribe("tx", TRANSACTIONS, lambda: None)
        first = sub.state

        # El servidor cierra el websocket cuando se cae su canal
        change_feed.drop(TRANSACTIONS, ConnectionError("canal caído"))
        await _until(lambda: sub.state == SubscriptionState.retrying)
        await _until(lambda: sub.state == SubscriptionState.subscribed and source.connected)

        await manager.close()
        await source.aclose()
        return first, sub, source.connections

    first, sub, connections = asyncio.run(scenario())
    assert first == SubscriptionState.subscribed
    assert sub.state == SubscriptionState.closed
    assert connections == 2
